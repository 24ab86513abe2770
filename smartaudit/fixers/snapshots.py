"""
Project snapshots for rolling back fix attempts.

A snapshot is a directory ``<state_dir>/snapshots/<id>/`` holding byte copies
of the critical project files under ``files/`` and a ``metadata.json`` with
their SHA-256 checksums. Metadata is written last, so a directory without it
is an incomplete snapshot.
"""

import fnmatch
import hashlib
import json
import logging
import os
import secrets
import shutil
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from ..config import DEFAULT_CRITICAL_PATTERNS, DEFAULT_EXCLUDE_DIRS, STATE_DIR
from ..engine.errors import SnapshotError
from .git_manager import GitManager

logger = logging.getLogger(__name__)

METADATA_FILE = "metadata.json"
FILES_DIR = "files"


@dataclass
class Snapshot:
    """Metadata of one snapshot."""
    id: str
    description: str
    created_at: str
    file_checksums: Dict[str, str] = field(default_factory=dict)
    vcs_commit: Optional[str] = None
    vcs_stash_ref: Optional[str] = None
    status: str = "pending"
    completed_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        return cls(
            id=data["id"],
            description=data.get("description", ""),
            created_at=data.get("created_at", ""),
            file_checksums=dict(data.get("file_checksums", {})),
            vcs_commit=data.get("vcs_commit"),
            vcs_stash_ref=data.get("vcs_stash_ref"),
            status=data.get("status", "pending"),
            completed_at=data.get("completed_at"),
        )


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sha256_file(path: Path) -> str:
    return sha256_bytes(path.read_bytes())


def new_snapshot_id() -> str:
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return f"snapshot_{timestamp}_{secrets.token_hex(4)}"


def ensure_state_dir(state_dir: Path) -> Path:
    """Create the state directory with a ``.gitignore`` hiding everything in it."""
    state_dir.mkdir(parents=True, exist_ok=True)
    gitignore = state_dir / ".gitignore"
    if not gitignore.exists():
        gitignore.write_text("*\n", encoding="utf-8")
    return state_dir


class SnapshotManager:
    """Creates, restores and prunes file snapshots of a project."""

    def __init__(self,
                 project_path: Union[str, Path],
                 vcs: Optional[GitManager] = None,
                 state_dir: Optional[Union[str, Path]] = None,
                 critical_patterns: Optional[Sequence[str]] = None,
                 exclude_dirs: Optional[Sequence[str]] = None):
        self.project_path = Path(project_path)
        self.vcs = vcs
        self.state_dir = Path(state_dir) if state_dir else self.project_path / STATE_DIR
        self.snapshots_dir = self.state_dir / "snapshots"
        self.critical_patterns = list(critical_patterns or DEFAULT_CRITICAL_PATTERNS)
        self.exclude_dirs = set(exclude_dirs or DEFAULT_EXCLUDE_DIRS)
        self.current_snapshot_id: Optional[str] = None

    # Creation

    def create_snapshot(self, description: Optional[str] = None,
                        extra_paths: Iterable[str] = ()) -> str:
        """
        Back up critical files (plus ``extra_paths``) and record their checksums.

        Returns:
            The new snapshot id

        Raises:
            SnapshotError: if any part of the snapshot cannot be written
        """
        snapshot_id = new_snapshot_id()
        snapshot_path = self.snapshots_dir / snapshot_id

        try:
            ensure_state_dir(self.state_dir)
            files_path = snapshot_path / FILES_DIR
            files_path.mkdir(parents=True)

            checksums: Dict[str, str] = {}
            for relative in self.collect_files(extra_paths):
                data = (self.project_path / relative).read_bytes()
                backup = files_path / relative
                backup.parent.mkdir(parents=True, exist_ok=True)
                backup.write_bytes(data)
                checksums[relative] = sha256_bytes(data)

            snapshot = Snapshot(
                id=snapshot_id,
                description=description or "Automatic snapshot",
                created_at=datetime.now(timezone.utc).isoformat(),
                file_checksums=checksums,
            )
            if self.vcs is not None and self.vcs.is_available():
                snapshot.vcs_commit = self.vcs.current_commit_hash()
                snapshot.vcs_stash_ref = self.vcs.stash_create(f"smartaudit snapshot {snapshot_id}")

            self._write_metadata(snapshot)
        except Exception as e:
            shutil.rmtree(snapshot_path, ignore_errors=True)
            raise SnapshotError(f"Failed to create snapshot: {e}", snapshot_id=snapshot_id) from e

        self.current_snapshot_id = snapshot_id
        logger.info(f"Created snapshot {snapshot_id} ({len(checksums)} files)",
                    extra={"snapshot_id": snapshot_id})
        return snapshot_id

    def collect_files(self, extra_paths: Iterable[str] = ()) -> List[str]:
        """Relative posix paths of every file the snapshot should hold."""
        selected: Dict[str, None] = {}

        for root, dirs, files in os.walk(self.project_path):
            dirs[:] = sorted(d for d in dirs if not self._excluded_dir(Path(root) / d))
            for name in sorted(files):
                relative = (Path(root) / name).relative_to(self.project_path).as_posix()
                if self.matches_critical(relative):
                    selected.setdefault(relative, None)

        for extra in extra_paths:
            if not extra:
                continue
            path = Path(extra)
            if path.is_absolute():
                try:
                    path = path.relative_to(self.project_path)
                except ValueError:
                    continue
            relative = path.as_posix()
            if (self.project_path / relative).is_file() and not self._excluded_relative(relative):
                selected.setdefault(relative, None)

        return list(selected)

    def matches_critical(self, relative: str) -> bool:
        # "**/" may match zero directories
        return any(
            fnmatch.fnmatchcase(relative, pattern) or fnmatch.fnmatchcase(relative, pattern.replace("**/", ""))
            for pattern in self.critical_patterns
        )

    def _excluded_dir(self, path: Path) -> bool:
        return path.name in self.exclude_dirs or path.resolve() == self.state_dir.resolve()

    def _excluded_relative(self, relative: str) -> bool:
        parts = Path(relative).parts
        if any(part in self.exclude_dirs or part == ".." for part in parts[:-1]):
            return True
        try:
            (self.project_path / relative).resolve().relative_to(self.state_dir.resolve())
            return True
        except ValueError:
            return False

    # Restoration

    def restore_snapshot(self, snapshot_id: str) -> bool:
        """
        Put every recorded file back and verify its checksum.

        Returns:
            True only when every recorded file matches its recorded checksum
        """
        try:
            snapshot = self.load_snapshot(snapshot_id)
            if snapshot is None:
                logger.error(f"Snapshot {snapshot_id} not found")
                return False

            if snapshot.vcs_stash_ref and self.vcs is not None and self.vcs.is_available():
                if not self.vcs.checkout_ref_paths(snapshot.vcs_stash_ref):
                    logger.warning(f"Could not restore tracked files from {snapshot.vcs_stash_ref}")

            files_path = self.snapshots_dir / snapshot_id / FILES_DIR
            for relative in snapshot.file_checksums:
                backup = files_path / relative
                if not backup.is_file():
                    logger.error(f"Backup of {relative} is missing from snapshot {snapshot_id}")
                    return False
                target = self.project_path / relative
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(backup.read_bytes())

            if not self.verify_snapshot(snapshot):
                logger.error(f"Snapshot {snapshot_id} restoration verification failed")
                return False
        except Exception as e:
            logger.error(f"Failed to restore snapshot {snapshot_id}: {e}")
            return False

        logger.info(f"Restored snapshot {snapshot_id}", extra={"snapshot_id": snapshot_id})
        return True

    def verify_snapshot(self, snapshot: Snapshot) -> bool:
        for relative, expected in snapshot.file_checksums.items():
            path = self.project_path / relative
            if not path.is_file():
                logger.error(f"{relative} missing after restoration")
                return False
            if sha256_file(path) != expected:
                logger.error(f"{relative} checksum mismatch after restoration")
                return False
        return True

    # Bookkeeping

    def load_snapshot(self, snapshot_id: str) -> Optional[Snapshot]:
        metadata_file = self.snapshots_dir / snapshot_id / METADATA_FILE
        if not metadata_file.is_file():
            return None
        with open(metadata_file, "r", encoding="utf-8") as f:
            return Snapshot.from_dict(json.load(f))

    def mark_snapshot_success(self, snapshot_id: str) -> bool:
        snapshot = self.load_snapshot(snapshot_id)
        if snapshot is None:
            return False
        snapshot.status = "success"
        snapshot.completed_at = datetime.now(timezone.utc).isoformat()
        self._write_metadata(snapshot)
        return True

    def list_snapshots(self) -> List[Dict[str, Any]]:
        """Summaries of complete snapshots, newest first."""
        if not self.snapshots_dir.is_dir():
            return []

        summaries = []
        for path in self.snapshots_dir.glob("snapshot_*"):
            snapshot = self.load_snapshot(path.name)
            if snapshot is None:
                continue
            summaries.append({
                "id": snapshot.id,
                "description": snapshot.description,
                "timestamp": snapshot.created_at,
                "vcs_commit": snapshot.vcs_commit,
                "status": snapshot.status,
                "file_count": len(snapshot.file_checksums),
            })

        summaries.sort(key=lambda s: (s["timestamp"], s["id"]), reverse=True)
        return summaries

    def cleanup_old_snapshots(self, keep: int = 10) -> int:
        """Delete the oldest snapshots beyond ``keep``; returns how many went."""
        old = self.list_snapshots()[keep:]
        for summary in old:
            self.delete_snapshot(summary["id"])
        if old:
            logger.info(f"Cleaned up {len(old)} old snapshots")
        return len(old)

    def delete_snapshot(self, snapshot_id: str) -> bool:
        path = self.snapshots_dir / snapshot_id
        if not path.is_dir():
            return False
        shutil.rmtree(path)
        logger.info(f"Deleted snapshot: {snapshot_id}")
        return True

    def snapshot_size(self, snapshot_id: str) -> int:
        path = self.snapshots_dir / snapshot_id
        if not path.is_dir():
            return 0
        return sum(f.stat().st_size for f in path.rglob("*") if f.is_file())

    def _write_metadata(self, snapshot: Snapshot) -> None:
        metadata_file = self.snapshots_dir / snapshot.id / METADATA_FILE
        tmp = metadata_file.with_suffix(".tmp")
        tmp.write_text(json.dumps(snapshot.to_dict(), indent=2), encoding="utf-8")
        tmp.replace(metadata_file)
