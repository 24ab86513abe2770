"""
Git integration for fix branches, commits and recovery.

Every public method degrades to ``False``/``None``/empty when the project is
not a git repository or git is not installed; callers never need to guard.
"""

import logging
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from ..adapters.base import FixResult
from ..core.capabilities import vcs_metadata_present
from ..core.process import ProcessResult, ProcessRunner
from ..engine.errors import VersionControlError

logger = logging.getLogger(__name__)

TRAILER_FIXES = "Smartaudit-Fixes"
TRAILER_TOOLS = "Smartaudit-Tools"


class GitManager:
    """Thin wrapper over the git CLI, invoked with argv lists (no shell)."""

    def __init__(self, project_path: Union[str, Path], runner: Optional[ProcessRunner] = None):
        self.project_path = Path(project_path)
        self.runner = runner or ProcessRunner()
        self._available: Optional[bool] = None

    def _git(self, *args: str) -> ProcessResult:
        return self.runner.run(["git", *args], cwd=self.project_path)

    # Queries

    def is_available(self) -> bool:
        """A ``.git`` entry exists and git answers inside it."""
        if self._available is None:
            self._available = (
                vcs_metadata_present(self.project_path)
                and self._git("rev-parse", "--git-dir").ok
            )
        return self._available

    def working_directory_clean(self) -> bool:
        if not self.is_available():
            return False
        result = self._git("status", "--porcelain")
        return result.ok and not result.stdout.strip()

    def current_branch_name(self) -> Optional[str]:
        if not self.is_available():
            return None
        result = self._git("rev-parse", "--abbrev-ref", "HEAD")
        return result.stdout.strip() if result.ok else None

    def current_commit_hash(self) -> Optional[str]:
        if not self.is_available():
            return None
        result = self._git("rev-parse", "HEAD")
        return result.stdout.strip() if result.ok else None

    def get_remote_url(self) -> Optional[str]:
        if not self.is_available():
            return None
        result = self._git("config", "--get", "remote.origin.url")
        url = result.stdout.strip()
        return url if result.ok and url else None

    def count_commits_ahead(self, base_branch: str) -> int:
        if not self.is_available():
            return 0
        result = self._git("rev-list", "--count", f"{base_branch}..HEAD")
        try:
            return int(result.stdout.strip()) if result.ok else 0
        except ValueError:
            return 0

    def branch_exists(self, branch_name: str) -> bool:
        if not self.is_available():
            return False
        return self._git("rev-parse", "--verify", "--quiet", f"refs/heads/{branch_name}").ok

    def get_file_history(self, file_path: str, limit: int = 10) -> List[Dict[str, str]]:
        if not self.is_available():
            return []
        result = self._git("log", "--oneline", f"-{limit}", "--", file_path)
        if not result.ok:
            return []

        history = []
        for line in result.stdout.splitlines():
            commit_hash, _, message = line.partition(" ")
            history.append({"commit_hash": commit_hash, "message": message, "file": file_path})
        return history

    def generate_changelog(self, since: Optional[str] = None) -> str:
        """Markdown list of the commits created by automatic fixes."""
        if not self.is_available():
            return ""
        if since:
            result = self._git("log", f"{since}..HEAD", "--oneline", f"--grep={TRAILER_FIXES}")
        else:
            result = self._git("log", "--oneline", f"--grep={TRAILER_FIXES}", "-10")
        if not result.ok:
            return ""

        lines = ["# smart-audit Fixes Changelog", ""]
        for line in result.stdout.splitlines():
            commit_hash, _, message = line.partition(" ")
            if message:
                lines.append(f"- {message} ({commit_hash})")
        return "\n".join(lines) + "\n"

    # Branches

    def create_fix_branch(self, branch_name: str) -> bool:
        """Create and check out ``branch_name``; requires a clean tree and a new name."""
        if not self.is_available():
            return False
        if not self.working_directory_clean():
            logger.warning(f"Not creating {branch_name}: working directory has uncommitted changes")
            return False
        if self.branch_exists(branch_name):
            logger.warning(f"Not creating {branch_name}: branch already exists")
            return False

        result = self._git("checkout", "-b", branch_name)
        if result.ok:
            logger.info(f"Created fix branch: {branch_name}")
            return True
        logger.error(f"Failed to create branch {branch_name}: {result.output.strip()}")
        return False

    def switch_to_branch(self, branch_name: str) -> bool:
        if not self.is_available():
            return False
        result = self._git("checkout", branch_name)
        if result.ok:
            logger.info(f"Switched to branch: {branch_name}")
            return True
        logger.error(f"Failed to switch to branch {branch_name}: {result.output.strip()}")
        return False

    def delete_branch(self, branch_name: str) -> bool:
        """Force-delete a local branch other than the current one."""
        if not self.is_available():
            return False
        if self.current_branch_name() == branch_name:
            logger.error(f"Refusing to delete the current branch {branch_name}")
            return False

        result = self._git("branch", "-D", branch_name)
        if not result.ok:
            logger.error(f"Failed to delete branch {branch_name}: {result.output.strip()}")
            return False

        logger.info(f"Deleted branch: {branch_name}")
        if self.get_remote_url():
            remote = self._git("push", "origin", "--delete", branch_name)
            if not remote.ok:
                logger.debug(f"Remote branch {branch_name} not deleted: {remote.output.strip()}")
        return True

    def create_pull_request_branch(self, base_branch: str = "main") -> Union[Dict[str, Any], bool]:
        """Push the current fix branch so a pull request can be opened."""
        if not self.is_available():
            return False
        current = self.current_branch_name()
        if current is None or current == base_branch:
            return False
        remote_url = self.get_remote_url()
        if remote_url is None:
            logger.warning("No remote 'origin' configured; cannot push fix branch")
            return False

        result = self._git("push", "-u", "origin", current)
        if not result.ok:
            logger.error(f"Failed to push branch: {result.output.strip()}")
            return False

        logger.info(f"Pushed branch {current} to origin")
        return {
            "branch_name": current,
            "base_branch": base_branch,
            "remote_url": remote_url,
            "commit_count": self.count_commits_ahead(base_branch),
        }

    # Commits

    def commit_fixes(self, fixes: Sequence[FixResult], message: str) -> bool:
        """Stage exactly the files the fixes modified and commit them."""
        if not self.is_available() or not fixes:
            return False

        files = modified_files(fixes)
        if not files:
            logger.warning("No modified files to commit")
            return False

        try:
            self._stage(files)
            result = self._git("commit", "-m", build_commit_message(message, fixes), "--", *files)
            if not result.ok:
                self._git("reset", "-q", "--", *files)
                raise VersionControlError(result.output.strip(), operation="commit")
        except VersionControlError as e:
            logger.error(f"Failed to {e.operation} fixes: {e.message}")
            return False

        logger.info(f"Committed fixes: {len(fixes)} fixes applied")
        return True

    def _stage(self, files: Sequence[str]) -> None:
        """``git add`` each file; on failure unstage what was added and raise."""
        staged: List[str] = []
        for file in files:
            result = self._git("add", "--", file)
            if not result.ok:
                if staged:
                    self._git("reset", "-q", "--", *staged)
                raise VersionControlError(f"{file}: {result.output.strip()}", operation="stage")
            staged.append(file)

    def revert_last_commit(self) -> bool:
        if not self.is_available():
            return False
        result = self._git("revert", "--no-edit", "HEAD")
        if result.ok:
            logger.info("Reverted last commit")
            return True
        logger.error(f"Failed to revert commit: {result.output.strip()}")
        return False

    def create_patch(self, fixes: Sequence[FixResult],
                     output_path: Optional[Union[str, Path]] = None) -> Optional[Dict[str, Any]]:
        """Patch of the last commit, optionally written to ``output_path``."""
        if not self.is_available():
            return None
        result = self._git("format-patch", "-1", "HEAD", "--stdout")
        if not result.ok:
            return None

        if output_path:
            Path(output_path).write_text(result.stdout, encoding="utf-8")
            logger.info(f"Patch saved to: {output_path}")

        return {
            "content": result.stdout,
            "file_path": str(output_path) if output_path else None,
            "fixes_count": len(fixes),
            "commit_hash": self.current_commit_hash(),
        }

    # Snapshot support

    def stash_create(self, message: str) -> Optional[str]:
        """
        Record the dirty tracked state as a stash commit without touching the tree.

        The commit is not pushed onto ``refs/stash``; callers keep the hash,
        so the user's ``git stash list`` never changes.

        Returns:
            The stash commit hash, or None when there is nothing to record
        """
        if not self.is_available():
            return None
        created = self._git("stash", "create", message)
        ref = created.stdout.strip()
        if not created.ok or not ref:
            return None
        logger.debug(f"Recorded working tree state as {ref}")
        return ref

    def checkout_ref_paths(self, ref: str) -> bool:
        """Overwrite tracked files with their content at ``ref``."""
        if not self.is_available():
            return False
        result = self._git("checkout", ref, "--", ".")
        if not result.ok:
            logger.error(f"Failed to check out {ref}: {result.output.strip()}")
        return result.ok


def modified_files(fixes: Sequence[FixResult]) -> List[str]:
    """Unique, non-empty files touched by the successful fixes, in first-seen order."""
    seen: Dict[str, None] = {}
    for fix in fixes:
        if not fix.success:
            continue
        for file in fix.files_modified:
            if file:
                seen.setdefault(file, None)
    return list(seen)


def build_commit_message(message: str, fixes: Sequence[FixResult]) -> str:
    """Summary line, per-tool counts, numbered descriptions and git trailers."""
    lines = [message, "", f"Applied {len(fixes)} automatic fixes:"]

    per_tool = Counter(fix.tool for fix in fixes)
    for tool, count in per_tool.items():
        lines.append(f"- {tool}: {count} fixes")

    descriptions = [fix.description for fix in fixes if fix.description]
    if descriptions:
        lines.append("")
        for index, description in enumerate(descriptions, start=1):
            lines.append(f"{index}. {description}")

    lines.append("")
    lines.append(f"{TRAILER_FIXES}: {len(fixes)}")
    lines.append(f"{TRAILER_TOOLS}: {','.join(sorted(per_tool))}")
    return "\n".join(lines)
