"""Working-tree lock so only one fix session runs per project."""

import json
import logging
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from ..engine.errors import FixSessionBusyError

logger = logging.getLogger(__name__)

LOCK_FILE = "fix.lock"


def pid_alive(pid: int) -> bool:
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists but belongs to another user
        return True
    except OSError:
        return False
    return True


class FixSessionLock:
    """
    Exclusive lock file held for the duration of a fix session.

    Usage::

        with FixSessionLock(state_dir):
            ...
    """

    def __init__(self, state_dir: Union[str, Path]):
        self.state_dir = Path(state_dir)
        self.path = self.state_dir / LOCK_FILE
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def holder_pid(self) -> Optional[int]:
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            return int(data["pid"])
        except (OSError, ValueError, KeyError, TypeError):
            return None

    def acquire(self) -> None:
        """
        Create the lock file or raise FixSessionBusyError.

        A lock left behind by a dead process is taken over.
        """
        self.state_dir.mkdir(parents=True, exist_ok=True)
        for _ in range(2):
            try:
                fd = os.open(str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
            except FileExistsError:
                pid = self.holder_pid()
                if pid is not None and pid_alive(pid):
                    raise FixSessionBusyError(
                        f"Another fix session (pid {pid}) is running on this project",
                        holder_pid=pid,
                    )
                logger.warning(f"Removing stale fix lock held by pid {pid}")
                self.path.unlink(missing_ok=True)
                continue

            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump({"pid": os.getpid(), "acquired_at": datetime.now(timezone.utc).isoformat()}, f)
            self._held = True
            logger.debug(f"Acquired fix lock {self.path}")
            return

        raise FixSessionBusyError("Could not acquire the fix session lock", holder_pid=self.holder_pid())

    def release(self) -> None:
        if not self._held:
            return
        self.path.unlink(missing_ok=True)
        self._held = False
        logger.debug(f"Released fix lock {self.path}")

    def __enter__(self) -> "FixSessionLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()
