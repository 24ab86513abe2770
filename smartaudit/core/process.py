"""
Process execution abstraction.

Every external command (analyzers, git, validation) goes through a
``ProcessRunner`` so callers receive a typed ``ProcessResult`` instead of
parsing shell output and exit statuses ad hoc.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Sequence, Union

logger = logging.getLogger(__name__)

MISSING_EXECUTABLE_EXIT = 127
TIMEOUT_EXIT = -1


@dataclass(frozen=True)
class ProcessResult:
    """Outcome of one external command."""
    args: Sequence[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def output(self) -> str:
        """stdout and stderr combined, as a terminal would show them."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr


class ProcessRunner:
    """Runs commands with ``subprocess.run`` and never raises for tool failures."""

    def __init__(self, default_timeout: Optional[float] = None):
        self.default_timeout = default_timeout

    def run(
        self,
        args: Sequence[str],
        cwd: Optional[Union[str, Path]] = None,
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        input_text: Optional[str] = None,
    ) -> ProcessResult:
        """
        Run a command and capture its output.

        Args:
            args: Command and arguments (no shell involved)
            cwd: Working directory
            env: Full environment for the child, inherited when omitted
            timeout: Seconds before the child is killed; ``None`` waits forever
            input_text: Text written to the child's stdin

        Returns:
            ProcessResult describing the outcome
        """
        args = [str(a) for a in args]
        effective_timeout = timeout if timeout is not None else self.default_timeout
        logger.debug(f"Running: {' '.join(args)} (cwd={cwd})")

        try:
            completed = subprocess.run(
                args,
                cwd=str(cwd) if cwd else None,
                env=env,
                input=input_text,
                capture_output=True,
                text=True,
                timeout=effective_timeout,
            )
        except FileNotFoundError as e:
            logger.debug(f"Executable not found: {args[0]}")
            return ProcessResult(args=args, exit_code=MISSING_EXECUTABLE_EXIT, stderr=str(e))
        except subprocess.TimeoutExpired as e:
            logger.warning(f"Command timed out after {effective_timeout}s: {' '.join(args)}")
            return ProcessResult(
                args=args,
                exit_code=TIMEOUT_EXIT,
                stdout=_decode(e.stdout),
                stderr=_decode(e.stderr) or f"Timed out after {effective_timeout}s",
                timed_out=True,
            )

        return ProcessResult(
            args=args,
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )


def _decode(data: Union[str, bytes, None]) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data
