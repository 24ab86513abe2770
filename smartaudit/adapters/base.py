"""Base adapter interface shared by every external analyzer."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from ..core.issues import Issue, Severity
from ..core.process import ProcessResult, ProcessRunner
from ..engine.errors import AdapterError

logger = logging.getLogger(__name__)


@dataclass
class FixResult:
    """Result of applying (or failing to apply) one automatic fix."""
    success: bool
    issue: Optional[Issue] = None
    files_modified: List[str] = field(default_factory=list)
    description: str = ""
    reason: Optional[str] = None
    error_type: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def ok(cls, issue: Optional[Issue], files_modified: Sequence[str],
           description: str, **metadata: Any) -> "FixResult":
        return cls(
            success=True,
            issue=issue,
            files_modified=list(files_modified),
            description=description,
            metadata=dict(metadata),
        )

    @classmethod
    def failure(cls, reason: str, issue: Optional[Issue] = None,
                error_type: str = "fix_not_applied", **metadata: Any) -> "FixResult":
        return cls(
            success=False,
            issue=issue,
            reason=reason,
            error_type=error_type,
            metadata=dict(metadata),
        )

    @property
    def tool(self) -> str:
        return self.issue.tool if self.issue else "unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "tool": self.tool,
            "issue": self.issue.to_dict() if self.issue else None,
            "files_modified": list(self.files_modified),
            "description": self.description,
            "reason": self.reason,
            "error_type": self.error_type,
            "metadata": dict(self.metadata),
        }


class Adapter(ABC):
    """
    Wraps one external analysis tool.

    ``audit`` must be read-only; ``auto_fix`` is the only method allowed to
    modify the working tree.
    """

    name: str = "base"
    executable: str = ""
    category: str = "general"

    def __init__(self, project_path: Union[str, Path], runner: Optional[ProcessRunner] = None,
                 options: Optional[Dict[str, Any]] = None):
        self.project_path = Path(project_path)
        self.runner = runner or ProcessRunner()
        self.options = options or {}

    @classmethod
    def is_available(cls, which: Callable[[str], Optional[str]]) -> bool:
        """Whether the tool's executable can be found."""
        return bool(cls.executable) and which(cls.executable) is not None

    @abstractmethod
    def audit(self) -> List[Issue]:
        """Run the tool and return its findings."""

    def auto_fix(self, issues: List[Issue]) -> List[FixResult]:
        """Apply fixes for the given issues; tools without fixes return nothing."""
        return []

    def run_command(self, args: Sequence[str]) -> ProcessResult:
        extra = self.options.get("args") or []
        return self.runner.run(
            [*args, *extra],
            cwd=self.project_path,
            timeout=self.options.get("timeout"),
        )

    def create_issue(self, message: str, severity: Union[Severity, str] = Severity.MEDIUM,
                     **params: Any) -> Issue:
        """Build an Issue stamped with this adapter's name and default category."""
        params.setdefault("category", self.category)
        return Issue(tool=self.name, message=message, severity=Severity.parse(severity), **params)

    def relative_path(self, path: str) -> str:
        p = Path(path)
        if not p.is_absolute():
            return p.as_posix()
        try:
            return p.resolve().relative_to(self.project_path.resolve()).as_posix()
        except ValueError:
            return p.as_posix()

    def parse_json(self, result: ProcessResult) -> Any:
        """Parse a tool's JSON stdout or raise AdapterError."""
        try:
            return json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise AdapterError(
                f"{self.name} produced unparsable output: {e}",
                tool=self.name,
                exit_code=result.exit_code,
                details={"stderr": result.stderr[-2000:]},
            ) from e

    def ensure_ran(self, result: ProcessResult, ok_codes: Sequence[int] = (0, 1)) -> None:
        """Raise AdapterError unless the tool exited with a findings-compatible code."""
        if result.timed_out or result.exit_code not in ok_codes:
            raise AdapterError(
                f"{self.name} failed with exit code {result.exit_code}: {result.stderr.strip()[:500]}",
                tool=self.name,
                exit_code=result.exit_code,
            )
