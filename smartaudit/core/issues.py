"""Core issue tracking data structures."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Set, TypedDict, Union


class Severity(str, Enum):
    """Issue severity levels, shared by every analyzer."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]

    @classmethod
    def parse(cls, value: Union[str, "Severity", None]) -> "Severity":
        """Parse a severity name; unknown values map to MEDIUM."""
        if isinstance(value, Severity):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.MEDIUM


_SEVERITY_RANK = {
    Severity.CRITICAL: 4,
    Severity.HIGH: 3,
    Severity.MEDIUM: 2,
    Severity.LOW: 1,
}


class IssueDict(TypedDict, total=False):
    """Type definition for issue dictionary representation."""
    tool: str
    type: str
    severity: str
    category: str
    message: str
    file: Optional[str]
    line: Optional[int]
    column: Optional[int]
    fingerprint: str
    auto_fixable: bool
    metadata: Dict[str, Any]
    remediation: Optional[str]
    documentation_url: Optional[str]


def compute_fingerprint(tool: str, file: Optional[str], line: Optional[int], message: str) -> str:
    """Stable identity of a finding, used for dedup and fix-branch naming."""
    content = f"{tool}:{file or ''}:{'' if line is None else line}:{message}"
    return hashlib.sha256(content.encode("utf-8")).hexdigest()[:16]


@dataclass
class Issue:
    """A single finding reported by one analyzer."""

    tool: str
    message: str
    severity: Severity = Severity.MEDIUM
    type: str = "general"
    category: str = "general"
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    fingerprint: str = ""
    auto_fixable: bool = False
    metadata: Dict[str, Any] = field(default_factory=dict)
    remediation: Optional[str] = None
    documentation_url: Optional[str] = None

    def __post_init__(self) -> None:
        self.severity = Severity.parse(self.severity)
        if not self.fingerprint:
            self.fingerprint = compute_fingerprint(self.tool, self.file, self.line, self.message)

    @property
    def rule(self) -> Optional[str]:
        """Adapter-specific rule or check id (ruff code, bandit test id...)."""
        rule = self.metadata.get("rule")
        return str(rule) if rule else None

    @property
    def location(self) -> str:
        if self.file and self.line is not None:
            return f"{self.file}:{self.line}"
        return self.file or "<project>"

    def to_dict(self) -> IssueDict:
        """Convert to dictionary for JSON serialization."""
        result: IssueDict = {
            "tool": self.tool,
            "type": self.type,
            "severity": self.severity.value,
            "category": self.category,
            "message": self.message,
            "file": self.file,
            "line": self.line,
            "column": self.column,
            "fingerprint": self.fingerprint,
            "auto_fixable": self.auto_fixable,
            "metadata": dict(self.metadata),
            "remediation": self.remediation,
            "documentation_url": self.documentation_url,
        }
        return result

    @classmethod
    def from_dict(cls, data: Union[Dict[str, Any], IssueDict]) -> Issue:
        """Create from dictionary, ignoring keys this model does not know."""
        known = {f.name for f in fields(cls)}
        return cls(**{k: v for k, v in data.items() if k in known})

    def __hash__(self) -> int:
        return hash(self.fingerprint)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Issue):
            return False
        return self.fingerprint == other.fingerprint


@dataclass
class IssueCollection:
    """Collection of issues with convenience methods."""

    issues: List[Issue] = field(default_factory=list)

    def add(self, issue: Issue) -> None:
        self.issues.append(issue)

    def extend(self, issues: List[Issue]) -> None:
        self.issues.extend(issues)

    def filter_by_severity(self, min_severity: Severity) -> List[Issue]:
        """Get all issues with at least the given severity."""
        return [i for i in self.issues if i.severity.rank >= min_severity.rank]

    def filter_by_category(self, category: str) -> List[Issue]:
        return [i for i in self.issues if i.category == category]

    def auto_fixable(self) -> List[Issue]:
        return [i for i in self.issues if i.auto_fixable]

    def deduplicate(self) -> None:
        """Remove duplicate issues; the first occurrence wins."""
        seen: Set[str] = set()
        unique: List[Issue] = []
        for issue in self.issues:
            if issue.fingerprint not in seen:
                seen.add(issue.fingerprint)
                unique.append(issue)
        self.issues = unique

    def group_by_tool(self) -> Dict[str, List[Issue]]:
        result: Dict[str, List[Issue]] = {}
        for issue in self.issues:
            result.setdefault(issue.tool, []).append(issue)
        return result

    def __len__(self) -> int:
        return len(self.issues)

    def __iter__(self) -> Iterator[Issue]:
        return iter(self.issues)

    def to_dict_list(self) -> List[IssueDict]:
        return [issue.to_dict() for issue in self.issues]
