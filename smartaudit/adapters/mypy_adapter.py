"""Mypy type-check adapter (``mypy --output json``)."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List

from ..core.issues import Issue, Severity
from .base import Adapter

logger = logging.getLogger(__name__)


def severity_for_mypy(mypy_severity: str) -> Severity:
    return Severity.LOW if mypy_severity == "note" else Severity.MEDIUM


class MypyAdapter(Adapter):
    """Mypy reports newline-delimited JSON objects; it never provides fixes."""

    name = "mypy"
    executable = "mypy"
    category = "typing"

    def audit(self) -> List[Issue]:
        result = self.run_command(["mypy", ".", "--output", "json", "--no-error-summary"])
        # 0 = clean, 1 = type errors, 2 = crash or bad invocation
        self.ensure_ran(result, ok_codes=(0, 1))

        issues = []
        for raw_line in result.stdout.splitlines():
            line = raw_line.strip()
            if not line.startswith("{"):
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError:
                logger.debug(f"Skipping malformed mypy record: {line[:200]}")
                continue
            issues.append(self._to_issue(record))
        return issues

    def _to_issue(self, record: Dict[str, Any]) -> Issue:
        code = record.get("code")
        message = record.get("message", "")
        if record.get("hint"):
            message = f"{message} ({record['hint']})"
        return self.create_issue(
            message=message,
            severity=severity_for_mypy(record.get("severity", "error")),
            type="type_check",
            file=self.relative_path(record.get("file", "")),
            line=record.get("line"),
            column=record.get("column"),
            metadata={"rule": code},
        )
