"""Bandit security adapter."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

from ..core.issues import Issue, Severity
from .base import Adapter

logger = logging.getLogger(__name__)

_SEVERITY = {
    "HIGH": Severity.HIGH,
    "MEDIUM": Severity.MEDIUM,
    "LOW": Severity.LOW,
}


def severity_for_bandit(issue_severity: str, issue_confidence: str) -> Severity:
    """HIGH severity reported with HIGH confidence is treated as critical."""
    severity = (issue_severity or "").upper()
    confidence = (issue_confidence or "").upper()
    if severity == "HIGH" and confidence == "HIGH":
        return Severity.CRITICAL
    return _SEVERITY.get(severity, Severity.MEDIUM)


class BanditAdapter(Adapter):
    """Runs ``bandit -r . -f json``; bandit has no autofix."""

    name = "bandit"
    executable = "bandit"
    category = "security"

    def audit(self) -> List[Issue]:
        args = ["bandit", "-r", ".", "-f", "json", "-q"]
        excludes = self.options.get("exclude_dirs") or []
        if excludes:
            args += ["-x", ",".join(f"./{d}" for d in excludes)]

        result = self.run_command(args)
        # bandit exits 1 when it found something
        self.ensure_ran(result, ok_codes=(0, 1))
        data = self.parse_json(result)

        for error in data.get("errors", []):
            logger.debug(f"bandit could not scan {error.get('filename')}: {error.get('reason')}")

        return [self._to_issue(r) for r in data.get("results", [])]

    def _to_issue(self, finding: Dict[str, Any]) -> Issue:
        cwe = finding.get("issue_cwe") or {}
        return self.create_issue(
            message=finding.get("issue_text", ""),
            severity=severity_for_bandit(
                finding.get("issue_severity", ""), finding.get("issue_confidence", "")
            ),
            type="security",
            file=self.relative_path(finding.get("filename", "")),
            line=finding.get("line_number"),
            column=finding.get("col_offset"),
            documentation_url=finding.get("more_info"),
            metadata={
                "rule": finding.get("test_id"),
                "test_name": finding.get("test_name"),
                "confidence": finding.get("issue_confidence"),
                "cwe": cwe.get("id"),
            },
        )
