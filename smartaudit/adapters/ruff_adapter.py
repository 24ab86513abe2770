"""Ruff lint adapter: findings from ``ruff check`` and per-rule autofix."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core.issues import Issue, Severity
from .base import Adapter, FixResult

logger = logging.getLogger(__name__)

# Conservative, explicit mapping; everything else is MEDIUM.
RUFF_CODE_SEVERITY: Dict[str, Severity] = {
    "F401": Severity.LOW,     # unused import
    "F541": Severity.LOW,     # f-string without placeholders
    "F601": Severity.HIGH,    # repeated dict key
    "F811": Severity.MEDIUM,  # redefinition of unused name
    "F821": Severity.HIGH,    # undefined name
    "F823": Severity.HIGH,    # local referenced before assignment
    "F841": Severity.MEDIUM,  # unused variable
    "E402": Severity.MEDIUM,  # import not at top of file
    "E701": Severity.LOW,
    "E702": Severity.LOW,
    "E713": Severity.LOW,
    "E722": Severity.MEDIUM,  # bare except
    "E731": Severity.LOW,
    "S105": Severity.HIGH,    # hardcoded password string
    "S307": Severity.HIGH,    # eval
    "S602": Severity.HIGH,    # subprocess with shell=True
}

STYLE_PREFIXES = ("E", "W", "I", "Q")


def severity_for_ruff(code: str) -> Severity:
    if code in RUFF_CODE_SEVERITY:
        return RUFF_CODE_SEVERITY[code]
    if code.startswith(("W", "I", "Q")):
        return Severity.LOW
    return Severity.MEDIUM


def category_for_ruff(code: str) -> str:
    if code.startswith("S"):
        return "security"
    if code.startswith("ANN"):
        return "typing"
    return "quality"


class RuffAdapter(Adapter):
    """Runs ``ruff check`` with JSON output."""

    name = "ruff"
    executable = "ruff"
    category = "quality"

    def audit(self) -> List[Issue]:
        result = self.run_command(
            ["ruff", "check", "--output-format", "json", "--exit-zero", "."]
        )
        self.ensure_ran(result, ok_codes=(0, 1))
        violations = self.parse_json(result) if result.stdout.strip() else []
        return [issue for issue in (self._to_issue(v) for v in violations) if issue]

    def _to_issue(self, violation: Dict[str, Any]) -> Optional[Issue]:
        code = violation.get("code")
        filename = violation.get("filename")
        # Syntax errors come through without a code
        if not filename or "location" not in violation:
            return None
        code = code or "E999"
        fix = violation.get("fix") if isinstance(violation.get("fix"), dict) else None
        safe_fix = bool(fix) and (fix.get("applicability") or "").lower() == "safe"
        return self.create_issue(
            message=violation.get("message", ""),
            severity=severity_for_ruff(code),
            type="style" if code.startswith(STYLE_PREFIXES) else "lint",
            category=category_for_ruff(code),
            file=self.relative_path(filename),
            line=violation["location"].get("row"),
            column=violation["location"].get("column"),
            auto_fixable=safe_fix,
            remediation=fix.get("message") if fix else None,
            documentation_url=violation.get("url"),
            metadata={
                "rule": code,
                "fix_applicability": (fix or {}).get("applicability"),
                "fix_message": (fix or {}).get("message"),
            },
        )

    def auto_fix(self, issues: List[Issue]) -> List[FixResult]:
        """Run ``ruff check --fix`` restricted to the issues' rules, one file at a time."""
        by_file: Dict[str, List[Issue]] = {}
        for issue in issues:
            if issue.auto_fixable and issue.file and issue.rule:
                by_file.setdefault(issue.file, []).append(issue)

        results = []
        for file, file_issues in by_file.items():
            results.append(self._fix_file(file, file_issues))
        return results

    def _fix_file(self, file: str, issues: List[Issue]) -> FixResult:
        codes = sorted({i.rule for i in issues if i.rule})
        target = self.project_path / file
        if not target.is_file():
            return FixResult.failure(f"File not found: {file}", issue=issues[0])

        before = _digest(target)
        result = self.run_command(["ruff", "check", "--fix", "--select", ",".join(codes), file])
        # Exit 1 only means some selected violations remain unfixed
        if result.timed_out or result.exit_code not in (0, 1):
            return FixResult.failure(
                f"ruff --fix failed (exit {result.exit_code}): {result.output.strip()[:500]}",
                issue=issues[0],
                error_type="adapter_failure",
            )
        if _digest(target) == before:
            return FixResult.failure(f"ruff made no changes to {file}", issue=issues[0])

        logger.info(f"ruff fixed {', '.join(codes)} in {file}")
        return FixResult.ok(
            issues[0],
            [file],
            f"Auto-corrected {len(issues)} ruff finding(s) ({', '.join(codes)}) in {file}",
            rules_fixed=codes,
        )


def _digest(path: Path) -> str:
    return hashlib.sha256(path.read_bytes()).hexdigest()
