"""pip-audit dependency vulnerability adapter."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from packaging.version import InvalidVersion, Version

from ..core.issues import Issue, Severity
from .base import Adapter, FixResult

logger = logging.getLogger(__name__)

REQUIREMENTS_FILE = "requirements.txt"
_PIN = re.compile(r"^(?P<name>[A-Za-z0-9][A-Za-z0-9._-]*)(?P<extras>\[[^\]]*\])?\s*==\s*(?P<version>[^\s;#]+)")


def _normalize(name: str) -> str:
    return re.sub(r"[-_.]+", "-", name).lower()


def is_upgrade(current: str, target: str) -> bool:
    """True when ``target`` is a strictly newer release than ``current``."""
    try:
        return Version(target) > Version(current)
    except InvalidVersion:
        return False


class PipAuditAdapter(Adapter):
    """Runs ``pip-audit -f json`` against the requirements file when one exists."""

    name = "pip_audit"
    executable = "pip-audit"
    category = "dependencies"

    @property
    def requirements_file(self) -> Optional[Path]:
        path = self.project_path / self.options.get("requirements", REQUIREMENTS_FILE)
        return path if path.is_file() else None

    def _relative(self, requirements: Path) -> str:
        return self.relative_path(str(requirements.resolve()))

    def audit(self) -> List[Issue]:
        args = ["pip-audit", "-f", "json", "--progress-spinner", "off"]
        requirements = self.requirements_file
        if requirements:
            args += ["-r", self._relative(requirements)]

        result = self.run_command(args)
        self.ensure_ran(result, ok_codes=(0, 1))
        data = self.parse_json(result)
        # Older pip-audit releases emit a bare list of dependencies
        dependencies = data.get("dependencies", []) if isinstance(data, dict) else data

        issues = []
        for dep in dependencies:
            for vuln in dep.get("vulns", []):
                issues.append(self._to_issue(dep, vuln, requirements))
        return issues

    def _to_issue(self, dep: Dict[str, Any], vuln: Dict[str, Any],
                  requirements: Optional[Path]) -> Issue:
        name = dep.get("name", "")
        fix_versions = list(vuln.get("fix_versions") or [])
        line = self._find_pin(requirements, name)[0] if requirements else None
        return self.create_issue(
            message=f"{name} {dep.get('version')} is affected by {vuln.get('id')}",
            severity=Severity.HIGH,
            type="vulnerable_dependency",
            file=self._relative(requirements) if requirements else None,
            line=line,
            auto_fixable=bool(fix_versions) and line is not None,
            remediation=f"Upgrade {name} to {fix_versions[0]}" if fix_versions else None,
            metadata={
                "rule": vuln.get("id"),
                "package": name,
                "installed_version": dep.get("version"),
                "fix_versions": fix_versions,
                "aliases": vuln.get("aliases", []),
                "description": vuln.get("description"),
            },
        )

    def _find_pin(self, requirements: Path, package: str) -> Tuple[Optional[int], Optional[str]]:
        wanted = _normalize(package)
        for lineno, text in enumerate(requirements.read_text(encoding="utf-8").splitlines(), 1):
            match = _PIN.match(text.strip())
            if match and _normalize(match.group("name")) == wanted:
                return lineno, match.group("version")
        return None, None

    def auto_fix(self, issues: List[Issue]) -> List[FixResult]:
        """Bump exact pins in the requirements file to the first fixed version."""
        return [self._bump_pin(issue) for issue in issues if issue.auto_fixable]

    def _bump_pin(self, issue: Issue) -> FixResult:
        requirements = self.requirements_file
        package = issue.metadata.get("package")
        fix_versions = issue.metadata.get("fix_versions") or []
        if not requirements or not package or not fix_versions:
            return FixResult.failure("No pinned requirement to upgrade", issue=issue)

        target_version = fix_versions[0]
        relative = self._relative(requirements)
        lines = requirements.read_text(encoding="utf-8").splitlines(keepends=True)
        lineno, current = self._find_pin(requirements, package)
        if lineno is None:
            return FixResult.failure(f"{package} is not pinned in {relative}", issue=issue)
        if not is_upgrade(current, target_version):
            # Already at or past the fixed release
            return FixResult.failure(
                f"{package}=={current} is not older than fix version {target_version}; pin left unchanged",
                issue=issue,
            )

        original = lines[lineno - 1]
        lines[lineno - 1] = original.replace(f"=={current}", f"=={target_version}", 1)
        requirements.write_text("".join(lines), encoding="utf-8")

        logger.info(f"Pinned {package} {current} -> {target_version} in {relative}")
        return FixResult.ok(
            issue,
            [relative],
            f"Upgraded {package} from {current} to {target_version} ({issue.rule})",
            package=package,
            from_version=current,
            to_version=target_version,
        )
