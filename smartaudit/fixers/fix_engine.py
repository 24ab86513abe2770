"""
Safe-Fix Engine.

Applies analyzer auto-fixes under a snapshot, apply, validate, then
commit-or-rollback protocol:

- Safe fixes (pure formatting rules of low-risk tools) run as one atomic batch
  after a single confirmation.
- Every other fix is risky and runs alone, after its own confirmation.
- A failed fix, validation or commit restores the snapshot taken before the
  attempt; a failed restore is reported as requiring manual recovery.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from ..adapters.base import FixResult
from ..config import SAFETY_LEVELS, Config
from ..core.capabilities import Capabilities
from ..core.issues import Issue
from ..core.process import ProcessRunner
from ..engine.errors import SnapshotError
from ..plugins import AdapterRegistry, default_registry
from ..utils.logging_setup import log_operation
from .confirmation import Confirmer, ConsoleConfirmer
from .git_manager import GitManager, modified_files
from .session_lock import FixSessionLock
from .snapshots import SnapshotManager, ensure_state_dir
from .validation import DefaultProjectValidator, ProjectValidator

logger = logging.getLogger(__name__)

FIXES_LOG = "fixes.log"
FIXES_REPORT = "fixes_report.json"

SECONDS_PER_FIX = 2

SAFE_FIX_TOOLS = frozenset({"ruff"})

# Whitespace, blank-line, comment-spacing, import-order and quote-style rules
SAFE_FIX_RULES = frozenset({
    "W291",
    "W292",
    "W293",
    "W391",
    "E231",
    "E261",
    "E262",
    "E265",
    "E303",
    "I001",
    "Q000",
    "Q001",
    "Q002",
    "UP009",
})

ESTIMATED_CHANGES = {
    "ruff": "Lint/formatting rewrite (low risk)",
    "bandit": "Security-related code change (medium risk)",
    "pip_audit": "Dependency pin update (high risk)",
}

# Fixes git cannot fully undo once installed into an environment
IRREVERSIBLE_TOOLS = frozenset({"pip_audit"})


class RiskLevel(str, Enum):
    SAFE = "safe"
    RISKY = "risky"


def categorize(issue: Issue) -> RiskLevel:
    """Safe only for allow-listed tools AND allow-listed rules; risky otherwise."""
    if issue.tool in SAFE_FIX_TOOLS and issue.rule in SAFE_FIX_RULES:
        return RiskLevel.SAFE
    return RiskLevel.RISKY


def categorize_fixes(issues: Sequence[Issue]) -> Tuple[List[Issue], List[Issue]]:
    safe: List[Issue] = []
    risky: List[Issue] = []
    for issue in issues:
        (safe if categorize(issue) == RiskLevel.SAFE else risky).append(issue)
    return safe, risky


def group_by_tool(issues: Sequence[Issue]) -> Dict[str, List[Issue]]:
    """Issues keyed by tool, tools in first-seen order."""
    grouped: Dict[str, List[Issue]] = {}
    for issue in issues:
        grouped.setdefault(issue.tool, []).append(issue)
    return grouped


@dataclass
class DryRunPreview:
    """What applying one fix would do."""
    issue: Issue
    risk_level: RiskLevel
    estimated_changes: str
    files_affected: List[str] = field(default_factory=list)
    reversible: bool = True
    dependencies: List[str] = field(default_factory=list)
    preview: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "issue": self.issue.to_dict(),
            "risk_level": self.risk_level.value,
            "estimated_changes": self.estimated_changes,
            "files_affected": list(self.files_affected),
            "reversible": self.reversible,
            "dependencies": list(self.dependencies),
            "preview": self.preview,
        }


@dataclass
class DryRunResult:
    previews: List[DryRunPreview] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"previews": [p.to_dict() for p in self.previews], "summary": dict(self.summary)}


@dataclass
class FixSessionResult:
    """Outcome of one ``apply_fixes`` call."""
    fixes: List[FixResult] = field(default_factory=list)
    errors: List[FixResult] = field(default_factory=list)
    skipped: List[Issue] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "fixes": [f.to_dict() for f in self.fixes],
            "errors": [e.to_dict() for e in self.errors],
            "skipped": [i.to_dict() for i in self.skipped],
            "summary": dict(self.summary),
            "message": self.message,
        }


class SafeFixEngine:
    """
    Applies auto-fixes with snapshot protection.

    At most one engine may apply fixes to a project at a time; ``apply_fixes``
    holds a lock file in the state directory for its whole duration.
    """

    def __init__(self,
                 project_path: Union[str, Path],
                 config: Optional[Config] = None,
                 registry: Optional[AdapterRegistry] = None,
                 capabilities: Optional[Capabilities] = None,
                 runner: Optional[ProcessRunner] = None,
                 snapshot_manager: Optional[SnapshotManager] = None,
                 git_manager: Optional[GitManager] = None,
                 validator: Optional[ProjectValidator] = None,
                 confirmer: Optional[Confirmer] = None):
        self.project_path = Path(project_path)
        self.config = config or Config()
        self.registry = registry or default_registry()
        self.capabilities = capabilities or Capabilities.detect(self.project_path, self.registry)
        self.runner = runner or ProcessRunner()
        self.state_dir = self.config.state_path(self.project_path)

        self.git_manager = git_manager or GitManager(self.project_path, self.runner)
        self.snapshot_manager = snapshot_manager or SnapshotManager(
            self.project_path,
            vcs=self.git_manager if self.capabilities.vcs else None,
            state_dir=self.state_dir,
            critical_patterns=self.config.get("snapshot.critical_patterns"),
            exclude_dirs=self.config.exclude_dirs,
        )
        self.validator = validator or DefaultProjectValidator.from_config(
            self.project_path, self.config, runner=self.runner
        )
        self.confirmer = confirmer or ConsoleConfirmer()

    @property
    def vcs_enabled(self) -> bool:
        return self.capabilities.vcs and self.git_manager.is_available()

    # Categorization

    def categorize(self, issue: Issue) -> RiskLevel:
        return categorize(issue)

    def categorize_fixes(self, issues: Sequence[Issue]) -> Tuple[List[Issue], List[Issue]]:
        return categorize_fixes(issues)

    # Application

    def apply_fixes(self,
                    issues: Sequence[Issue],
                    level: Optional[str] = None,
                    auto_apply_safe: Optional[bool] = None) -> FixSessionResult:
        """
        Apply the auto-fixable subset of ``issues``.

        Args:
            issues: Issues from an audit run
            level: 'safe', 'risky' or 'all' (default: fix.safety_level)
            auto_apply_safe: Skip the safe-batch confirmation (default: fix.auto_apply_safe)

        Returns:
            FixSessionResult with applied fixes, errors, skipped issues and summary
        """
        level = level or self.config.get("fix.safety_level", "safe")
        if level not in SAFETY_LEVELS:
            raise ValueError(f"Unknown safety level {level!r}; expected one of {SAFETY_LEVELS}")
        if auto_apply_safe is None:
            auto_apply_safe = bool(self.config.get("fix.auto_apply_safe", False))

        fixable = [issue for issue in issues if issue.auto_fixable]
        if not fixable:
            return FixSessionResult(
                summary=self._summary(0, [], [], 0, [], []),
                message="No auto-fixable issues found",
            )

        session = FixSessionResult()
        limit = self.config.get("fix.max_fixes_per_run")
        if limit and len(fixable) > limit:
            logger.info(f"Limiting this run to {limit} of {len(fixable)} fixable issues")
            session.skipped.extend(fixable[limit:])
            fixable = fixable[:limit]

        safe, risky = categorize_fixes(fixable)
        declined = 0

        ensure_state_dir(self.state_dir)
        with FixSessionLock(self.state_dir):
            log_operation(logger, "fix", level=level, safe=len(safe), risky=len(risky))
            if safe and level in ("safe", "all"):
                if auto_apply_safe or self.confirmer.confirm_safe_batch(safe):
                    fixes, errors = self._apply_batch(safe)
                    session.fixes.extend(fixes)
                    session.errors.extend(errors)
                else:
                    declined += len(safe)
                    session.skipped.extend(safe)
            else:
                session.skipped.extend(safe)

            if level in ("risky", "all"):
                for issue in risky:
                    if not self.confirmer.confirm_risky(issue):
                        logger.info(f"Risky fix declined: {issue.tool} {issue.location}")
                        declined += 1
                        session.skipped.append(issue)
                        continue
                    result = self._apply_single(issue)
                    (session.fixes if result.success else session.errors).append(result)
            else:
                session.skipped.extend(risky)

            session.summary = self._summary(len(fixable), session.fixes, session.errors, declined, safe, risky)
            self.generate_fixes_report(session.fixes, session.errors)

            keep = self.config.get("fix.keep_snapshots", 10)
            if keep:
                self.snapshot_manager.cleanup_old_snapshots(keep)

        return session

    def _summary(self, attempted: int, fixes: List[FixResult], errors: List[FixResult],
                 declined: int, safe: List[Issue], risky: List[Issue]) -> Dict[str, int]:
        return {
            "total_attempted": attempted,
            "successful": len(fixes),
            "failed": len(errors),
            "declined": declined,
            "safe_fixes": len(safe),
            "risky_fixes": len(risky),
        }

    def _apply_batch(self, issues: List[Issue]) -> Tuple[List[FixResult], List[FixResult]]:
        """All-or-nothing application of the safe fixes."""
        stamp = int(time.time())
        logger.info(f"Applying batch of {len(issues)} safe fixes")
        return self._run_protocol(
            issues,
            description=f"batch_fix_{stamp}",
            branch_name=f"smartaudit/batch-{stamp}",
            commit_message=f"smartaudit: Applied {len(issues)} safe fixes",
            check_files=False,
        )

    def _apply_single(self, issue: Issue) -> FixResult:
        """One risky fix with its own snapshot and branch."""
        logger.info(f"Applying risky fix for {issue.tool} issue at {issue.location}")
        fixes, errors = self._run_protocol(
            [issue],
            description=f"single_fix_{issue.fingerprint}",
            branch_name=f"smartaudit/fix-{issue.fingerprint[:8]}",
            commit_message=f"smartaudit: Fix {issue.tool} issue in {issue.location}\n\n{issue.message}",
            check_files=True,
        )
        return fixes[0] if fixes else errors[0]

    def _run_protocol(self, issues: List[Issue], description: str, branch_name: str,
                      commit_message: str, check_files: bool) -> Tuple[List[FixResult], List[FixResult]]:
        """
        snapshot -> branch -> fix each issue -> validate -> commit or roll back.

        Returns:
            (fixes, errors); on failure fixes is empty and errors holds one result
        """
        first = issues[0] if len(issues) == 1 else None
        try:
            snapshot_id = self.snapshot_manager.create_snapshot(
                description, extra_paths=[i.file for i in issues if i.file]
            )
        except SnapshotError as e:
            logger.error(f"Snapshot failed, no fixes applied: {e.message}")
            return [], [FixResult.failure(e.message, issue=first, error_type="snapshot_failure")]

        original_branch, fix_branch = self._start_branch(branch_name)
        applied: List[FixResult] = []
        failure: Optional[FixResult] = None

        try:
            for tool, tool_issues in group_by_tool(issues).items():
                for result in self._execute_fixes(tool, tool_issues):
                    if not result.success:
                        failure = result
                        break
                    if check_files:
                        missing = [f for f in result.files_modified if not (self.project_path / f).exists()]
                        if missing:
                            failure = FixResult.failure(
                                f"Fix reported modified files that do not exist: {', '.join(missing)}",
                                issue=result.issue,
                                error_type="validation_failure",
                            )
                            break
                    applied.append(result)
                if failure is not None:
                    break

            if failure is None:
                validation = self.validate_project_integrity(modified_files(applied))
                if not validation.passed:
                    failure = FixResult.failure(
                        f"Project integrity validation failed: {validation.reason}",
                        issue=first,
                        error_type="validation_failure",
                        validation_type=validation.validation_type,
                        checks=validation.checks,
                    )

            if failure is None and not self._commit(applied, commit_message):
                failure = FixResult.failure(
                    "Failed to commit fixes", issue=first, error_type="version_control_failure"
                )
        except Exception as e:
            logger.error(f"Fix attempt aborted: {e}")
            failure = FixResult.failure(f"Fix attempt aborted: {e}", issue=first, error_type="batch_failure")

        if failure is not None:
            return [], [self._roll_back(snapshot_id, failure, original_branch, fix_branch)]

        self.snapshot_manager.mark_snapshot_success(snapshot_id)
        for result in applied:
            result.metadata.setdefault("snapshot_id", snapshot_id)
            if fix_branch:
                result.metadata.setdefault("branch", fix_branch)
            self.log_fix(result, snapshot_id)
        logger.info(f"Applied {len(applied)} fixes (snapshot {snapshot_id})")
        return applied, []

    def _start_branch(self, branch_name: str) -> Tuple[Optional[str], Optional[str]]:
        """Create the fix branch; (original, created) or (original, None) on the current branch."""
        if not self.vcs_enabled or not self.config.get("fix.use_git_branches", True):
            return None, None
        original = self.git_manager.current_branch_name()
        if self.git_manager.create_fix_branch(branch_name):
            return original, branch_name
        logger.warning(f"Could not create branch {branch_name}; applying fixes on the current branch")
        return original, None

    def _commit(self, fixes: List[FixResult], message: str) -> bool:
        if not self.vcs_enabled:
            logger.debug("Version control unavailable; skipping commit")
            return True
        return self.git_manager.commit_fixes(fixes, message)

    def _execute_fixes(self, tool: str, issues: List[Issue]) -> List[FixResult]:
        """Hand every issue of one tool to its adapter in a single ``auto_fix`` call."""
        first = issues[0]
        if tool not in self.registry:
            return [FixResult.failure(f"No adapter available for {tool}", issue=first, error_type="no_adapter")]
        if not self.capabilities.has_tool(tool):
            return [FixResult.failure(f"{tool} is not installed", issue=first, error_type="adapter_failure")]

        adapter = self.registry.create(
            tool, self.project_path, runner=self.runner, options=self.config.tool_options(tool)
        )
        try:
            results = adapter.auto_fix(list(issues))
        except Exception as e:
            logger.error(f"{tool} auto-fix raised: {e}")
            return [FixResult.failure(f"{tool} auto-fix failed: {e}", issue=first, error_type="adapter_failure")]

        if not results:
            return [FixResult.failure("Fix not applied", issue=first)]
        for result in results:
            if result.issue is None:
                result.issue = first
        return results

    def _roll_back(self, snapshot_id: str, failure: FixResult,
                   original_branch: Optional[str], fix_branch: Optional[str]) -> FixResult:
        restored = self.snapshot_manager.restore_snapshot(snapshot_id)
        if fix_branch and original_branch:
            self.git_manager.switch_to_branch(original_branch)
            self.git_manager.delete_branch(fix_branch)

        failure.metadata["snapshot_id"] = snapshot_id
        failure.metadata["rolled_back"] = restored
        if restored:
            logger.warning(f"Rolled back to snapshot {snapshot_id}: {failure.reason}")
        else:
            logger.critical(
                f"Rollback to snapshot {snapshot_id} FAILED; manual recovery required",
                extra={"snapshot_id": snapshot_id},
            )
            failure.metadata["original_error_type"] = failure.error_type
            failure.error_type = "snapshot_restore_failure"
            failure.reason = (
                f"{failure.reason}; restoring snapshot {snapshot_id} failed, "
                f"manual recovery required (files are kept under {self.snapshot_manager.snapshots_dir / snapshot_id})"
            )
        return failure

    def validate_project_integrity(self, modified: Sequence[str]):
        return self.validator.validate(modified)

    # Dry run

    def dry_run(self, issues: Sequence[Issue]) -> DryRunResult:
        """Describe the fixes without touching adapters, files or git."""
        previews = [self._preview(issue) for issue in issues if issue.auto_fixable]
        safe_count = sum(1 for p in previews if p.risk_level == RiskLevel.SAFE)
        return DryRunResult(
            previews=previews,
            summary={
                "total_fixable": len(previews),
                "safe_fixes": safe_count,
                "risky_fixes": len(previews) - safe_count,
                "estimated_duration": len(previews) * SECONDS_PER_FIX,
            },
        )

    def _preview(self, issue: Issue) -> DryRunPreview:
        package = issue.metadata.get("package")
        return DryRunPreview(
            issue=issue,
            risk_level=categorize(issue),
            estimated_changes=ESTIMATED_CHANGES.get(issue.tool, "Unknown changes"),
            files_affected=[issue.file] if issue.file else [],
            reversible=issue.tool not in IRREVERSIBLE_TOOLS,
            dependencies=[package] if issue.tool == "pip_audit" and package else [],
            preview=issue.metadata.get("fix_message") or issue.remediation or "Preview not available in dry-run mode",
        )

    # Recovery

    def rollback(self, snapshot_id: str) -> bool:
        if self.snapshot_manager.restore_snapshot(snapshot_id):
            logger.info(f"Rolled back to snapshot {snapshot_id}")
            return True
        logger.critical(
            f"Rollback to snapshot {snapshot_id} failed; manual recovery required. "
            f"Backed-up files are under {self.snapshot_manager.snapshots_dir / snapshot_id}"
        )
        return False

    def list_snapshots(self) -> List[Dict[str, Any]]:
        return self.snapshot_manager.list_snapshots()

    # Log and report

    def log_fix(self, result: FixResult, snapshot_id: Optional[str]) -> None:
        """Append one JSON line to the fixes log."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "issue": result.issue.to_dict() if result.issue else None,
            "result": result.to_dict(),
            "snapshot_id": snapshot_id,
        }
        ensure_state_dir(self.state_dir)
        with open(self.state_dir / FIXES_LOG, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def generate_fixes_report(self, fixes: List[FixResult], errors: List[FixResult]) -> Dict[str, Any]:
        """Write (replacing) the fixes report for this run."""
        report = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "fixes_applied": [f.to_dict() for f in fixes],
            "errors": [e.to_dict() for e in errors],
            "summary": {
                "total_fixes": len(fixes),
                "total_errors": len(errors),
                "files_modified": modified_files(fixes),
            },
        }
        ensure_state_dir(self.state_dir)
        (self.state_dir / FIXES_REPORT).write_text(json.dumps(report, indent=2, default=str), encoding="utf-8")
        return report
