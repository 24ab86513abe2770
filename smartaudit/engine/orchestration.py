"""
Audit pipeline orchestration.

Runs the static phase catalog against a project, isolating each tool so a
failing analyzer never aborts the pipeline, and stops early when a
security phase reports critical findings.
"""

import json
import logging
import platform
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

from .. import __version__
from ..config import Config
from ..core.capabilities import Capabilities
from ..core.issues import Issue, IssueCollection, Severity
from ..core.process import ProcessRunner
from ..core.scoring import AuditScorer
from ..plugins import AdapterRegistry, default_registry
from ..utils.logging_setup import log_operation
from .errors import PipelineError
from .phases import PHASE_CATALOG, Phase, ordered_phases, phases_by_id

logger = logging.getLogger(__name__)

DEFAULT_MAX_WORKERS = 4


@dataclass
class PhaseResult:
    """Issues reported by the tools of one phase."""
    phase: str
    display_name: str
    tools_run: List[str] = field(default_factory=list)
    duration_ms: int = 0
    issues: List[Issue] = field(default_factory=list)

    @property
    def issue_count(self) -> int:
        return len(self.issues)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase": self.phase,
            "display_name": self.display_name,
            "tools_run": list(self.tools_run),
            "duration_ms": self.duration_ms,
            "issue_count": self.issue_count,
            "issues": [issue.to_dict() for issue in self.issues],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PhaseResult":
        return cls(
            phase=data["phase"],
            display_name=data.get("display_name", data["phase"]),
            tools_run=list(data.get("tools_run", [])),
            duration_ms=int(data.get("duration_ms", 0)),
            issues=[Issue.from_dict(i) for i in data.get("issues", [])],
        )


@dataclass
class AuditRun:
    """Complete result of one pipeline execution."""
    phases: List[PhaseResult] = field(default_factory=list)
    stopped_early: bool = False
    stop_reason: Optional[str] = None
    triggering_issues: List[Issue] = field(default_factory=list)
    summary: Dict[str, int] = field(default_factory=dict)
    score: Dict[str, int] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)
    duration_ms: int = 0

    def all_issues(self) -> List[Issue]:
        """Issues of every phase, in phase order."""
        return [issue for phase in self.phases for issue in phase.issues]

    def phase(self, phase_id: str) -> Optional[PhaseResult]:
        for result in self.phases:
            if result.phase == phase_id:
                return result
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phases": [p.to_dict() for p in self.phases],
            "stopped_early": self.stopped_early,
            "stop_reason": self.stop_reason,
            "triggering_issues": [i.to_dict() for i in self.triggering_issues],
            "summary": dict(self.summary),
            "score": dict(self.score),
            "metadata": dict(self.metadata),
            "duration_ms": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AuditRun":
        return cls(
            phases=[PhaseResult.from_dict(p) for p in data.get("phases", [])],
            stopped_early=bool(data.get("stopped_early", False)),
            stop_reason=data.get("stop_reason"),
            triggering_issues=[Issue.from_dict(i) for i in data.get("triggering_issues", [])],
            summary=dict(data.get("summary", {})),
            score=dict(data.get("score", {})),
            metadata=dict(data.get("metadata", {})),
            duration_ms=int(data.get("duration_ms", 0)),
        )

    def save(self, path: Union[str, Path]) -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        return path

    @classmethod
    def load(cls, path: Union[str, Path]) -> "AuditRun":
        with open(path, "r", encoding="utf-8") as f:
            return cls.from_dict(json.load(f))


PhaseCallback = Callable[[Phase, PhaseResult], None]


class PipelineOrchestrator:
    """
    Runs audit phases in priority order.

    Tool availability comes from a ``Capabilities`` value computed once
    before the run; it is never re-queried while phases execute.
    """

    def __init__(self,
                 project_path: Union[str, Path],
                 config: Optional[Config] = None,
                 registry: Optional[AdapterRegistry] = None,
                 capabilities: Optional[Capabilities] = None,
                 runner: Optional[ProcessRunner] = None,
                 only: Optional[Sequence[str]] = None,
                 skip: Optional[Sequence[str]] = None,
                 max_workers: Optional[int] = None,
                 catalog: Sequence[Phase] = PHASE_CATALOG,
                 on_phase: Optional[PhaseCallback] = None):
        self.project_path = Path(project_path)
        self.config = config or Config()
        self.registry = registry or default_registry()
        self.capabilities = capabilities or Capabilities.detect(self.project_path, self.registry)
        self.runner = runner or ProcessRunner()
        self.only = list(only if only is not None else self.config.get("audit.phases", []) or [])
        self.skip = list(skip if skip is not None else self.config.get("audit.skip_phases", []) or [])
        self.max_workers = max_workers or self.config.get("audit.max_workers", DEFAULT_MAX_WORKERS)
        self.catalog = tuple(catalog)
        self.on_phase = on_phase
        self.scorer = AuditScorer(
            global_penalties=self.config.get("scoring.global_penalties"),
            category_penalties=self.config.get("scoring.category_penalties"),
        )

    def runnable_tools(self, phase: Phase) -> List[str]:
        """Tools of ``phase`` that are both available and enabled."""
        return [
            tool for tool in phase.tools
            if self.capabilities.has_tool(tool) and self.config.tool_enabled(tool)
        ]

    def select_phases(self) -> List[Phase]:
        """Phases that will run, in ascending priority."""
        known = phases_by_id(self.catalog)
        for phase_id in sorted(set(self.only) | set(self.skip)):
            if phase_id not in known:
                logger.warning(f"Ignoring unknown phase '{phase_id}'")

        selected = []
        for phase in ordered_phases(self.catalog):
            if self.only and phase.id not in self.only:
                continue
            if phase.id in self.skip:
                logger.debug(f"Skipping phase {phase.id} (excluded)")
                continue
            if not self.runnable_tools(phase):
                logger.debug(f"Skipping phase {phase.id}: no available tools")
                continue
            selected.append(phase)
        return selected

    def run(self) -> AuditRun:
        """
        Execute the pipeline.

        Returns:
            AuditRun with phase results, summary, score and metadata
        """
        start = time.time()
        try:
            phases = self.select_phases()
        except Exception as e:
            raise PipelineError(f"Could not assemble audit phases: {e}") from e

        run = AuditRun(metadata=self._build_metadata())
        log_operation(logger, "audit", project=str(self.project_path), phases=[p.id for p in phases])

        for phase in phases:
            result = self.run_phase(phase)
            run.phases.append(result)
            if self.on_phase:
                self.on_phase(phase, result)

            if phase.stop_on_critical:
                critical = [i for i in result.issues if i.severity == Severity.CRITICAL]
                if critical:
                    run.stopped_early = True
                    run.stop_reason = f"Critical issues found in {phase.display_name}"
                    run.triggering_issues = critical
                    logger.warning(f"{run.stop_reason}; remaining phases skipped")
                    break

        issues = run.all_issues()
        tools_run = sorted({tool for p in run.phases for tool in p.tools_run})
        run.summary = self.scorer.summarize(
            issues,
            tools_available=len(self.capabilities.available_tools),
            tools_run=len(tools_run),
        )
        run.score = self.scorer.calculate_scores(issues)
        run.duration_ms = int((time.time() - start) * 1000)
        return run

    def run_phase(self, phase: Phase) -> PhaseResult:
        start = time.time()
        tools = self.runnable_tools(phase)
        logger.info(f"Phase {phase.display_name}: {', '.join(tools)}")

        if phase.parallel and len(tools) >= 2:
            with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
                per_tool = list(executor.map(self.run_tool, tools))
        else:
            per_tool = [self.run_tool(tool) for tool in tools]

        collected = IssueCollection()
        for tool_issues in per_tool:
            collected.extend(tool_issues)
        collected.deduplicate()

        return PhaseResult(
            phase=phase.id,
            display_name=phase.display_name,
            tools_run=tools,
            duration_ms=int((time.time() - start) * 1000),
            issues=collected.issues,
        )

    def run_tool(self, tool_id: str) -> List[Issue]:
        """Run one analyzer; any failure contributes zero issues."""
        try:
            adapter = self.registry.create(
                tool_id, self.project_path, runner=self.runner, options=self.config.tool_options(tool_id)
            )
            if adapter is None:
                return []
            issues = adapter.audit()
        except Exception as e:
            logger.error(f"Adapter failure in {tool_id}: {e}", extra={"tool": tool_id})
            logger.debug("Adapter traceback", exc_info=True)
            return []

        logger.debug(f"{tool_id} reported {len(issues)} issues")
        return list(issues)

    def _build_metadata(self) -> Dict[str, Any]:
        return {
            "tool_version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "project_name": self.project_path.resolve().name,
            "project_path": str(self.project_path.resolve()),
            "python_version": self.capabilities.python,
            "platform": platform.platform(),
        }
