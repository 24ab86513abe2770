"""Tests for the audit pipeline orchestrator."""

import logging
import threading

import pytest

from smartaudit.config import Config
from smartaudit.core.capabilities import Capabilities
from smartaudit.core.issues import Issue, Severity
from smartaudit.engine.errors import AdapterError, PipelineError
from smartaudit.engine.orchestration import AuditRun, PipelineOrchestrator
from smartaudit.engine.phases import PHASE_CATALOG, ordered_phases, phases_by_id
from smartaudit.plugins import AdapterRegistry

ALL_TOOLS = ["bandit", "pip_audit", "ruff", "mypy", "vulture"]


def issue(tool, severity, category, n=0):
    return Issue(tool=tool, message=f"{tool} finding {n}", severity=severity,
                 category=category, file="app/models.py", line=n + 1)


@pytest.fixture
def clean_adapters(adapter_factory):
    return {tool: adapter_factory(tool) for tool in ALL_TOOLS}


def make_orchestrator(project, adapters, tools=ALL_TOOLS, **kwargs):
    registry = AdapterRegistry()
    for tool_id, cls in adapters.items():
        registry.register(tool_id, cls)
    return PipelineOrchestrator(
        project,
        config=kwargs.pop("config", None) or Config(),
        registry=registry,
        capabilities=Capabilities.assume(tools),
        **kwargs,
    )


class TestPhaseCatalog:
    """The static phase catalog."""

    def test_order_and_flags(self):
        phases = ordered_phases()
        assert [p.id for p in phases] == ["security_critical", "quality", "cleanup"]
        security = phases_by_id()["security_critical"]
        assert security.stop_on_critical
        assert not security.parallel
        assert security.tools == ("bandit", "pip_audit")
        assert phases_by_id()["quality"].parallel
        assert len(PHASE_CATALOG) == 3


class TestPipelineOrchestrator:
    """Phase selection, isolation and early stop."""

    def test_clean_run_executes_every_phase(self, sample_project, clean_adapters):
        run = make_orchestrator(sample_project, clean_adapters).run()

        assert [p.phase for p in run.phases] == ["security_critical", "quality", "cleanup"]
        assert not run.stopped_early
        assert run.score["global"] == 100
        assert run.summary["tools_run"] == 5
        assert run.summary["tools_available"] == 5
        assert run.metadata["project_name"] == "project"
        assert "tool_version" in run.metadata

    def test_critical_security_finding_stops_pipeline(self, sample_project, clean_adapters, adapter_factory):
        critical = issue("bandit", Severity.CRITICAL, "security")
        clean_adapters["bandit"] = adapter_factory("bandit", issues=[critical], category="security")

        run = make_orchestrator(sample_project, clean_adapters).run()

        assert run.stopped_early
        assert run.stop_reason == "Critical issues found in Security Critical"
        assert run.triggering_issues == [critical]
        assert [p.phase for p in run.phases] == ["security_critical"]
        assert run.phase("quality") is None
        assert clean_adapters["ruff"].audit_calls == 0
        assert run.score["global"] == 85
        assert run.score["security"] == 80
        assert run.summary["critical"] == 1

    def test_high_findings_do_not_stop(self, sample_project, clean_adapters, adapter_factory):
        clean_adapters["pip_audit"] = adapter_factory(
            "pip_audit", issues=[issue("pip_audit", Severity.HIGH, "dependencies")])

        run = make_orchestrator(sample_project, clean_adapters).run()

        assert not run.stopped_early
        assert len(run.phases) == 3

    def test_adapter_failure_is_isolated(self, sample_project, clean_adapters, adapter_factory, caplog):
        clean_adapters["ruff"] = adapter_factory("ruff", error=AdapterError("boom", tool="ruff", exit_code=2))
        clean_adapters["mypy"] = adapter_factory("mypy", issues=[issue("mypy", "medium", "typing")])

        with caplog.at_level(logging.ERROR, logger="smartaudit"):
            run = make_orchestrator(sample_project, clean_adapters).run()

        quality = run.phase("quality")
        assert quality.tools_run == ["ruff", "mypy"]
        assert [i.tool for i in quality.issues] == ["mypy"]
        assert run.phase("cleanup") is not None
        assert "Adapter failure in ruff" in caplog.text

    def test_parallel_phase_runs_concurrently(self, sample_project, clean_adapters, adapter_factory):
        barrier = threading.Barrier(2, timeout=5)

        def waiting_adapter(tool):
            base = adapter_factory(tool, issues=[issue(tool, "low", "quality")])

            class Waiting(base):
                def audit(self):
                    barrier.wait()
                    return super().audit()

            return Waiting

        clean_adapters["ruff"] = waiting_adapter("ruff")
        clean_adapters["mypy"] = waiting_adapter("mypy")

        run = make_orchestrator(sample_project, clean_adapters, max_workers=2).run()

        assert {i.tool for i in run.phase("quality").issues} == {"ruff", "mypy"}

    def test_only_and_skip(self, sample_project, clean_adapters):
        run = make_orchestrator(sample_project, clean_adapters, only=["quality", "cleanup"],
                                skip=["cleanup"]).run()
        assert [p.phase for p in run.phases] == ["quality"]

    def test_unknown_phase_is_warned_about(self, sample_project, clean_adapters, caplog):
        with caplog.at_level(logging.WARNING, logger="smartaudit"):
            run = make_orchestrator(sample_project, clean_adapters, skip=["formatting"]).run()
        assert len(run.phases) == 3
        assert "Ignoring unknown phase 'formatting'" in caplog.text

    def test_phase_without_available_tools_is_skipped(self, sample_project, clean_adapters):
        run = make_orchestrator(sample_project, clean_adapters, tools=["ruff", "mypy"]).run()
        assert [p.phase for p in run.phases] == ["quality"]
        assert run.summary["tools_available"] == 2

    def test_disabled_tool_is_not_run(self, sample_project, clean_adapters):
        config = Config({"tools": {"mypy": {"enabled": False}}})
        run = make_orchestrator(sample_project, clean_adapters, config=config).run()
        assert run.phase("quality").tools_run == ["ruff"]
        assert clean_adapters["mypy"].audit_calls == 0

    def test_phase_callback(self, sample_project, clean_adapters):
        seen = []
        make_orchestrator(sample_project, clean_adapters,
                          on_phase=lambda phase, result: seen.append(phase.id)).run()
        assert seen == ["security_critical", "quality", "cleanup"]

    def test_adapter_construction_failure_is_isolated(self, sample_project, clean_adapters, adapter_factory,
                                                       caplog):
        class MisconfiguredRuff(adapter_factory("ruff")):
            def __init__(self, *args, **kwargs):
                raise RuntimeError("bad options")

        clean_adapters["bandit"] = adapter_factory("bandit", issues=[issue("bandit", "high", "security")])
        clean_adapters["ruff"] = MisconfiguredRuff

        with caplog.at_level(logging.ERROR, logger="smartaudit"):
            run = make_orchestrator(sample_project, clean_adapters).run()

        assert [p.phase for p in run.phases] == ["security_critical", "quality", "cleanup"]
        assert [i.tool for i in run.all_issues()] == ["bandit"]
        assert "Adapter failure in ruff: bad options" in caplog.text

    def test_phase_selection_failure_raises_pipeline_error(self, sample_project, clean_adapters):
        class BrokenConfig(Config):
            def tool_enabled(self, tool_id):
                raise RuntimeError("config corrupted")

        orchestrator = make_orchestrator(sample_project, clean_adapters, config=BrokenConfig())
        with pytest.raises(PipelineError):
            orchestrator.run()


class TestAuditRun:
    """Persisted audit results."""

    def test_save_and_load(self, sample_project, clean_adapters, adapter_factory, tmp_path):
        ruff_issue = issue("ruff", "low", "quality")
        ruff_issue.auto_fixable = True
        ruff_issue.metadata["rule"] = "W291"
        clean_adapters["ruff"] = adapter_factory("ruff", issues=[ruff_issue])
        run = make_orchestrator(sample_project, clean_adapters).run()

        path = run.save(tmp_path / "out" / "audit_results.json")
        loaded = AuditRun.load(path)

        assert loaded.summary == run.summary
        assert loaded.score == run.score
        assert loaded.all_issues() == [ruff_issue]
        restored = loaded.all_issues()[0]
        assert restored.auto_fixable
        assert restored.rule == "W291"
        assert restored.severity is Severity.LOW
