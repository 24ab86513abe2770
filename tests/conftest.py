"""
Shared fixtures for the smart-audit test suite.

Provides a scripted process runner, a factory for fake analyzer adapters,
small sample projects and a real temporary git repository.
"""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

import pytest

from smartaudit.adapters.base import Adapter, FixResult
from smartaudit.core.issues import Issue
from smartaudit.core.process import ProcessResult
from smartaudit.plugins import AdapterRegistry


class FakeRunner:
    """ProcessRunner double: answers by argv prefix and records every call."""

    def __init__(self):
        self.calls: List[List[str]] = []
        self._rules = []

    def on(self, *prefix: str, exit_code: int = 0, stdout: str = "", stderr: str = "",
           action: Optional[Callable[[List[str]], None]] = None) -> "FakeRunner":
        self._rules.append((tuple(prefix), exit_code, stdout, stderr, action))
        return self

    def run(self, args, cwd=None, env=None, timeout=None, input_text=None) -> ProcessResult:
        args = [str(a) for a in args]
        self.calls.append(args)
        for prefix, exit_code, stdout, stderr, action in self._rules:
            if tuple(args[:len(prefix)]) == prefix:
                if action:
                    action(args)
                return ProcessResult(args=args, exit_code=exit_code, stdout=stdout, stderr=stderr)
        return ProcessResult(args=args, exit_code=127, stderr=f"no such command: {args[0]}")

    def called(self, *prefix: str) -> bool:
        return any(tuple(c[:len(prefix)]) == prefix for c in self.calls)


class StubValidator:
    """ProjectValidator double with a fixed verdict."""

    def __init__(self, passed: bool = True, reason: str = "tests failed"):
        self.passed = passed
        self.reason = reason
        self.calls: List[List[str]] = []

    def validate(self, modified_files: Sequence[str]):
        from smartaudit.fixers.validation import ValidationResult

        self.calls.append(list(modified_files))
        if self.passed:
            return ValidationResult(passed=True, checks=["syntax"])
        return ValidationResult(passed=False, reason=self.reason, validation_type="tests")


def make_adapter(tool: str,
                 issues: Sequence[Issue] = (),
                 fix: Optional[Callable[[Path, Issue], FixResult]] = None,
                 error: Optional[Exception] = None,
                 category: str = "general"):
    """
    Build an Adapter subclass for ``tool``.

    ``issues`` are returned by audit(), ``error`` is raised by audit() when
    given, and ``fix(project_path, issue)`` produces each auto_fix result.
    """
    fix_calls: List[Issue] = []

    class FakeAdapter(Adapter):
        name = tool
        executable = tool
        audit_calls = 0

        @classmethod
        def is_available(cls, which):
            return True

        def audit(self):
            type(self).audit_calls += 1
            if error is not None:
                raise error
            return list(issues)

        def auto_fix(self, to_fix):
            results = []
            for issue in to_fix:
                fix_calls.append(issue)
                if fix is None:
                    results.append(FixResult.failure("no fix", issue=issue))
                else:
                    results.append(fix(self.project_path, issue))
            return results

    FakeAdapter.category = category
    FakeAdapter.fix_calls = fix_calls
    FakeAdapter.__name__ = f"Fake{tool.title().replace('_', '')}Adapter"
    return FakeAdapter


def append_line_fix(text: str = "# fixed\n") -> Callable[[Path, Issue], FixResult]:
    """Fix that appends a line to the issue's file."""

    def _fix(project_path: Path, issue: Issue) -> FixResult:
        target = project_path / issue.file
        target.write_text(target.read_text(encoding="utf-8") + text, encoding="utf-8")
        return FixResult.ok(issue, [issue.file], f"Fixed {issue.rule} in {issue.file}")

    return _fix


def git(cwd: Path, *args: str) -> str:
    completed = subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True, check=True)
    return completed.stdout.strip()


@pytest.fixture(autouse=True)
def reset_package_logger():
    """The CLI reconfigures the package logger; undo it so caplog keeps working."""
    yield
    logger = logging.getLogger("smartaudit")
    logger.handlers.clear()
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def stub_validator():
    return StubValidator


@pytest.fixture
def adapter_factory():
    return make_adapter


@pytest.fixture
def fix_appending():
    return append_line_fix


@pytest.fixture
def registry_with():
    """Build an AdapterRegistry from ``{tool_id: adapter_cls}``."""

    def _build(adapters: Dict[str, type]) -> AdapterRegistry:
        registry = AdapterRegistry()
        for tool_id, adapter_cls in adapters.items():
            registry.register(tool_id, adapter_cls)
        return registry

    return _build


@pytest.fixture
def sample_project(tmp_path) -> Path:
    """A tiny Python project with a package, a config file and a requirements file."""
    project = tmp_path / "project"
    (project / "app").mkdir(parents=True)
    (project / "app" / "__init__.py").write_text("", encoding="utf-8")
    (project / "app" / "models.py").write_text("def total(a, b):\n    return a + b\n", encoding="utf-8")
    (project / "app" / "views.py").write_text("import os\n\nVALUE = 1\n", encoding="utf-8")
    (project / "app" / "utils.py").write_text("X = [1,2]\n", encoding="utf-8")
    (project / "config").mkdir()
    (project / "config" / "settings.yml").write_text("debug: false\n", encoding="utf-8")
    (project / "requirements.txt").write_text("requests==2.19.0\nclick>=8.0\n", encoding="utf-8")
    (project / "notes.txt").write_text("not a critical file\n", encoding="utf-8")
    (project / ".venv" / "lib").mkdir(parents=True)
    (project / ".venv" / "lib" / "site.py").write_text("x = 1\n", encoding="utf-8")
    return project


@pytest.fixture
def git_project(sample_project) -> Path:
    """``sample_project`` as a git repository with one commit on ``main``."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    git(sample_project, "init", "-q")
    git(sample_project, "checkout", "-q", "-b", "main")
    git(sample_project, "config", "user.email", "tests@example.com")
    git(sample_project, "config", "user.name", "Test Runner")
    git(sample_project, "config", "commit.gpgsign", "false")
    (sample_project / ".gitignore").write_text(".venv/\n", encoding="utf-8")
    git(sample_project, "add", "-A")
    git(sample_project, "commit", "-q", "-m", "Initial commit")
    return sample_project


@pytest.fixture
def git_cmd():
    return git
