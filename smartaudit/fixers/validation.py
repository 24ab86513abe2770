"""
Post-fix project integrity validation.

Runs three checks in order and stops at the first failure:

1. syntax: modified ``.py``/``.json``/``.yml`` files still parse
2. smoke: the project's packages still import (or ``fix.smoke_command`` passes)
3. tests: ``pytest -m <marker>`` passes when a test directory exists
"""

import ast
import json
import logging
import os
import shlex
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Sequence, Union

import yaml

from ..config import DEFAULT_EXCLUDE_DIRS
from ..core.process import ProcessRunner
from ..engine.errors import ValidationError

logger = logging.getLogger(__name__)

# pytest exit code when nothing matched the marker
PYTEST_NO_TESTS = 5


@dataclass
class ValidationResult:
    """Outcome of a validation run."""
    passed: bool
    checks: List[str] = field(default_factory=list)
    reason: Optional[str] = None
    validation_type: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_error(cls, error: ValidationError, checks: List[str]) -> "ValidationResult":
        return cls(
            passed=False,
            checks=checks,
            reason=error.message,
            validation_type=error.validation_type,
            details=dict(error.details),
        )


class ProjectValidator(Protocol):
    """Decides whether the project is still healthy after fixes."""

    def validate(self, modified_files: Sequence[str]) -> ValidationResult:
        ...


class DefaultProjectValidator:
    """Syntax, smoke-import and marked-test validation for Python projects."""

    def __init__(self,
                 project_path: Union[str, Path],
                 runner: Optional[ProcessRunner] = None,
                 smoke_command: Optional[str] = None,
                 test_marker: str = "critical",
                 timeout: Optional[float] = None,
                 exclude_dirs: Optional[Sequence[str]] = None,
                 python: str = sys.executable):
        self.project_path = Path(project_path)
        self.runner = runner or ProcessRunner()
        self.smoke_command = smoke_command
        self.test_marker = test_marker
        self.timeout = timeout
        self.exclude_dirs = set(exclude_dirs or DEFAULT_EXCLUDE_DIRS)
        self.python = python

    @classmethod
    def from_config(cls, project_path: Union[str, Path], config,
                    runner: Optional[ProcessRunner] = None) -> "DefaultProjectValidator":
        return cls(
            project_path,
            runner=runner,
            smoke_command=config.get("fix.smoke_command"),
            test_marker=config.get("fix.test_marker", "critical"),
            timeout=config.get("fix.validation_timeout"),
            exclude_dirs=config.exclude_dirs,
        )

    def validate(self, modified_files: Sequence[str]) -> ValidationResult:
        checks: List[str] = []
        try:
            self.check_syntax(modified_files)
            checks.append("syntax")
            if self.check_smoke():
                checks.append("smoke")
            if self.check_tests():
                checks.append("tests")
        except ValidationError as e:
            logger.warning(f"Validation failed ({e.validation_type}): {e.message}")
            return ValidationResult.from_error(e, checks)

        return ValidationResult(passed=True, checks=checks)

    # Checks

    def check_syntax(self, modified_files: Sequence[str]) -> None:
        """Parse every modified file; every Python file when none are given."""
        paths = [self.project_path / f for f in modified_files] if modified_files else self._python_files()

        for path in paths:
            if not path.is_file():
                continue
            suffix = path.suffix.lower()
            try:
                text = path.read_text(encoding="utf-8")
                if suffix == ".py":
                    ast.parse(text, filename=str(path))
                elif suffix == ".json":
                    json.loads(text)
                elif suffix in (".yml", ".yaml"):
                    yaml.safe_load(text)
            except (SyntaxError, ValueError, yaml.YAMLError) as e:
                raise ValidationError(
                    f"Syntax error in {self._display(path)}: {e}",
                    validation_type="syntax",
                    file_path=self._display(path),
                ) from e

    def check_smoke(self) -> bool:
        """Run the smoke command; False when there is nothing to run."""
        if self.smoke_command:
            args = shlex.split(self.smoke_command)
        else:
            packages = self.discover_packages()
            if not packages:
                return False
            args = [self.python, "-c", f"import {', '.join(packages)}"]

        result = self.runner.run(args, cwd=self.project_path, env=self._env(), timeout=self.timeout)
        if not result.ok:
            raise ValidationError(
                f"Smoke check failed (exit {result.exit_code}): {result.output.strip()[-500:]}",
                validation_type="smoke",
            )
        return True

    def check_tests(self) -> bool:
        """Run marked tests; False when the project has no test directory."""
        if not any((self.project_path / name).is_dir() for name in ("tests", "test")):
            return False

        args = [self.python, "-m", "pytest", "-m", self.test_marker, "-q"]
        result = self.runner.run(args, cwd=self.project_path, env=self._env(), timeout=self.timeout)
        if result.timed_out or result.exit_code not in (0, PYTEST_NO_TESTS):
            raise ValidationError(
                f"Tests marked '{self.test_marker}' failed (exit {result.exit_code})",
                validation_type="tests",
                details={"output": result.output[-2000:]},
            )
        return True

    # Helpers

    def discover_packages(self) -> List[str]:
        """Top-level importable packages at the project root or under ``src/``."""
        packages = []
        for base in (self.project_path, self.project_path / "src"):
            if not base.is_dir():
                continue
            for child in sorted(base.iterdir()):
                if (
                    child.is_dir()
                    and child.name.isidentifier()
                    and child.name not in self.exclude_dirs
                    and child.name not in ("tests", "test")
                    and (child / "__init__.py").is_file()
                ):
                    packages.append(child.name)
        return packages

    def _env(self) -> Dict[str, str]:
        env = dict(os.environ)
        paths = [str(self.project_path)]
        if (self.project_path / "src").is_dir():
            paths.append(str(self.project_path / "src"))
        if env.get("PYTHONPATH"):
            paths.append(env["PYTHONPATH"])
        env["PYTHONPATH"] = os.pathsep.join(paths)
        return env

    def _python_files(self) -> List[Path]:
        found = []
        for root, dirs, files in os.walk(self.project_path):
            dirs[:] = [d for d in dirs if d not in self.exclude_dirs]
            found.extend(Path(root) / name for name in files if name.endswith(".py"))
        return found

    def _display(self, path: Path) -> str:
        try:
            return path.relative_to(self.project_path).as_posix()
        except ValueError:
            return str(path)
