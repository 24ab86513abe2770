"""
Tool availability probe.

Availability is computed once at startup into an immutable ``Capabilities``
value that is passed to the orchestrator and the fix engine.
"""

from __future__ import annotations

import platform
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Callable, Iterable, Mapping, Optional, Union

if TYPE_CHECKING:
    from ..plugins import AdapterRegistry


def vcs_metadata_present(project_path: Union[str, Path]) -> bool:
    """A ``.git`` directory (or worktree file) at the project root."""
    return (Path(project_path) / ".git").exists()


@dataclass(frozen=True)
class Capabilities:
    """Which analyzers and which version control are usable for this run."""
    tools: Mapping[str, bool] = field(default_factory=dict)
    vcs: bool = False
    python: str = field(default_factory=platform.python_version)

    def __post_init__(self):
        object.__setattr__(self, "tools", MappingProxyType(dict(self.tools)))

    def has_tool(self, tool_id: str) -> bool:
        return bool(self.tools.get(tool_id, False))

    @property
    def available_tools(self) -> list:
        return [tool for tool, ok in self.tools.items() if ok]

    @classmethod
    def detect(cls,
               project_path: Union[str, Path],
               registry: "AdapterRegistry",
               which: Callable[[str], Optional[str]] = shutil.which) -> "Capabilities":
        """Probe PATH for every registered tool and for git."""
        return cls(
            tools=registry.probe(which),
            vcs=which("git") is not None and vcs_metadata_present(project_path),
        )

    @classmethod
    def assume(cls, tools: Iterable[str], vcs: bool = False) -> "Capabilities":
        """Build capabilities from an explicit list of available tools."""
        return cls(tools={tool: True for tool in tools}, vcs=vcs)
