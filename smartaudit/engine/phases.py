"""Static catalog of audit phases."""

from dataclasses import dataclass
from typing import Dict, List, Tuple


@dataclass(frozen=True)
class Phase:
    """A named group of tools run together, in ascending priority order."""
    id: str
    display_name: str
    tools: Tuple[str, ...]
    parallel: bool = False
    stop_on_critical: bool = False
    priority: int = 100


PHASE_CATALOG: Tuple[Phase, ...] = (
    Phase(
        id="security_critical",
        display_name="Security Critical",
        tools=("bandit", "pip_audit"),
        parallel=False,
        stop_on_critical=True,
        priority=10,
    ),
    Phase(
        id="quality",
        display_name="Code Quality",
        tools=("ruff", "mypy"),
        parallel=True,
        priority=20,
    ),
    Phase(
        id="cleanup",
        display_name="Code Cleanup",
        tools=("vulture",),
        parallel=True,
        priority=30,
    ),
)


def ordered_phases(catalog: Tuple[Phase, ...] = PHASE_CATALOG) -> List[Phase]:
    return sorted(catalog, key=lambda phase: phase.priority)


def phases_by_id(catalog: Tuple[Phase, ...] = PHASE_CATALOG) -> Dict[str, Phase]:
    return {phase.id: phase for phase in catalog}
