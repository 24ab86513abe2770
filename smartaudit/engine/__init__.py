"""
Engine module for the audit pipeline.

Only the error taxonomy and phase catalog are re-exported here; import the
orchestrator from ``smartaudit.engine.orchestration``.
"""

from .errors import (
    AdapterError,
    FixSessionBusyError,
    PipelineError,
    SmartAuditError,
    SnapshotError,
    ValidationError,
    VersionControlError,
)
from .phases import PHASE_CATALOG, Phase

__all__ = [
    "SmartAuditError",
    "AdapterError",
    "PipelineError",
    "SnapshotError",
    "ValidationError",
    "VersionControlError",
    "FixSessionBusyError",
    "PHASE_CATALOG",
    "Phase",
]
