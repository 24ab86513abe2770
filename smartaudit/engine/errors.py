"""
Error types for smart-audit.

Failures local to one tool or one issue are absorbed at that boundary and
turned into typed reasons; these exceptions only cross module seams.
"""

from typing import Any, Dict, Optional


class SmartAuditError(Exception):
    """
    Base exception for all smart-audit errors.

    Provides common functionality for error tracking and reporting.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class AdapterError(SmartAuditError):
    """Raised by an analyzer adapter when its tool output cannot be used."""

    def __init__(self, message: str, tool: Optional[str] = None,
                 exit_code: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.tool = tool
        self.exit_code = exit_code
        self.details.update({"tool": tool, "exit_code": exit_code})


class PipelineError(SmartAuditError):
    """Raised when the audit pipeline cannot be assembled or driven."""


class SnapshotError(SmartAuditError):
    """Raised when a snapshot cannot be created."""

    def __init__(self, message: str, snapshot_id: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.snapshot_id = snapshot_id
        self.details["snapshot_id"] = snapshot_id


class ValidationError(SmartAuditError):
    """
    Raised when project integrity validation fails.

    Args:
        message: Error message
        validation_type: Check that failed ('syntax', 'smoke', 'tests')
        file_path: File where validation failed, if any
    """

    def __init__(self, message: str,
                 validation_type: str = "general",
                 file_path: Optional[str] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.validation_type = validation_type
        self.file_path = file_path
        self.details.update({
            "validation_type": validation_type,
            "file_path": file_path,
        })


class VersionControlError(SmartAuditError):
    """Raised for git failures inside a fix attempt (dirty tree, commit, push)."""

    def __init__(self, message: str, operation: str = "general",
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.operation = operation
        self.details["operation"] = operation


class FixSessionBusyError(SmartAuditError):
    """Raised when another fix session already holds the working-tree lock."""

    def __init__(self, message: str, holder_pid: Optional[int] = None,
                 details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.holder_pid = holder_pid
        self.details["holder_pid"] = holder_pid
