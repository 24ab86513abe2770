"""smart-audit - Audit Python projects and apply fixes safely."""

__version__ = "0.1.0"

from .core.issues import Issue, Severity

__all__ = ["Issue", "Severity", "__version__"]
