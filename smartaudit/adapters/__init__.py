"""Analyzer adapters: one wrapper per external tool."""

from .base import Adapter, FixResult
from .bandit_adapter import BanditAdapter
from .mypy_adapter import MypyAdapter
from .pip_audit_adapter import PipAuditAdapter
from .ruff_adapter import RuffAdapter
from .vulture_adapter import VultureAdapter

BUILTIN_ADAPTERS = [
    BanditAdapter,
    PipAuditAdapter,
    RuffAdapter,
    MypyAdapter,
    VultureAdapter,
]

__all__ = [
    "Adapter",
    "FixResult",
    "BanditAdapter",
    "MypyAdapter",
    "PipAuditAdapter",
    "RuffAdapter",
    "VultureAdapter",
    "BUILTIN_ADAPTERS",
]
