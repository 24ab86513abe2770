"""Plugin system mapping tool identifiers to analyzer adapters."""

import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Type, Union

from .adapters import BUILTIN_ADAPTERS
from .adapters.base import Adapter
from .core.process import ProcessRunner

logger = logging.getLogger(__name__)


class AdapterRegistry:
    """
    Registry of adapter classes keyed by tool id.

    Replaces a hard-coded switch over tool names: callers resolve adapters
    through ``create`` and new tools are added with ``register``.
    """

    def __init__(self):
        self._adapters: Dict[str, Type[Adapter]] = {}

    def register(self, tool_id: str, adapter_cls: Type[Adapter]) -> None:
        """Register an adapter class for a tool id (replaces any previous one)."""
        if tool_id in self._adapters:
            logger.debug(f"Replacing adapter for {tool_id}")
        self._adapters[tool_id] = adapter_cls

    def adapter_class(self, tool_id: str) -> Optional[Type[Adapter]]:
        return self._adapters.get(tool_id)

    def create(self,
               tool_id: str,
               project_path: Union[str, Path],
               runner: Optional[ProcessRunner] = None,
               options: Optional[Dict[str, Any]] = None) -> Optional[Adapter]:
        """Instantiate the adapter for ``tool_id``; ``None`` when unknown."""
        adapter_cls = self._adapters.get(tool_id)
        if adapter_cls is None:
            logger.warning(f"No adapter registered for tool '{tool_id}'")
            return None
        return adapter_cls(project_path, runner=runner, options=options)

    def probe(self, which: Callable[[str], Optional[str]]) -> Dict[str, bool]:
        """Availability of every registered tool."""
        return {tool_id: cls.is_available(which) for tool_id, cls in self._adapters.items()}

    def known_tools(self) -> List[str]:
        return list(self._adapters)

    def __contains__(self, tool_id: object) -> bool:
        return tool_id in self._adapters


def default_registry() -> AdapterRegistry:
    """Registry pre-loaded with the built-in adapters."""
    registry = AdapterRegistry()
    for adapter_cls in BUILTIN_ADAPTERS:
        registry.register(adapter_cls.name, adapter_cls)
    return registry
