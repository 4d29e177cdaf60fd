"""
Tool Registry — Capability catalog for the agent core
======================================================
Maps a capability name to its handler and the declarative schema that is
advertised to the model:
  - Declarative registration with categories
  - Catalog generation in the ``{name, description, parameters}`` shape
  - Startup consistency check between catalog and handlers
  - Per-capability usage statistics
"""

import inspect
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional

from .errors import ErrorKind, RegistryError

logger = logging.getLogger(__name__)


class ToolCategory(str, Enum):
    """Capability groups"""
    FILE_READ = "file_read"    # read_file, list_directory, get_file_info
    FILE_WRITE = "file_write"  # write_file, edit_file, create_directory, delete_file
    COMMAND = "command"        # run_command
    SEARCH = "search"          # search_files, grep_search
    WEB = "web"                # web_search, read_url


# Result envelope keys owned by the dispatcher
RESERVED_ENVELOPE_KEYS = frozenset({"success", "error", "errorKind", "executionTime"})


@dataclass(frozen=True)
class CapabilityResult:
    """Normalized outcome of any capability invocation"""
    succeeded: bool
    payload: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    elapsed_ms: int = 0
    error_kind: Optional[ErrorKind] = None

    def to_envelope(self) -> Dict[str, Any]:
        """``{success, ...payload, error?, executionTime}``"""
        envelope: Dict[str, Any] = {"success": self.succeeded}
        for key, value in self.payload.items():
            if key not in RESERVED_ENVELOPE_KEYS:
                envelope[key] = value
        if self.error is not None:
            envelope["error"] = self.error
        if self.error_kind is not None:
            envelope["errorKind"] = self.error_kind.value
        envelope["executionTime"] = self.elapsed_ms
        return envelope


@dataclass
class ToolDefinition:
    """Complete capability definition with metadata"""
    name: str
    description: str
    parameters: Dict[str, Any]
    handler: Callable
    category: ToolCategory = ToolCategory.COMMAND
    # Touches the filesystem in a way the denylist must guard
    mutating: bool = False
    # Stats
    call_count: int = 0
    total_duration_ms: float = 0
    error_count: int = 0

    @property
    def properties(self) -> Dict[str, Any]:
        return self.parameters.get("properties", {})

    @property
    def required(self) -> List[str]:
        return list(self.parameters.get("required", []))

    @property
    def avg_duration_ms(self) -> float:
        if self.call_count == 0:
            return 0
        return self.total_duration_ms / self.call_count

    def to_catalog_entry(self) -> Dict[str, Any]:
        """Entry handed to the model so it can request invocations"""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": self.parameters,
        }


class ToolRegistry:
    """
    Registry of the capabilities the agent may invoke.

    The catalog given to the model is generated from the same definitions
    that hold the handlers, and ``validate()`` is run at startup so the two
    can never drift apart.
    """

    def __init__(self):
        self._tools: Dict[str, ToolDefinition] = {}

    def register(
        self,
        name: str,
        description: str,
        parameters: Dict[str, Any],
        handler: Callable,
        category: ToolCategory = ToolCategory.COMMAND,
        mutating: bool = False,
    ) -> ToolDefinition:
        """Register a capability with full metadata"""
        if name in self._tools:
            raise RegistryError(f"Capability already registered: {name}")
        tool = ToolDefinition(
            name=name,
            description=description,
            parameters=parameters,
            handler=handler,
            category=category,
            mutating=mutating,
        )
        self._tools[name] = tool
        return tool

    def register_all(self, definitions: Iterable[Dict[str, Any]]) -> None:
        """Register a list of ``*_TOOL_DEFINITIONS`` style dicts"""
        for d in definitions:
            self.register(
                name=d["name"],
                description=d.get("description", ""),
                parameters=d.get("parameters", {"type": "object", "properties": {}}),
                handler=d["handler"],
                category=ToolCategory(d.get("category", ToolCategory.COMMAND)),
                mutating=d.get("mutating", False),
            )

    def get(self, name: str) -> Optional[ToolDefinition]:
        return self._tools.get(name)

    def get_all(self) -> List[ToolDefinition]:
        return list(self._tools.values())

    def get_names(self) -> List[str]:
        return list(self._tools.keys())

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def get_catalog(self, tool_names: Optional[List[str]] = None) -> List[Dict[str, Any]]:
        """Catalog entries, optionally restricted to ``tool_names``"""
        if tool_names:
            return [
                self._tools[n].to_catalog_entry()
                for n in tool_names if n in self._tools
            ]
        return [t.to_catalog_entry() for t in self._tools.values()]

    def validate(self, catalog: Optional[List[Dict[str, Any]]] = None) -> None:
        """
        Check every definition is well formed and, when ``catalog`` is given,
        that it names exactly the registered capabilities with the same schemas.
        """
        problems: List[str] = []
        for name, tool in self._tools.items():
            if not callable(tool.handler):
                problems.append(f"{name}: handler is not callable")
            elif not _is_async_callable(tool.handler):
                problems.append(f"{name}: handler must be a coroutine function")
            if tool.parameters.get("type") != "object":
                problems.append(f"{name}: parameters.type must be 'object'")
            if not isinstance(tool.properties, dict):
                problems.append(f"{name}: parameters.properties must be an object")
                continue
            missing = [k for k in tool.required if k not in tool.properties]
            if missing:
                problems.append(f"{name}: required keys not declared: {missing}")

        if catalog is not None:
            advertised = {entry.get("name"): entry for entry in catalog}
            for name in set(advertised) - set(self._tools):
                problems.append(f"{name}: advertised but has no handler")
            for name in set(self._tools) - set(advertised):
                problems.append(f"{name}: registered but not advertised")
            for name in set(advertised) & set(self._tools):
                if advertised[name].get("parameters") != self._tools[name].parameters:
                    problems.append(f"{name}: advertised schema differs from registry")

        if problems:
            raise RegistryError("; ".join(sorted(problems)))
        logger.info(f"[ToolRegistry] {len(self._tools)} capabilities validated")

    def record_call(self, name: str, duration_ms: float, error: bool = False):
        """Record a call for statistics"""
        tool = self._tools.get(name)
        if tool:
            tool.call_count += 1
            tool.total_duration_ms += duration_ms
            if error:
                tool.error_count += 1

    def get_stats(self) -> Dict[str, Any]:
        """Usage statistics for every capability called at least once"""
        stats = {}
        for name, tool in self._tools.items():
            if tool.call_count > 0:
                stats[name] = {
                    "calls": tool.call_count,
                    "errors": tool.error_count,
                    "avg_ms": round(tool.avg_duration_ms, 1),
                    "total_ms": round(tool.total_duration_ms, 1),
                }
        return stats


def _is_async_callable(handler: Callable) -> bool:
    func = handler
    # functools.partial wraps the real coroutine function
    while hasattr(func, "func"):
        func = func.func
    return inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(
        getattr(func, "__call__", None)
    )
