"""
Dispatcher — Validated, timed capability invocation
====================================================
``ToolDispatcher.invoke(name, args)`` is the only way the loop and the swarm
reach a capability. It:
  1. resolves the capability in the registry
  2. checks required keys and declared JSON types
  3. runs the handler
  4. measures latency and normalizes everything into a ``CapabilityResult``

Nothing raised by a handler escapes ``invoke``; failures come back as data.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from .errors import CapabilityError, ErrorKind
from .tool_registry import CapabilityResult, ToolDefinition, ToolRegistry

logger = logging.getLogger(__name__)


_JSON_TYPES = {
    "string": (str,),
    "integer": (int,),
    "number": (int, float),
    "boolean": (bool,),
    "array": (list, tuple),
    "object": (dict,),
}


def _type_matches(value: Any, json_type: str) -> bool:
    expected = _JSON_TYPES.get(json_type)
    if expected is None:
        return True
    # bool is an int subclass; keep them apart
    if json_type in ("integer", "number") and isinstance(value, bool):
        return False
    return isinstance(value, expected)


def validate_arguments(tool: ToolDefinition, args: Any) -> Optional[CapabilityError]:
    """Return the validation failure for ``args``, or None when they are acceptable"""
    if not isinstance(args, dict):
        return CapabilityError(
            ErrorKind.INVALID_ARGUMENT,
            f"Arguments for {tool.name} must be an object, got {type(args).__name__}",
        )

    missing = [k for k in tool.required if args.get(k) is None]
    if missing:
        return CapabilityError(
            ErrorKind.MISSING_ARGUMENT,
            f"Missing required argument(s) for {tool.name}: {', '.join(missing)}",
            missing=missing,
        )

    for key, value in args.items():
        spec = tool.properties.get(key)
        if spec is None or value is None:
            continue
        json_type = spec.get("type")
        if json_type and not _type_matches(value, json_type):
            return CapabilityError(
                ErrorKind.INVALID_ARGUMENT,
                f"Argument '{key}' for {tool.name} must be of type {json_type}",
                argument=key,
            )
    return None


class ToolDispatcher:
    """
    Capability dispatcher.

    Usage:
        dispatcher = ToolDispatcher(registry)
        result = await dispatcher.invoke("read_file", {"path": "/tmp/a.txt"})
        result.to_envelope()  # {"success": True, "content": ..., "executionTime": 3}
    """

    def __init__(self, registry: ToolRegistry):
        self.registry = registry

    async def invoke(self, name: str, args: Any) -> CapabilityResult:
        start = time.perf_counter()
        tool = self.registry.get(name)

        if tool is None:
            return self._finish(name, start, error=CapabilityError(
                ErrorKind.UNKNOWN_CAPABILITY, f"Unknown tool: {name}",
            ))

        invalid = validate_arguments(tool, args)
        if invalid is not None:
            logger.info(f"[Dispatcher] {name} rejected: {invalid.message}")
            return self._finish(name, start, error=invalid)

        # Undeclared keys are dropped so the model cannot reach bound limits
        call_args = {k: v for k, v in args.items() if k in tool.properties and v is not None}
        dropped: List[str] = sorted(set(args) - set(call_args) - set(tool.properties))
        if dropped:
            logger.debug(f"[Dispatcher] {name}: ignoring undeclared args {dropped}")

        try:
            payload = await tool.handler(**call_args)
        except CapabilityError as e:
            return self._finish(name, start, error=e)
        except Exception as e:
            logger.error(f"[Dispatcher] {name} execution error: {e}", exc_info=True)
            return self._finish(name, start, error=CapabilityError(
                ErrorKind.EXECUTION_FAILED, f"Tool execution failed: {e}",
            ))

        return self._finish(name, start, payload=payload or {})

    def _finish(
        self,
        name: str,
        start: float,
        payload: Optional[Dict[str, Any]] = None,
        error: Optional[CapabilityError] = None,
    ) -> CapabilityResult:
        elapsed_ms = int((time.perf_counter() - start) * 1000)
        self.registry.record_call(name, elapsed_ms, error=error is not None)
        if error is not None:
            return CapabilityResult(
                succeeded=False,
                payload=dict(error.payload),
                error=error.message,
                elapsed_ms=elapsed_ms,
                error_kind=error.kind,
            )
        return CapabilityResult(succeeded=True, payload=payload, elapsed_ms=elapsed_ms)
