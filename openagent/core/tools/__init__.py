"""
Built-in capabilities.

``register_builtin_tools`` binds the configured limits and the permission
gate into every handler and registers the whole set on a registry.
"""

from openagent.config import Settings
from openagent.core.agents.permission_gate import PermissionGate
from openagent.core.agents.tool_registry import ToolRegistry

from .command_tools import command_tool_definitions
from .file_tools import file_tool_definitions
from .search_tools import search_tool_definitions
from .web_tools import web_tool_definitions


def register_builtin_tools(registry: ToolRegistry, settings: Settings, gate: PermissionGate) -> ToolRegistry:
    registry.register_all(file_tool_definitions(gate, max_read_bytes=settings.READ_FILE_MAX_BYTES))
    registry.register_all(command_tool_definitions(
        gate,
        timeout=settings.COMMAND_TIMEOUT,
        max_output_bytes=settings.COMMAND_MAX_OUTPUT_BYTES,
        default_cwd=settings.COMMAND_DEFAULT_CWD,
    ))
    registry.register_all(search_tool_definitions(gate))
    registry.register_all(web_tool_definitions(
        timeout=settings.WEB_FETCH_TIMEOUT,
        max_bytes=settings.WEB_FETCH_MAX_BYTES,
        max_chars=settings.WEB_CONTENT_MAX_CHARS,
    ))
    return registry


__all__ = ["register_builtin_tools"]
