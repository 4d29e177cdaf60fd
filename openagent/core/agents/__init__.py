"""
OpenAgent core
==============
  - ToolRegistry / ToolDispatcher: capability catalog and validated invocation
  - PermissionGate: path and command safety checks
  - AgenticLoop: single-agent tool-calling loop
  - SwarmScheduler: task graph decomposition and wavefront execution
  - EventSink / EventBuilder: ordered progress events

模块导出
"""

from .errors import (
    CapabilityError,
    DecompositionError,
    ErrorCategory,
    ErrorKind,
    ModelError,
    RegistryError,
)

from .tool_registry import (
    CapabilityResult,
    ToolCategory,
    ToolDefinition,
    ToolRegistry,
)

from .permission_gate import (
    PermissionGate,
    is_dangerous_command,
    match_blocked_pattern,
)

from .dispatcher import ToolDispatcher

from .event_stream import (
    EventBuilder,
    EventSink,
    EventType,
    format_sse,
    stream_events,
)

from .conversation import (
    CapabilityInvocation,
    Conversation,
    ConversationMessage,
    ConversationStore,
)

from .agentic_loop import AgenticLoop, LoopOutcome

from .task_graph import AgentRecord, Task, TaskResult, parse_task_graph

from .swarm_scheduler import SwarmRunResult, SwarmScheduler

__all__ = [
    "CapabilityError", "DecompositionError", "ErrorCategory", "ErrorKind", "ModelError", "RegistryError",
    "CapabilityResult", "ToolCategory", "ToolDefinition", "ToolRegistry",
    "PermissionGate", "is_dangerous_command", "match_blocked_pattern",
    "ToolDispatcher",
    "EventBuilder", "EventSink", "EventType", "format_sse", "stream_events",
    "CapabilityInvocation", "Conversation", "ConversationMessage", "ConversationStore",
    "AgenticLoop", "LoopOutcome",
    "AgentRecord", "Task", "TaskResult", "parse_task_graph",
    "SwarmRunResult", "SwarmScheduler",
]
