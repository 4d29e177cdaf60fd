"""
Pytest fixtures and configuration for the OpenAgent test suite.
"""

import json
from typing import Any, Dict, List, Optional

import pytest

from openagent.config import Settings
from openagent.core.agents.dispatcher import ToolDispatcher
from openagent.core.agents.permission_gate import PermissionGate
from openagent.core.agents.tool_registry import ToolRegistry
from openagent.core.ai_engine import AIProvider, ChatResponse, ToolCallRequest
from openagent.core.tools import register_builtin_tools


# ============================================================================
# Scripted model
# ============================================================================

class ScriptedProvider(AIProvider):
    """
    Chat model stand-in that replays a script.

    Each script item is a ChatResponse, a plain string (content only), an
    exception instance (raised) or a callable ``(messages, tools) -> item``.
    When the script runs out ``default`` is returned.
    """

    def __init__(
        self,
        responses: Optional[List[Any]] = None,
        stream_tokens: Optional[List[str]] = None,
        default: Any = "Done.",
        models: Optional[List[str]] = None,
    ):
        self.responses = list(responses or [])
        self.stream_tokens = stream_tokens
        self.default = default
        self.models = models if models is not None else ["llama3.2:latest"]
        self.calls: List[Dict[str, Any]] = []
        self.stream_calls = 0

    def _resolve(self, item, messages, tools):
        if callable(item) and not isinstance(item, (ChatResponse, Exception)):
            item = item(messages, tools)
        if isinstance(item, Exception):
            raise item
        if isinstance(item, str):
            return ChatResponse(content=item)
        return ChatResponse(content=item.content, tool_calls=list(item.tool_calls))

    async def chat(self, messages, model, tools=None):
        self.calls.append({
            "messages": [dict(m) for m in messages],
            "model": model,
            "tools": tools,
        })
        item = self.responses.pop(0) if self.responses else self.default
        return self._resolve(item, messages, tools)

    async def stream_chat(self, messages, model):
        self.stream_calls += 1
        for token in self.stream_tokens or []:
            if isinstance(token, Exception):
                raise token
            yield token

    async def list_models(self):
        if isinstance(self.models, Exception):
            raise self.models
        return list(self.models)


def tool_call(name: str, args: Any, call_id: str = "call_1") -> ToolCallRequest:
    raw = args if isinstance(args, str) else json.dumps(args)
    parsed = args if isinstance(args, dict) else None
    return ToolCallRequest(id=call_id, name=name, arguments=parsed, raw_arguments=raw)


def tool_response(*calls: ToolCallRequest, content: str = "") -> ChatResponse:
    return ChatResponse(content=content, tool_calls=list(calls))


def event_types(events: List[Dict[str, Any]]) -> List[str]:
    return [e["type"] for e in events]


# ============================================================================
# Core Fixtures
# ============================================================================

@pytest.fixture
def settings():
    """Default settings, ignoring any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def gate():
    return PermissionGate()


@pytest.fixture
def registry(settings, gate):
    """Registry with every built-in capability."""
    return register_builtin_tools(ToolRegistry(), settings, gate)


@pytest.fixture
def dispatcher(registry):
    return ToolDispatcher(registry)
