"""
AgentContext — the session object every component receives.

Built once at startup from ``Settings``: the permission gate, the registry
with every built-in capability, the dispatcher, the model provider and the
conversation store. Nothing in the core reads configuration globally.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from openagent.config import Settings
from openagent.core.agents.agentic_loop import AgenticLoop
from openagent.core.agents.conversation import ConversationStore
from openagent.core.agents.dispatcher import ToolDispatcher
from openagent.core.agents.permission_gate import PermissionGate
from openagent.core.agents.swarm_scheduler import SwarmScheduler
from openagent.core.agents.tool_registry import ToolRegistry
from openagent.core.ai_engine import AIProvider, OpenAIProvider
from openagent.core.tools import register_builtin_tools

logger = logging.getLogger(__name__)


@dataclass
class AgentContext:
    settings: Settings
    gate: PermissionGate
    registry: ToolRegistry
    dispatcher: ToolDispatcher
    provider: AIProvider
    conversations: ConversationStore = field(default_factory=ConversationStore)

    @classmethod
    def from_settings(cls, settings: Settings, provider: Optional[AIProvider] = None) -> "AgentContext":
        gate = PermissionGate(
            system_prefixes=settings.SYSTEM_PATH_PREFIXES,
            allow_system_paths=settings.ALLOW_SYSTEM_PATHS,
            blocked_patterns=settings.EXTRA_BLOCKED_COMMAND_PATTERNS,
        )
        registry = register_builtin_tools(ToolRegistry(), settings, gate)
        # Catalog and handlers come from the same definitions; check anyway
        registry.validate(registry.get_catalog())

        if provider is None:
            provider = OpenAIProvider(
                api_key=settings.MODEL_API_KEY,
                api_base=settings.MODEL_API_BASE,
                timeout=settings.MODEL_TIMEOUT,
            )

        logger.info(
            f"[AgentContext] {len(registry)} capabilities registered, model backend {settings.MODEL_API_BASE}"
        )
        return cls(
            settings=settings,
            gate=gate,
            registry=registry,
            dispatcher=ToolDispatcher(registry),
            provider=provider,
        )

    def create_loop(self, model: Optional[str] = None, max_iterations: Optional[int] = None) -> AgenticLoop:
        return AgenticLoop(
            provider=self.provider,
            dispatcher=self.dispatcher,
            registry=self.registry,
            model=model or self.settings.DEFAULT_MODEL,
            max_iterations=max_iterations or self.settings.MAX_ITERATIONS,
            stream_final=self.settings.STREAM_FINAL_RESPONSE,
        )

    def create_scheduler(self, model: Optional[str] = None) -> SwarmScheduler:
        return SwarmScheduler(
            provider=self.provider,
            dispatcher=self.dispatcher,
            registry=self.registry,
            model=model or self.settings.PLANNER_MODEL,
        )
