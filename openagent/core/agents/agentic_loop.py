"""
Agentic Loop — Single-agent tool-calling loop
==============================================

    Thinking → (ToolDispatch)* → Streaming → Complete

Each round asks the model with the full conversation and the capability
catalog. Invocation requests are dispatched one by one and their outcomes
appended to the conversation; a reply without requests ends the loop. After
``max_iterations`` dispatch rounds one last request is made *without* tool
access so the turn always ends with a message.

Usage:
    loop = AgenticLoop(provider, dispatcher, registry, model="llama3.2:latest")
    async for event in loop.stream("list files in /tmp", conversation):
        await sse_send(event)
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncGenerator, Dict, List, Optional

from .conversation import CapabilityInvocation, Conversation
from .dispatcher import ToolDispatcher
from .errors import ModelError
from .event_stream import EventBuilder, EventSink, stream_events
from .tool_registry import ToolRegistry

if TYPE_CHECKING:
    from openagent.core.ai_engine import AIProvider, ChatResponse, ToolCallRequest

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 10

SYSTEM_PROMPT = """You are OpenAgent, a powerful AI assistant that can help with coding, file management, and system tasks.
You have access to the following tools:
{tool_list}

When you need to use a tool, you MUST respond with a tool call. Always explain what you're doing before using tools.
Be helpful, concise, and proactive. If a task requires multiple steps, break it down clearly."""


def build_system_prompt(registry: ToolRegistry) -> str:
    tool_list = "\n".join(f"- {t.name}: {t.description}" for t in registry.get_all())
    return SYSTEM_PROMPT.format(tool_list=tool_list)


@dataclass
class LoopOutcome:
    """Summary of one turn"""
    content: str = ""
    iterations: int = 0
    max_iterations_reached: bool = False
    invocations: List[CapabilityInvocation] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None


class AgenticLoop:
    """
    Bounded "ask model → dispatch tool calls → ask again" loop.

    Events (in order for a turn):
      phase(thinking), thinking, [phase(tool_dispatch), tool_start, tool_complete, ...]*,
      phase(streaming), token*, message, phase(complete), complete
    A model failure ends the turn with an ``error`` event instead.
    """

    def __init__(
        self,
        provider: "AIProvider",
        dispatcher: ToolDispatcher,
        registry: ToolRegistry,
        model: str,
        max_iterations: int = DEFAULT_MAX_ITERATIONS,
        stream_final: bool = True,
    ):
        if max_iterations < 1:
            raise ValueError("max_iterations must be at least 1")
        self.provider = provider
        self.dispatcher = dispatcher
        self.registry = registry
        self.model = model
        self.max_iterations = max_iterations
        self.stream_final = stream_final

    async def run(
        self,
        message: str,
        sink: EventSink,
        conversation: Optional[Conversation] = None,
        builder: Optional[EventBuilder] = None,
    ) -> LoopOutcome:
        builder = builder or EventBuilder()
        conversation = conversation or Conversation(id=f"conv_{int(time.time() * 1000)}")
        outcome = LoopOutcome()

        messages: List[Dict[str, Any]] = [
            {"role": "system", "content": build_system_prompt(self.registry)},
            *conversation.history(),
            {"role": "user", "content": message},
        ]
        conversation.add_message("user", message)
        catalog = self.registry.get_catalog()

        try:
            final = await self._iterate(messages, catalog, sink, builder, outcome)
            content = await self._stream_final(messages, final, sink, builder, outcome.iterations)
        except ModelError as e:
            logger.error(f"[AgenticLoop] Model call failed: {e}")
            outcome.error = str(e)
            sink.emit(builder.error(f"AI call failed: {e}", iteration=outcome.iterations))
            return outcome

        outcome.content = content
        conversation.add_message("assistant", content, outcome.invocations)

        sink.emit(builder.message(
            content,
            role="assistant",
            toolCalls=[inv.to_dict() for inv in outcome.invocations],
        ))
        sink.emit(builder.phase("complete"))
        sink.emit(builder.complete(
            conversationId=conversation.id,
            messageId=f"msg_{int(time.time() * 1000)}",
            iterations=outcome.iterations,
            maxIterationsReached=outcome.max_iterations_reached,
            toolCalls=len(outcome.invocations),
        ))
        return outcome

    async def _iterate(
        self,
        messages: List[Dict[str, Any]],
        catalog: List[Dict[str, Any]],
        sink: EventSink,
        builder: EventBuilder,
        outcome: LoopOutcome,
    ) -> "ChatResponse":
        """Thinking/ToolDispatch rounds; returns the reply that ends them"""
        while True:
            sink.emit(builder.phase("thinking", iteration=outcome.iterations))
            status = "Analyzing your request..." if outcome.iterations == 0 else "Processing results..."
            sink.emit(builder.thinking(status, outcome.iterations))

            logger.info(f"[AgenticLoop] Iteration {outcome.iterations + 1}/{self.max_iterations}")
            response = await self.provider.chat(messages, self.model, tools=catalog)

            if not response.tool_calls:
                return response

            sink.emit(builder.phase("tool_dispatch", iteration=outcome.iterations))
            messages.append(_assistant_tool_message(response))
            for call in response.tool_calls:
                await self._dispatch(call, messages, sink, builder, outcome)

            outcome.iterations += 1
            if outcome.iterations >= self.max_iterations:
                outcome.max_iterations_reached = True
                logger.warning(f"[AgenticLoop] Reached maximum iterations ({self.max_iterations})")
                sink.emit(builder.thinking(
                    f"Reached maximum of {self.max_iterations} iterations, summarizing...",
                    outcome.iterations,
                ))
                # Final request without tool access
                final = await self.provider.chat(messages, self.model, tools=None)
                if not final.content.strip():
                    final.content = (
                        f"Stopped after reaching the maximum of {self.max_iterations} tool iterations. "
                        f"{len(outcome.invocations)} tool calls were executed."
                    )
                final.tool_calls = []
                return final

    async def _dispatch(
        self,
        call: "ToolCallRequest",
        messages: List[Dict[str, Any]],
        sink: EventSink,
        builder: EventBuilder,
        outcome: LoopOutcome,
    ):
        # Unparseable arguments reach the dispatcher as-is and fail validation
        args = call.arguments if call.arguments is not None else call.raw_arguments
        sink.emit(builder.tool_start(call.name, args, call.id, outcome.iterations))

        logger.info(f"[AgenticLoop] Executing tool: {call.name} (id={call.id})")
        result = await self.dispatcher.invoke(call.name, args)
        envelope = result.to_envelope()

        sink.emit(builder.tool_complete(call.name, call.id, envelope, outcome.iterations))
        outcome.invocations.append(CapabilityInvocation(
            name=call.name, args=args, result=result, call_id=call.id,
        ))
        messages.append({
            "role": "tool",
            "tool_call_id": call.id,
            "content": json.dumps(envelope, ensure_ascii=False, default=str),
        })

    async def _stream_final(
        self,
        messages: List[Dict[str, Any]],
        final: "ChatResponse",
        sink: EventSink,
        builder: EventBuilder,
        iteration: int,
    ) -> str:
        sink.emit(builder.phase("streaming", iteration=iteration))
        sink.emit(builder.thinking("Generating response...", iteration))

        parts: List[str] = []
        if self.stream_final:
            async for fragment in self.provider.stream_chat(messages, self.model):
                parts.append(fragment)
                sink.emit(builder.token(fragment))

        streamed = "".join(parts)
        if streamed:
            return streamed

        # Nothing streamed: emit the non-streamed reply in one piece
        content = final.content
        if content:
            sink.emit(builder.token(content))
        return content

    async def stream(
        self,
        message: str,
        conversation: Optional[Conversation] = None,
        session_id: Optional[str] = None,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        """Run one turn in the background and yield its events as they happen"""
        builder = EventBuilder(session_id)

        async def _producer(sink: EventSink):
            await self.run(message, sink, conversation, builder)

        async for event in stream_events(_producer, builder):
            yield event

    async def run_sync(
        self,
        message: str,
        conversation: Optional[Conversation] = None,
    ) -> Dict[str, Any]:
        """
        Run one turn and collect every event.
        Used by the non-SSE endpoint.
        """
        sink = EventSink()
        outcome = await self.run(message, sink, conversation)
        sink.close()
        return {
            "success": outcome.succeeded,
            "content": outcome.content,
            "iterations": outcome.iterations,
            "maxIterationsReached": outcome.max_iterations_reached,
            "toolCalls": [inv.to_dict() for inv in outcome.invocations],
            "error": outcome.error,
            "events": list(sink.history),
        }


def _assistant_tool_message(response: "ChatResponse") -> Dict[str, Any]:
    return {
        "role": "assistant",
        "content": response.content or "",
        "tool_calls": [
            {
                "id": call.id,
                "type": "function",
                "function": {"name": call.name, "arguments": call.raw_arguments or json.dumps(call.arguments or {})},
            }
            for call in response.tool_calls
        ],
    }
