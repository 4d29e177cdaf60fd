"""
Event Stream — Progress events for the agent loop and the swarm
================================================================
Defines every event type the core emits and the sink it writes them to.
Each event is a flat JSON object ``{"type": ..., ...payload}``:

  thinking        — Model request in flight
  phase           — State/phase transition
  tasks           — Task graph produced by decomposition
  agent_start     — Swarm worker started a task
  agent_complete  — Swarm worker finished a task successfully
  agent_error     — Swarm worker finished a task with a failure
  tool_start      — Loop is about to invoke a capability
  tool_complete   — Capability invocation finished
  token           — Fragment of the final answer
  message         — Final assistant message / swarm summary
  complete        — Turn or swarm run finished
  error           — Fatal model/transport error
  done            — Stream closed
"""

import asyncio
import json
import logging
import time
from enum import Enum
from typing import Any, AsyncGenerator, AsyncIterator, Awaitable, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """All event types emitted by the core"""
    THINKING = "thinking"
    PHASE = "phase"
    TASKS = "tasks"
    AGENT_START = "agent_start"
    AGENT_COMPLETE = "agent_complete"
    AGENT_ERROR = "agent_error"
    TOOL_START = "tool_start"
    TOOL_COMPLETE = "tool_complete"
    TOKEN = "token"
    MESSAGE = "message"
    COMPLETE = "complete"
    ERROR = "error"
    DONE = "done"


class EventBuilder:
    """
    Helper to build standardized events.
    Ensures consistent event structure across the codebase.
    """

    def __init__(self, session_id: Optional[str] = None):
        self.session_id = session_id

    def _event(self, event_type: EventType, data: Dict[str, Any]) -> Dict[str, Any]:
        ev = {"type": event_type.value, **data}
        if self.session_id:
            ev["sessionId"] = self.session_id
        ev["timestamp"] = time.time()
        return ev

    # === Loop / phase events ===

    def thinking(self, status: str, iteration: int = 0) -> Dict:
        return self._event(EventType.THINKING, {"status": status, "iteration": iteration})

    def phase(self, phase: str, **extra) -> Dict:
        return self._event(EventType.PHASE, {"phase": phase, **extra})

    def token(self, content: str) -> Dict:
        return self._event(EventType.TOKEN, {"content": content})

    def message(self, content: str, **extra) -> Dict:
        return self._event(EventType.MESSAGE, {"content": content, **extra})

    def complete(self, **data) -> Dict:
        return self._event(EventType.COMPLETE, data)

    def error(self, message: str, **extra) -> Dict:
        return self._event(EventType.ERROR, {"message": message, **extra})

    def done(self) -> Dict:
        return self._event(EventType.DONE, {})

    # === Tool events ===

    def tool_start(self, tool: str, args: Any, call_id: str, iteration: int) -> Dict:
        return self._event(EventType.TOOL_START, {
            "tool": tool,
            "args": args,
            "callId": call_id,
            "iteration": iteration,
            "status": "Executing...",
        })

    def tool_complete(self, tool: str, call_id: str, result: Dict[str, Any],
                      iteration: int) -> Dict:
        return self._event(EventType.TOOL_COMPLETE, {
            "tool": tool,
            "callId": call_id,
            "result": result,
            "success": result.get("success", False),
            "executionTime": result.get("executionTime", 0),
            "iteration": iteration,
        })

    # === Swarm events ===

    def tasks(self, tasks: List[Dict[str, Any]]) -> Dict:
        return self._event(EventType.TASKS, {"tasks": tasks, "count": len(tasks)})

    def agent_start(self, agent_id: str, task_id: int, description: str) -> Dict:
        return self._event(EventType.AGENT_START, {
            "agentId": agent_id,
            "taskId": task_id,
            "task": description,
        })

    def agent_complete(self, agent_id: str, task_id: int, result: Dict[str, Any]) -> Dict:
        return self._event(EventType.AGENT_COMPLETE, {
            "agentId": agent_id,
            "taskId": task_id,
            "result": result,
        })

    def agent_error(self, agent_id: str, task_id: int, error: str,
                    result: Optional[Dict[str, Any]] = None) -> Dict:
        return self._event(EventType.AGENT_ERROR, {
            "agentId": agent_id,
            "taskId": task_id,
            "error": error,
            "result": result or {},
        })


_CLOSED = object()


class EventSink:
    """
    Append-only, ordered channel of progress events.

    Producers call ``emit()`` (never blocks); one consumer iterates the sink
    with ``async for`` until ``close()`` is called. Every emitted event is also
    kept in ``history`` in emission order.
    """

    def __init__(self):
        self._queue: "asyncio.Queue[Any]" = asyncio.Queue()
        self._closed = False
        self.history: List[Dict[str, Any]] = []

    @property
    def closed(self) -> bool:
        return self._closed

    def emit(self, event: Dict[str, Any]) -> None:
        if self._closed:
            raise RuntimeError("EventSink is closed")
        self.history.append(event)
        self._queue.put_nowait(event)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[Dict[str, Any]]:
        return self._drain()

    async def _drain(self) -> AsyncGenerator[Dict[str, Any], None]:
        while True:
            event = await self._queue.get()
            if event is _CLOSED:
                return
            yield event


async def stream_events(
    producer: Callable[[EventSink], Awaitable[Any]],
    builder: Optional[EventBuilder] = None,
) -> AsyncGenerator[Dict[str, Any], None]:
    """
    Run ``producer(sink)`` in the background and yield its events as they
    are emitted. Unexpected producer failures become a terminal ``error``
    event so the stream never ends silently.
    """
    sink = EventSink()
    builder = builder or EventBuilder()

    async def _runner():
        try:
            await producer(sink)
        except Exception as e:
            logger.error(f"[EventStream] Producer failed: {e}", exc_info=True)
            sink.emit(builder.error(f"Internal error: {e}"))
        finally:
            sink.close()

    task = asyncio.create_task(_runner())
    try:
        async for event in sink:
            yield event
    finally:
        # In-flight work is never aborted; wait for it to settle
        await task


def format_sse(event: Dict[str, Any]) -> str:
    """Format an event dict as an SSE string"""
    data = json.dumps(event, ensure_ascii=False, default=str)
    return f"data: {data}\n\n"
