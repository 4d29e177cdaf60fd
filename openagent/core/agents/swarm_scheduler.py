"""
Swarm Scheduler — Decompose, execute in wavefronts, synthesize
===============================================================
  1. decompose   — one planner request returns a task graph
  2. execute     — batched wavefront execution: every task whose
                   dependencies have all finished runs concurrently
  3. synthesize  — one request summarizes every result (failures included)

A failed task still counts as finished, so its dependents run. Tasks whose
dependencies can never finish (a cycle, or depending on one) are never
dispatched and come back as ``unresolved``.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, AsyncGenerator, Dict, List, Optional, Set

from .dispatcher import ToolDispatcher
from .errors import DecompositionError, ModelError
from .event_stream import EventBuilder, EventSink, stream_events
from .task_graph import AgentRecord, Task, TaskResult, parse_task_graph
from .tool_registry import ToolRegistry

if TYPE_CHECKING:
    from openagent.core.ai_engine import AIProvider

logger = logging.getLogger(__name__)


PLANNER_PROMPT = """You are a task planner. Given a user request, break it into subtasks. Subtasks that do not depend on each other will be executed in parallel.

User Request: "{request}"

Available tools:
{tool_list}

Respond with a JSON array of subtasks. Each subtask should have:
- "id": unique integer identifier (1, 2, 3, etc.)
- "description": what needs to be done
- "tool": which tool to use (one of: {tool_names})
- "args": arguments for the tool, as a JSON object
- "depends_on": array of task IDs this depends on (empty if independent)

Example:
[
  {{"id": 1, "description": "List temporary directory", "tool": "list_directory", "args": {{"path": "/tmp"}}, "depends_on": []}},
  {{"id": 2, "description": "Create greeting file", "tool": "write_file", "args": {{"path": "/tmp/hello.txt", "content": "Hello!"}}, "depends_on": []}}
]

Only respond with the JSON array, no other text."""


SYNTHESIS_PROMPT = """You executed the following tasks for the user's request: "{request}"

Results:
{results}

Provide a concise summary of what was accomplished. Be helpful and clear."""


# Per-string cap on result fields inside the synthesis prompt
_SYNTHESIS_VALUE_CHARS = 4000


def _clip_strings(value: Any, limit: int = _SYNTHESIS_VALUE_CHARS) -> Any:
    """Shorten long strings anywhere in a result value, keeping its shape"""
    if isinstance(value, str):
        return value if len(value) <= limit else value[:limit] + "...(truncated)"
    if isinstance(value, dict):
        return {k: _clip_strings(v, limit) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_clip_strings(v, limit) for v in value]
    return value


@dataclass
class SwarmRunResult:
    tasks: List[Task] = field(default_factory=list)
    results: Dict[int, TaskResult] = field(default_factory=dict)
    unresolved: List[int] = field(default_factory=list)
    summary: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tasks": [t.to_dict() for t in self.tasks],
            "results": {str(tid): r.to_dict() for tid, r in sorted(self.results.items())},
            "unresolved": list(self.unresolved),
            "summary": self.summary,
        }


def fallback_summary(results: Dict[int, TaskResult]) -> str:
    return f"Tasks completed. {len(results)} operations executed."


class SwarmScheduler:
    """
    Dependency-aware multi-agent executor.

    Usage:
        scheduler = SwarmScheduler(provider, dispatcher, registry, model="llama3.2:latest")
        async for event in scheduler.stream("list files in /tmp and ..."):
            await sse_send(event)
    """

    def __init__(
        self,
        provider: "AIProvider",
        dispatcher: ToolDispatcher,
        registry: ToolRegistry,
        model: str,
    ):
        self.provider = provider
        self.dispatcher = dispatcher
        self.registry = registry
        self.model = model
        self._active_agents: Dict[str, AgentRecord] = {}

    @property
    def active_agents(self) -> List[AgentRecord]:
        """Workers whose task is in flight right now"""
        return list(self._active_agents.values())

    # ------------------------------------------------------------------
    # Decomposition
    # ------------------------------------------------------------------

    def build_planner_prompt(self, request: str) -> str:
        tools = self.registry.get_all()
        return PLANNER_PROMPT.format(
            request=request,
            tool_list="\n".join(f"- {t.name}: {t.description}" for t in tools),
            tool_names=", ".join(t.name for t in tools),
        )

    async def decompose(self, request: str) -> List[Task]:
        """
        Ask the planner for a task graph.

        Raises ModelError when the planner cannot be reached and
        DecompositionError when its reply is unusable; there is no
        internal fallback.
        """
        response = await self.provider.chat(
            [{"role": "user", "content": self.build_planner_prompt(request)}],
            self.model,
        )
        tasks = parse_task_graph(response.content.strip())
        logger.info(f"[Swarm] Decomposed request into {len(tasks)} tasks")
        return tasks

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute(
        self,
        tasks: List[Task],
        sink: Optional[EventSink] = None,
        builder: Optional[EventBuilder] = None,
    ) -> SwarmRunResult:
        """Run the graph wavefront by wavefront"""
        builder = builder or EventBuilder()
        run = SwarmRunResult(tasks=list(tasks))
        pending: Dict[int, Task] = {t.id: t for t in tasks}
        completed: Set[int] = set()
        wave = 0

        while pending:
            ready = [t for t in pending.values() if t.depends_on <= completed]
            if not ready:
                break

            wave += 1
            logger.info(f"[Swarm] Wave {wave}: running tasks {[t.id for t in ready]}")
            await asyncio.gather(*(
                self._run_task(task, run.results, sink, builder) for task in ready
            ))

            for task in ready:
                completed.add(task.id)
                del pending[task.id]

        run.unresolved = sorted(pending)
        if run.unresolved:
            logger.warning(f"[Swarm] Unresolved tasks (unsatisfiable dependencies): {run.unresolved}")
        return run

    async def _run_task(
        self,
        task: Task,
        results: Dict[int, TaskResult],
        sink: Optional[EventSink],
        builder: EventBuilder,
    ):
        agent = AgentRecord(id=f"agent-{task.id}", task_id=task.id, description=task.description)
        self._active_agents[agent.id] = agent
        if sink is not None:
            sink.emit(builder.agent_start(agent.id, task.id, task.description))

        try:
            outcome = await self.dispatcher.invoke(task.capability, task.args)
            result = TaskResult(
                task_id=task.id,
                succeeded=outcome.succeeded,
                value=outcome.to_envelope(),
                error=outcome.error,
                elapsed_ms=outcome.elapsed_ms,
                error_kind=outcome.error_kind,
            )
            results[task.id] = result

            if sink is not None:
                if result.succeeded:
                    sink.emit(builder.agent_complete(agent.id, task.id, result.value))
                else:
                    sink.emit(builder.agent_error(agent.id, task.id, result.error or "", result.value))
        finally:
            agent.status = "done"
            self._active_agents.pop(agent.id, None)

    # ------------------------------------------------------------------
    # Synthesis
    # ------------------------------------------------------------------

    async def synthesize(self, request: str, results: Dict[int, TaskResult]) -> str:
        """Summarize the run; falls back to a fixed template if the model fails"""
        payload = {}
        for tid, result in sorted(results.items()):
            entry = result.to_dict()
            entry["value"] = _clip_strings(entry["value"])
            payload[str(tid)] = entry

        prompt = SYNTHESIS_PROMPT.format(
            request=request,
            results=json.dumps(payload, indent=2, ensure_ascii=False, default=str),
        )
        try:
            response = await self.provider.chat([{"role": "user", "content": prompt}], self.model)
        except ModelError as e:
            logger.warning(f"[Swarm] Synthesis failed, using fallback summary: {e}")
            return fallback_summary(results)
        return response.content.strip() or fallback_summary(results)

    # ------------------------------------------------------------------
    # Full run
    # ------------------------------------------------------------------

    async def run(
        self,
        request: str,
        sink: EventSink,
        builder: Optional[EventBuilder] = None,
    ) -> SwarmRunResult:
        """
        decompose → execute → synthesize, emitting progress on ``sink``.
        Model and decomposition errors propagate; the caller decides whether
        to report them or fall back to the single-agent loop.
        """
        builder = builder or EventBuilder()
        started = time.perf_counter()

        sink.emit(builder.phase("decomposing"))
        sink.emit(builder.thinking("Planning subtasks...", 0))
        tasks = await self.decompose(request)

        sink.emit(builder.tasks([t.to_dict() for t in tasks]))
        sink.emit(builder.phase("executing"))
        run = await self.execute(tasks, sink, builder)

        sink.emit(builder.phase("synthesizing"))
        run.summary = await self.synthesize(request, run.results)

        sink.emit(builder.message(run.summary, role="assistant"))
        sink.emit(builder.complete(
            results={str(tid): r.to_dict() for tid, r in sorted(run.results.items())},
            unresolved=run.unresolved,
            taskCount=len(tasks),
            duration=round(time.perf_counter() - started, 3),
        ))
        return run

    async def stream(
        self,
        request: str,
        session_id: Optional[str] = None,
    ) -> AsyncGenerator[Dict[str, Any], None]:
        builder = EventBuilder(session_id)

        async def _producer(sink: EventSink):
            try:
                await self.run(request, sink, builder)
            except (ModelError, DecompositionError) as e:
                logger.error(f"[Swarm] Run failed: {e}")
                sink.emit(builder.error(str(e), errorType=type(e).__name__))

        async for event in stream_events(_producer, builder):
            yield event
