import json
import logging
import uuid
from typing import Any, AsyncGenerator, Dict

from fastapi import APIRouter, Depends
from sse_starlette.sse import EventSourceResponse

from openagent.core.agents.errors import DecompositionError, ModelError
from openagent.core.agents.event_stream import EventBuilder, EventSink, stream_events
from openagent.core.context import AgentContext
from openagent.dependencies import get_context
from openagent.schemas.agent import ChatRequest, ChatSyncResponse, SwarmRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["agent"])

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _event_response(
    events: AsyncGenerator[Dict[str, Any], None],
    builder: EventBuilder,
) -> EventSourceResponse:
    async def event_generator():
        try:
            async for event in events:
                yield {
                    "event": event.get("type", "message"),
                    "data": json.dumps(event, ensure_ascii=False, default=str),
                }
        except Exception as e:
            logger.error(f"[Agent] Stream error: {e}", exc_info=True)
            error = builder.error(f"Stream error: {e}")
            yield {"event": "error", "data": json.dumps(error, ensure_ascii=False, default=str)}
        done = builder.done()
        yield {"event": "done", "data": json.dumps(done, ensure_ascii=False, default=str)}

    return EventSourceResponse(event_generator(), headers=SSE_HEADERS)


@router.post("/chat")
async def chat(
    request: ChatRequest,
    context: AgentContext = Depends(get_context),
):
    """
    单 Agent 对话（SSE 流式推送）

    事件类型：
    - thinking / phase:          模型请求中 / 状态切换
    - tool_start / tool_complete: 工具调用开始与结果
    - token:                     最终回复片段
    - message / complete:        最终回复与完成信息
    - error:                     模型通信失败
    - done:                      流结束
    """
    conversation = context.conversations.get_or_create(request.conversation_id)
    loop = context.create_loop(model=request.model, max_iterations=request.max_iterations)
    builder = EventBuilder(conversation.id)

    logger.info(
        f"[Agent] Chat turn, conversation={conversation.id}, model={loop.model}, "
        f"max_iterations={loop.max_iterations}"
    )

    async def _producer(sink: EventSink):
        await loop.run(request.message, sink, conversation, builder)

    return _event_response(stream_events(_producer, builder), builder)


@router.post("/chat/sync", response_model=ChatSyncResponse)
async def chat_sync(
    request: ChatRequest,
    context: AgentContext = Depends(get_context),
):
    """非流式对话：运行完整一轮并返回所有事件"""
    conversation = context.conversations.get_or_create(request.conversation_id)
    loop = context.create_loop(model=request.model, max_iterations=request.max_iterations)
    result = await loop.run_sync(request.message, conversation)
    return {"conversationId": conversation.id, **result}


@router.post("/swarm")
async def swarm(
    request: SwarmRequest,
    context: AgentContext = Depends(get_context),
):
    """
    Swarm 多 Agent 执行（SSE 流式推送）

    phase(decomposing) → tasks → phase(executing) → agent_start/agent_complete/agent_error
    → phase(synthesizing) → message → complete(results, unresolved) → done

    任务分解失败时，若启用 fallbackToSingleAgent，则发出 phase(fallback) 并改用单 Agent 循环。
    """
    scheduler = context.create_scheduler(model=request.model)
    fallback = request.fallback_to_single_agent
    if fallback is None:
        fallback = context.settings.SWARM_FALLBACK_TO_SINGLE_AGENT
    builder = EventBuilder(f"swarm_{uuid.uuid4().hex[:12]}")

    logger.info(f"[Agent] Swarm run, model={scheduler.model}, fallback={fallback}")

    async def _producer(sink: EventSink):
        try:
            await scheduler.run(request.message, sink, builder)
        except DecompositionError as e:
            if not fallback:
                sink.emit(builder.error(f"Task decomposition failed: {e}", errorType="DecompositionError"))
                return
            logger.warning(f"[Agent] Decomposition failed, falling back to single agent: {e}")
            sink.emit(builder.phase("fallback", reason=str(e)))
            conversation = context.conversations.create()
            loop = context.create_loop(model=request.model)
            await loop.run(request.message, sink, conversation, builder)
        except ModelError as e:
            sink.emit(builder.error(f"AI call failed: {e}", errorType="ModelError"))

    return _event_response(stream_events(_producer, builder), builder)
