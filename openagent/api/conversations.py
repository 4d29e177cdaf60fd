import logging

from fastapi import APIRouter, Depends, HTTPException

from openagent.core.agents.errors import ModelError
from openagent.core.context import AgentContext
from openagent.dependencies import get_context
from openagent.schemas.agent import ConversationCreateRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["conversations"])


@router.get("/health")
async def health_check(context: AgentContext = Depends(get_context)):
    """健康检查"""
    return {
        "status": "healthy",
        "service": context.settings.APP_NAME,
        "version": context.settings.VERSION,
        "modelBackend": context.settings.MODEL_API_BASE,
        "tools": len(context.registry),
        "conversations": len(context.conversations),
    }


@router.get("/models")
async def list_models(context: AgentContext = Depends(get_context)):
    """模型列表（来自模型服务）"""
    try:
        models = await context.provider.list_models()
    except ModelError as e:
        raise HTTPException(status_code=503, detail=f"Model backend unavailable: {e}")
    return {
        "models": models,
        "default": context.settings.DEFAULT_MODEL,
        "planner": context.settings.PLANNER_MODEL,
    }


@router.get("/conversations")
async def list_conversations(context: AgentContext = Depends(get_context)):
    return [c.to_dict(include_messages=False) for c in context.conversations.list()]


@router.post("/conversations", status_code=201)
async def create_conversation(
    request: ConversationCreateRequest,
    context: AgentContext = Depends(get_context),
):
    conversation = context.conversations.create(title=request.title)
    return conversation.to_dict()


@router.get("/conversations/{conversation_id}")
async def get_conversation(conversation_id: str, context: AgentContext = Depends(get_context)):
    conversation = context.conversations.get(conversation_id)
    if conversation is None:
        raise HTTPException(status_code=404, detail="Conversation not found")
    return conversation.to_dict()


@router.delete("/conversations/{conversation_id}")
async def delete_conversation(conversation_id: str, context: AgentContext = Depends(get_context)):
    if not context.conversations.delete(conversation_id):
        raise HTTPException(status_code=404, detail="Conversation not found")
    return {"success": True}
