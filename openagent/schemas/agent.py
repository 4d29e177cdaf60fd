from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any


# ============================================================================
# Chat / Swarm Schemas
# ============================================================================

class ChatRequest(BaseModel):
    """单 Agent 对话请求"""
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    message: str = Field(..., min_length=1, description="用户消息（自然语言）")
    conversation_id: Optional[str] = Field(default=None, alias="conversationId", description="会话 ID，不传则新建")
    model: Optional[str] = Field(default=None, description="模型名称，默认使用 DEFAULT_MODEL")
    max_iterations: Optional[int] = Field(default=None, alias="maxIterations", ge=1, le=50, description="最大工具调用轮次")


class SwarmRequest(BaseModel):
    """Swarm 多 Agent 请求"""
    model_config = ConfigDict(populate_by_name=True, protected_namespaces=())

    message: str = Field(..., min_length=1, description="用户请求")
    model: Optional[str] = Field(default=None, description="规划/汇总模型，默认使用 PLANNER_MODEL")
    fallback_to_single_agent: Optional[bool] = Field(
        default=None,
        alias="fallbackToSingleAgent",
        description="任务分解失败时是否改用单 Agent 循环（默认取配置）",
    )


class ChatSyncResponse(BaseModel):
    """非流式对话响应"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool
    conversation_id: str = Field(..., alias="conversationId")
    content: str
    iterations: int
    max_iterations_reached: bool = Field(..., alias="maxIterationsReached")
    tool_calls: List[Dict[str, Any]] = Field(default_factory=list, alias="toolCalls")
    error: Optional[str] = None
    events: List[Dict[str, Any]] = Field(default_factory=list)


# ============================================================================
# Tool Schemas
# ============================================================================

class ToolExecuteRequest(BaseModel):
    """直接调用工具"""
    tool: str = Field(..., description="工具名称")
    args: Dict[str, Any] = Field(default_factory=dict, description="工具参数")


# ============================================================================
# Conversation Schemas
# ============================================================================

class ConversationCreateRequest(BaseModel):
    title: Optional[str] = Field(default=None, max_length=200)
