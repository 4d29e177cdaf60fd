import logging

from fastapi import APIRouter, Depends, HTTPException

from openagent.core.context import AgentContext
from openagent.dependencies import get_context
from openagent.schemas.agent import ToolExecuteRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["tools"])


@router.get("/tools")
async def list_tools(context: AgentContext = Depends(get_context)):
    """工具目录（与发送给模型的 catalog 相同）"""
    return {
        "tools": context.registry.get_catalog(),
        "stats": context.registry.get_stats(),
    }


@router.post("/tools/execute")
async def execute_tool(
    request: ToolExecuteRequest,
    context: AgentContext = Depends(get_context),
):
    """直接调用一个工具，返回结果信封 {success, ..., executionTime}"""
    if request.tool not in context.registry:
        raise HTTPException(status_code=404, detail=f"Unknown tool: {request.tool}")
    logger.info(f"[Tools] Direct execution: {request.tool}")
    result = await context.dispatcher.invoke(request.tool, request.args)
    return result.to_envelope()


@router.get("/safety/audit")
async def safety_audit(context: AgentContext = Depends(get_context)):
    """最近被安全门拦截的命令与路径"""
    entries = context.gate.get_audit_log()
    return {"entries": entries, "count": len(entries)}
