from fastapi import HTTPException, Request

from openagent.core.context import AgentContext


def get_context(request: Request) -> AgentContext:
    """The AgentContext built at startup"""
    context = getattr(request.app.state, "context", None)
    if context is None:
        raise HTTPException(status_code=503, detail="Agent context is not initialized")
    return context
