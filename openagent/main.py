# openagent/main.py
from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from openagent.api import agent, conversations, tools
from openagent.config import Settings, get_settings
from openagent.core.ai_engine import AIProvider
from openagent.core.context import AgentContext
from openagent.logging_config import setup_logging

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, provider: Optional[AIProvider] = None) -> FastAPI:
    """Build the application around one AgentContext"""
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """应用生命周期管理"""
        logger.info(f"Starting {settings.APP_NAME} {settings.VERSION} ({settings.ENVIRONMENT})...")
        app.state.context = AgentContext.from_settings(settings, provider=provider)
        yield
        logger.info(f"Shutting down {settings.APP_NAME}...")

    app = FastAPI(
        title=settings.APP_NAME,
        description="Local AI agent: tool-calling loop and dependency-aware task swarm",
        version=settings.VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials="*" not in settings.CORS_ORIGINS,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 全局异常处理
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Global exception: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    app.include_router(agent.router)
    app.include_router(tools.router)
    app.include_router(conversations.router)

    @app.get("/")
    async def root():
        """API根端点"""
        return {
            "message": f"Welcome to {settings.APP_NAME}",
            "version": settings.VERSION,
            "docs": "/docs",
            "endpoints": {
                "chat": "/api/chat",
                "swarm": "/api/swarm",
                "tools": "/api/tools",
                "health": "/api/health",
            },
        }

    return app


def run():
    """Console entry point: serve the API with uvicorn"""
    settings = get_settings()
    setup_logging(settings)
    uvicorn.run(
        create_app(settings),
        host=settings.HOST,
        port=settings.PORT,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
