import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .agent_runtime import get_runtime, register_builtin_strategies
from .agent_runtime.router import router as runtime_router
from .api import chat_ws, completion, health, messages, portfolio
from .config import settings
from .logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    runtime = get_runtime()
    if settings.agent_runtime_enabled:
        register_builtin_strategies()
        await runtime.ensure_started()
    else:
        logger.info("Agent runtime disabled; scans only run on demand")
    try:
        yield
    finally:
        await runtime.stop()


# Create FastAPI app
app = FastAPI(
    title="Portfolio Agent API",
    description="Agent interaction and resilience layer for an autonomous DeFi portfolio agent",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(completion.router, tags=["Completion"])
app.include_router(messages.router, tags=["Messages"])
app.include_router(portfolio.router, tags=["Portfolio"])
app.include_router(runtime_router)
app.include_router(chat_ws.router, tags=["Chat"])


@app.get("/")
async def root():
    """Root endpoint with basic info"""
    return {
        "name": "Portfolio Agent API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/healthz",
        "chat": "/ws",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "portfolio_agent.main:app",
        host=settings.host,
        port=settings.port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
