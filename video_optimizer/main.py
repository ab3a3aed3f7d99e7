"""FastAPI application entry point."""

from contextlib import asynccontextmanager

from fastapi import FastAPI

from video_optimizer.core.config import settings
from video_optimizer.core.logging import setup_logging
from video_optimizer.core.middleware import CorrelationIdMiddleware
from video_optimizer.core.tracing import setup_tracing, shutdown_tracing
from video_optimizer.modules.upload import upload_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    shutdown_tracing()


app = FastAPI(
    lifespan=lifespan,
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Stores uploaded videos, transcoding them with FFmpeg when a field asks for it.",
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    openapi_tags=[
        {
            "name": "health",
            "description": "Health check endpoints",
        },
        {
            "name": "uploads",
            "description": "Video uploads - storage, optimization, file information",
        },
    ],
)

setup_logging(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    json_format=settings.LOG_JSON,
    include_stack_trace=True,
)

setup_tracing(
    service_name=settings.PROJECT_NAME,
    service_version=settings.VERSION,
    enable_console_export=settings.TRACING_CONSOLE_EXPORT,
)

app.add_middleware(CorrelationIdMiddleware)

app.include_router(upload_router, prefix=settings.API_V1_PREFIX)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        dict: Health status
    """
    return {"status": "healthy"}
