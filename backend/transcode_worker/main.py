"""FastAPI application entry point."""

from fastapi import FastAPI

from transcode_worker.core.config import get_settings
from transcode_worker.core.logging import setup_logging
from transcode_worker.core.middleware import CorrelationIdMiddleware
from transcode_worker.modules.pipeline.router import router as events_router

settings = get_settings()

app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="Accepts storage notifications and queues transcode pipeline runs.",
    openapi_url=f"{settings.API_V1_PREFIX}/openapi.json",
    openapi_tags=[
        {"name": "health", "description": "Health check endpoints"},
        {"name": "events", "description": "Storage notifications that start pipeline runs"},
    ],
)

setup_logging(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    json_format=settings.LOG_JSON,
)

app.add_middleware(CorrelationIdMiddleware)

app.include_router(events_router, prefix=settings.API_V1_PREFIX)


@app.get("/health", tags=["health"])
async def health_check() -> dict:
    """Health check endpoint."""
    return {"status": "healthy", "version": settings.VERSION}
