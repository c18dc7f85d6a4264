"""
FastAPI application entrypoint for the cross-platform publishing service.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from crosspost.api.error_handlers import register_exception_handlers
from crosspost.api.routes import router as api_router
from crosspost.core.config import get_settings
from crosspost.core.logging import configure_logging
from crosspost.dependencies import get_publish_worker

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the publish worker for as long as the application is up."""
    settings = get_settings()
    worker = None
    if settings.scheduler.enabled:
        worker = get_publish_worker()
        await worker.start()
    else:
        logger.info("Publish worker disabled (SCHEDULER_ENABLED=false)")
    app.state.publish_worker = worker
    try:
        yield
    finally:
        if worker is not None:
            await worker.stop()


def create_app() -> FastAPI:
    """Factory for the FastAPI application."""
    settings = get_settings()
    configure_logging(settings.log_level)

    app = FastAPI(
        title="CrossPost",
        version="0.1.0",
        description="OAuth account linking and cross-platform publishing API.",
        lifespan=lifespan,
    )
    app.include_router(api_router, prefix="/api")
    register_exception_handlers(app)
    return app


app = create_app()

__all__ = ["app", "create_app", "lifespan"]
