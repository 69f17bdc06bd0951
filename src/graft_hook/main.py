"""Main entry point for graft-hook."""

import sys
from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from graft_hook import __version__
from graft_hook.api.health import router as health_router
from graft_hook.api.middleware import (
    setup_error_handling,
    setup_logging_middleware,
    setup_metrics_middleware,
)
from graft_hook.api.webhook import router as webhook_router
from graft_hook.core.config import Settings
from graft_hook.core.exceptions import ConfigurationError
from graft_hook.deploy.dispatcher import Dispatcher
from graft_hook.deploy.executor import CommandExecutor
from graft_hook.deploy.registry import ProjectRegistry, load_registry
from graft_hook.utils.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    dispatcher: Dispatcher = app.state.dispatcher
    logger.info(
        "Starting graft-hook",
        version=__version__,
        projects=dispatcher.registry.names(),
        serialize_deployments=dispatcher.locks.enabled,
    )
    yield
    logger.info("Shutting down graft-hook")


def create_app(
    settings: Optional[Settings] = None,
    registry: Optional[ProjectRegistry] = None,
    executor: Optional[CommandExecutor] = None,
) -> FastAPI:
    """Create the FastAPI application.

    The project registry is loaded here, before anything is served; a
    missing or malformed project file raises ConfigurationError.
    """
    if settings is None:
        settings = Settings()

    setup_logging(settings.log_level, settings.log_format)

    if registry is None:
        registry = load_registry(settings.config_path)

    app = FastAPI(
        title="graft-hook",
        version=__version__,
        description="Webhook-triggered compose deployment dispatcher",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.dispatcher = Dispatcher.from_settings(settings, registry, executor=executor)

    setup_error_handling(app)
    setup_logging_middleware(app)
    setup_metrics_middleware(app)

    app.include_router(webhook_router, tags=["webhook"])
    app.include_router(health_router, tags=["health"])

    if settings.metrics_enabled:
        app.mount("/metrics", make_asgi_app())

    return app


def run(settings: Optional[Settings] = None):
    """Run the application. Exits with status 1 on configuration errors."""
    if settings is None:
        settings = Settings()

    try:
        app = create_app(settings)
    except ConfigurationError as exc:
        logger.error("Configuration error, refusing to start", error=str(exc), config_path=settings.config_path)
        sys.exit(1)

    config = uvicorn.Config(
        app,
        host=settings.host,
        port=settings.port,
        log_config=None,  # We handle logging ourselves
        access_log=False,  # Handled by middleware
    )

    server = uvicorn.Server(config)
    server.run()


if __name__ == "__main__":
    run()
