"""HTTP agent entry point."""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
import uvicorn
from fastapi import FastAPI
from prometheus_client import make_asgi_app

from nixdeploy import __version__
from nixdeploy.api.deploy import init_deploy_manager, router as deploy_router
from nixdeploy.api.health import router as health_router
from nixdeploy.api.middleware import (
    setup_error_handling,
    setup_logging_middleware,
    setup_metrics_middleware,
)
from nixdeploy.core.config import Settings
from nixdeploy.deploy.manager import DeploymentManager
from nixdeploy.utils.logging import setup_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    settings = app.state.settings
    logger.info(
        "Starting nixdeploy agent",
        version=__version__,
        hostname=settings.hostname,
        flake_url=settings.flake_url,
        operation=settings.operation.value,
        mode=settings.execution_mode.value,
    )
    app.state.deployment_manager.start()

    yield

    logger.info("Shutting down nixdeploy agent")
    try:
        await app.state.deployment_manager.shutdown()
    except Exception:
        logger.exception("Error while shutting down the deployment manager")


def create_app(settings: Optional[Settings] = None, manager: Optional[DeploymentManager] = None) -> FastAPI:
    """Create FastAPI application."""
    if settings is None:
        settings = manager.settings if manager is not None else Settings()

    setup_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="nixdeploy",
        version=__version__,
        description="Continuous deployment agent for NixOS configurations",
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.deployment_manager = init_deploy_manager(manager or DeploymentManager(settings))

    setup_error_handling(app)
    setup_logging_middleware(app)
    setup_metrics_middleware(app)

    app.include_router(health_router, tags=["health"])
    app.include_router(deploy_router, tags=["deploy"])

    if settings.metrics_enabled:
        app.mount("/metrics", make_asgi_app())

    return app


def run(settings: Settings) -> None:
    """Serve the agent until interrupted."""
    config = uvicorn.Config(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,  # We handle logging ourselves
        access_log=False,  # Handled by middleware
    )
    logger.info("Starting the webhook server", host=settings.host, port=settings.port)
    uvicorn.Server(config).run()
