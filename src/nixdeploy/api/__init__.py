"""API module for nixdeploy."""

from .deploy import router as deploy_router
from .health import router as health_router

__all__ = [
    "deploy_router",
    "health_router",
]
