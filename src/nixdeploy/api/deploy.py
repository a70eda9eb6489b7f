"""Webhook and status endpoints."""

from __future__ import annotations

import hmac

import structlog
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from nixdeploy.core.models import StatusSnapshot
from nixdeploy.deploy.manager import DeploymentManager


router = APIRouter()
logger = structlog.get_logger()


_deployment_manager: DeploymentManager | None = None


def init_deploy_manager(manager: DeploymentManager) -> DeploymentManager:
    global _deployment_manager
    _deployment_manager = manager
    return _deployment_manager


def get_deploy_manager() -> DeploymentManager:
    if _deployment_manager is None:
        raise RuntimeError("DeploymentManager not initialized")
    return _deployment_manager


def _require_secret(provided: str | None, header: str, secret: str | None, client: str | None):
    if not secret:
        return
    if not provided:
        logger.info("Webhook called without the secret header", header=header, client=client)
        raise HTTPException(status_code=401, detail=f"The header {header} is required")
    if not hmac.compare_digest(provided.encode(), secret.encode()):
        logger.info("Webhook called with an invalid secret", header=header, client=client)
        raise HTTPException(status_code=401, detail=f"Invalid {header} header value")


class DeployAccepted(BaseModel):
    status: str
    message: str


@router.post("/deploy", response_model=DeployAccepted)
async def deploy_endpoint(req: Request):
    manager = get_deploy_manager()
    settings = manager.settings
    client = req.client.host if req.client else None
    logger.info("Getting webhook request", client=client)

    if not settings.webhook_enabled:
        raise HTTPException(status_code=404, detail="The webhook is disabled")

    header = settings.webhook_secret_header
    _require_secret(req.headers.get(header), header, settings.webhook_secret, client)

    if not manager.gate.trigger():
        raise HTTPException(status_code=409, detail="A deployment is already running")
    return DeployAccepted(status="accepted", message="A deployment has been triggered")


@router.get("/status", response_model=StatusSnapshot)
async def status_endpoint() -> StatusSnapshot:
    return get_deploy_manager().status.snapshot()
