"""
Service health endpoints.

- GET /health: process is up
- GET /health/live: liveness probe
- GET /health/ready: species list loaded and model credentials present
"""

import time
from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.core.config import get_settings
from app.core.dependencies import get_model_gateway, get_registry
from app.ml.model_gateway import ModelGateway
from app.ml.taxonomy_registry import TaxonomyRegistry

router = APIRouter(prefix="/health", tags=["Health"])

_started_at: Optional[float] = None


def set_startup_time() -> None:
    """Record process start; called from the application lifespan."""
    global _started_at
    _started_at = time.time()


class HealthResponse(BaseModel):
    status: str
    timestamp: float
    version: str


class ComponentStatus(BaseModel):
    """Readiness of one pipeline dependency."""
    ready: bool
    status: str
    detail: dict = {}


class ReadinessResponse(BaseModel):
    status: str
    timestamp: float
    version: str
    components: dict[str, ComponentStatus]
    uptime_seconds: Optional[float] = None


def _registry_status(registry: TaxonomyRegistry) -> ComponentStatus:
    size = len(registry)
    return ComponentStatus(
        ready=size > 0,
        status="ready" if size else "empty",
        detail={"species_count": size},
    )


def _vision_model_status(gateway: ModelGateway) -> ComponentStatus:
    configured = gateway.client.is_configured
    return ComponentStatus(
        ready=configured,
        status="ready" if configured else "not_configured",
        detail={"model": gateway.client.model_name, "max_retries": gateway.max_retries},
    )


@router.get("", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """The service is running. Says nothing about model availability."""
    return HealthResponse(status="healthy", timestamp=time.time(), version=get_settings().app_version)


@router.get("/live")
async def liveness_check() -> dict:
    return {"status": "alive"}


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse, "description": "A component is not ready"}},
)
async def readiness_check(
    registry: TaxonomyRegistry = Depends(get_registry),
    gateway: ModelGateway = Depends(get_model_gateway),
):
    """
    Check the components /identify depends on.

    The model itself is not called: a configured key is taken as ready,
    so probes never spend upstream quota.
    """
    components = {
        "taxonomy_registry": _registry_status(registry),
        "vision_model": _vision_model_status(gateway),
    }
    ready = all(component.ready for component in components.values())

    response = ReadinessResponse(
        status="ready" if ready else "not_ready",
        timestamp=time.time(),
        version=get_settings().app_version,
        components=components,
        uptime_seconds=time.time() - _started_at if _started_at else None,
    )
    if not ready:
        return JSONResponse(status_code=503, content=response.model_dump())
    return response
