"""Health check endpoint for NagarSeva API v1.

Liveness only; the engine degrades to local heuristics when the remote
classifier is down, so classifier state is reported but never fails the
check.
"""

from __future__ import annotations

import time

import structlog
from fastapi import APIRouter, Request
from pydantic import BaseModel

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

router = APIRouter(prefix="/health", tags=["health"])


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float
    classifier: str


@router.get("", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    start_time: float = getattr(request.app.state, "start_time", time.time())
    gateway = getattr(request.app.state, "gateway", None)
    if gateway is None:
        classifier = "uninitialised"
    elif gateway.available:
        classifier = "remote"
    else:
        classifier = "local"

    return HealthResponse(
        status="healthy",
        version=request.app.version,
        uptime_seconds=round(time.time() - start_time, 2),
        classifier=classifier,
    )
