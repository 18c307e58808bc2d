"""Service-provider endpoints: work queue, status transitions, stats."""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request

from src.middleware.auth import require_role
from src.models.enums import ActorRole
from src.models.request import Actor, TransitionRequest
from src.models.response import ProviderStats
from src.pipeline.orchestrator import TriageOrchestrator
from src.services.stats import StatsService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/provider", tags=["provider"])

_require_provider = require_role(ActorRole.PROVIDER)


def get_orchestrator(request: Request) -> TriageOrchestrator:
    return request.app.state.orchestrator


def get_stats(request: Request) -> StatsService:
    return request.app.state.stats


@router.get("/complaints")
async def work_queue(
    actor: Actor = Depends(_require_provider),
    orchestrator: TriageOrchestrator = Depends(get_orchestrator),
) -> list[dict]:
    """Complaints assigned to the caller plus unassigned ones in their department."""
    queue = await orchestrator.provider_queue(actor)
    return [c.summary() for c in queue]


@router.put("/complaints/{complaint_id}")
async def update_status(
    complaint_id: str,
    body: TransitionRequest,
    actor: Actor = Depends(_require_provider),
    orchestrator: TriageOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Move a complaint along its lifecycle.

    409 with the allowed targets when the move is illegal or the caller
    already holds an active complaint.
    """
    complaint = await orchestrator.transition(complaint_id, actor, body)
    return complaint.summary()


@router.get("/stats", response_model=ProviderStats)
async def provider_stats(
    actor: Actor = Depends(_require_provider),
    stats: StatsService = Depends(get_stats),
) -> ProviderStats:
    return await stats.provider_stats(actor)
