"""Management endpoints: dashboard, provider roster, re-dispatch.

Provider roster changes and re-dispatch additionally require the
``X-Admin-API-Key`` header.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Query, Request

from src.middleware.auth import require_admin_api_key, require_role
from src.models.complaint import Provider
from src.models.enums import ActorRole, Department
from src.models.request import Actor, ProviderCreateRequest
from src.models.response import DashboardStats
from src.pipeline.orchestrator import TriageOrchestrator
from src.services.stats import StatsService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/management", tags=["management"])

_require_management = require_role(ActorRole.MANAGEMENT)


def get_orchestrator(request: Request) -> TriageOrchestrator:
    return request.app.state.orchestrator


def get_stats(request: Request) -> StatsService:
    return request.app.state.stats


@router.get("/dashboard", response_model=DashboardStats)
async def dashboard(
    actor: Actor = Depends(_require_management),
    stats: StatsService = Depends(get_stats),
) -> DashboardStats:
    return await stats.dashboard()


@router.get("/providers", response_model=list[Provider])
async def list_providers(
    department: Department | None = Query(default=None),
    actor: Actor = Depends(_require_management),
    orchestrator: TriageOrchestrator = Depends(get_orchestrator),
) -> list[Provider]:
    return await orchestrator.list_providers(department)


@router.post(
    "/providers",
    response_model=Provider,
    status_code=201,
    dependencies=[Depends(require_admin_api_key)],
)
async def create_provider(
    body: ProviderCreateRequest,
    actor: Actor = Depends(_require_management),
    orchestrator: TriageOrchestrator = Depends(get_orchestrator),
) -> Provider:
    return await orchestrator.register_provider(body)


@router.delete("/providers/{provider_id}", dependencies=[Depends(require_admin_api_key)])
async def delete_provider(
    provider_id: str,
    actor: Actor = Depends(_require_management),
    orchestrator: TriageOrchestrator = Depends(get_orchestrator),
) -> dict:
    await orchestrator.remove_provider(provider_id)
    return {"message": "Provider removed"}


@router.post("/reassign/{department}", dependencies=[Depends(require_admin_api_key)])
async def reassign(
    department: Department,
    actor: Actor = Depends(_require_management),
    orchestrator: TriageOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Re-run the balancer for unassigned Registered complaints."""
    assigned = await orchestrator.reassign_unassigned(department)
    return {
        "department": department.value,
        "assigned": [
            {"ticket_id": c.ticket_id, "assigned_to": c.assigned_to_name}
            for c in assigned
        ],
    }
