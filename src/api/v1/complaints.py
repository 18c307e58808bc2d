"""Citizen-facing complaint endpoints.

Intake, department preview from a photo, complaint lookup and rating.
Domain errors (validation, fake content, authorisation) are raised as
:class:`~src.services.errors.TriageError` and mapped to status codes by
the application's exception handler.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Request

from src.middleware.auth import require_actor, require_role
from src.models.enums import ActorRole
from src.models.request import (
    Actor,
    ComplaintIntakeRequest,
    ImageAnalysisRequest,
    RatingRequest,
)
from src.models.response import IntakeResult
from src.models.triage import ClassificationResult
from src.pipeline.orchestrator import TriageOrchestrator

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/complaints", tags=["complaints"])

_require_user = require_role(ActorRole.USER)


def get_orchestrator(request: Request) -> TriageOrchestrator:
    return request.app.state.orchestrator


@router.post("", response_model=IntakeResult, status_code=201)
async def submit_complaint(
    body: ComplaintIntakeRequest,
    actor: Actor = Depends(_require_user),
    orchestrator: TriageOrchestrator = Depends(get_orchestrator),
) -> IntakeResult:
    """File a complaint.

    Returns 201 for both fresh and duplicate complaints (duplicates are
    recorded as Rejected and never dispatched); 400 for a missing photo
    or description and for content judged fake.
    """
    return await orchestrator.intake(body, actor)


@router.post("/analyze-image", response_model=ClassificationResult)
async def analyze_image(
    body: ImageAnalysisRequest,
    actor: Actor = Depends(_require_user),
    orchestrator: TriageOrchestrator = Depends(get_orchestrator),
) -> ClassificationResult:
    """Preview which department a photo would be routed to."""
    return await orchestrator.analyze_image(body.photo)


@router.get("")
async def my_complaints(
    actor: Actor = Depends(_require_user),
    orchestrator: TriageOrchestrator = Depends(get_orchestrator),
) -> list[dict]:
    complaints = await orchestrator.user_complaints(actor)
    return [c.summary() for c in complaints]


@router.get("/{complaint_id}")
async def get_complaint(
    complaint_id: str,
    actor: Actor = Depends(require_actor),
    orchestrator: TriageOrchestrator = Depends(get_orchestrator),
) -> dict:
    complaint = await orchestrator.get_complaint(complaint_id, actor)
    return complaint.summary(include_photo=True)


@router.put("/{complaint_id}/rate")
async def rate_complaint(
    complaint_id: str,
    body: RatingRequest,
    actor: Actor = Depends(_require_user),
    orchestrator: TriageOrchestrator = Depends(get_orchestrator),
) -> dict:
    complaint = await orchestrator.rate(complaint_id, actor, body)
    return {
        "message": "Thank you for your feedback!",
        "rating": complaint.rating,
        "feedback": complaint.feedback,
    }
