"""Complaint status lifecycle.

Legal moves::

    Registered -> Accepted | Rejected
    Accepted   -> Working On | Rejected
    Working On -> Completed

Completed and Rejected are terminal.  Every accepted move appends one
:class:`StatusEvent`; nothing else writes to ``status_history``.  Moving
into Accepted requires the acting provider to hold no other complaint in
Accepted or Working On, and that check is made atomically with the write.
"""

from __future__ import annotations

from typing import Final

import structlog

from src.models.complaint import SYSTEM_ACTOR, Complaint, StatusEvent
from src.models.enums import ComplaintStatus
from src.models.request import Actor
from src.services.errors import (
    CapacityConflict,
    ComplaintNotFound,
    ComplaintValidationError,
    NotAuthorized,
    TransitionRefused,
)
from src.services.repository import ComplaintRepository, ConditionFailed

logger = structlog.get_logger(__name__)

ALLOWED_TRANSITIONS: Final[dict[ComplaintStatus, tuple[ComplaintStatus, ...]]] = {
    ComplaintStatus.REGISTERED: (ComplaintStatus.ACCEPTED, ComplaintStatus.REJECTED),
    ComplaintStatus.ACCEPTED: (ComplaintStatus.WORKING_ON, ComplaintStatus.REJECTED),
    ComplaintStatus.WORKING_ON: (ComplaintStatus.COMPLETED,),
    ComplaintStatus.COMPLETED: (),
    ComplaintStatus.REJECTED: (),
}

INITIAL_NOTE: Final[str] = "Complaint registered successfully"


def allowed_targets(current: ComplaintStatus) -> list[str]:
    return [s.value for s in ALLOWED_TRANSITIONS.get(current, ())]


def can_transition(current: ComplaintStatus, target: ComplaintStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, ())


def initial_event(duplicate_of: str | None = None) -> StatusEvent:
    """First history entry, always written by the system.

    A duplicate is born Rejected; it never passes through Registered.
    """
    if duplicate_of:
        return StatusEvent(
            status=ComplaintStatus.REJECTED,
            actor_name=SYSTEM_ACTOR,
            note=f"Flagged as duplicate of {duplicate_of}",
        )
    return StatusEvent(
        status=ComplaintStatus.REGISTERED,
        actor_name=SYSTEM_ACTOR,
        note=INITIAL_NOTE,
    )


def is_valid_history(history: list[StatusEvent]) -> bool:
    """True when *history* is a legal walk from an initial state."""
    if not history:
        return False
    if history[0].status not in (ComplaintStatus.REGISTERED, ComplaintStatus.REJECTED):
        return False
    return all(
        can_transition(prev.status, nxt.status)
        for prev, nxt in zip(history, history[1:])
    )


class LifecycleStateMachine:
    """Applies provider transitions and submitter ratings."""

    def __init__(self, repository: ComplaintRepository) -> None:
        self._repository = repository

    async def transition(
        self,
        complaint_id: str,
        actor: Actor,
        target: ComplaintStatus,
        resolution: str | None = None,
    ) -> Complaint:
        complaint = await self._repository.get(complaint_id)
        if complaint is None:
            raise ComplaintNotFound(complaint_id)

        current = complaint.status
        if not can_transition(current, target):
            logger.info(
                "lifecycle.refused",
                ticket_id=complaint.ticket_id,
                current=current.value,
                target=target.value,
            )
            raise TransitionRefused(current.value, target.value, allowed_targets(current))

        note = resolution or f"Status updated to {target.value}"

        def apply(stored: Complaint) -> None:
            stored.status = target
            stored.assigned_to = actor.actor_id
            stored.assigned_to_name = actor.name
            if resolution:
                stored.resolution = resolution
            stored.status_history.append(
                StatusEvent(
                    status=target,
                    actor_id=actor.actor_id,
                    actor_name=actor.name,
                    note=note,
                )
            )

        try:
            updated = await self._repository.compare_and_transition(
                complaint_id,
                current,
                actor.actor_id,
                apply,
                enforce_capacity=target == ComplaintStatus.ACCEPTED,
            )
        except ConditionFailed as exc:
            if exc.reason == "capacity":
                logger.info(
                    "lifecycle.capacity_conflict",
                    ticket_id=complaint.ticket_id,
                    provider_id=actor.actor_id,
                )
                raise CapacityConflict(current.value, target.value, allowed_targets(current)) from exc
            # Someone else moved the complaint between our read and the write.
            raise TransitionRefused(
                exc.current.value, target.value, allowed_targets(exc.current)
            ) from exc

        logger.info(
            "lifecycle.transitioned",
            ticket_id=updated.ticket_id,
            previous=current.value,
            status=target.value,
            actor_id=actor.actor_id,
        )
        return updated

    async def rate(
        self,
        complaint_id: str,
        user_id: str,
        rating: int,
        feedback: str = "",
    ) -> Complaint:
        if not isinstance(rating, int) or isinstance(rating, bool) or not 1 <= rating <= 5:
            raise ComplaintValidationError("Rating must be between 1 and 5")

        complaint = await self._repository.get(complaint_id)
        if complaint is None:
            raise ComplaintNotFound(complaint_id)
        if complaint.user_id != user_id:
            raise NotAuthorized("You can only rate your own complaints")
        if complaint.status != ComplaintStatus.COMPLETED:
            raise ComplaintValidationError("Can only rate completed complaints")
        if complaint.rating is not None:
            raise ComplaintValidationError("You have already rated this complaint")

        # The read above can be stale; the conditional write is authoritative.
        try:
            saved = await self._repository.compare_and_rate(complaint_id, rating, feedback or "")
        except ConditionFailed as exc:
            if exc.reason == "rated":
                raise ComplaintValidationError("You have already rated this complaint") from exc
            raise ComplaintValidationError("Can only rate completed complaints") from exc
        logger.info("lifecycle.rated", ticket_id=saved.ticket_id, rating=rating)
        return saved
