"""Complaint triage orchestrator.

Coordinates intake (validation, geocoding backfill, department
detection, integrity filtering, prioritisation, dispatch, persistence and
notification) and the provider-facing operations that follow it.  Each
intake step records its latency so a slow collaborator is visible in the
logs.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Final

import structlog

from src.models.complaint import Complaint, GeoLocation, Provider, generate_ticket_id
from src.models.enums import PRIORITY_ORDER, ActorRole, ComplaintStatus, Department
from src.models.response import IntakeResult
from src.services.errors import (
    ComplaintNotFound,
    ComplaintValidationError,
    IntegrityRejection,
    NotAuthorized,
    ProviderNotFound,
)
from src.services.lifecycle import initial_event
from src.services.repository import ConditionFailed, DuplicateTicketError

if TYPE_CHECKING:
    from src.models.request import (
        Actor,
        ComplaintIntakeRequest,
        ProviderCreateRequest,
        RatingRequest,
        TransitionRequest,
    )
    from src.models.triage import ClassificationResult
    from src.services.department_detector import DepartmentDetector
    from src.services.dispatch import DispatchBalancer
    from src.services.geocoding import Geocoder
    from src.services.integrity import IntegrityFilter
    from src.services.lifecycle import LifecycleStateMachine
    from src.services.notifications import NotificationService
    from src.services.priority import PriorityAssigner
    from src.services.repository import ComplaintRepository

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

DEFAULT_AREA: Final[str] = "Unknown"
_TICKET_ATTEMPTS: Final[int] = 10


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


class TriageOrchestrator:
    """Entry point for every complaint operation.

    Collaborators are injected so tests can run the full pipeline with a
    local classifier gateway and an in-memory repository.
    """

    __slots__ = (
        "_candidate_limit",
        "_detector",
        "_dispatch",
        "_geocoder",
        "_integrity",
        "_lifecycle",
        "_notifications",
        "_priority",
        "_repository",
        "_ticket_prefix",
    )

    def __init__(
        self,
        repository: ComplaintRepository,
        detector: DepartmentDetector,
        integrity: IntegrityFilter,
        priority: PriorityAssigner,
        dispatch: DispatchBalancer,
        lifecycle: LifecycleStateMachine,
        notifications: NotificationService,
        geocoder: Geocoder,
        *,
        candidate_limit: int = 20,
        ticket_prefix: str = "TNSMP",
    ) -> None:
        self._repository = repository
        self._detector = detector
        self._integrity = integrity
        self._priority = priority
        self._dispatch = dispatch
        self._lifecycle = lifecycle
        self._notifications = notifications
        self._geocoder = geocoder
        self._candidate_limit = candidate_limit
        self._ticket_prefix = ticket_prefix

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    async def intake(self, request: ComplaintIntakeRequest, actor: Actor) -> IntakeResult:
        """Run the full intake pipeline for one complaint.

        Steps:
        1. Validate photo and description
        2. Backfill address / area from coordinates
        3. Detect department from the photo (only if not supplied)
        4. Fake and duplicate checks against same-department complaints
        5. Assign priority
        6. Select a provider (never for duplicates)
        7. Persist with the initial System status event
        8. Notify the provider (or the submitter, for a duplicate)
        """
        pipeline_start = time.perf_counter()
        log = logger.bind(user_id=actor.actor_id)

        # -- Step 1: Validate ------------------------------------------------
        if not request.photo:
            raise ComplaintValidationError("Photo is required. Please take a live photo.")
        description = request.description.strip()
        if not description:
            raise ComplaintValidationError("Description is required.")

        # -- Step 2: Location ------------------------------------------------
        area = request.area.strip()
        address = request.address.strip()
        location: GeoLocation | None = None
        if request.latitude is not None and request.longitude is not None:
            location = GeoLocation(latitude=request.latitude, longitude=request.longitude)
            if not area or not address:
                resolved = await self._geocoder.resolve(request.latitude, request.longitude)
                address = address or resolved.get("address", "")
                area = area or resolved.get("area", "")
        area = area or DEFAULT_AREA

        # -- Step 3: Department ----------------------------------------------
        classification: ClassificationResult | None = None
        step_start = time.perf_counter()
        if request.department is not None:
            department = request.department
        else:
            classification = await self._detector.detect(request.photo)
            department = classification.department
        detect_ms = _elapsed_ms(step_start)

        # -- Step 4: Integrity -----------------------------------------------
        step_start = time.perf_counter()
        existing = await self._repository.list_complaints(
            department=department,
            exclude_statuses={ComplaintStatus.REJECTED},
            limit=self._candidate_limit,
        )
        verdict = await self._integrity.check(description, department.value, area, existing)
        integrity_ms = _elapsed_ms(step_start)
        if verdict.is_fake:
            log.info("pipeline.rejected_fake", department=department.value, remarks=verdict.remarks)
            raise IntegrityRejection(verdict.remarks)

        # -- Step 5: Priority ------------------------------------------------
        step_start = time.perf_counter()
        priority = await self._priority.assign(description, department.value)
        priority_ms = _elapsed_ms(step_start)

        # -- Step 6: Dispatch ------------------------------------------------
        provider: Provider | None = None
        if not verdict.is_duplicate:
            provider = await self._dispatch.select(department)

        # -- Step 7: Persist -------------------------------------------------
        complaint = Complaint(
            ticket_id="",
            user_id=actor.actor_id,
            user_name=actor.name,
            user_email=actor.email,
            area=area,
            address=address,
            department=department,
            description=description,
            photo=request.photo,
            location=location,
            status=ComplaintStatus.REJECTED if verdict.is_duplicate else ComplaintStatus.REGISTERED,
            priority=priority,
            assigned_to=provider.provider_id if provider else None,
            assigned_to_name=provider.name if provider else None,
            status_history=[initial_event(verdict.duplicate_of if verdict.is_duplicate else None)],
            is_duplicate=verdict.is_duplicate,
            duplicate_of=verdict.duplicate_of,
            ai_remarks=verdict.remarks,
            classification=classification,
        )
        complaint = await self._store_with_unique_ticket(complaint)

        # -- Step 8: Notify --------------------------------------------------
        if provider is not None:
            self._notifications.dispatch(self._notifications.assignment(provider, complaint))
        elif verdict.is_duplicate:
            self._notifications.dispatch(self._notifications.duplicate(complaint))

        log.info(
            "pipeline.intake_complete",
            ticket_id=complaint.ticket_id,
            department=department.value,
            priority=priority.value,
            is_duplicate=complaint.is_duplicate,
            assigned_to=complaint.assigned_to,
            detect_ms=detect_ms,
            integrity_ms=integrity_ms,
            priority_ms=priority_ms,
            total_ms=_elapsed_ms(pipeline_start),
        )

        if complaint.is_duplicate:
            message = f"Complaint flagged as potential duplicate of {complaint.duplicate_of}"
        else:
            message = "Complaint registered successfully"
        return IntakeResult(
            message=message,
            complaint_id=complaint.complaint_id,
            ticket_id=complaint.ticket_id,
            department=complaint.department,
            priority=complaint.priority,
            is_duplicate=complaint.is_duplicate,
            duplicate_of=complaint.duplicate_of,
            ai_remarks=complaint.ai_remarks,
            assigned_to=complaint.assigned_to_name,
            area=complaint.area,
            address=complaint.address,
            classification=classification,
        )

    async def _store_with_unique_ticket(self, complaint: Complaint) -> Complaint:
        for _ in range(_TICKET_ATTEMPTS):
            ticket_id = generate_ticket_id(self._ticket_prefix)
            if await self._repository.ticket_exists(ticket_id):
                continue
            complaint.ticket_id = ticket_id
            try:
                return await self._repository.add(complaint)
            except DuplicateTicketError:
                continue
        raise RuntimeError("could not allocate a unique ticket id")

    # ------------------------------------------------------------------
    # Department preview
    # ------------------------------------------------------------------

    async def analyze_image(self, photo: str) -> ClassificationResult:
        if not photo:
            raise ComplaintValidationError("Photo is required for analysis")
        return await self._detector.detect(photo)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_complaint(self, complaint_id: str, actor: Actor) -> Complaint:
        complaint = await self._repository.get(complaint_id)
        if complaint is None:
            raise ComplaintNotFound(complaint_id)
        if actor.role == ActorRole.USER and complaint.user_id != actor.actor_id:
            raise NotAuthorized("You can only view your own complaints")
        if actor.role == ActorRole.PROVIDER and complaint.department != actor.department:
            raise NotAuthorized("Not authorized for this department")
        return complaint

    async def user_complaints(self, actor: Actor) -> list[Complaint]:
        return await self._repository.list_complaints(user_id=actor.actor_id)

    async def provider_queue(self, actor: Actor) -> list[Complaint]:
        """Complaints assigned to *actor* plus unassigned ones in their department.

        Ordered Critical to Low, newest first within a priority.
        """
        if actor.department is None:
            raise NotAuthorized("Provider has no department")
        complaints = await self._repository.list_complaints(department=actor.department)
        queue = [
            c for c in complaints
            if c.assigned_to is None or c.assigned_to == actor.actor_id
        ]
        # list_complaints is newest first and sort() is stable.
        queue.sort(key=lambda c: PRIORITY_ORDER[c.priority])
        return queue

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def transition(
        self,
        complaint_id: str,
        actor: Actor,
        request: TransitionRequest,
    ) -> Complaint:
        complaint = await self._repository.get(complaint_id)
        if complaint is None:
            raise ComplaintNotFound(complaint_id)
        if complaint.department != actor.department:
            raise NotAuthorized("Not authorized for this department")

        updated = await self._lifecycle.transition(
            complaint_id, actor, request.status, request.resolution
        )
        self._notifications.dispatch(
            self._notifications.status_update(updated, request.status, request.resolution)
        )
        return updated

    async def rate(self, complaint_id: str, actor: Actor, request: RatingRequest) -> Complaint:
        return await self._lifecycle.rate(
            complaint_id, actor.actor_id, request.rating, request.feedback
        )

    # ------------------------------------------------------------------
    # Re-dispatch
    # ------------------------------------------------------------------

    async def reassign_unassigned(self, department: Department) -> list[Complaint]:
        """Re-run the balancer for Registered complaints left without a provider.

        Oldest complaints are placed first.  Stops as soon as the
        department has no providers.
        """
        pending = await self._repository.list_complaints(
            department=department,
            statuses={ComplaintStatus.REGISTERED},
            unassigned=True,
        )
        assigned: list[Complaint] = []
        for complaint in reversed(pending):
            provider = await self._dispatch.select(department)
            if provider is None:
                break

            def apply(stored: Complaint, chosen: Provider = provider) -> None:
                stored.assigned_to = chosen.provider_id
                stored.assigned_to_name = chosen.name

            try:
                updated = await self._repository.compare_and_transition(
                    complaint.complaint_id,
                    ComplaintStatus.REGISTERED,
                    provider.provider_id,
                    apply,
                )
            except ConditionFailed:
                # Accepted or rejected while we were balancing.
                continue
            assigned.append(updated)
            self._notifications.dispatch(self._notifications.assignment(provider, updated))

        logger.info(
            "pipeline.reassigned",
            department=department.value,
            pending=len(pending),
            assigned=len(assigned),
        )
        return assigned

    # ------------------------------------------------------------------
    # Providers
    # ------------------------------------------------------------------

    async def register_provider(self, request: ProviderCreateRequest) -> Provider:
        provider = await self._repository.add_provider(
            Provider(name=request.name, email=request.email, department=request.department)
        )
        logger.info(
            "pipeline.provider_registered",
            provider_id=provider.provider_id,
            department=provider.department.value,
        )
        return provider

    async def remove_provider(self, provider_id: str) -> None:
        if not await self._repository.remove_provider(provider_id):
            raise ProviderNotFound(provider_id)
        logger.info("pipeline.provider_removed", provider_id=provider_id)

    async def list_providers(self, department: Department | None = None) -> list[Provider]:
        return await self._repository.list_providers(department)
