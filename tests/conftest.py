"""Shared fixtures for the triage engine tests.

Nothing here touches the network: the classifier is either the local
gateway or a scripted stub, mail goes to a recording transport and
geocoding is disabled.
"""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from src.models.complaint import Complaint, Provider
from src.models.enums import ActorRole, ComplaintStatus, Department, Priority
from src.models.request import Actor
from src.models.triage import VisualEvidence
from src.pipeline.orchestrator import TriageOrchestrator
from src.services.classifier import LocalClassifierGateway
from src.services.department_detector import DepartmentDetector
from src.services.dispatch import DispatchBalancer
from src.services.geocoding import NullGeocoder
from src.services.integrity import IntegrityFilter
from src.services.lifecycle import LifecycleStateMachine, initial_event
from src.services.notifications import LoggingTransport, NotificationService
from src.services.priority import PriorityAssigner
from src.services.repository import InMemoryComplaintRepository

PHOTO = "data:image/jpeg;base64,/9j/4AAQSkZJRgABAQAAAQABAAD/2wBDAAgGBgcGBQgHBwcJCQgKDA=="


class ScriptedGateway:
    """Classifier stub that replays queued text replies.

    ``replies`` are returned in order by :meth:`classify_text`; once the
    queue is empty every call returns ``None``.  Prompts are recorded.
    """

    def __init__(
        self,
        replies: list[str | None] | None = None,
        evidence: VisualEvidence | None = None,
    ) -> None:
        self.replies: list[str | None] = list(replies or [])
        self.evidence = evidence or VisualEvidence()
        self.prompts: list[str] = []

    @property
    def available(self) -> bool:
        return True

    async def classify_text(self, prompt: str, max_tokens: int = 200) -> str | None:
        self.prompts.append(prompt)
        if not self.replies:
            return None
        return self.replies.pop(0)

    async def classify_image(self, photo: str) -> VisualEvidence:
        return self.evidence


def make_actor(
    actor_id: str = "user-1",
    role: ActorRole = ActorRole.USER,
    department: Department | None = None,
    name: str = "Test User",
    email: str = "user@example.com",
) -> Actor:
    return Actor(actor_id=actor_id, name=name, role=role, department=department, email=email)


def make_complaint(
    description: str = "Water pipe leaking near the bus stand for three days",
    *,
    ticket_id: str = "TNSMP-000001-001",
    area: str = "Chennai",
    department: Department = Department.WATER_RESOURCES,
    status: ComplaintStatus = ComplaintStatus.REGISTERED,
    priority: Priority = Priority.MEDIUM,
    user_id: str = "user-1",
    assigned_to: str | None = None,
) -> Complaint:
    return Complaint(
        ticket_id=ticket_id,
        user_id=user_id,
        user_email="user@example.com",
        area=area,
        department=department,
        description=description,
        photo=PHOTO,
        status=status,
        priority=priority,
        assigned_to=assigned_to,
        assigned_to_name="Worker" if assigned_to else None,
        status_history=[initial_event()],
    )


def build_orchestrator(
    repository: InMemoryComplaintRepository,
    gateway=None,
    transport: LoggingTransport | None = None,
) -> tuple[TriageOrchestrator, NotificationService]:
    gateway = gateway or LocalClassifierGateway()
    notifications = NotificationService(transport or LoggingTransport(), portal_url="https://portal.test")
    orchestrator = TriageOrchestrator(
        repository=repository,
        detector=DepartmentDetector(gateway),
        integrity=IntegrityFilter(gateway),
        priority=PriorityAssigner(gateway),
        dispatch=DispatchBalancer(repository),
        lifecycle=LifecycleStateMachine(repository),
        notifications=notifications,
        geocoder=NullGeocoder(),
    )
    return orchestrator, notifications


@pytest.fixture
def repository() -> InMemoryComplaintRepository:
    return InMemoryComplaintRepository()


@pytest.fixture
def transport() -> Iterator[LoggingTransport]:
    yield LoggingTransport()


@pytest.fixture
def water_provider() -> Provider:
    return Provider(
        provider_id="prov-water-1",
        name="Ravi Kumar",
        email="ravi@example.com",
        department=Department.WATER_RESOURCES,
    )
