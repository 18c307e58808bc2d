"""End-to-end tests for the triage orchestrator with in-memory collaborators."""

from __future__ import annotations

import json

import pytest

from src.models.complaint import Provider
from src.models.enums import ActorRole, ComplaintStatus, Department, EvidenceSource, Priority
from src.models.request import (
    ComplaintIntakeRequest,
    ProviderCreateRequest,
    RatingRequest,
    TransitionRequest,
)
from src.models.triage import ScoredTerm, VisualEvidence
from src.services.errors import (
    CapacityConflict,
    ComplaintValidationError,
    IntegrityRejection,
    NotAuthorized,
    ProviderNotFound,
)
from src.services.lifecycle import is_valid_history
from src.services.notifications import LoggingTransport
from src.services.repository import InMemoryComplaintRepository
from tests.conftest import PHOTO, ScriptedGateway, build_orchestrator, make_actor

CITIZEN = make_actor("user-1", name="Meena", email="meena@example.com")
FIRST = "water pipe leaking near main road causing flooding"
SECOND = "water pipeline leak on main road flooding the street"


def intake_request(description: str = FIRST, **overrides) -> ComplaintIntakeRequest:
    fields = {
        "area": "Chennai",
        "department": Department.WATER_RESOURCES,
        "description": description,
        "photo": PHOTO,
    }
    fields.update(overrides)
    return ComplaintIntakeRequest(**fields)


async def add_provider(
    repository: InMemoryComplaintRepository,
    provider_id: str,
    department: Department = Department.WATER_RESOURCES,
) -> Provider:
    return await repository.add_provider(
        Provider(provider_id=provider_id, name=provider_id.title(), email=f"{provider_id}@example.com", department=department)
    )


class TestIntakeValidation:
    async def test_photo_required(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        with pytest.raises(ComplaintValidationError, match="Photo is required"):
            await orchestrator.intake(intake_request(photo=""), CITIZEN)

    async def test_description_required(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        with pytest.raises(ComplaintValidationError, match="Description is required"):
            await orchestrator.intake(intake_request("   "), CITIZEN)

    async def test_fake_complaint_is_rejected_and_not_stored(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        with pytest.raises(IntegrityRejection) as excinfo:
            await orchestrator.intake(intake_request("asdf asdf asdf"), CITIZEN)
        assert "gibberish" in excinfo.value.remarks
        assert await repository.list_complaints() == []


class TestIntake:
    async def test_registered_and_dispatched(self, repository: InMemoryComplaintRepository) -> None:
        await add_provider(repository, "ravi")
        transport = LoggingTransport()
        orchestrator, notifications = build_orchestrator(repository, transport=transport)

        result = await orchestrator.intake(intake_request(), CITIZEN)
        await notifications.drain()

        assert result.message == "Complaint registered successfully"
        assert result.is_duplicate is False
        assert result.assigned_to == "Ravi"
        assert result.ticket_id.startswith("TNSMP-")

        stored = await repository.get(result.complaint_id)
        assert stored is not None
        assert stored.status == ComplaintStatus.REGISTERED
        assert stored.assigned_to == "ravi"
        assert stored.priority == Priority.HIGH
        assert len(stored.status_history) == 1
        assert stored.status_history[0].note == "Complaint registered successfully"

        assert [n.kind for n in transport.sent] == ["assignment"]
        assert transport.sent[0].to_email == "ravi@example.com"

    async def test_no_providers_leaves_unassigned(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        result = await orchestrator.intake(
            intake_request("Streetlight not working near the bus stand", department=Department.ELECTRICITY),
            CITIZEN,
        )
        assert result.assigned_to is None
        stored = await repository.get(result.complaint_id)
        assert stored is not None
        assert stored.status == ComplaintStatus.REGISTERED
        assert stored.assigned_to is None

    async def test_department_detected_when_missing(self, repository: InMemoryComplaintRepository) -> None:
        gateway = ScriptedGateway(
            evidence=VisualEvidence(
                labels=[
                    ScoredTerm("pothole", 0.94, EvidenceSource.LABEL),
                    ScoredTerm("road damage", 0.88, EvidenceSource.LABEL),
                ],
                source="google-vision",
            )
        )
        orchestrator, _ = build_orchestrator(repository, gateway=gateway)

        result = await orchestrator.intake(
            intake_request("Large pothole on main road near the junction", department=None),
            CITIZEN,
        )

        assert result.department == Department.ROADS_HIGHWAYS
        assert result.classification is not None
        assert result.classification.confidence > 0

    async def test_supplied_department_skips_detection(self, repository: InMemoryComplaintRepository) -> None:
        gateway = ScriptedGateway(evidence=VisualEvidence(direct_department="Electricity"))
        orchestrator, _ = build_orchestrator(repository, gateway=gateway)
        result = await orchestrator.intake(intake_request(), CITIZEN)
        assert result.department == Department.WATER_RESOURCES
        assert result.classification is None

    async def test_area_defaults_to_unknown(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        result = await orchestrator.intake(intake_request(area="", latitude=13.08, longitude=80.27), CITIZEN)
        assert result.area == "Unknown"
        stored = await repository.get(result.complaint_id)
        assert stored is not None and stored.location is not None

    async def test_tickets_are_unique(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        descriptions = [
            "Garbage pile near the temple gate",
            "Streetlight broken near school",
            "Drainage blocked opposite the hospital",
        ]
        tickets = {(await orchestrator.intake(intake_request(d), CITIZEN)).ticket_id for d in descriptions}
        assert len(tickets) == 3


class TestDuplicates:
    async def test_local_duplicate_created_rejected(self, repository: InMemoryComplaintRepository) -> None:
        await add_provider(repository, "ravi")
        transport = LoggingTransport()
        orchestrator, notifications = build_orchestrator(repository, transport=transport)

        original = await orchestrator.intake(intake_request(), CITIZEN)
        duplicate = await orchestrator.intake(intake_request(FIRST + " today"), CITIZEN)
        await notifications.drain()

        assert duplicate.is_duplicate is True
        assert duplicate.duplicate_of == original.ticket_id
        assert duplicate.assigned_to is None
        assert duplicate.message == f"Complaint flagged as potential duplicate of {original.ticket_id}"

        stored = await repository.get(duplicate.complaint_id)
        assert stored is not None
        assert stored.status == ComplaintStatus.REJECTED
        assert stored.status_history[0].status == ComplaintStatus.REJECTED
        assert is_valid_history(stored.status_history)
        assert [n.kind for n in transport.sent] == ["assignment", "duplicate"]
        assert transport.sent[1].to_email == "meena@example.com"

    async def test_remote_second_opinion_flags_paraphrase(self, repository: InMemoryComplaintRepository) -> None:
        gateway = ScriptedGateway()
        orchestrator, _ = build_orchestrator(repository, gateway=gateway)
        original = await orchestrator.intake(intake_request(), CITIZEN)

        # Duplicate verdict first, then the priority word.
        gateway.replies = [
            json.dumps({
                "isDuplicate": True,
                "duplicateOf": original.ticket_id,
                "isFake": False,
                "remarks": "Same pipeline leak on main road",
            }),
            "High",
        ]
        duplicate = await orchestrator.intake(intake_request(SECOND), CITIZEN)

        assert duplicate.is_duplicate is True
        assert duplicate.duplicate_of == original.ticket_id
        assert duplicate.priority == Priority.HIGH

    async def test_equally_similar_matches_point_at_earliest(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        words = FIRST.split() + ["since", "morning"]
        older = await orchestrator.intake(intake_request(" ".join(words[:8] + ["temple"])), CITIZEN)
        newer = await orchestrator.intake(intake_request(" ".join(words[2:] + ["school"])), CITIZEN)
        assert newer.is_duplicate is False

        latest = await orchestrator.intake(intake_request(" ".join(words)), CITIZEN)

        assert latest.is_duplicate is True
        assert latest.duplicate_of == older.ticket_id

    async def test_different_area_is_not_duplicate(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        await orchestrator.intake(intake_request(), CITIZEN)
        other = await orchestrator.intake(intake_request(area="Madurai"), CITIZEN)
        assert other.is_duplicate is False

    async def test_duplicates_never_count_toward_load(self, repository: InMemoryComplaintRepository) -> None:
        await add_provider(repository, "ravi")
        orchestrator, _ = build_orchestrator(repository)
        await orchestrator.intake(intake_request(), CITIZEN)
        await orchestrator.intake(intake_request(FIRST + " today"), CITIZEN)
        assert await repository.count_assigned("ravi") == 1


class TestProviderOperations:
    async def test_transition_and_status_mail(self, repository: InMemoryComplaintRepository) -> None:
        await add_provider(repository, "ravi")
        transport = LoggingTransport()
        orchestrator, notifications = build_orchestrator(repository, transport=transport)
        result = await orchestrator.intake(intake_request(), CITIZEN)
        worker = make_actor("ravi", ActorRole.PROVIDER, Department.WATER_RESOURCES, name="Ravi")

        updated = await orchestrator.transition(
            result.complaint_id, worker, TransitionRequest(status=ComplaintStatus.ACCEPTED)
        )
        await notifications.drain()

        assert updated.status == ComplaintStatus.ACCEPTED
        status_mails = [n for n in transport.sent if n.kind == "status_update"]
        assert len(status_mails) == 1
        assert "Accepted" in status_mails[0].subject

    async def test_other_department_cannot_transition(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        result = await orchestrator.intake(intake_request(), CITIZEN)
        outsider = make_actor("sparky", ActorRole.PROVIDER, Department.ELECTRICITY)
        with pytest.raises(NotAuthorized, match="Not authorized for this department"):
            await orchestrator.transition(
                result.complaint_id, outsider, TransitionRequest(status=ComplaintStatus.ACCEPTED)
            )

    async def test_second_accept_conflicts(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        first = await orchestrator.intake(intake_request("Garbage pile near the temple gate"), CITIZEN)
        second = await orchestrator.intake(intake_request("Drainage blocked opposite the hospital"), CITIZEN)
        worker = make_actor("ravi", ActorRole.PROVIDER, Department.WATER_RESOURCES)

        await orchestrator.transition(first.complaint_id, worker, TransitionRequest(status=ComplaintStatus.ACCEPTED))
        with pytest.raises(CapacityConflict):
            await orchestrator.transition(
                second.complaint_id, worker, TransitionRequest(status=ComplaintStatus.ACCEPTED)
            )

    async def test_queue_sorted_by_priority(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        await orchestrator.intake(intake_request("Request for new bench in the park", department=Department.EDUCATION), CITIZEN)
        await orchestrator.intake(intake_request("School wall collapse near the gate", department=Department.EDUCATION), CITIZEN)
        worker = make_actor("teach", ActorRole.PROVIDER, Department.EDUCATION)

        queue = await orchestrator.provider_queue(worker)

        assert [c.priority for c in queue] == [Priority.CRITICAL, Priority.LOW]

    async def test_rate_after_completion(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        result = await orchestrator.intake(intake_request(), CITIZEN)
        worker = make_actor("ravi", ActorRole.PROVIDER, Department.WATER_RESOURCES)
        for status in (ComplaintStatus.ACCEPTED, ComplaintStatus.WORKING_ON, ComplaintStatus.COMPLETED):
            await orchestrator.transition(result.complaint_id, worker, TransitionRequest(status=status))

        rated = await orchestrator.rate(result.complaint_id, CITIZEN, RatingRequest(rating=5, feedback="Thanks"))
        assert rated.rating == 5


class TestReads:
    async def test_user_sees_only_own_complaints(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        result = await orchestrator.intake(intake_request(), CITIZEN)
        stranger = make_actor("user-2")
        with pytest.raises(NotAuthorized):
            await orchestrator.get_complaint(result.complaint_id, stranger)
        assert (await orchestrator.get_complaint(result.complaint_id, CITIZEN)).ticket_id == result.ticket_id
        assert await orchestrator.user_complaints(stranger) == []

    async def test_analyze_image_requires_photo(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        with pytest.raises(ComplaintValidationError, match="Photo is required for analysis"):
            await orchestrator.analyze_image("")


class TestManagement:
    async def test_reassign_unassigned_oldest_first(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        first = await orchestrator.intake(intake_request("Garbage pile near the temple gate"), CITIZEN)
        second = await orchestrator.intake(intake_request("Drainage blocked opposite the hospital"), CITIZEN)
        await orchestrator.register_provider(
            ProviderCreateRequest(name="Ravi", department=Department.WATER_RESOURCES)
        )
        await orchestrator.register_provider(
            ProviderCreateRequest(name="Lakshmi", department=Department.WATER_RESOURCES)
        )

        assigned = await orchestrator.reassign_unassigned(Department.WATER_RESOURCES)

        assert [c.ticket_id for c in assigned] == [first.ticket_id, second.ticket_id]
        assert [c.assigned_to_name for c in assigned] == ["Ravi", "Lakshmi"]

    async def test_reassign_without_providers(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        await orchestrator.intake(intake_request(), CITIZEN)
        assert await orchestrator.reassign_unassigned(Department.WATER_RESOURCES) == []

    async def test_remove_unknown_provider(self, repository: InMemoryComplaintRepository) -> None:
        orchestrator, _ = build_orchestrator(repository)
        with pytest.raises(ProviderNotFound):
            await orchestrator.remove_provider("nobody")
