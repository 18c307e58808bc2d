"""Tests for the complaint status lifecycle and submitter ratings."""

from __future__ import annotations

import asyncio

import pytest

from src.models.complaint import SYSTEM_ACTOR
from src.models.enums import ActorRole, ComplaintStatus, Department
from src.services.errors import (
    CapacityConflict,
    ComplaintNotFound,
    ComplaintValidationError,
    NotAuthorized,
    TransitionRefused,
)
from src.services.lifecycle import (
    ALLOWED_TRANSITIONS,
    LifecycleStateMachine,
    can_transition,
    initial_event,
    is_valid_history,
)
from src.services.repository import InMemoryComplaintRepository
from tests.conftest import make_actor, make_complaint

WORKER = make_actor("prov-1", ActorRole.PROVIDER, Department.WATER_RESOURCES, name="Ravi")


class SuspendingReadRepository(InMemoryComplaintRepository):
    """Yields to the event loop on every read, like a networked store."""

    async def get(self, complaint_id: str):
        await asyncio.sleep(0)
        return await super().get(complaint_id)


class TestTransitionTable:
    def test_terminal_states_have_no_exits(self) -> None:
        assert ALLOWED_TRANSITIONS[ComplaintStatus.COMPLETED] == ()
        assert ALLOWED_TRANSITIONS[ComplaintStatus.REJECTED] == ()

    def test_no_skipping(self) -> None:
        assert can_transition(ComplaintStatus.REGISTERED, ComplaintStatus.WORKING_ON) is False
        assert can_transition(ComplaintStatus.REGISTERED, ComplaintStatus.COMPLETED) is False
        assert can_transition(ComplaintStatus.WORKING_ON, ComplaintStatus.REJECTED) is False

    def test_initial_events(self) -> None:
        fresh = initial_event()
        assert fresh.status == ComplaintStatus.REGISTERED
        assert fresh.actor_name == SYSTEM_ACTOR
        duplicate = initial_event("T-1")
        assert duplicate.status == ComplaintStatus.REJECTED
        assert duplicate.note == "Flagged as duplicate of T-1"


class TestTransitions:
    async def test_full_happy_path(self, repository: InMemoryComplaintRepository) -> None:
        stored = await repository.add(make_complaint())
        machine = LifecycleStateMachine(repository)

        await machine.transition(stored.complaint_id, WORKER, ComplaintStatus.ACCEPTED)
        await machine.transition(stored.complaint_id, WORKER, ComplaintStatus.WORKING_ON)
        done = await machine.transition(
            stored.complaint_id, WORKER, ComplaintStatus.COMPLETED, resolution="Pipe replaced"
        )

        assert done.status == ComplaintStatus.COMPLETED
        assert done.resolution == "Pipe replaced"
        assert done.assigned_to == "prov-1"
        assert done.assigned_to_name == "Ravi"
        assert [e.status for e in done.status_history] == [
            ComplaintStatus.REGISTERED,
            ComplaintStatus.ACCEPTED,
            ComplaintStatus.WORKING_ON,
            ComplaintStatus.COMPLETED,
        ]
        assert done.status_history[-1].note == "Pipe replaced"
        assert done.status_history[1].note == "Status updated to Accepted"
        assert is_valid_history(done.status_history)

    async def test_skip_refused_with_allowed_targets(self, repository: InMemoryComplaintRepository) -> None:
        stored = await repository.add(make_complaint())
        machine = LifecycleStateMachine(repository)

        with pytest.raises(TransitionRefused) as excinfo:
            await machine.transition(stored.complaint_id, WORKER, ComplaintStatus.WORKING_ON)

        assert excinfo.value.allowed == ["Accepted", "Rejected"]
        unchanged = await repository.get(stored.complaint_id)
        assert unchanged is not None
        assert unchanged.status == ComplaintStatus.REGISTERED
        assert len(unchanged.status_history) == 1

    async def test_terminal_refuses_everything(self, repository: InMemoryComplaintRepository) -> None:
        stored = await repository.add(make_complaint(status=ComplaintStatus.REJECTED))
        with pytest.raises(TransitionRefused) as excinfo:
            await LifecycleStateMachine(repository).transition(
                stored.complaint_id, WORKER, ComplaintStatus.ACCEPTED
            )
        assert excinfo.value.allowed == []

    async def test_reject_from_registered(self, repository: InMemoryComplaintRepository) -> None:
        stored = await repository.add(make_complaint())
        rejected = await LifecycleStateMachine(repository).transition(
            stored.complaint_id, WORKER, ComplaintStatus.REJECTED, resolution="Not a civic issue"
        )
        assert rejected.status == ComplaintStatus.REJECTED
        assert rejected.status_history[-1].note == "Not a civic issue"

    async def test_unknown_complaint(self, repository: InMemoryComplaintRepository) -> None:
        with pytest.raises(ComplaintNotFound):
            await LifecycleStateMachine(repository).transition("missing", WORKER, ComplaintStatus.ACCEPTED)


class TestCapacity:
    async def test_second_accept_conflicts(self, repository: InMemoryComplaintRepository) -> None:
        first = await repository.add(make_complaint(ticket_id="T-1"))
        second = await repository.add(make_complaint(ticket_id="T-2"))
        machine = LifecycleStateMachine(repository)

        await machine.transition(first.complaint_id, WORKER, ComplaintStatus.ACCEPTED)
        with pytest.raises(CapacityConflict):
            await machine.transition(second.complaint_id, WORKER, ComplaintStatus.ACCEPTED)

        untouched = await repository.get(second.complaint_id)
        assert untouched is not None and untouched.status == ComplaintStatus.REGISTERED

    async def test_working_on_also_holds_capacity(self, repository: InMemoryComplaintRepository) -> None:
        first = await repository.add(make_complaint(ticket_id="T-1"))
        second = await repository.add(make_complaint(ticket_id="T-2"))
        machine = LifecycleStateMachine(repository)

        await machine.transition(first.complaint_id, WORKER, ComplaintStatus.ACCEPTED)
        await machine.transition(first.complaint_id, WORKER, ComplaintStatus.WORKING_ON)
        with pytest.raises(CapacityConflict):
            await machine.transition(second.complaint_id, WORKER, ComplaintStatus.ACCEPTED)

    async def test_capacity_frees_after_completion(self, repository: InMemoryComplaintRepository) -> None:
        first = await repository.add(make_complaint(ticket_id="T-1"))
        second = await repository.add(make_complaint(ticket_id="T-2"))
        machine = LifecycleStateMachine(repository)

        for status in (ComplaintStatus.ACCEPTED, ComplaintStatus.WORKING_ON, ComplaintStatus.COMPLETED):
            await machine.transition(first.complaint_id, WORKER, status)
        accepted = await machine.transition(second.complaint_id, WORKER, ComplaintStatus.ACCEPTED)
        assert accepted.status == ComplaintStatus.ACCEPTED

    async def test_registered_assignments_do_not_block(self, repository: InMemoryComplaintRepository) -> None:
        await repository.add(make_complaint(ticket_id="T-1", assigned_to="prov-1"))
        second = await repository.add(make_complaint(ticket_id="T-2", assigned_to="prov-1"))
        accepted = await LifecycleStateMachine(repository).transition(
            second.complaint_id, WORKER, ComplaintStatus.ACCEPTED
        )
        assert accepted.status == ComplaintStatus.ACCEPTED

    async def test_concurrent_accepts_admit_exactly_one(self, repository: InMemoryComplaintRepository) -> None:
        complaints = [await repository.add(make_complaint(ticket_id=f"T-{i}")) for i in range(5)]
        machine = LifecycleStateMachine(repository)

        results = await asyncio.gather(
            *(machine.transition(c.complaint_id, WORKER, ComplaintStatus.ACCEPTED) for c in complaints),
            return_exceptions=True,
        )

        successes = [r for r in results if not isinstance(r, BaseException)]
        conflicts = [r for r in results if isinstance(r, CapacityConflict)]
        assert len(successes) == 1
        assert len(conflicts) == 4
        assert await repository.count_assigned("prov-1", {ComplaintStatus.ACCEPTED}) == 1

    async def test_different_providers_do_not_interfere(self, repository: InMemoryComplaintRepository) -> None:
        first = await repository.add(make_complaint(ticket_id="T-1"))
        second = await repository.add(make_complaint(ticket_id="T-2"))
        other = make_actor("prov-2", ActorRole.PROVIDER, Department.WATER_RESOURCES)
        machine = LifecycleStateMachine(repository)

        await machine.transition(first.complaint_id, WORKER, ComplaintStatus.ACCEPTED)
        accepted = await machine.transition(second.complaint_id, other, ComplaintStatus.ACCEPTED)
        assert accepted.assigned_to == "prov-2"


class TestRating:
    async def _completed(self, repository: InMemoryComplaintRepository) -> str:
        stored = await repository.add(make_complaint(status=ComplaintStatus.COMPLETED))
        return stored.complaint_id

    async def test_rate_completed_complaint(self, repository: InMemoryComplaintRepository) -> None:
        complaint_id = await self._completed(repository)
        rated = await LifecycleStateMachine(repository).rate(complaint_id, "user-1", 4, "Quick fix")
        assert rated.rating == 4
        assert rated.feedback == "Quick fix"

    @pytest.mark.parametrize("rating", [0, 6, -1])
    async def test_rating_range(self, repository: InMemoryComplaintRepository, rating: int) -> None:
        complaint_id = await self._completed(repository)
        with pytest.raises(ComplaintValidationError, match="between 1 and 5"):
            await LifecycleStateMachine(repository).rate(complaint_id, "user-1", rating)

    async def test_only_submitter_may_rate(self, repository: InMemoryComplaintRepository) -> None:
        complaint_id = await self._completed(repository)
        with pytest.raises(NotAuthorized):
            await LifecycleStateMachine(repository).rate(complaint_id, "someone-else", 5)

    async def test_only_completed_complaints(self, repository: InMemoryComplaintRepository) -> None:
        stored = await repository.add(make_complaint())
        with pytest.raises(ComplaintValidationError, match="Can only rate completed complaints"):
            await LifecycleStateMachine(repository).rate(stored.complaint_id, "user-1", 5)

    async def test_rating_is_final(self, repository: InMemoryComplaintRepository) -> None:
        complaint_id = await self._completed(repository)
        machine = LifecycleStateMachine(repository)
        await machine.rate(complaint_id, "user-1", 5)
        with pytest.raises(ComplaintValidationError, match="already rated"):
            await machine.rate(complaint_id, "user-1", 3)

    async def test_concurrent_ratings_record_one(self) -> None:
        repository = SuspendingReadRepository()
        complaint_id = await self._completed(repository)
        machine = LifecycleStateMachine(repository)

        results = await asyncio.gather(
            machine.rate(complaint_id, "user-1", 5, "Great"),
            machine.rate(complaint_id, "user-1", 1, "Terrible"),
            return_exceptions=True,
        )

        rated = [r for r in results if not isinstance(r, BaseException)]
        refused = [r for r in results if isinstance(r, ComplaintValidationError)]
        assert len(rated) == 1
        assert len(refused) == 1
        assert "already rated" in refused[0].message
        stored = await repository.get(complaint_id)
        assert stored.rating == rated[0].rating
        assert stored.feedback == rated[0].feedback
