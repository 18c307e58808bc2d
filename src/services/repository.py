"""Complaint and provider persistence.

:class:`ComplaintRepository` is the storage contract the engine depends
on.  :class:`InMemoryComplaintRepository` is the process-local
implementation used by the service and the test-suite.  It hands out
deep copies so callers can never mutate stored state behind its back.

The capacity rule (one Accepted / Working On complaint per provider) is
enforced inside :meth:`compare_and_transition`, which re-reads the
complaint and the provider's load while holding a per-provider lock and
writes the new status before releasing it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Collection
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

import structlog

from src.models.complaint import Complaint, Provider
from src.models.enums import ACTIVE_STATUSES, CAPACITY_STATUSES, ComplaintStatus, Department
from src.services.errors import ComplaintNotFound

logger = structlog.get_logger(__name__)


class DuplicateTicketError(Exception):
    """A complaint with the same ticket id is already stored."""


class ConditionFailed(Exception):
    """The precondition of a conditional update no longer holds.

    ``reason`` is ``"status"`` when the complaint moved on since it was
    read, ``"capacity"`` when the provider already holds active work, or
    ``"rated"`` when a rating was recorded first.
    """

    def __init__(self, reason: str, current: ComplaintStatus) -> None:
        super().__init__(reason)
        self.reason = reason
        self.current = current


@runtime_checkable
class ComplaintRepository(Protocol):
    async def add(self, complaint: Complaint) -> Complaint: ...

    async def get(self, complaint_id: str) -> Complaint | None: ...

    async def get_by_ticket(self, ticket_id: str) -> Complaint | None: ...

    async def ticket_exists(self, ticket_id: str) -> bool: ...

    async def list_complaints(
        self,
        *,
        department: Department | None = None,
        statuses: Collection[ComplaintStatus] | None = None,
        exclude_statuses: Collection[ComplaintStatus] | None = None,
        assigned_to: str | None = None,
        unassigned: bool = False,
        user_id: str | None = None,
        limit: int | None = None,
    ) -> list[Complaint]: ...

    async def count_assigned(
        self,
        provider_id: str,
        statuses: Collection[ComplaintStatus] = ACTIVE_STATUSES,
        exclude_id: str | None = None,
    ) -> int: ...

    async def compare_and_transition(
        self,
        complaint_id: str,
        expected_status: ComplaintStatus,
        provider_id: str,
        apply: Callable[[Complaint], None],
        *,
        enforce_capacity: bool = False,
    ) -> Complaint: ...

    async def compare_and_rate(self, complaint_id: str, rating: int, feedback: str) -> Complaint: ...

    async def add_provider(self, provider: Provider) -> Provider: ...

    async def get_provider(self, provider_id: str) -> Provider | None: ...

    async def remove_provider(self, provider_id: str) -> bool: ...

    async def list_providers(self, department: Department | None = None) -> list[Provider]: ...


class InMemoryComplaintRepository:
    """Dict-backed repository; insertion order is listing order."""

    def __init__(self) -> None:
        self._complaints: dict[str, Complaint] = {}
        self._ticket_index: dict[str, str] = {}
        self._providers: dict[str, Provider] = {}
        self._provider_locks: dict[str, asyncio.Lock] = {}
        self._write_lock = asyncio.Lock()

    # -- complaints --------------------------------------------------------

    async def add(self, complaint: Complaint) -> Complaint:
        async with self._write_lock:
            if complaint.ticket_id in self._ticket_index:
                raise DuplicateTicketError(complaint.ticket_id)
            stored = complaint.model_copy(deep=True)
            self._complaints[stored.complaint_id] = stored
            self._ticket_index[stored.ticket_id] = stored.complaint_id
        logger.debug("repository.complaint_added", ticket_id=complaint.ticket_id)
        return stored.model_copy(deep=True)

    async def get(self, complaint_id: str) -> Complaint | None:
        complaint = self._complaints.get(complaint_id)
        return complaint.model_copy(deep=True) if complaint else None

    async def get_by_ticket(self, ticket_id: str) -> Complaint | None:
        complaint_id = self._ticket_index.get(ticket_id)
        return await self.get(complaint_id) if complaint_id else None

    async def ticket_exists(self, ticket_id: str) -> bool:
        return ticket_id in self._ticket_index

    async def list_complaints(
        self,
        *,
        department: Department | None = None,
        statuses: Collection[ComplaintStatus] | None = None,
        exclude_statuses: Collection[ComplaintStatus] | None = None,
        assigned_to: str | None = None,
        unassigned: bool = False,
        user_id: str | None = None,
        limit: int | None = None,
    ) -> list[Complaint]:
        """Filtered complaints, newest first."""
        matches: list[Complaint] = []
        for complaint in reversed(self._complaints.values()):
            if department is not None and complaint.department != department:
                continue
            if statuses is not None and complaint.status not in statuses:
                continue
            if exclude_statuses is not None and complaint.status in exclude_statuses:
                continue
            if assigned_to is not None and complaint.assigned_to != assigned_to:
                continue
            if unassigned and complaint.assigned_to is not None:
                continue
            if user_id is not None and complaint.user_id != user_id:
                continue
            matches.append(complaint.model_copy(deep=True))
            if limit is not None and len(matches) >= limit:
                break
        return matches

    async def count_assigned(
        self,
        provider_id: str,
        statuses: Collection[ComplaintStatus] = ACTIVE_STATUSES,
        exclude_id: str | None = None,
    ) -> int:
        return self._count_assigned(provider_id, statuses, exclude_id)

    def _count_assigned(
        self,
        provider_id: str,
        statuses: Collection[ComplaintStatus],
        exclude_id: str | None = None,
    ) -> int:
        return sum(
            1
            for c in self._complaints.values()
            if c.assigned_to == provider_id
            and c.status in statuses
            and c.complaint_id != exclude_id
        )

    def _lock_for(self, provider_id: str) -> asyncio.Lock:
        lock = self._provider_locks.get(provider_id)
        if lock is None:
            lock = self._provider_locks[provider_id] = asyncio.Lock()
        return lock

    async def compare_and_transition(
        self,
        complaint_id: str,
        expected_status: ComplaintStatus,
        provider_id: str,
        apply: Callable[[Complaint], None],
        *,
        enforce_capacity: bool = False,
    ) -> Complaint:
        """Apply *apply* to the stored complaint if its status is still *expected_status*.

        With ``enforce_capacity`` the provider must hold no other complaint
        in Accepted or Working On.  Raises :class:`ConditionFailed` when a
        precondition fails; the stored complaint is then left untouched.
        """
        async with self._lock_for(provider_id):
            stored = self._complaints.get(complaint_id)
            if stored is None:
                raise ComplaintNotFound(complaint_id)
            if stored.status != expected_status:
                raise ConditionFailed("status", stored.status)
            if enforce_capacity and self._count_assigned(
                provider_id, CAPACITY_STATUSES, exclude_id=complaint_id
            ):
                raise ConditionFailed("capacity", stored.status)

            updated = stored.model_copy(deep=True)
            apply(updated)
            updated.updated_at = datetime.now(UTC)
            self._complaints[complaint_id] = updated
        return updated.model_copy(deep=True)

    async def compare_and_rate(self, complaint_id: str, rating: int, feedback: str) -> Complaint:
        """Record *rating* only while the complaint is Completed and unrated."""
        async with self._lock_for(f"rating:{complaint_id}"):
            stored = self._complaints.get(complaint_id)
            if stored is None:
                raise ComplaintNotFound(complaint_id)
            if stored.status != ComplaintStatus.COMPLETED:
                raise ConditionFailed("status", stored.status)
            if stored.rating is not None:
                raise ConditionFailed("rated", stored.status)

            updated = stored.model_copy(deep=True)
            updated.rating = rating
            updated.feedback = feedback
            updated.updated_at = datetime.now(UTC)
            self._complaints[complaint_id] = updated
        return updated.model_copy(deep=True)

    # -- providers ---------------------------------------------------------

    async def add_provider(self, provider: Provider) -> Provider:
        self._providers[provider.provider_id] = provider.model_copy(deep=True)
        return provider.model_copy(deep=True)

    async def get_provider(self, provider_id: str) -> Provider | None:
        provider = self._providers.get(provider_id)
        return provider.model_copy(deep=True) if provider else None

    async def remove_provider(self, provider_id: str) -> bool:
        return self._providers.pop(provider_id, None) is not None

    async def list_providers(self, department: Department | None = None) -> list[Provider]:
        """Providers in registration order, optionally for one department."""
        return [
            p.model_copy(deep=True)
            for p in self._providers.values()
            if department is None or p.department == department
        ]
