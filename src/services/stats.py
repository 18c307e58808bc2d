"""Provider and management statistics over the complaint store."""

from __future__ import annotations

from collections import Counter, defaultdict

import structlog

from src.models.complaint import Complaint
from src.models.enums import ACTIVE_STATUSES, ComplaintStatus, Department, Priority
from src.models.request import Actor
from src.models.response import DashboardStats, ProviderStats, ProviderWorkload
from src.services.repository import ComplaintRepository

logger = structlog.get_logger(__name__)


class StatsService:
    """Read-only aggregations.

    ``count_duplicates`` controls whether complaints created as
    duplicates appear in the totals.  They never count toward provider
    load because they are never assigned.
    """

    def __init__(self, repository: ComplaintRepository, *, count_duplicates: bool = True) -> None:
        self._repository = repository
        self._count_duplicates = count_duplicates

    async def _complaints(self, department: Department | None = None) -> list[Complaint]:
        complaints = await self._repository.list_complaints(department=department)
        if self._count_duplicates:
            return complaints
        return [c for c in complaints if not c.is_duplicate]

    async def provider_stats(self, actor: Actor) -> ProviderStats:
        complaints = await self._complaints(actor.department) if actor.department else []

        by_status = Counter(c.status for c in complaints)
        ratings = [c.rating for c in complaints if c.rating is not None]
        avg_rating = round(sum(ratings) / len(ratings), 1) if ratings else 0.0
        my_active = await self._repository.count_assigned(actor.actor_id, ACTIVE_STATUSES)

        return ProviderStats(
            total=len(complaints),
            registered=by_status[ComplaintStatus.REGISTERED],
            accepted=by_status[ComplaintStatus.ACCEPTED],
            working_on=by_status[ComplaintStatus.WORKING_ON],
            completed=by_status[ComplaintStatus.COMPLETED],
            rejected=by_status[ComplaintStatus.REJECTED],
            critical=sum(1 for c in complaints if c.priority == Priority.CRITICAL),
            avg_rating=avg_rating,
            total_rated=len(ratings),
            my_active=my_active,
        )

    async def dashboard(self) -> DashboardStats:
        complaints = await self._complaints()
        providers = await self._repository.list_providers()

        by_department: dict[str, dict[str, int]] = defaultdict(lambda: {s.value: 0 for s in ComplaintStatus})
        for complaint in complaints:
            by_department[complaint.department.value][complaint.status.value] += 1

        workload: dict[str, Counter[str]] = defaultdict(Counter)
        for complaint in complaints:
            if complaint.assigned_to is None:
                continue
            if complaint.status in ACTIVE_STATUSES:
                workload[complaint.assigned_to]["active"] += 1
            elif complaint.status == ComplaintStatus.COMPLETED:
                workload[complaint.assigned_to]["completed"] += 1

        stats = DashboardStats(
            total=len(complaints),
            by_status={s.value: sum(1 for c in complaints if c.status == s) for s in ComplaintStatus},
            by_department=dict(by_department),
            by_priority={p.value: sum(1 for c in complaints if c.priority == p) for p in Priority},
            provider_workload=[
                ProviderWorkload(
                    provider_id=p.provider_id,
                    name=p.name,
                    department=p.department,
                    active=workload[p.provider_id]["active"],
                    completed=workload[p.provider_id]["completed"],
                )
                for p in sorted(providers, key=lambda p: list(Department).index(p.department))
            ],
            total_providers=len(providers),
            total_users=len({c.user_id for c in complaints}),
            unassigned=sum(
                1 for c in complaints if c.assigned_to is None and c.status == ComplaintStatus.REGISTERED
            ),
        )
        logger.debug("stats.dashboard", total=stats.total, providers=stats.total_providers)
        return stats
