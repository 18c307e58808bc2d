"""Greedy provider selection for newly created complaints."""

from __future__ import annotations

import structlog

from src.models.complaint import Provider
from src.models.enums import ACTIVE_STATUSES, Department
from src.services.repository import ComplaintRepository

logger = structlog.get_logger(__name__)


class DispatchBalancer:
    """Picks an idle provider if there is one, otherwise the least loaded.

    Load is the number of complaints assigned to the provider in
    Registered, Accepted or Working On.  Ties keep the repository's
    listing order.  Selection is advisory and never rebalances existing
    assignments.
    """

    def __init__(self, repository: ComplaintRepository) -> None:
        self._repository = repository

    async def loads(self, department: Department) -> list[tuple[Provider, int]]:
        providers = await self._repository.list_providers(department)
        loads = [
            (p, await self._repository.count_assigned(p.provider_id, ACTIVE_STATUSES))
            for p in providers
            if p.department == department
        ]
        # Stable sort keeps listing order among equal loads.
        return sorted(loads, key=lambda item: item[1])

    async def select(self, department: Department) -> Provider | None:
        ranked = await self.loads(department)
        if not ranked:
            logger.info("dispatch.no_providers", department=department.value)
            return None

        provider, load = ranked[0]
        logger.info(
            "dispatch.selected",
            department=department.value,
            provider_id=provider.provider_id,
            load=load,
            idle=load == 0,
        )
        return provider
