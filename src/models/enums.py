from __future__ import annotations

from enum import StrEnum
from typing import Final


class Department(StrEnum):
    """Departments that can own a complaint, in tie-break order."""

    __slots__ = ()

    WATER_RESOURCES = "Water Resources"
    ELECTRICITY = "Electricity"
    ROADS_HIGHWAYS = "Roads & Highways"
    SANITATION = "Sanitation"
    PUBLIC_HEALTH = "Public Health"
    EDUCATION = "Education"
    TRANSPORT = "Transport"
    REVENUE = "Revenue"
    AGRICULTURE = "Agriculture"
    GENERAL = "General"

    @classmethod
    def match(cls, value: str | None) -> Department | None:
        """Case-insensitive exact lookup; ``None`` when nothing matches."""
        if not value:
            return None
        lowered = value.strip().lower()
        for member in cls:
            if member.value.lower() == lowered:
                return member
        return None


class ComplaintStatus(StrEnum):
    __slots__ = ()

    REGISTERED = "Registered"
    ACCEPTED = "Accepted"
    WORKING_ON = "Working On"
    COMPLETED = "Completed"
    REJECTED = "Rejected"


class Priority(StrEnum):
    """Priority levels, declared in tie-break precedence order."""

    __slots__ = ()

    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"


class ActorRole(StrEnum):
    __slots__ = ()

    USER = "user"
    PROVIDER = "provider"
    MANAGEMENT = "management"


class EvidenceSource(StrEnum):
    __slots__ = ()

    LABEL = "label"
    OBJECT = "object"
    TEXT = "text"
    WEB = "web"


# Statuses that count toward a provider's active load.
ACTIVE_STATUSES: Final[frozenset[ComplaintStatus]] = frozenset(
    {ComplaintStatus.REGISTERED, ComplaintStatus.ACCEPTED, ComplaintStatus.WORKING_ON}
)

# Statuses that consume a provider's single unit of capacity.
CAPACITY_STATUSES: Final[frozenset[ComplaintStatus]] = frozenset(
    {ComplaintStatus.ACCEPTED, ComplaintStatus.WORKING_ON}
)

TERMINAL_STATUSES: Final[frozenset[ComplaintStatus]] = frozenset(
    {ComplaintStatus.COMPLETED, ComplaintStatus.REJECTED}
)

PRIORITY_ORDER: Final[dict[Priority, int]] = {p: i for i, p in enumerate(Priority)}
