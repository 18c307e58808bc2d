"""Complaint, provider and status-history models.

A complaint is owned by the engine from intake until it reaches a
terminal status.  Its ``status_history`` is append-only and is only ever
extended by the lifecycle state machine; read in order it must be a
valid walk of the transition table starting from the initial event.
"""

from __future__ import annotations

import random
import time
from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel, Field

from src.models.enums import (
    ACTIVE_STATUSES,
    CAPACITY_STATUSES,
    ComplaintStatus,
    Department,
    Priority,
)
from src.models.triage import ClassificationResult

SYSTEM_ACTOR = "System"


def _utcnow() -> datetime:
    return datetime.now(UTC)


def generate_ticket_id(prefix: str = "TNSMP") -> str:
    """Build a human-readable ticket id such as ``TNSMP-482913-057``.

    The middle block is the last six digits of the epoch in milliseconds
    and the suffix is three random digits.  Callers that need global
    uniqueness must retry on collision against their store.
    """
    stamp = str(int(time.time() * 1000))[-6:]
    suffix = f"{random.randint(0, 999):03d}"  # noqa: S311
    return f"{prefix}-{stamp}-{suffix}"


class GeoLocation(BaseModel):
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class StatusEvent(BaseModel):
    """One immutable entry in a complaint's timeline."""

    model_config = {"frozen": True}

    status: ComplaintStatus
    timestamp: datetime = Field(default_factory=_utcnow)
    actor_id: str | None = None
    actor_name: str = SYSTEM_ACTOR
    note: str = ""


class Provider(BaseModel):
    """A department-scoped field worker with capacity for one active job."""

    provider_id: str = Field(default_factory=lambda: uuid4().hex)
    name: str = Field(..., min_length=1, max_length=200)
    email: str = ""
    department: Department
    created_at: datetime = Field(default_factory=_utcnow)


class Complaint(BaseModel):
    """A citizen-filed service complaint."""

    model_config = {"frozen": False}

    complaint_id: str = Field(default_factory=lambda: uuid4().hex)
    ticket_id: str
    user_id: str
    user_name: str = "Unknown"
    user_email: str = ""
    area: str
    address: str = ""
    department: Department
    description: str
    photo: str
    location: GeoLocation | None = None
    status: ComplaintStatus = ComplaintStatus.REGISTERED
    priority: Priority = Priority.MEDIUM
    assigned_to: str | None = None
    assigned_to_name: str | None = None
    resolution: str | None = None
    status_history: list[StatusEvent] = Field(default_factory=list)
    rating: int | None = Field(default=None, ge=1, le=5)
    feedback: str = ""
    is_duplicate: bool = False
    duplicate_of: str | None = None
    is_fake: bool = False
    ai_remarks: str = ""
    classification: ClassificationResult | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def holds_capacity(self) -> bool:
        return self.status in CAPACITY_STATUSES

    def summary(self, *, include_photo: bool = False) -> dict:
        """JSON-friendly view; the photo is omitted unless asked for."""
        exclude = None if include_photo else {"photo"}
        return self.model_dump(mode="json", exclude=exclude)
