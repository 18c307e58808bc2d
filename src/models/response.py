from __future__ import annotations

from pydantic import BaseModel, Field

from src.models.enums import Department, Priority
from src.models.triage import ClassificationResult


class IntakeResult(BaseModel):
    """Outcome of a successful complaint intake (duplicates included)."""

    message: str
    complaint_id: str
    ticket_id: str
    department: Department
    priority: Priority
    is_duplicate: bool = False
    duplicate_of: str | None = None
    ai_remarks: str = ""
    assigned_to: str | None = None
    area: str = ""
    address: str = ""
    classification: ClassificationResult | None = None


class ProviderStats(BaseModel):
    """Department-wide counters plus the calling provider's own load."""

    total: int = 0
    registered: int = 0
    accepted: int = 0
    working_on: int = 0
    completed: int = 0
    rejected: int = 0
    critical: int = 0
    avg_rating: float = 0.0
    total_rated: int = 0
    my_active: int = 0


class ProviderWorkload(BaseModel):
    provider_id: str
    name: str
    department: Department
    active: int = 0
    completed: int = 0


class DashboardStats(BaseModel):
    total: int = 0
    by_status: dict[str, int] = Field(default_factory=dict)
    by_department: dict[str, dict[str, int]] = Field(default_factory=dict)
    by_priority: dict[str, int] = Field(default_factory=dict)
    provider_workload: list[ProviderWorkload] = Field(default_factory=list)
    total_providers: int = 0
    total_users: int = 0
    unassigned: int = 0
