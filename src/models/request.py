from __future__ import annotations

from pydantic import BaseModel, Field

from src.models.enums import ActorRole, ComplaintStatus, Department


class Actor(BaseModel):
    """Identity of the caller, as asserted by the upstream auth layer."""

    actor_id: str = Field(..., min_length=1)
    name: str = "Unknown"
    role: ActorRole = ActorRole.USER
    department: Department | None = None
    email: str = ""


class ComplaintIntakeRequest(BaseModel):
    """Structured complaint submission.

    ``description`` and ``photo`` default to empty so that missing values
    reach the triage pipeline and are rejected there with a validation
    error naming the field, before any classification work is done.
    """

    area: str = Field(default="", max_length=200)
    department: Department | None = None
    description: str = Field(default="", max_length=5000)
    photo: str = ""
    latitude: float | None = Field(default=None, ge=-90, le=90)
    longitude: float | None = Field(default=None, ge=-180, le=180)
    address: str = Field(default="", max_length=500)


class TransitionRequest(BaseModel):
    status: ComplaintStatus
    resolution: str | None = Field(default=None, max_length=2000)


class RatingRequest(BaseModel):
    rating: int
    feedback: str = Field(default="", max_length=2000)


class ImageAnalysisRequest(BaseModel):
    photo: str = ""


class ProviderCreateRequest(BaseModel):
    name: str = Field(..., min_length=2, max_length=200)
    email: str = Field(default="", max_length=320)
    department: Department
