from src.models.complaint import (
    SYSTEM_ACTOR,
    Complaint,
    GeoLocation,
    Provider,
    StatusEvent,
    generate_ticket_id,
)
from src.models.enums import (
    ACTIVE_STATUSES,
    CAPACITY_STATUSES,
    TERMINAL_STATUSES,
    ActorRole,
    ComplaintStatus,
    Department,
    EvidenceSource,
    Priority,
)
from src.models.request import (
    Actor,
    ComplaintIntakeRequest,
    ImageAnalysisRequest,
    ProviderCreateRequest,
    RatingRequest,
    TransitionRequest,
)
from src.models.response import (
    DashboardStats,
    IntakeResult,
    ProviderStats,
    ProviderWorkload,
)
from src.models.triage import (
    ClassificationResult,
    DuplicateCheckResult,
    ScoredTerm,
    VisualEvidence,
)

__all__ = [
    "ACTIVE_STATUSES",
    "CAPACITY_STATUSES",
    "SYSTEM_ACTOR",
    "TERMINAL_STATUSES",
    "Actor",
    "ActorRole",
    "ClassificationResult",
    "Complaint",
    "ComplaintIntakeRequest",
    "ComplaintStatus",
    "DashboardStats",
    "Department",
    "DuplicateCheckResult",
    "EvidenceSource",
    "GeoLocation",
    "ImageAnalysisRequest",
    "IntakeResult",
    "Priority",
    "Provider",
    "ProviderCreateRequest",
    "ProviderStats",
    "ProviderWorkload",
    "RatingRequest",
    "ScoredTerm",
    "StatusEvent",
    "TransitionRequest",
    "VisualEvidence",
    "generate_ticket_id",
]
