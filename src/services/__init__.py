"""NagarSeva service layer: triage stages, storage, dispatch and integrations.

The Vertex AI SDK is imported lazily inside the classifier gateway, so
importing this package never requires GCP credentials.
"""

from __future__ import annotations

from src.services.cache import CacheManager, LocalLRU
from src.services.classifier import (
    ClassifierGateway,
    LocalClassifierGateway,
    VertexClassifierGateway,
)
from src.services.department_detector import DepartmentDetector, map_to_department
from src.services.dispatch import DispatchBalancer
from src.services.errors import (
    CapacityConflict,
    ClassifierUnavailable,
    ComplaintNotFound,
    ComplaintValidationError,
    IntegrityRejection,
    NotAuthorized,
    ProviderNotFound,
    TransitionRefused,
    TriageError,
)
from src.services.geocoding import GoogleMapsGeocoder, NullGeocoder
from src.services.integrity import IntegrityFilter
from src.services.lifecycle import LifecycleStateMachine
from src.services.notifications import (
    LoggingTransport,
    NotificationService,
    SendGridTransport,
)
from src.services.priority import PriorityAssigner
from src.services.repository import ComplaintRepository, InMemoryComplaintRepository
from src.services.stats import StatsService

__all__ = [
    "CacheManager",
    "CapacityConflict",
    "ClassifierGateway",
    "ClassifierUnavailable",
    "ComplaintNotFound",
    "ComplaintRepository",
    "ComplaintValidationError",
    "DepartmentDetector",
    "DispatchBalancer",
    "GoogleMapsGeocoder",
    "InMemoryComplaintRepository",
    "IntegrityFilter",
    "IntegrityRejection",
    "LifecycleStateMachine",
    "LocalClassifierGateway",
    "LocalLRU",
    "LoggingTransport",
    "NotAuthorized",
    "NotificationService",
    "NullGeocoder",
    "PriorityAssigner",
    "ProviderNotFound",
    "SendGridTransport",
    "StatsService",
    "TransitionRefused",
    "TriageError",
    "VertexClassifierGateway",
    "map_to_department",
]
