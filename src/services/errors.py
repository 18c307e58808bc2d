"""Error taxonomy for the triage and dispatch engine.

Only validation, authorisation and transition errors ever reach a
caller.  Classifier failures are absorbed by the gateway and a missing
provider is reported as ``assigned_to=None`` rather than raised.
"""

from __future__ import annotations

from typing import Any


class TriageError(Exception):
    """Base class for every error the engine surfaces to its callers."""

    status_code: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"message": self.message, "error_code": self.error_code, **self.details}


class ComplaintValidationError(TriageError):
    """Request is missing required content (photo, description, rating)."""


class IntegrityRejection(TriageError):
    """Submission was judged fake; it is never stored or dispatched."""

    def __init__(self, remarks: str) -> None:
        super().__init__(
            f"This complaint appears to be invalid or fake. AI Remarks: {remarks}",
            details={"is_fake": True, "ai_remarks": remarks},
        )
        self.remarks = remarks


class ComplaintNotFound(TriageError):
    status_code = 404

    def __init__(self, complaint_id: str) -> None:
        super().__init__("Complaint not found", details={"complaint_id": complaint_id})


class ProviderNotFound(TriageError):
    status_code = 404

    def __init__(self, provider_id: str) -> None:
        super().__init__("Provider not found", details={"provider_id": provider_id})


class NotAuthorized(TriageError):
    status_code = 403


class TransitionRefused(TriageError):
    """Illegal status change; the complaint is left untouched."""

    status_code = 409

    def __init__(
        self,
        current: str,
        target: str,
        allowed: list[str],
        message: str | None = None,
    ) -> None:
        allowed_text = ", ".join(allowed) or "none"
        super().__init__(
            message or f'Cannot change status from "{current}" to "{target}". Allowed: {allowed_text}',
            details={"current": current, "target": target, "allowed": allowed},
        )
        self.current = current
        self.target = target
        self.allowed = allowed


class CapacityConflict(TransitionRefused):
    """The provider already holds an Accepted or Working On complaint."""

    def __init__(self, current: str, target: str, allowed: list[str]) -> None:
        super().__init__(
            current,
            target,
            allowed,
            message=(
                "You already have an active complaint. "
                "Please complete it before accepting a new one."
            ),
        )


class ClassifierUnavailable(Exception):
    """Raised inside the classifier gateway only; never escapes it."""
