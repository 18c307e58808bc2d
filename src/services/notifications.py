"""Outbound complaint e-mail notifications.

Three messages are sent:

* ``assignment``     -- a provider receives a newly dispatched complaint.
* ``status_update``  -- the submitter learns about every status change.
* ``duplicate``      -- the submitter learns the complaint was filed as a duplicate.

Delivery is fire-and-forget.  :meth:`NotificationService.dispatch`
schedules the send on the running loop and returns immediately; a failed
send is logged and never reaches the triage or transition caller.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from typing import Final, Protocol, runtime_checkable
from uuid import uuid4

import httpx
import structlog
from pydantic import BaseModel, Field

from src.models.complaint import Complaint, Provider
from src.models.enums import ComplaintStatus

logger = structlog.get_logger(__name__)

SENDGRID_URL: Final[str] = "https://api.sendgrid.com/v3/mail/send"
_DESCRIPTION_PREVIEW: Final[int] = 200


class Notification(BaseModel):
    """A single e-mail ready for delivery."""

    notification_id: str = Field(default_factory=lambda: uuid4().hex)
    kind: str  # "assignment", "status_update", "duplicate"
    to_email: str
    subject: str
    body: str
    ticket_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


# ---------------------------------------------------------------------------
# Templates
# ---------------------------------------------------------------------------

_SUBJECTS: Final[dict[str, str]] = {
    "assignment": "TNSMP - New Complaint Assigned: {ticket_id}",
    "status_update": "TNSMP - Complaint {ticket_id} Status Update: {status}",
    "duplicate": "TNSMP - Complaint {ticket_id} Flagged as Duplicate",
}

_BODIES: Final[dict[str, str]] = {
    "assignment": (
        "Hello {name},\n\n"
        "A new complaint has been assigned to you.\n\n"
        "Ticket ID: {ticket_id}\n"
        "Department: {department}\n"
        "Area: {area}\n"
        "Priority: {priority}\n"
        "Description: {description}\n"
        "{location}"
        "\nPlease log in to the portal to accept and resolve this complaint:\n"
        "{portal_url}/login\n"
    ),
    "status_update": (
        "Hello {name},\n\n"
        "Your complaint status has been updated.\n\n"
        "Ticket ID: {ticket_id}\n"
        "New Status: {status}\n"
        "{note}"
        "\nTrack your complaint at {portal_url}/login\n"
    ),
    "duplicate": (
        "Hello {name},\n\n"
        "Your complaint {ticket_id} closely matches complaint {duplicate_of}, "
        "which is already being handled. It has been recorded but will not be "
        "dispatched separately.\n\n"
        "Track the original at {portal_url}/login\n"
    ),
}


def _preview(text: str) -> str:
    if len(text) <= _DESCRIPTION_PREVIEW:
        return text
    return text[:_DESCRIPTION_PREVIEW] + "..."


# ---------------------------------------------------------------------------
# Transports
# ---------------------------------------------------------------------------


@runtime_checkable
class MailTransport(Protocol):
    async def send(self, notification: Notification) -> None: ...


class LoggingTransport:
    """Records messages in the log instead of sending them."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)
        logger.info(
            "notify.logged",
            kind=notification.kind,
            to=notification.to_email,
            ticket_id=notification.ticket_id,
        )


class SendGridTransport:
    """SendGrid v3 ``mail/send`` over httpx."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        *,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._from_email = from_email
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def close(self) -> None:
        await self._client.aclose()

    async def send(self, notification: Notification) -> None:
        payload = {
            "personalizations": [{"to": [{"email": notification.to_email}]}],
            "from": {"email": self._from_email, "name": "TNSMP Portal"},
            "subject": notification.subject,
            "content": [{"type": "text/plain", "value": notification.body}],
        }
        response = await self._client.post(
            SENDGRID_URL,
            json=payload,
            headers={"Authorization": f"Bearer {self._api_key}"},
        )
        response.raise_for_status()


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


class NotificationService:
    """Builds complaint e-mails and delivers them in the background."""

    def __init__(self, transport: MailTransport, portal_url: str = "") -> None:
        self._transport = transport
        self._portal_url = portal_url.rstrip("/")
        self._pending: set[asyncio.Task[bool]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    # -- builders ----------------------------------------------------------

    def _build(self, kind: str, to_email: str, ticket_id: str, **fields: str) -> Notification:
        context = {"ticket_id": ticket_id, "portal_url": self._portal_url, **fields}
        return Notification(
            kind=kind,
            to_email=to_email,
            ticket_id=ticket_id,
            subject=_SUBJECTS[kind].format(**context),
            body=_BODIES[kind].format(**context),
        )

    def assignment(self, provider: Provider, complaint: Complaint) -> Notification:
        return self._build(
            "assignment",
            provider.email,
            complaint.ticket_id,
            name=provider.name,
            department=complaint.department.value,
            area=complaint.area,
            priority=complaint.priority.value,
            description=_preview(complaint.description),
            location=f"Location: {complaint.address}\n" if complaint.address else "",
        )

    def status_update(
        self,
        complaint: Complaint,
        status: ComplaintStatus,
        note: str | None = None,
    ) -> Notification:
        return self._build(
            "status_update",
            complaint.user_email,
            complaint.ticket_id,
            name=complaint.user_name,
            status=status.value,
            note=f"Note: {note}\n" if note else "",
        )

    def duplicate(self, complaint: Complaint) -> Notification:
        return self._build(
            "duplicate",
            complaint.user_email,
            complaint.ticket_id,
            name=complaint.user_name,
            duplicate_of=complaint.duplicate_of or "",
        )

    # -- delivery ----------------------------------------------------------

    async def deliver(self, notification: Notification) -> bool:
        """Send now; returns ``False`` instead of raising on failure."""
        if not notification.to_email:
            logger.info("notify.skipped_no_recipient", kind=notification.kind, ticket_id=notification.ticket_id)
            return False
        try:
            await self._transport.send(notification)
        except Exception as exc:
            logger.warning(
                "notify.failed",
                kind=notification.kind,
                ticket_id=notification.ticket_id,
                error=str(exc),
            )
            return False
        logger.info("notify.sent", kind=notification.kind, ticket_id=notification.ticket_id)
        return True

    def dispatch(self, notification: Notification) -> asyncio.Task[bool]:
        """Schedule :meth:`deliver` without awaiting it."""
        task = asyncio.create_task(self.deliver(notification))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every in-flight send; used at shutdown and in tests."""
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
