"""Caller identity and admin authentication for the HTTP surface.

Sessions are issued upstream; by the time a request reaches this service
the gateway has asserted who the caller is in ``X-Actor-*`` headers.
:func:`require_actor` turns those headers into an :class:`Actor` and
:func:`require_role` restricts an endpoint to particular roles.

Provider management additionally requires the ``X-Admin-API-Key`` header
to match ``ADMIN_API_KEY`` (constant-time comparison).
"""

from __future__ import annotations

import hmac
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Depends, Header, HTTPException, Request, Security
from fastapi.security import APIKeyHeader
from pydantic import ValidationError

from config.settings import settings
from src.models.enums import ActorRole, Department
from src.models.request import Actor

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

_api_key_header = APIKeyHeader(name="X-Admin-API-Key", auto_error=False)


async def require_actor(
    request: Request,
    actor_id: str | None = Header(default=None, alias="X-Actor-Id"),
    actor_name: str | None = Header(default=None, alias="X-Actor-Name"),
    actor_role: str | None = Header(default=None, alias="X-Actor-Role"),
    actor_department: str | None = Header(default=None, alias="X-Actor-Department"),
    actor_email: str | None = Header(default=None, alias="X-Actor-Email"),
) -> Actor:
    """Build the acting identity from upstream-auth headers; 401 if absent."""
    if not actor_id:
        logger.warning("auth.missing_actor", path=request.url.path)
        raise HTTPException(status_code=401, detail="Missing X-Actor-Id header.")

    department: Department | None = None
    if actor_department:
        department = Department.match(actor_department)
        if department is None:
            raise HTTPException(status_code=400, detail=f"Unknown department: {actor_department}")

    try:
        return Actor(
            actor_id=actor_id,
            name=actor_name or "Unknown",
            role=ActorRole(actor_role.lower()) if actor_role else ActorRole.USER,
            department=department,
            email=actor_email or "",
        )
    except (ValueError, ValidationError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid actor headers: {exc}") from exc


def require_role(*roles: ActorRole) -> Callable[..., Awaitable[Actor]]:
    """Dependency factory restricting an endpoint to *roles*.

    Usage::

        @router.get("/stats")
        async def stats(actor: Actor = Depends(require_role(ActorRole.PROVIDER))): ...
    """

    async def _dependency(request: Request, actor: Actor = Depends(require_actor)) -> Actor:
        if actor.role not in roles:
            logger.warning(
                "auth.role_denied",
                path=request.url.path,
                role=actor.role.value,
                required=[r.value for r in roles],
            )
            raise HTTPException(status_code=403, detail="Access denied for this role.")
        if actor.role == ActorRole.PROVIDER and actor.department is None:
            raise HTTPException(status_code=403, detail="Provider has no department.")
        return actor

    return _dependency


async def require_admin_api_key(
    request: Request,
    api_key: str | None = Security(_api_key_header),
) -> str:
    """Enforce the admin API key; open in development when none is configured."""
    configured_key = settings.admin_api_key

    if not configured_key:
        if not settings.is_production:
            logger.warning("auth.admin_key_not_configured", path=request.url.path)
            return ""
        logger.error("auth.admin_key_not_configured_production")
        raise HTTPException(status_code=503, detail="Admin authentication is not configured.")

    if not api_key:
        raise HTTPException(
            status_code=401,
            detail="Missing X-Admin-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not hmac.compare_digest(api_key.encode(), configured_key.encode()):
        logger.warning(
            "auth.invalid_api_key",
            path=request.url.path,
            client_ip=request.client.host if request.client else "unknown",
        )
        raise HTTPException(status_code=403, detail="Invalid API key.")

    return api_key
