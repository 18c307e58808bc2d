"""NagarSeva FastAPI application entry point.

Creates the FastAPI app, configures logging and CORS, includes routers,
and manages the lifecycle of the triage engine's collaborators
(classifier gateway, repository, geocoder, mailer, orchestrator).
"""

from __future__ import annotations

import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse

from config.settings import Settings, settings
from src.api.router import api_router
from src.data.seed import seed_providers
from src.pipeline.orchestrator import TriageOrchestrator
from src.services.cache import CacheManager
from src.services.classifier import ClassifierGateway, LocalClassifierGateway, VertexClassifierGateway
from src.services.department_detector import DepartmentDetector
from src.services.dispatch import DispatchBalancer
from src.services.errors import TriageError
from src.services.geocoding import Geocoder, GoogleMapsGeocoder, NullGeocoder
from src.services.integrity import IntegrityFilter
from src.services.lifecycle import LifecycleStateMachine
from src.services.notifications import LoggingTransport, MailTransport, NotificationService, SendGridTransport
from src.services.priority import PriorityAssigner
from src.services.repository import ComplaintRepository, InMemoryComplaintRepository
from src.services.stats import StatsService

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)


# ---------------------------------------------------------------------------
# Structured logging configuration
# ---------------------------------------------------------------------------


def _configure_logging() -> None:
    """Set up structlog with JSON or console rendering based on settings."""
    processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
        structlog.processors.TimeStamper(fmt="iso"),
    ]

    if settings.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(
            structlog.stdlib.NAME_TO_LEVEL[settings.log_level.lower()],
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


# ---------------------------------------------------------------------------
# Service wiring
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class EngineServices:
    """Everything the routers reach through ``app.state``."""

    orchestrator: TriageOrchestrator
    stats: StatsService
    repository: ComplaintRepository
    gateway: ClassifierGateway
    notifications: NotificationService
    geocoder: Geocoder
    cache: CacheManager | None = None
    transport: MailTransport | None = None


def _build_gateway(config: Settings) -> ClassifierGateway:
    if not config.gcp_project_id:
        logger.warning("app.classifier_local_only", note="GCP_PROJECT_ID not set; keyword heuristics only")
        return LocalClassifierGateway()

    vision = None
    if config.vision_enabled:
        from src.services.vision import CloudVisionAnalyzer

        vision = CloudVisionAnalyzer()

    return VertexClassifierGateway(
        project_id=config.gcp_project_id,
        region=config.vertex_ai_location,
        models=config.classifier_models,
        cooldown_seconds=config.classifier_cooldown_seconds,
        retry_delay_seconds=config.classifier_retry_delay_seconds,
        max_retries=config.classifier_max_retries,
        timeout_seconds=config.classifier_timeout_seconds,
        vision=vision,
    )


def build_services(
    config: Settings = settings,
    *,
    gateway: ClassifierGateway | None = None,
    repository: ComplaintRepository | None = None,
    geocoder: Geocoder | None = None,
    transport: MailTransport | None = None,
) -> EngineServices:
    """Assemble the engine; any collaborator may be injected."""
    gateway = gateway or _build_gateway(config)
    repository = repository or InMemoryComplaintRepository()

    cache: CacheManager | None = None
    if geocoder is None:
        if config.google_maps_api_key:
            cache = CacheManager("nagarseva:geocode:", redis_url=config.redis_url or None)
            geocoder = GoogleMapsGeocoder(
                config.google_maps_api_key,
                cache=cache,
                cache_ttl=config.geocode_cache_ttl,
            )
        else:
            geocoder = NullGeocoder()

    if transport is None:
        if config.sendgrid_api_key and config.mail_from:
            transport = SendGridTransport(config.sendgrid_api_key, config.mail_from)
        else:
            transport = LoggingTransport()
    notifications = NotificationService(transport, portal_url=config.portal_url)

    orchestrator = TriageOrchestrator(
        repository=repository,
        detector=DepartmentDetector(gateway, direct_confidence=config.direct_department_confidence),
        integrity=IntegrityFilter(
            gateway,
            similarity_threshold=config.duplicate_similarity_threshold,
            known_word_ratio=config.fake_known_word_ratio,
            remote_context_limit=config.remote_duplicate_context_limit,
        ),
        priority=PriorityAssigner(gateway),
        dispatch=DispatchBalancer(repository),
        lifecycle=LifecycleStateMachine(repository),
        notifications=notifications,
        geocoder=geocoder,
        candidate_limit=config.duplicate_candidate_limit,
        ticket_prefix=config.ticket_prefix,
    )
    return EngineServices(
        orchestrator=orchestrator,
        stats=StatsService(repository, count_duplicates=config.count_duplicates_in_stats),
        repository=repository,
        gateway=gateway,
        notifications=notifications,
        geocoder=geocoder,
        cache=cache,
        transport=transport,
    )


def _attach(app: FastAPI, services: EngineServices) -> None:
    app.state.services = services
    app.state.orchestrator = services.orchestrator
    app.state.stats = services.stats
    app.state.gateway = services.gateway


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build services on startup unless they were injected; drain mail on shutdown."""
    _configure_logging()
    logger.info(
        "app.startup",
        env=settings.env,
        gcp_project=settings.gcp_project_id,
        region=settings.vertex_ai_location,
    )
    app.state.start_time = time.time()

    if getattr(app.state, "services", None) is None:
        _attach(app, build_services(settings))
        if settings.provider_roster:
            roster = None if settings.provider_roster == "bundled" else Path(settings.provider_roster)
            await seed_providers(app.state.services.repository, path=roster)
    services: EngineServices = app.state.services
    logger.info(
        "app.startup_complete",
        classifier=type(services.gateway).__name__,
        geocoder=type(services.geocoder).__name__,
    )

    yield

    logger.info("app.shutdown_start")
    await services.notifications.drain()
    for resource in (services.transport, services.geocoder, services.cache):
        close = getattr(resource, "close", None)
        if close is not None:
            await close()
    logger.info("app.shutdown_complete")


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------


async def _triage_error_handler(request: Request, exc: TriageError) -> ORJSONResponse:
    logger.info(
        "api.domain_error",
        path=request.url.path,
        error_code=exc.error_code,
        status_code=exc.status_code,
    )
    return ORJSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(services: EngineServices | None = None) -> FastAPI:
    """Create the application; tests pass pre-built *services*."""
    application = FastAPI(
        title="NagarSeva API",
        description=(
            "Complaint triage and dispatch engine: department detection, "
            "fake and duplicate filtering, prioritisation, load-balanced "
            "provider assignment and the complaint status lifecycle."
        ),
        version="0.1.0",
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if not settings.is_production else None,
        redoc_url="/redoc" if not settings.is_production else None,
    )
    application.state.start_time = time.time()
    if services is not None:
        _attach(application, services)

    # SECURITY: allow_credentials=True must NOT be combined with allow_origins=["*"].
    application.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origin_list if settings.is_production else ["http://localhost:3000"],
        allow_credentials=settings.is_production,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "X-Admin-API-Key",
            "X-Actor-Id",
            "X-Actor-Name",
            "X-Actor-Role",
            "X-Actor-Department",
            "X-Actor-Email",
        ],
    )
    application.add_exception_handler(TriageError, _triage_error_handler)
    application.include_router(api_router)

    @application.get("/api", response_class=ORJSONResponse)
    async def api_info() -> dict:
        """API information endpoint."""
        return {
            "name": "NagarSeva API",
            "version": application.version,
            "docs": "/docs",
            "health": "/api/v1/health",
            "endpoints": {
                "complaints": "/api/v1/complaints",
                "provider": "/api/v1/provider",
                "management": "/api/v1/management",
            },
        }

    return application


app = create_app()
