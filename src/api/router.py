"""Main API router combining all v1 route modules.

Aggregates all routers under the ``/api/v1`` prefix so the
FastAPI application only needs to include a single router.

Includes:
    * Complaints: intake, image analysis, lookup, rating
    * Provider: work queue, status transitions, stats
    * Management: dashboard, provider roster, re-dispatch
    * Health
"""

from __future__ import annotations

from fastapi import APIRouter

from src.api.v1 import complaints, health, management, provider

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(complaints.router)
api_router.include_router(provider.router)
api_router.include_router(management.router)
api_router.include_router(health.router)
