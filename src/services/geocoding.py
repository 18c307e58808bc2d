"""Reverse geocoding of complaint coordinates.

Only used to backfill ``address`` and ``area`` when the citizen did not
supply them.  Every failure is reported as empty strings, never raised.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog

from config.departments import KNOWN_AREAS
from src.services.cache import CacheManager

logger = structlog.get_logger(__name__)

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"

_EMPTY: dict[str, str] = {"address": "", "area": ""}


@runtime_checkable
class Geocoder(Protocol):
    async def resolve(self, latitude: float, longitude: float) -> dict[str, str]: ...


def match_area(
    components: Sequence[dict[str, Any]],
    formatted_address: str,
    known_areas: Sequence[str] = KNOWN_AREAS,
) -> str:
    """First known district in the address components, else in the full address."""
    for component in components:
        name = str(component.get("long_name", "")).lower()
        for area in known_areas:
            if area.lower() in name:
                return area
    lowered = formatted_address.lower()
    for area in known_areas:
        if area.lower() in lowered:
            return area
    return ""


class NullGeocoder:
    """Used when no Maps key is configured."""

    async def resolve(self, latitude: float, longitude: float) -> dict[str, str]:
        return dict(_EMPTY)


class GoogleMapsGeocoder:
    """Google Geocoding API client with a coordinate-keyed cache."""

    def __init__(
        self,
        api_key: str,
        *,
        cache: CacheManager | None = None,
        cache_ttl: int = 2_592_000,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._api_key = api_key
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._client = client or httpx.AsyncClient(
            timeout=timeout,
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def resolve(self, latitude: float, longitude: float) -> dict[str, str]:
        if not self._api_key:
            return dict(_EMPTY)

        # ~11 m precision; nearby submissions share a cache entry.
        cache_key = f"{latitude:.4f},{longitude:.4f}"
        if self._cache is not None:
            cached = await self._cache.get(cache_key)
            if isinstance(cached, dict):
                return {"address": cached.get("address", ""), "area": cached.get("area", "")}

        try:
            response = await self._client.get(
                GEOCODE_URL,
                params={"latlng": f"{latitude},{longitude}", "key": self._api_key},
            )
            response.raise_for_status()
            data = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("geocode.failed", error=str(exc))
            return dict(_EMPTY)

        results = data.get("results") or []
        if data.get("status") != "OK" or not results:
            logger.info("geocode.no_result", status=data.get("status"))
            return dict(_EMPTY)

        first = results[0]
        address = first.get("formatted_address") or ""
        area = match_area(first.get("address_components") or [], address)
        resolved = {"address": address, "area": area}
        logger.info("geocode.resolved", address=address, area=area or "unknown")

        if self._cache is not None:
            await self._cache.set(cache_key, resolved, ttl_seconds=self._cache_ttl)
        return resolved
