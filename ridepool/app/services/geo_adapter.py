"""
Geocoding and routing adapter.

The matching core only sees ``GeoAdapter``: ``geocode(text) -> Point`` and
``route(origin, destination) -> RouteResult``. The default implementation
talks to Nominatim and OSRM over HTTP with a hard timeout and a circuit
breaker. Every failure surfaces as ``ExternalLookupFailedError``; nothing
here retries.
"""

import logging
from dataclasses import dataclass, field
from typing import List

import httpx

from ridepool.app.core.config import settings
from ridepool.app.core.exceptions import ExternalLookupFailedError
from ridepool.app.core.redis_client import get_redis
from ridepool.app.core.reliability import CircuitBreaker, CircuitOpenError, geo_circuit_breaker
from ridepool.app.domain.matching.geometry import Point
from ridepool.app.services.cache import CacheService

logger = logging.getLogger(__name__)


@dataclass
class RouteResult:
    """A routed path between two points."""
    distance_km: float
    duration_minutes: float
    polyline: List[List[float]] = field(default_factory=list)  # [[lat, lng], ...]


class GeoAdapter:
    """Interface for the geocoding/routing collaborator."""

    async def geocode(self, text: str) -> Point:
        raise NotImplementedError

    async def route(self, origin: Point, destination: Point) -> RouteResult:
        raise NotImplementedError


class HttpGeoAdapter(GeoAdapter):
    """Nominatim geocoding + OSRM routing."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        cache: CacheService = None,
        breaker: CircuitBreaker = geo_circuit_breaker,
    ):
        self.client = client
        self.cache = cache
        self.breaker = breaker

    async def _get_json(self, operation: str, url: str, params: dict = None):
        async def fetch():
            response = await self.client.get(url, params=params)
            response.raise_for_status()
            return response.json()

        try:
            return await self.breaker.call(fetch)
        except CircuitOpenError as exc:
            raise ExternalLookupFailedError(operation, str(exc)) from exc
        except httpx.TimeoutException as exc:
            logger.warning("Geo lookup timed out", extra={"operation": operation, "url": url})
            raise ExternalLookupFailedError(operation, "timed out") from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Geo lookup failed", extra={"operation": operation, "url": url, "error": str(exc)})
            raise ExternalLookupFailedError(operation, str(exc) or type(exc).__name__) from exc

    async def geocode(self, text: str) -> Point:
        query = (text or "").strip()
        if not query:
            raise ExternalLookupFailedError("geocode", "empty address")

        cache_key = f"geocode:{query.lower()}"
        if self.cache:
            cached = await self.cache.get(cache_key)
            if cached:
                return Point(cached[0], cached[1])

        results = await self._get_json(
            "geocode",
            f"{settings.geocoder_base_url}/search",
            params={"q": query, "format": "json", "limit": 1},
        )
        if not results:
            raise ExternalLookupFailedError("geocode", f"no match for '{query}'")

        try:
            point = Point(float(results[0]["lat"]), float(results[0]["lon"]))
        except (KeyError, TypeError, ValueError) as exc:
            raise ExternalLookupFailedError("geocode", "malformed response") from exc

        if self.cache:
            await self.cache.set(cache_key, list(point), ttl_seconds=settings.geocode_cache_ttl_seconds)
        return point

    async def route(self, origin: Point, destination: Point) -> RouteResult:
        coordinates = f"{origin.lng},{origin.lat};{destination.lng},{destination.lat}"
        payload = await self._get_json(
            "route",
            f"{settings.router_base_url}/route/v1/driving/{coordinates}",
            params={"overview": "full", "geometries": "geojson"},
        )

        try:
            if payload.get("code") != "Ok" or not payload.get("routes"):
                raise ExternalLookupFailedError("route", payload.get("message") or "no route found")
            best = payload["routes"][0]
            return RouteResult(
                distance_km=best["distance"] / 1000.0,
                duration_minutes=best["duration"] / 60.0,
                polyline=[[lat, lng] for lng, lat in best["geometry"]["coordinates"]],
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise ExternalLookupFailedError("route", "malformed response") from exc


async def get_geo_adapter():
    """
    FastAPI dependency for the geocoding/routing adapter.

    Yields an adapter bound to a short-lived HTTP client.
    """
    cache = CacheService(await get_redis())
    async with httpx.AsyncClient(
        timeout=settings.geo_timeout_seconds,
        headers={"User-Agent": settings.geo_user_agent},
    ) as client:
        yield HttpGeoAdapter(client, cache=cache)
