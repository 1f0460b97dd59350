"""Client for a Nominatim-compatible free text geocoding API."""
from __future__ import annotations

import contextlib
import math
from typing import AsyncIterator, Optional, Protocol

import httpx
import structlog

from accountmap.observability.tracing import span
from accountmap.storage.models import Coordinate

LOGGER = structlog.get_logger(__name__)

DEFAULT_ENDPOINT = "https://nominatim.openstreetmap.org/search"
DEFAULT_USER_AGENT = "TerritoryManager/1.0 (+https://example.com)"


class GeocodeError(RuntimeError):
    """Raised when a geocoding request fails or returns an unreadable body."""


class Geocoder(Protocol):
    async def geocode(self, query: str) -> Optional[Coordinate]: ...


class NominatimGeocoder:
    """Resolve one address per request, using the first candidate returned."""

    def __init__(
        self,
        *,
        client: httpx.AsyncClient,
        endpoint: str = DEFAULT_ENDPOINT,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout: float = 10.0,
    ) -> None:
        self._client = client
        self._endpoint = endpoint
        self._user_agent = user_agent
        self._timeout = timeout

    async def geocode(self, query: str) -> Optional[Coordinate]:
        """Return the coordinate for ``query`` or None when nothing matched.

        Non-2xx responses and empty candidate lists count as "not found".
        Transport failures and malformed payloads raise ``GeocodeError``.
        """
        params = {"format": "json", "limit": 1, "q": query}
        headers = {"User-Agent": self._user_agent}
        try:
            with span(name="geocode", target=query):
                response = await self._client.get(
                    self._endpoint, params=params, headers=headers, timeout=self._timeout
                )
        except httpx.HTTPError as exc:
            raise GeocodeError(f"geocode request failed for {query!r}: {exc}") from exc

        if not response.is_success:
            LOGGER.info("geocode_rejected", query=query, status=response.status_code)
            return None
        try:
            candidates = response.json()
        except ValueError as exc:
            raise GeocodeError(f"geocode response for {query!r} is not JSON") from exc
        if not isinstance(candidates, list) or not candidates:
            return None

        first = candidates[0]
        try:
            lat = float(first["lat"])
            lng = float(first["lon"])
        except (KeyError, TypeError, ValueError) as exc:
            raise GeocodeError(f"geocode candidate for {query!r} lacks coordinates") from exc
        if not (math.isfinite(lat) and math.isfinite(lng)):
            raise GeocodeError(f"geocode candidate for {query!r} has non-finite coordinates")
        return Coordinate(lat=lat, lng=lng)


@contextlib.asynccontextmanager
async def create_geocoder(
    *,
    endpoint: str = DEFAULT_ENDPOINT,
    user_agent: str = DEFAULT_USER_AGENT,
    timeout: float = 10.0,
) -> AsyncIterator[NominatimGeocoder]:
    """Yield a geocoder bound to a fresh HTTP client for the duration of the context."""
    async with httpx.AsyncClient(timeout=timeout) as client:
        yield NominatimGeocoder(client=client, endpoint=endpoint, user_agent=user_agent, timeout=timeout)
