"""Coordinate resolution for raw account records."""
from __future__ import annotations

import asyncio
from typing import Any, Iterable, Mapping, Optional

import structlog

from accountmap.geo.cache import GeoCache
from accountmap.geo.geocoder import GeocodeError, Geocoder
from accountmap.normalize.fields import finite_float
from accountmap.observability.metrics import MetricsRegistry
from accountmap.storage.models import Coordinate

LOGGER = structlog.get_logger(__name__)

LATITUDE_FIELDS = ("address1_latitude", "address1_lat")
LONGITUDE_FIELDS = ("address1_longitude", "address1_long")
ADDRESS_FIELDS = (
    "address1_line1",
    "address1_city",
    "address1_stateorprovince",
    "address1_postalcode",
    "address1_country",
)
ADDRESS_DELIMITER = ", "
DEFAULT_GEOCODE_DELAY = 0.15


def _first_present(record: Mapping[str, Any], fields: Iterable[str]) -> Any:
    for field in fields:
        value = record.get(field)
        if value is not None:
            return value
    return None


def direct_coordinate(record: Mapping[str, Any]) -> Optional[Coordinate]:
    """Return the stored coordinate when both axes parse to finite numbers."""
    lat = finite_float(_first_present(record, LATITUDE_FIELDS))
    lng = finite_float(_first_present(record, LONGITUDE_FIELDS))
    if lat is None or lng is None:
        return None
    return Coordinate(lat=lat, lng=lng)


def build_address(record: Mapping[str, Any]) -> str:
    """Join the non-empty address components into the cache/geocode key.

    Components are used exactly as stored, surrounding whitespace included.
    """
    parts = [str(value) for value in (record.get(field) for field in ADDRESS_FIELDS) if value]
    return ADDRESS_DELIMITER.join(parts)


class GeocodeResolver:
    """Resolve records from direct fields, then the cache, then the geocoder.

    Lookups run strictly one at a time. Every network lookup is followed by a
    pause of ``delay_seconds`` so the geocoding service sees a bounded request
    rate; cache hits and direct coordinates never pause.
    """

    def __init__(
        self,
        *,
        cache: GeoCache,
        geocoder: Geocoder,
        delay_seconds: float = DEFAULT_GEOCODE_DELAY,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._cache = cache
        self._geocoder = geocoder
        self._delay = delay_seconds
        self._metrics = metrics or MetricsRegistry()

    async def resolve(self, record: Mapping[str, Any]) -> Optional[Coordinate]:
        direct = direct_coordinate(record)
        if direct is not None:
            self._metrics.incr("direct_coordinates")
            return direct

        address = build_address(record)
        if not address:
            LOGGER.debug("record_unresolvable", reason="no_address", account_id=record.get("accountid"))
            return None

        cached = self._cache.get(address)
        if cached is not None:
            self._metrics.incr("cache_hits")
            return cached
        return await self._lookup(address)

    async def _lookup(self, address: str) -> Optional[Coordinate]:
        self._metrics.incr("geocode_requests")
        coordinate: Optional[Coordinate] = None
        try:
            coordinate = await self._geocoder.geocode(address)
        except GeocodeError as exc:
            self._metrics.incr("geocode_failures")
            LOGGER.warning("record_unresolvable", reason="geocode_failed", address=address, error=str(exc))
        else:
            if coordinate is None:
                self._metrics.incr("geocode_misses")
                LOGGER.info("record_unresolvable", reason="geocode_miss", address=address)
            else:
                await self._cache.set(address, coordinate)
        await self._pause()
        return coordinate

    async def _pause(self) -> None:
        if self._delay > 0:
            await asyncio.sleep(self._delay)
