"""Durable address to coordinate cache backed by a single JSON blob."""
from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol

import orjson
import structlog
from pydantic import ValidationError

from accountmap.storage.models import Coordinate

LOGGER = structlog.get_logger(__name__)

GEO_CACHE_KEY = "account_geo_cache_v1"
_GEO_SCHEMA_VERSION = 1


class BlobStore(Protocol):
    """String-keyed storage for one serialized blob per key."""

    @property
    def location(self) -> str: ...

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...


class FileBlobStore:
    """Stores each blob as ``<root>/<key>.json``."""

    def __init__(self, root: Path) -> None:
        self._root = root

    @property
    def location(self) -> str:
        return str(self._root.resolve())

    def path_for(self, key: str) -> Path:
        return self._root / f"{key}.json"

    def get(self, key: str) -> Optional[str]:
        path = self.path_for(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        staging = path.with_suffix(".tmp")
        staging.write_text(value, encoding="utf-8")
        staging.replace(path)


class MemoryBlobStore:
    """Dictionary-backed store, mostly useful for tests and dry runs."""

    def __init__(self, blobs: Optional[Dict[str, str]] = None) -> None:
        self.blobs: Dict[str, str] = dict(blobs or {})

    @property
    def location(self) -> str:
        return f"memory:{id(self):x}"

    def get(self, key: str) -> Optional[str]:
        return self.blobs.get(key)

    def set(self, key: str, value: str) -> None:
        self.blobs[key] = value


def _coerce_entry(value: object) -> Optional[Coordinate]:
    if not isinstance(value, dict):
        return None
    try:
        return Coordinate.model_validate(value)
    except ValidationError:
        return None


class GeoCache:
    """Persist resolved coordinates per normalised address string.

    Entries are loaded lazily on first access and every mutation is written
    straight back to the blob store. Storage problems never propagate: an
    unreadable blob loads as an empty mapping and failed writes leave the
    in-memory mapping untouched.
    """

    def __init__(self, store: BlobStore, *, key: str = GEO_CACHE_KEY) -> None:
        self._store = store
        self._key = key
        self._entries: Optional[Dict[str, Coordinate]] = None

    @property
    def location(self) -> str:
        return f"{self._store.location}#{self._key}"

    def load(self) -> Dict[str, Coordinate]:
        """Read the persisted mapping, returning ``{}`` when it is unusable."""
        try:
            raw = self._store.get(self._key)
        except (OSError, ValueError) as exc:
            LOGGER.debug("cache_unavailable", op="load", location=self.location, error=str(exc))
            return {}
        if not raw:
            return {}
        try:
            payload = orjson.loads(raw)
        except orjson.JSONDecodeError:
            LOGGER.debug("cache_unavailable", op="load", location=self.location, error="malformed")
            return {}
        if not isinstance(payload, dict):
            return {}
        if "version" in payload:
            if payload["version"] != _GEO_SCHEMA_VERSION:
                return {}
            data = payload.get("data")
        else:
            # unversioned blobs are a bare address mapping
            data = payload
        if not isinstance(data, dict):
            return {}
        entries: Dict[str, Coordinate] = {}
        for address, value in data.items():
            coordinate = _coerce_entry(value)
            if coordinate is not None:
                entries[str(address)] = coordinate
        return entries

    async def save(self, mapping: Mapping[str, Coordinate]) -> bool:
        """Write the mapping to the store; returns False if persistence failed."""
        try:
            await asyncio.to_thread(self._write_payload, dict(mapping))
        except (OSError, TypeError, ValueError) as exc:
            LOGGER.debug("cache_unavailable", op="save", location=self.location, error=str(exc))
            return False
        return True

    def _write_payload(self, mapping: Dict[str, Coordinate]) -> None:
        payload = {
            "version": _GEO_SCHEMA_VERSION,
            "data": {address: coordinate.model_dump() for address, coordinate in mapping.items()},
        }
        self._store.set(self._key, orjson.dumps(payload).decode())

    def _ensure_loaded(self) -> Dict[str, Coordinate]:
        if self._entries is None:
            self._entries = self.load()
        return self._entries

    def get(self, address: str) -> Optional[Coordinate]:
        return self._ensure_loaded().get(address)

    async def set(self, address: str, coordinate: Coordinate) -> None:
        entries = self._ensure_loaded()
        entries[address] = coordinate
        await self.save(entries)

    async def clear(self) -> None:
        self._entries = {}
        await self.save(self._entries)

    def reset(self) -> None:
        """Forget the in-memory copy; the next access reloads from storage."""
        self._entries = None

    def entries(self) -> Dict[str, Coordinate]:
        return dict(self._ensure_loaded())

    def __contains__(self, address: object) -> bool:
        return address in self._ensure_loaded()

    def __len__(self) -> int:
        return len(self._ensure_loaded())


_SHARED: Dict[str, GeoCache] = {}


def shared_geo_cache(store: BlobStore, *, key: str = GEO_CACHE_KEY) -> GeoCache:
    """Return the process-wide cache for ``store``, creating it on first use."""
    location = f"{store.location}#{key}"
    cache = _SHARED.get(location)
    if cache is None:
        cache = GeoCache(store, key=key)
        _SHARED[location] = cache
    return cache
