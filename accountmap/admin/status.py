"""Administrative status helpers."""
from __future__ import annotations

from typing import Dict

from accountmap.encode.visual import bounds
from accountmap.geo.cache import GeoCache


def cache_summary(cache: GeoCache) -> Dict[str, object]:
    """Summarise the persisted cache: size, location and coordinate extent."""
    entries = cache.entries()
    summary: Dict[str, object] = {"location": cache.location, "entries": len(entries)}
    box = bounds(entries.values())
    if box is not None:
        (south, west), (north, east) = box
        summary["extent"] = {"south": south, "west": west, "north": north, "east": east}
    return summary
