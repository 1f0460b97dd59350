"""Deterministic colour and radius encodings for account circles."""
from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

from accountmap.normalize.fields import finite_float
from accountmap.storage.models import Coordinate

SATURATION = 70
LIGHTNESS = 50
MAX_RADIUS_METERS = 100_000
METERS_PER_KM_UNIT = 1500


def _to_int32(value: int) -> int:
    value &= 0xFFFFFFFF
    return value - 0x100000000 if value & 0x80000000 else value


def _utf16_units(text: str) -> Iterable[int]:
    data = text.encode("utf-16-le", "surrogatepass")
    for offset in range(0, len(data), 2):
        yield data[offset] | (data[offset + 1] << 8)


def id_hash(account_id: str) -> int:
    """String hash ``h = c + ((h << 5) - h)`` over UTF-16 code units.

    The shift works on the signed 32-bit view of ``h`` while the subtraction
    and addition do not wrap, so the result matches the same recurrence
    evaluated with JavaScript numbers.
    """
    value = 0
    for unit in _utf16_units(account_id):
        shifted = _to_int32(_to_int32(value) << 5)
        value = unit + (shifted - value)
    return value


def color_from_revenue(account_id: str) -> str:
    """Stable HSL colour for an account; the same id always gets the same hue."""
    hue = abs(id_hash(account_id)) % 360
    return f"hsl({hue}, {SATURATION}%, {LIGHTNESS}%)"


def radius_from_revenue(revenue: float, zoom: float) -> float:
    """Circle radius in metres for ``revenue`` at map ``zoom``.

    Below zoom 5 one million of revenue is one base kilometre; from zoom 5 up
    anything under ten million is one base kilometre and larger accounts get
    one per ten million. The base is scaled by ``max(0.1, 13 - zoom)`` and
    clamped to 100 km.
    """
    if zoom < 5:
        base_km = revenue / 1_000_000
    elif revenue < 10_000_000:
        base_km = 1.0
    else:
        base_km = revenue / 10_000_000
    scale = max(0.1, 13 - zoom)
    return min(base_km * scale * METERS_PER_KM_UNIT, MAX_RADIUS_METERS)


def parse_revenue(value: Any) -> float:
    """Coerce a raw revenue field to a finite, non-negative float."""
    if not value:
        return 0.0
    number = finite_float(value)
    if number is None:
        return 0.0
    return max(number, 0.0)


def circle_style(account_id: str) -> Dict[str, object]:
    colour = color_from_revenue(account_id)
    return {
        "color": colour,
        "fill_color": colour,
        "fill_opacity": 0.6,
        "weight": 2,
        "opacity": 0.8,
    }


def revenue_label(revenue: float) -> Optional[str]:
    if revenue <= 0:
        return None
    return f"Revenue: ${revenue / 1_000_000:.1f}M"


def bounds(coordinates: Iterable[Coordinate]) -> Optional[List[List[float]]]:
    """South-west and north-east corners enclosing every coordinate."""
    points = list(coordinates)
    if not points:
        return None
    lats = [point.lat for point in points]
    lngs = [point.lng for point in points]
    return [[min(lats), min(lngs)], [max(lats), max(lngs)]]
