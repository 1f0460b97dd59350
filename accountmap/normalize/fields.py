"""Tolerant coercion of raw directory field values."""
from __future__ import annotations

import math
import re
from typing import Any, Optional

_LEADING_FLOAT_RE = re.compile(
    r"^\s*[+-]?(?:Infinity|\d+(?:\.\d*)?(?:[eE][+-]?\d+)?|\.\d+(?:[eE][+-]?\d+)?)"
)


def leading_float(value: Any) -> Optional[float]:
    """Parse the numeric prefix of ``value`` the way JavaScript ``parseFloat`` does.

    ``"40.7 N"`` gives 40.7 and ``"-Infinity"`` gives ``-inf``. Returns None
    when no prefix parses. Booleans are not numbers here.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    match = _LEADING_FLOAT_RE.match(str(value))
    if not match:
        return None
    return float(match.group(0).replace("Infinity", "inf"))


def finite_float(value: Any) -> Optional[float]:
    number = leading_float(value)
    if number is None or not math.isfinite(number):
        return None
    return number
