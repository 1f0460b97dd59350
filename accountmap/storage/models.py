"""Pydantic models for resolved accounts."""
from __future__ import annotations

import math
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Coordinate(BaseModel):
    """A resolved latitude/longitude pair."""

    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float

    @field_validator("lat", "lng")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("coordinate components must be finite")
        return value


class AccountEntity(BaseModel):
    """An account that made it through coordinate resolution."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: Optional[str] = None
    coordinate: Coordinate
    address: str = ""
    revenue: float = Field(default=0.0, ge=0)

    @property
    def lat(self) -> float:
        return self.coordinate.lat

    @property
    def lng(self) -> float:
        return self.coordinate.lng
