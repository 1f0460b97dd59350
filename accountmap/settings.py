"""Settings loaded from ``config/settings.toml`` plus environment overrides."""
from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from accountmap.fetch.session import DEFAULT_SELECT
from accountmap.geo.cache import GEO_CACHE_KEY
from accountmap.geo.geocoder import DEFAULT_ENDPOINT, DEFAULT_USER_AGENT
from accountmap.geo.resolver import DEFAULT_GEOCODE_DELAY

DEFAULT_SETTINGS_PATH = Path("config/settings.toml")


class DirectorySettings(BaseModel):
    base_url: str = Field(min_length=1)
    entity_set: str = "accounts"
    select: List[str] = Field(default_factory=lambda: list(DEFAULT_SELECT))
    max_page_size: int = Field(default=5000, gt=0)
    timeout_seconds: float = Field(default=30.0, gt=0)
    max_attempts: int = Field(default=1, ge=1)
    access_token: Optional[str] = None


class GeocoderSettings(BaseModel):
    endpoint: str = DEFAULT_ENDPOINT
    user_agent: str = DEFAULT_USER_AGENT
    delay_seconds: float = Field(default=DEFAULT_GEOCODE_DELAY, ge=0)
    timeout_seconds: float = Field(default=10.0, gt=0)


class CacheSettings(BaseModel):
    root: Path = Path("data/cache")
    key: str = Field(default=GEO_CACHE_KEY, min_length=1)

    @field_validator("root", mode="before")
    @classmethod
    def _resolve_path(cls, value: str | Path) -> Path:
        return value if isinstance(value, Path) else Path(value)


class OutputSettings(BaseModel):
    data_root: Path = Path("data/output")
    zoom: float = Field(default=2, ge=0)


class Settings(BaseModel):
    """Validated configuration for one deployment."""

    directory: DirectorySettings
    geocoder: GeocoderSettings = Field(default_factory=GeocoderSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    output: OutputSettings = Field(default_factory=OutputSettings)


def _apply_environment(raw: dict) -> dict:
    directory = dict(raw.get("directory", {}))
    if token := os.getenv("DIRECTORY_ACCESS_TOKEN"):
        directory["access_token"] = token
    if base_url := os.getenv("DIRECTORY_BASE_URL"):
        directory["base_url"] = base_url
    geocoder = dict(raw.get("geocoder", {}))
    if user_agent := os.getenv("ACCOUNTMAP_GEOCODER_USER_AGENT"):
        geocoder["user_agent"] = user_agent
    return {**raw, "directory": directory, "geocoder": geocoder}


def load_settings(path: Path = DEFAULT_SETTINGS_PATH) -> Settings:
    """Read the TOML configuration file and validate it.

    Raises ``FileNotFoundError`` when the file is absent and pydantic's
    ``ValidationError`` when a value is out of range.
    """
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    return Settings.model_validate(_apply_environment(raw))
