"""File exports of resolved accounts with their visual encodings."""
from __future__ import annotations

import csv
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import orjson
import structlog

from accountmap.encode.visual import bounds, circle_style, radius_from_revenue, revenue_label
from accountmap.storage.models import AccountEntity

LOGGER = structlog.get_logger(__name__)

CSV_FIELDS = ["id", "name", "address", "lat", "lng", "revenue", "color", "radius_m"]


def entity_feature(entity: AccountEntity, *, zoom: float) -> Dict[str, object]:
    """GeoJSON point feature carrying the circle encoding for ``zoom``."""
    properties: Dict[str, object] = {
        "id": entity.id,
        "name": entity.name,
        "address": entity.address,
        "revenue": entity.revenue,
        "radius_m": radius_from_revenue(entity.revenue, zoom),
        "label": revenue_label(entity.revenue),
    }
    properties.update(circle_style(entity.id))
    return {
        "type": "Feature",
        "id": entity.id,
        "geometry": {"type": "Point", "coordinates": [entity.lng, entity.lat]},
        "properties": properties,
    }


def write_geojson(entities: Iterable[AccountEntity], path: Path, *, zoom: float) -> Path:
    rows = list(entities)
    collection: Dict[str, object] = {
        "type": "FeatureCollection",
        "features": [entity_feature(entity, zoom=zoom) for entity in rows],
    }
    box = bounds(entity.coordinate for entity in rows)
    if box is not None:
        (south, west), (north, east) = box
        collection["bbox"] = [west, south, east, north]
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(orjson.dumps(collection, option=orjson.OPT_INDENT_2).decode(), encoding="utf-8")
    return path


def write_csv(entities: Iterable[AccountEntity], path: Path, *, zoom: float) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for entity in entities:
            style = circle_style(entity.id)
            writer.writerow({
                "id": entity.id,
                "name": entity.name or "",
                "address": entity.address,
                "lat": entity.lat,
                "lng": entity.lng,
                "revenue": entity.revenue,
                "color": style["color"],
                "radius_m": radius_from_revenue(entity.revenue, zoom),
            })
    return path


class ExportConsumer:
    """Render consumer that writes each delivered entity set to disk."""

    def __init__(self, root: Path, *, zoom: float) -> None:
        self._root = root
        self._zoom = zoom
        self.loading = False
        self.entities: List[AccountEntity] = []
        self.error: Optional[Exception] = None
        self.paths: Dict[str, Path] = {}

    def set_loading(self, loading: bool) -> None:
        self.loading = loading
        LOGGER.info("loading_changed", loading=loading)

    def show_entities(self, entities: Sequence[AccountEntity]) -> None:
        self.entities = list(entities)
        self.paths = {
            "geojson": write_geojson(self.entities, self._root / "accounts.geojson", zoom=self._zoom),
            "csv": write_csv(self.entities, self._root / "accounts.csv", zoom=self._zoom),
        }
        LOGGER.info("entities_exported", count=len(self.entities), root=str(self._root))

    def show_error(self, error: Exception) -> None:
        self.error = error
