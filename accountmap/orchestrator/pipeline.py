"""Run orchestration: fetch every account, resolve coordinates, hand off to a consumer."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional, Protocol, Sequence

import structlog

from accountmap.encode.visual import parse_revenue
from accountmap.fetch.pager import FetchAborted, PagedFetcher
from accountmap.geo.resolver import GeocodeResolver, build_address
from accountmap.observability.metrics import MetricsRegistry
from accountmap.storage.models import AccountEntity, Coordinate

LOGGER = structlog.get_logger(__name__)


class RenderConsumer(Protocol):
    """Receives the loading signal and the outcome of one pipeline run."""

    def set_loading(self, loading: bool) -> None: ...

    def show_entities(self, entities: Sequence[AccountEntity]) -> None: ...

    def show_error(self, error: Exception) -> None: ...


@dataclass
class PipelineResult:
    """Outcome of a single run."""

    entities: List[AccountEntity] = field(default_factory=list)
    records_seen: int = 0
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def to_entity(record: Mapping[str, Any], coordinate: Coordinate) -> AccountEntity:
    name = record.get("name")
    return AccountEntity(
        id=str(record.get("accountid") or ""),
        name=str(name) if name is not None else None,
        coordinate=coordinate,
        address=build_address(record),
        revenue=parse_revenue(record.get("revenue")),
    )


class Pipeline:
    """Sequential fetch-then-resolve run feeding a render consumer.

    ``deactivate()`` marks the consumer as gone: work already awaited is
    allowed to finish but nothing more is delivered to the consumer and no
    further records are resolved.
    """

    def __init__(
        self,
        *,
        fetcher: PagedFetcher,
        resolver: GeocodeResolver,
        consumer: RenderConsumer,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._fetcher = fetcher
        self._resolver = resolver
        self._consumer = consumer
        self._metrics = metrics or MetricsRegistry()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def deactivate(self) -> None:
        self._active = False

    async def run(self) -> PipelineResult:
        result = PipelineResult()
        if self._active:
            self._consumer.set_loading(True)
        try:
            records = await self._fetcher.fetch_all()
            result.records_seen = len(records)
            LOGGER.info("accounts_fetched", count=len(records))
            result.entities = await self._resolve_all(records)
            LOGGER.info("accounts_resolved", count=len(result.entities), fetched=len(records))
            if self._active:
                self._consumer.show_entities(list(result.entities))
        except FetchAborted as exc:
            result.error = exc
            LOGGER.error("fetch_aborted", error=str(exc))
            if self._active:
                self._consumer.show_error(exc)
        finally:
            if self._active:
                self._consumer.set_loading(False)
        return result

    async def _resolve_all(self, records: Sequence[Any]) -> List[AccountEntity]:
        entities: List[AccountEntity] = []
        for record in records:
            if not self._active:
                LOGGER.info("pipeline_deactivated", resolved=len(entities))
                break
            if not isinstance(record, Mapping):
                self._metrics.incr("unresolved_records")
                continue
            coordinate = await self._resolver.resolve(record)
            if coordinate is None:
                self._metrics.incr("unresolved_records")
                continue
            entities.append(to_entity(record, coordinate))
            self._metrics.incr("entities_resolved")
        return entities
