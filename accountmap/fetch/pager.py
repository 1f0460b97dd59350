"""Exhaustive paged retrieval of account records."""
from __future__ import annotations

from typing import Any, Callable, List, Mapping, Optional, Tuple
from urllib.parse import parse_qs, urlsplit

import structlog

from accountmap.fetch.session import AccountDirectory
from accountmap.observability.metrics import MetricsRegistry
from accountmap.observability.tracing import log_page_result

LOGGER = structlog.get_logger(__name__)

DEFAULT_MAX_PAGE_SIZE = 5000
NEXT_LINK_FIELDS = ("@odata.nextLink", "nextLink", "next_link")
SKIP_TOKEN_PARAMS = ("$skiptoken", "skiptoken")


class FetchAborted(RuntimeError):
    """Raised when a page request fails; no partial collection is returned."""


def _field(name: str) -> Callable[[Any], Any]:
    def extract(payload: Any) -> Any:
        if isinstance(payload, Mapping):
            return payload.get(name)
        return None

    return extract


# Tried in order; the first strategy yielding a non-None value wins.
RECORD_STRATEGIES: Tuple[Tuple[str, Callable[[Any], Any]], ...] = (
    ("result", _field("result")),
    ("value", _field("value")),
    ("data", _field("data")),
    ("payload", lambda payload: payload),
)


def extract_records(payload: Any) -> List[Any]:
    """Pull the record array out of a page, tolerating several response shapes."""
    candidate = None
    for _name, strategy in RECORD_STRATEGIES:
        candidate = strategy(payload)
        if candidate is not None:
            break
    if isinstance(candidate, Mapping) and candidate.get("value"):
        candidate = candidate["value"]
    if not isinstance(candidate, (list, tuple)):
        return []
    return list(candidate)


def next_link(payload: Any) -> Optional[str]:
    if not isinstance(payload, Mapping):
        return None
    for field in NEXT_LINK_FIELDS:
        link = payload.get(field)
        if isinstance(link, str) and link:
            return link
    return None


def skip_token_from_link(link: str) -> Optional[str]:
    query = parse_qs(urlsplit(link).query)
    for name in SKIP_TOKEN_PARAMS:
        values = query.get(name)
        if values and values[0]:
            return values[0]
    return None


class PagedFetcher:
    """Walks every page of the directory starting from the first one."""

    def __init__(
        self,
        directory: AccountDirectory,
        *,
        max_page_size: int = DEFAULT_MAX_PAGE_SIZE,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._directory = directory
        self._max_page_size = max_page_size
        self._metrics = metrics or MetricsRegistry()

    async def fetch_all(self) -> List[Any]:
        records: List[Any] = []
        skip_token: Optional[str] = None
        page = 0
        while True:
            page += 1
            try:
                payload = await self._directory.get_page(max_page_size=self._max_page_size, skip_token=skip_token)
            except Exception as exc:  # noqa: BLE001
                raise FetchAborted(f"account page {page} could not be retrieved: {exc}") from exc

            batch = extract_records(payload)
            records.extend(batch)
            self._metrics.incr("pages_fetched")
            self._metrics.incr("records_fetched", len(batch))

            link = next_link(payload)
            log_page_result(page=page, records=len(batch), has_next=link is not None)
            if link is None:
                break
            token = skip_token_from_link(link)
            if token is None:
                LOGGER.warning("continuation_without_token", page=page, link=link)
                break
            skip_token = token

        LOGGER.info("accounts_retrieved", pages=page, records=len(records))
        return records
