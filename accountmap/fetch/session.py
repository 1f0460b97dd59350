"""OData client for the account directory service."""
from __future__ import annotations

import asyncio
import contextlib
from typing import Any, AsyncIterator, Dict, Optional, Protocol, Sequence

import httpx

from accountmap.observability.metrics import MetricsRegistry
from accountmap.observability.tracing import log_retry, span

DEFAULT_SELECT = (
    "accountid",
    "name",
    "revenue",
    "address1_latitude",
    "address1_longitude",
    "address1_line1",
    "address1_city",
    "address1_stateorprovince",
    "address1_postalcode",
    "address1_country",
)


class AccountDirectory(Protocol):
    """Paged read access to account records."""

    async def get_page(self, *, max_page_size: int, skip_token: Optional[str] = None) -> Any: ...


class ODataAccountDirectory:
    """Reads one page of an OData entity set per call.

    The page size travels in the ``Prefer: odata.maxpagesize`` header and the
    continuation token from a previous ``@odata.nextLink`` goes back as
    ``$skiptoken``.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        base_url: str,
        entity_set: str = "accounts",
        select: Sequence[str] = DEFAULT_SELECT,
        timeout: float = 30.0,
        max_attempts: int = 1,
        metrics: Optional[MetricsRegistry] = None,
    ) -> None:
        self._client = client
        self._url = f"{base_url.rstrip('/')}/{entity_set}"
        self._select = tuple(select)
        self._timeout = timeout
        self._max_attempts = max(1, max_attempts)
        self._metrics = metrics or MetricsRegistry()

    @property
    def url(self) -> str:
        return self._url

    async def get_page(self, *, max_page_size: int, skip_token: Optional[str] = None) -> Any:
        params: Dict[str, str] = {}
        if self._select:
            params["$select"] = ",".join(self._select)
        if skip_token:
            params["$skiptoken"] = skip_token
        headers = {"Prefer": f"odata.maxpagesize={max_page_size}"}
        response = await self._request(params=params, headers=headers)
        response.raise_for_status()
        return response.json()

    async def _request(self, *, params: Dict[str, str], headers: Dict[str, str]) -> httpx.Response:
        delay = 1.0
        attempt = 0
        while True:
            attempt += 1
            try:
                with span(name="directory_page", target=self._url):
                    return await self._client.get(self._url, params=params, headers=headers, timeout=self._timeout)
            except httpx.TransportError as exc:
                if attempt >= self._max_attempts:
                    raise
                self._metrics.incr("retries")
                log_retry(attempt=attempt, target=self._url, reason=str(exc))
                await asyncio.sleep(delay)
                delay *= 2


@contextlib.asynccontextmanager
async def create_directory(
    *,
    base_url: str,
    access_token: Optional[str],
    entity_set: str = "accounts",
    select: Sequence[str] = DEFAULT_SELECT,
    timeout: float = 30.0,
    max_attempts: int = 1,
    metrics: Optional[MetricsRegistry] = None,
) -> AsyncIterator[ODataAccountDirectory]:
    """Yield a configured directory client for the duration of the context."""
    headers = {
        "Accept": "application/json",
        "OData-MaxVersion": "4.0",
        "OData-Version": "4.0",
    }
    if access_token:
        headers["Authorization"] = f"Bearer {access_token}"
    async with httpx.AsyncClient(headers=headers, timeout=timeout) as client:
        yield ODataAccountDirectory(
            client,
            base_url=base_url,
            entity_set=entity_set,
            select=select,
            timeout=timeout,
            max_attempts=max_attempts,
            metrics=metrics,
        )
