import asyncio

import httpx
import pytest

from accountmap.fetch.pager import FetchAborted, PagedFetcher
from accountmap.fetch.session import ODataAccountDirectory
from accountmap.observability.metrics import MetricsRegistry

BASE = "https://crm.test/api/data/v9.2"


def test_directory_pages_through_odata_links():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        if "$skiptoken" not in request.url.params:
            return httpx.Response(200, json={
                "value": [{"accountid": "1"}],
                "@odata.nextLink": f"{BASE}/accounts?$select=name&$skiptoken=%3Ccookie%20page%3D%222%22%2F%3E",
            })
        return httpx.Response(200, json={"value": [{"accountid": "2"}]})

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            directory = ODataAccountDirectory(client, base_url=BASE + "/", select=["accountid", "name"])
            return await PagedFetcher(directory, max_page_size=1).fetch_all()

    records = asyncio.run(_run())

    assert [record["accountid"] for record in records] == ["1", "2"]
    assert str(requests[0].url).startswith(f"{BASE}/accounts")
    assert requests[0].headers["Prefer"] == "odata.maxpagesize=1"
    assert requests[0].url.params["$select"] == "accountid,name"
    assert requests[1].url.params["$skiptoken"] == '<cookie page="2"/>'


def test_server_error_aborts_fetch():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, json={"error": {"message": "boom"}})

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            directory = ODataAccountDirectory(client, base_url=BASE)
            await PagedFetcher(directory).fetch_all()

    with pytest.raises(FetchAborted) as excinfo:
        asyncio.run(_run())
    assert isinstance(excinfo.value.__cause__, httpx.HTTPStatusError)


def test_transport_errors_retry_when_configured(monkeypatch):
    attempts = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["count"] += 1
        if attempts["count"] < 3:
            raise httpx.ConnectError("flaky", request=request)
        return httpx.Response(200, json={"value": []})

    async def no_sleep(_delay):
        return None

    monkeypatch.setattr("accountmap.fetch.session.asyncio.sleep", no_sleep)
    metrics = MetricsRegistry()

    async def _run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            directory = ODataAccountDirectory(client, base_url=BASE, max_attempts=3, metrics=metrics)
            return await directory.get_page(max_page_size=10)

    assert asyncio.run(_run()) == {"value": []}
    assert attempts["count"] == 3
    assert metrics.get("retries") == 2
