import asyncio

import httpx

from accountmap.fetch.pager import FetchAborted, PagedFetcher
from accountmap.geo.cache import GeoCache, MemoryBlobStore
from accountmap.geo.resolver import GeocodeResolver
from accountmap.observability.metrics import MetricsRegistry
from accountmap.orchestrator.pipeline import Pipeline
from accountmap.storage.models import Coordinate

ACCOUNTS = [
    {"accountid": "direct", "name": "Direct Co", "address1_latitude": "40.7", "address1_longitude": "-74.0", "revenue": "15000000"},
    {
        "accountid": "cached",
        "name": "Cached Inc",
        "address1_line1": "1 Main St",
        "address1_city": "Springfield",
        "address1_stateorprovince": "IL",
        "address1_postalcode": "62701",
        "address1_country": "US",
        "revenue": 2500000,
    },
    {"accountid": "lost", "name": "Nowhere LLC"},
    {"accountid": "remote", "name": "Remote Ltd", "address1_city": "Oslo", "address1_country": "NO", "revenue": None},
]


class StaticDirectory:
    def __init__(self, pages):
        self._pages = pages
        self.calls = 0

    async def get_page(self, *, max_page_size, skip_token=None):
        page = self._pages[self.calls]
        self.calls += 1
        if isinstance(page, Exception):
            raise page
        return page


class FakeGeocoder:
    def __init__(self, answers):
        self.answers = answers
        self.queries = []

    async def geocode(self, query):
        self.queries.append(query)
        return self.answers.get(query)


class RecordingConsumer:
    def __init__(self):
        self.events = []

    def set_loading(self, loading):
        self.events.append(("loading", loading))

    def show_entities(self, entities):
        self.events.append(("entities", [entity.id for entity in entities]))

    def show_error(self, error):
        self.events.append(("error", type(error).__name__))


def _pipeline(pages, consumer, *, answers=None, metrics=None, geocoder=None):
    metrics = metrics or MetricsRegistry()
    cache = GeoCache(MemoryBlobStore())
    asyncio.run(cache.set("1 Main St, Springfield, IL, 62701, US", Coordinate(lat=39.8, lng=-89.6)))
    geocoder = geocoder or FakeGeocoder(answers or {})
    pipeline = Pipeline(
        fetcher=PagedFetcher(StaticDirectory(pages), metrics=metrics),
        resolver=GeocodeResolver(cache=cache, geocoder=geocoder, delay_seconds=0, metrics=metrics),
        consumer=consumer,
        metrics=metrics,
    )
    return pipeline, geocoder, cache


def test_pipeline_resolves_and_delivers_entities():
    consumer = RecordingConsumer()
    metrics = MetricsRegistry()
    pages = [
        {"value": ACCOUNTS[:2], "@odata.nextLink": "https://crm.test/accounts?$skiptoken=2"},
        {"value": ACCOUNTS[2:]},
    ]
    pipeline, geocoder, cache = _pipeline(pages, consumer, answers={"Oslo, NO": Coordinate(lat=59.9, lng=10.75)}, metrics=metrics)

    result = asyncio.run(pipeline.run())

    assert result.ok
    assert result.records_seen == 4
    assert [entity.id for entity in result.entities] == ["direct", "cached", "remote"]
    assert consumer.events == [
        ("loading", True),
        ("entities", ["direct", "cached", "remote"]),
        ("loading", False),
    ]
    assert geocoder.queries == ["Oslo, NO"]
    assert cache.get("Oslo, NO") == Coordinate(lat=59.9, lng=10.75)
    assert metrics.get("unresolved_records") == 1
    assert metrics.get("entities_resolved") == 3

    direct, cached, remote = result.entities
    assert (direct.lat, direct.lng) == (40.7, -74.0)
    assert direct.revenue == 15_000_000
    assert cached.address == "1 Main St, Springfield, IL, 62701, US"
    assert (cached.lat, cached.lng) == (39.8, -89.6)
    assert remote.revenue == 0


def test_fetch_failure_surfaces_error_and_clears_loading():
    consumer = RecordingConsumer()
    pages = [
        {"value": ACCOUNTS, "@odata.nextLink": "https://crm.test/accounts?$skiptoken=2"},
        httpx.ReadTimeout("slow"),
    ]
    pipeline, geocoder, _ = _pipeline(pages, consumer)

    result = asyncio.run(pipeline.run())

    assert not result.ok
    assert isinstance(result.error, FetchAborted)
    assert result.entities == []
    assert geocoder.queries == []
    assert consumer.events == [("loading", True), ("error", "FetchAborted"), ("loading", False)]


def test_deactivated_pipeline_discards_results():
    consumer = RecordingConsumer()

    class TearDownOnLookup(FakeGeocoder):
        pipeline = None

        async def geocode(self, query):
            self.pipeline.deactivate()
            return await super().geocode(query)

    geocoder = TearDownOnLookup({"Oslo, NO": Coordinate(lat=59.9, lng=10.75)})
    pipeline, _, _ = _pipeline([{"value": ACCOUNTS}], consumer, geocoder=geocoder)
    geocoder.pipeline = pipeline

    result = asyncio.run(pipeline.run())

    assert not pipeline.active
    assert consumer.events == [("loading", True)]
    assert [entity.id for entity in result.entities] == ["direct", "cached", "remote"]


def test_deactivation_stops_remaining_lookups():
    consumer = RecordingConsumer()
    pipeline, geocoder, _ = _pipeline([{"value": ACCOUNTS}], consumer)
    pipeline.deactivate()

    result = asyncio.run(pipeline.run())

    assert result.entities == []
    assert geocoder.queries == []
    assert consumer.events == []
