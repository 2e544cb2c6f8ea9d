"""Tests for ticker stores and the crawl service.

The JSON store runs against tmp_path; the service runs against the
in-memory store so each test controls exactly what is persisted.
"""

import json
from pathlib import Path

import pytest
from pytest_mock import MockerFixture

from config.settings import GlobalConfig
from src.document import element, parse_html
from src.exceptions import StoreError, UnknownSourceError
from src.merge import MergeEngine
from src.models import PageCrawlRecord, TickerRecord
from src.pipeline import CrawlPipeline
from src.scheduler import Debouncer, TTLCache
from src.service import CrawlService
from src.store import (
    InMemoryTickerStore,
    JsonFileTickerStore,
    TickerStore,
    cleanup_store,
)
from tests.conftest import FIXED_NOW, ManualClock, StepClock


def _record(symbol: str = "ABCD", **scalars) -> TickerRecord:
    crawl = PageCrawlRecord(
        source_id="fintel",
        crawled_at=FIXED_NOW,
        source_location=f"https://fintel.io/ss/us/{symbol}",
        inferred_values=dict(scalars),
    )
    return TickerRecord(
        symbol=symbol,
        last_updated_at=FIXED_NOW,
        scalar_fields=dict(scalars),
        crawls_by_source={"fintel": crawl},
    )


class TestJsonFileTickerStore:
    @pytest.mark.asyncio
    async def test_round_trip_uses_wire_names(self, json_store: JsonFileTickerStore) -> None:
        record = _record(sector="Energy", float=1_500_000)

        await json_store.write("ABCD", record)

        path = json_store.root / "ticker_ABCD.json"
        payload = json.loads(path.read_text())
        assert "scalarFields" in payload
        assert "crawledAt" in payload["crawlsBySource"]["fintel"]
        assert await json_store.read("ABCD") == record

    @pytest.mark.asyncio
    async def test_missing_record_reads_none(self, json_store: JsonFileTickerStore) -> None:
        assert await json_store.read("NONE") is None
        assert await json_store.tracked_symbols() == []

    @pytest.mark.asyncio
    async def test_track_is_idempotent(self, json_store: JsonFileTickerStore) -> None:
        await json_store.track("ABCD")
        await json_store.track("XYZ")
        await json_store.track("ABCD")

        assert await json_store.tracked_symbols() == ["ABCD", "XYZ"]
        assert json.loads((json_store.root / "ticker_list.json").read_text()) == ["ABCD", "XYZ"]

    @pytest.mark.asyncio
    async def test_corrupt_record_raises_store_error(self, json_store: JsonFileTickerStore) -> None:
        json_store.root.mkdir(parents=True)
        (json_store.root / "ticker_ABCD.json").write_text('{"symbol": 1}')

        with pytest.raises(StoreError) as exc_info:
            await json_store.read("ABCD")

        assert exc_info.value.symbol == "ABCD"

    @pytest.mark.asyncio
    async def test_corrupt_ticker_list_raises_store_error(self, json_store: JsonFileTickerStore) -> None:
        json_store.root.mkdir(parents=True)
        (json_store.root / "ticker_list.json").write_text("not json")

        with pytest.raises(StoreError):
            await json_store.tracked_symbols()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("symbol", ["../etc", "abcd", "", "A/B"])
    async def test_invalid_symbols_rejected(self, json_store: JsonFileTickerStore, symbol: str) -> None:
        with pytest.raises(StoreError):
            await json_store.read(symbol)

    def test_root_defaults_to_config(self, mock_config: GlobalConfig) -> None:
        assert JsonFileTickerStore(config=mock_config).root == mock_config.store_dir

    def test_stores_satisfy_protocol(self, json_store: JsonFileTickerStore) -> None:
        assert isinstance(json_store, TickerStore)
        assert isinstance(InMemoryTickerStore(), TickerStore)


class TestInMemoryTickerStore:
    @pytest.mark.asyncio
    async def test_records_are_copied(self, memory_store: InMemoryTickerStore) -> None:
        record = _record(sector="Energy")
        await memory_store.write("ABCD", record)

        record.scalar_fields["sector"] = "Mutated"
        stored = await memory_store.read("ABCD")

        assert stored is not None
        assert stored.scalar_fields["sector"] == "Energy"


class TestCleanupStore:
    @pytest.mark.asyncio
    async def test_only_dirty_records_rewritten(
        self, memory_store: InMemoryTickerStore, mocker: MockerFixture
    ) -> None:
        await memory_store.write("ABCD", _record("ABCD", source="FINRA", sector="Energy"))
        await memory_store.write("XYZ", _record("XYZ", sector="Utilities"))
        await memory_store.track("ABCD")
        await memory_store.track("XYZ")
        await memory_store.track("GONE")
        write = mocker.spy(memory_store, "write")

        cleaned = await cleanup_store(memory_store, MergeEngine())

        assert cleaned == ["ABCD"]
        assert write.call_count == 1
        stored = await memory_store.read("ABCD")
        assert stored is not None
        assert stored.scalar_fields == {"sector": "Energy"}


@pytest.fixture
def service(mock_config: GlobalConfig, memory_store: InMemoryTickerStore) -> CrawlService:
    return CrawlService(
        CrawlPipeline(mock_config, clock=StepClock()),
        MergeEngine(clock=StepClock()),
        memory_store,
    )


class TestCrawlService:
    @pytest.mark.asyncio
    async def test_first_ingest_persists_and_tracks(
        self, service: CrawlService, memory_store: InMemoryTickerStore, snapshot_factory
    ) -> None:
        result = await service.ingest("abcd", "synthetic", snapshot_factory(), "memory://ABCD")

        assert result is not None
        assert result.created is True
        assert await memory_store.tracked_symbols() == ["ABCD"]
        stored = await memory_store.read("ABCD")
        assert stored is not None
        assert stored.scalar_fields["float"] == 1_500_000

    @pytest.mark.asyncio
    async def test_unchanged_recrawl_skips_write(
        self,
        service: CrawlService,
        memory_store: InMemoryTickerStore,
        snapshot_factory,
        mocker: MockerFixture,
    ) -> None:
        root = snapshot_factory()
        await service.ingest("ABCD", "synthetic", root, "memory://ABCD")
        write = mocker.spy(memory_store, "write")

        result = await service.ingest("ABCD", "synthetic", root, "memory://ABCD")

        assert result is not None
        assert result.changed is False
        write.assert_not_called()

    @pytest.mark.asyncio
    async def test_changed_crawl_is_written(
        self, service: CrawlService, memory_store: InMemoryTickerStore, snapshot_factory
    ) -> None:
        await service.ingest("ABCD", "synthetic", snapshot_factory(), "memory://ABCD")

        result = await service.ingest(
            "ABCD", "synthetic", snapshot_factory(sector="Energy", inline="Float: 9M"), "memory://ABCD"
        )

        assert result is not None
        assert result.changed is True
        stored = await memory_store.read("ABCD")
        assert stored is not None
        assert stored.scalar_fields["sector"] == "Energy"
        assert stored.scalar_fields["float"] == 1_500_000

    @pytest.mark.asyncio
    async def test_ingest_url_resolves_profile(
        self, service: CrawlService, memory_store: InMemoryTickerStore, fintel_html: str
    ) -> None:
        result = await service.ingest_url("https://fintel.io/ss/us/abcd", parse_html(fintel_html))

        assert result is not None
        stored = await memory_store.read("ABCD")
        assert stored is not None
        assert "fintel" in stored.crawls_by_source
        assert stored.scalar_fields["latestCTB"] == "2024-01-12: 45.2%"

    @pytest.mark.asyncio
    async def test_ingest_url_unknown_source(self, service: CrawlService) -> None:
        with pytest.raises(UnknownSourceError):
            await service.ingest_url("https://example.com/ABCD", element("body"))

    @pytest.mark.asyncio
    async def test_cache_suppresses_recrawl_within_ttl(
        self, mock_config: GlobalConfig, memory_store: InMemoryTickerStore, snapshot_factory
    ) -> None:
        clock = ManualClock()
        service = CrawlService(
            CrawlPipeline(mock_config),
            MergeEngine(),
            memory_store,
            cache=TTLCache(ttl_sec=60, clock=clock),
        )

        first = await service.ingest("ABCD", "synthetic", snapshot_factory(), "memory://ABCD")
        skipped = await service.ingest("ABCD", "synthetic", snapshot_factory(), "memory://ABCD")
        clock.advance(61)
        again = await service.ingest("ABCD", "synthetic", snapshot_factory(), "memory://ABCD")

        assert first is not None
        assert skipped is None
        assert again is not None

    @pytest.mark.asyncio
    async def test_notifications_debounced(
        self, mock_config: GlobalConfig, memory_store: InMemoryTickerStore, fintel_html: str
    ) -> None:
        clock = ManualClock()
        service = CrawlService(
            CrawlPipeline(mock_config),
            MergeEngine(),
            memory_store,
            debouncer=Debouncer(window_sec=0.75, clock=clock),
        )
        url = "https://fintel.io/ss/us/ABCD"
        stale = parse_html("<dl><dt>Sector</dt><dd>Stale</dd></dl>")

        service.notify(url, stale)
        clock.advance(0.5)
        service.notify(url, parse_html(fintel_html))
        service.notify("https://example.com/nothing", element("body"))

        assert await service.flush_due() == []

        clock.advance(0.75)
        results = await service.flush_due()

        assert len(results) == 1
        stored = await memory_store.read("ABCD")
        assert stored is not None
        assert stored.scalar_fields["sector"] == "Healthcare"
        assert await service.flush_due() == []


@pytest.mark.asyncio
async def test_json_store_full_stack(mock_config: GlobalConfig, tmp_path: Path, snapshot_factory) -> None:
    store = JsonFileTickerStore(tmp_path / "stack")
    service = CrawlService(CrawlPipeline(mock_config), MergeEngine(), store)

    await service.ingest("ABCD", "synthetic", snapshot_factory(), "memory://ABCD")
    reopened = JsonFileTickerStore(tmp_path / "stack")

    record = await reopened.read("ABCD")
    assert record is not None
    assert record.scalar_fields == {
        "sector": "Technology",
        "float": 1_500_000,
        "sharesOutstanding": 3_000_000,
    }
    assert await reopened.tracked_symbols() == ["ABCD"]
