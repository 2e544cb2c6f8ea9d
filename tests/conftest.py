"""Pytest configuration and shared fixtures for the TickerLens test suite.

This module provides hermetic test infrastructure with the following guarantees:
- No rendering engine or network (snapshots are synthetic trees or inline HTML)
- Deterministic execution (injected clocks everywhere time matters)
- Isolated state (config cache cleared, stores rooted in tmp_path)

Factory fixtures over static fixtures let each test assemble the exact
snapshot shape it needs without duplicating markup.
"""

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from config.settings import GlobalConfig
from src.document import SnapshotNode, element
from src.store import InMemoryTickerStore, JsonFileTickerStore

FIXED_NOW = datetime(2024, 1, 15, 14, 30, tzinfo=UTC)


@pytest.fixture
def mock_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[GlobalConfig]:
    """Provide isolated GlobalConfig with safe test defaults.

    Overrides the lru_cache singleton to prevent state leakage between tests.
    Uses tmp_path for all file operations to avoid polluting the filesystem.

    Example:
        def test_something(mock_config: GlobalConfig) -> None:
            assert mock_config.environment == "test"
    """
    from config.settings import get_config

    get_config.cache_clear()

    log_dir = tmp_path / "logs"
    store_dir = tmp_path / "store"
    log_dir.mkdir()
    store_dir.mkdir()

    test_env = {
        "APP_NAME": "TickerLens-Test",
        "ENVIRONMENT": "test",
        "DEBUG": "false",
        "LOG_LEVEL": "DEBUG",
        "LOG_DIR": str(log_dir),
        "LOG_ROTATION": "1 day",
        "LOG_RETENTION": "1 day",
        "STORE_DIR": str(store_dir),
        "DEBOUNCE_WINDOW_SEC": "0.5",
        "CRAWL_CACHE_TTL_SEC": "60",
    }

    for key, value in test_env.items():
        monkeypatch.setenv(key, value)

    config = get_config()

    yield config

    get_config.cache_clear()


class StepClock:
    """Deterministic wall clock: returns ``start`` advanced by ``step`` per call."""

    def __init__(self, start: datetime = FIXED_NOW, step: timedelta = timedelta(minutes=1)) -> None:
        self.current = start
        self.step = step

    def __call__(self) -> datetime:
        now = self.current
        self.current = self.current + self.step
        return now


class ManualClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def step_clock() -> StepClock:
    return StepClock()


@pytest.fixture
def manual_clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def snapshot_factory() -> Callable[..., SnapshotNode]:
    """Factory fixture building a synthetic ticker page.

    Returns:
        Factory taking optional ``sector``, ``table_rows`` and ``inline`` values.
        Passing None for a part leaves that section out.

    Example:
        def test_scan(snapshot_factory):
            root = snapshot_factory(inline="Float & OS: 1.5M / 3.0M")
    """

    def _build(
        sector: str | None = "Technology",
        table_rows: list[tuple[str, str]] | None = None,
        inline: str | None = "Float & OS: 1.5M / 3.0M",
        extra: list[SnapshotNode] | None = None,
    ) -> SnapshotNode:
        sections: list[Any] = []
        if sector is not None:
            sections.append(element("dl", element("dt", "Sector"), element("dd", sector)))
        rows = table_rows if table_rows is not None else [("2024-01-10", "1.25%")]
        if rows:
            sections.append(
                element(
                    "table",
                    element("tr", element("th", "Date"), element("th", "Fee")),
                    *[element("tr", element("td", left), element("td", right)) for left, right in rows],
                )
            )
        if inline is not None:
            sections.append(element("div", inline))
        sections.extend(extra or [])
        return element("html", element("body", *sections))

    return _build


@pytest.fixture
def fintel_html() -> str:
    """Realistic short-interest page for the fintel source."""
    return """
    <!DOCTYPE html>
    <html>
    <head>
      <title>ABCD Short Interest</title>
      <script>var tracking = "Float: 999";</script>
    </head>
    <body>
      <h1>Abcd Therapeutics Inc (ABCD)</h1>
      <div class="summary">
        <dl>
          <dt>Sector</dt><dd>Healthcare</dd>
          <dt>Exchange</dt><dd>NASDAQ</dd>
          <dt>Short Interest</dt><dd>1,234,567 shares</dd>
        </dl>
      </div>
      <table class="stats">
        <tr><td>Short Interest % Float</td><td>12.50%</td></tr>
        <tr><td>Days To Cover</td><td>2.3</td></tr>
        <tr><td>Source</td><td>FINRA</td></tr>
      </table>
      <h3>Cost to borrow history</h3>
      <table id="table-short-borrow-rate">
        <thead><tr><th>Date</th><th>Borrow Rate</th><th>Notes</th></tr></thead>
        <tbody>
          <tr><td>2024-01-12</td><td>45.2%</td><td>This figure represents the annualized fee.</td></tr>
          <tr><td>2024-01-11</td><td>44.9%</td><td></td></tr>
        </tbody>
      </table>
      <table id="fails-to-deliver-table">
        <tr><th>Settlement Date</th><th>FTD Quantity</th></tr>
        <tr><td>2024-01-05</td><td>15,300</td></tr>
      </table>
      <p>Mkt Cap &amp; EV: 20.4M / 83.1M Inst. Own: 5.2%</p>
    </body>
    </html>
    """


@pytest.fixture
def memory_store() -> InMemoryTickerStore:
    return InMemoryTickerStore()


@pytest.fixture
def json_store(tmp_path: Path) -> JsonFileTickerStore:
    return JsonFileTickerStore(tmp_path / "tickers")


def pytest_configure(config: Any) -> None:
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests exercising the full crawl-merge-store stack",
    )
