"""Persistence for ticker records.

The store contract is async so hosts can back it with anything from a dict
to a remote key/value service. Two implementations ship here:

- InMemoryTickerStore: process-local, for tests and embedding
- JsonFileTickerStore: one ``ticker_<SYM>.json`` per symbol plus a
  ``ticker_list.json`` index of tracked symbols, written atomically

Records are persisted in their camelCase wire form (``by_alias=True``).
"""

import asyncio
import json
import os
import re
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from config.settings import GlobalConfig, get_config
from src.exceptions import StoreError
from src.logger import get_logger
from src.merge import MergeEngine
from src.models import TickerRecord

log = get_logger(__name__)

_SYMBOL = re.compile(r"^[A-Z0-9][A-Z0-9.\-]{0,9}$")
TICKER_LIST_FILE = "ticker_list.json"


def record_file_name(symbol: str) -> str:
    return f"ticker_{symbol}.json"


@runtime_checkable
class TickerStore(Protocol):
    """Async storage of ticker records and the tracked-symbol set."""

    async def read(self, symbol: str) -> TickerRecord | None: ...

    async def write(self, symbol: str, record: TickerRecord) -> None: ...

    async def tracked_symbols(self) -> list[str]: ...

    async def track(self, symbol: str) -> None: ...


class InMemoryTickerStore:
    """Dict-backed store. Records are copied in and out."""

    def __init__(self) -> None:
        self._records: dict[str, TickerRecord] = {}
        self._tracked: list[str] = []

    async def read(self, symbol: str) -> TickerRecord | None:
        record = self._records.get(symbol)
        return record.model_copy(deep=True) if record is not None else None

    async def write(self, symbol: str, record: TickerRecord) -> None:
        self._records[symbol] = record.model_copy(deep=True)

    async def tracked_symbols(self) -> list[str]:
        return list(self._tracked)

    async def track(self, symbol: str) -> None:
        if symbol not in self._tracked:
            self._tracked.append(symbol)


class JsonFileTickerStore:
    """Directory of JSON files, one per symbol.

    File I/O runs in a worker thread so the event loop is never blocked.

    Attributes:
        root: Directory holding the record files.
    """

    def __init__(self, root: Path | None = None, config: GlobalConfig | None = None) -> None:
        self.root = Path(root) if root is not None else (config or get_config()).store_dir

    def _path_for(self, symbol: str) -> Path:
        if not _SYMBOL.match(symbol):
            raise StoreError(symbol, "invalid ticker symbol")
        return self.root / record_file_name(symbol)

    async def read(self, symbol: str) -> TickerRecord | None:
        path = self._path_for(symbol)
        payload = await asyncio.to_thread(self._read_text, symbol, path)
        if payload is None:
            return None
        try:
            return TickerRecord.model_validate_json(payload)
        except ValidationError as exc:
            raise StoreError(symbol, f"stored record is invalid: {exc}", str(path)) from exc

    async def write(self, symbol: str, record: TickerRecord) -> None:
        path = self._path_for(symbol)
        payload = record.model_dump_json(by_alias=True, indent=2)
        await asyncio.to_thread(self._write_text, symbol, path, payload)
        log.debug("Ticker record written", symbol=symbol, path=str(path))

    async def tracked_symbols(self) -> list[str]:
        path = self.root / TICKER_LIST_FILE
        payload = await asyncio.to_thread(self._read_text, TICKER_LIST_FILE, path)
        if payload is None:
            return []
        try:
            symbols = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise StoreError(TICKER_LIST_FILE, f"ticker list is not JSON: {exc}", str(path)) from exc
        if not isinstance(symbols, list) or not all(isinstance(s, str) for s in symbols):
            raise StoreError(TICKER_LIST_FILE, "ticker list is not a list of symbols", str(path))
        return symbols

    async def track(self, symbol: str) -> None:
        self._path_for(symbol)
        symbols = await self.tracked_symbols()
        if symbol in symbols:
            return
        symbols.append(symbol)
        path = self.root / TICKER_LIST_FILE
        await asyncio.to_thread(self._write_text, symbol, path, json.dumps(symbols, indent=2))
        log.info("Symbol tracked", symbol=symbol, tracked=len(symbols))

    @staticmethod
    def _read_text(symbol: str, path: Path) -> str | None:
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StoreError(symbol, f"read failed: {exc}", str(path)) from exc

    @staticmethod
    def _write_text(symbol: str, path: Path, payload: str) -> None:
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as exc:
            raise StoreError(symbol, f"write failed: {exc}", str(path)) from exc


async def cleanup_store(store: TickerStore, engine: MergeEngine) -> list[str]:
    """Scrub every tracked record and write back the ones that changed.

    Returns:
        Symbols whose stored record was rewritten.
    """
    cleaned: list[str] = []
    for symbol in await store.tracked_symbols():
        record = await store.read(symbol)
        if record is None:
            continue
        result = engine.scrub(record)
        if result.changed:
            await store.write(symbol, result.record)
            cleaned.append(symbol)

    log.info("Store cleanup complete", cleaned=len(cleaned))
    return cleaned
