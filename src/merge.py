"""Folding crawls into persistent ticker records.

The merge engine owns the only rules that span crawls: the latest crawl of a
source replaces the previous one, inferred values overwrite scalar fields
except for the merge-once fields, and a merge that changes nothing but
timestamps is reported as unchanged so callers can skip the write.
"""

from collections.abc import Callable
from datetime import datetime

from src.canonicalizer import is_blacklisted
from src.exceptions import ParseSkip
from src.logger import get_logger
from src.models import (
    PROTECTED_KEYS,
    MergeResult,
    PageCrawlRecord,
    TickerRecord,
    parse_field_key,
    ScalarValue,
    utc_now,
)
from src.sanitizer import ValueClassifier
from src.transformer import FieldTransformer

log = get_logger(__name__)


class MergeEngine:
    """Merges a PageCrawlRecord into the stored TickerRecord for a symbol.

    Attributes:
        clock: Supplies ``last_updated_at`` timestamps.
        transformer: Re-normalizes stored values during scrub.
    """

    def __init__(
        self,
        clock: Callable[[], datetime] = utc_now,
        transformer: FieldTransformer | None = None,
    ) -> None:
        self.clock = clock
        self.transformer = transformer or FieldTransformer()

    def merge(
        self,
        existing: TickerRecord | None,
        crawl: PageCrawlRecord,
        symbol: str,
    ) -> MergeResult:
        """Fold one crawl into a record.

        Args:
            existing: Stored record for the symbol, or None on first sight.
            crawl: The crawl to fold in.
            symbol: Ticker symbol the crawl belongs to.

        Returns:
            MergeResult whose ``changed`` is False when only timestamps moved.
        """
        now = self.clock()
        crawl = crawl.model_copy(deep=True)

        if existing is None:
            record = TickerRecord(
                symbol=symbol,
                last_updated_at=now,
                scalar_fields=dict(crawl.inferred_values),
                crawls_by_source={crawl.source_id: crawl},
            )
            log.info(
                "Ticker record created",
                symbol=symbol,
                source_id=crawl.source_id,
                fields=len(record.scalar_fields),
            )
            return MergeResult(record=record, changed=True, created=True)

        before = existing.content()
        record = existing.model_copy(deep=True)
        record.crawls_by_source[crawl.source_id] = crawl

        for name, value in crawl.inferred_values.items():
            if parse_field_key(name) in PROTECTED_KEYS and record.scalar_fields.get(name) is not None:
                if record.scalar_fields[name] != value:
                    log.debug(
                        "Protected field kept",
                        symbol=symbol,
                        key=name,
                        stored=record.scalar_fields[name],
                        offered=value,
                    )
                continue
            record.scalar_fields[name] = value

        record.last_updated_at = now
        changed = record.content() != before
        log.debug("Crawl merged", symbol=symbol, source_id=crawl.source_id, changed=changed)
        return MergeResult(record=record, changed=changed)

    def scrub(self, record: TickerRecord) -> MergeResult:
        """Clean a stored record written by an older, looser pipeline.

        Blacklisted keys, empty buckets and row-less tables are removed,
        numeric fields still held as display text are normalized, and an
        exchange that swallowed neighbouring labels is replaced by a clean
        candidate from the record's own crawls (or dropped).

        Returns:
            MergeResult with ``changed`` True when anything was altered.
        """
        before = record.content()
        cleaned = record.model_copy(deep=True)

        cleaned.scalar_fields = self._normalized(record.symbol, cleaned.scalar_fields)
        for crawl in cleaned.crawls_by_source.values():
            crawl.buckets = {
                name: occurrences
                for name, occurrences in crawl.buckets.items()
                if not is_blacklisted(name) and occurrences
            }
            crawl.inferred_values = self._normalized(record.symbol, crawl.inferred_values)
            crawl.tables = [table for table in crawl.tables if table.rows]

        self._repair_exchange(cleaned)

        changed = cleaned.content() != before
        if changed:
            log.info("Stored record scrubbed", symbol=record.symbol)
        return MergeResult(record=cleaned, changed=changed)

    def _normalized(self, symbol: str, values: dict[str, ScalarValue]) -> dict[str, ScalarValue]:
        result: dict[str, ScalarValue] = {}
        for name, value in values.items():
            if is_blacklisted(name):
                continue
            try:
                result[name] = self.transformer.transform(parse_field_key(name), value)
            except ParseSkip as exc:
                log.debug("Stored value kept as is", symbol=symbol, key=name, reason=exc.reason)
                result[name] = value
        return result

    @staticmethod
    def _repair_exchange(record: TickerRecord) -> None:
        current = record.scalar_fields.get("exchange")
        if not isinstance(current, str) or not ValueClassifier.looks_like_label_dump(current):
            return

        candidates: list[ScalarValue] = []
        for crawl in record.crawls_by_source.values():
            candidates.extend(occurrence.value for occurrence in crawl.buckets.get("exchange", []))
        for crawl in record.crawls_by_source.values():
            if "exchange" in crawl.inferred_values:
                candidates.append(crawl.inferred_values["exchange"])

        replacement = next(
            (value for value in candidates if ValueClassifier.is_exchange_candidate(value)), None
        )
        if replacement is None:
            del record.scalar_fields["exchange"]
            log.info("Unusable exchange dropped", symbol=record.symbol, stored=current)
        else:
            record.scalar_fields["exchange"] = replacement
            log.info("Exchange repaired", symbol=record.symbol, stored=current, exchange=replacement)
