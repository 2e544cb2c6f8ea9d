"""Data models for the extraction pipeline.

This module defines:
- The canonical field vocabulary (CanonicalKey) and its open OtherKey fallback
- Pydantic schemas for occurrences, tables, crawl records and ticker records

Serialization:
    Python attributes are snake_case. The persisted JSON form uses camelCase
    aliases (crawledAt, scalarFields, ...) so stored records stay readable by
    the presentation layer. Always dump with ``by_alias=True`` when persisting.

    CanonicalKey values are a versioned contract: downstream code reads
    scalar_fields by these exact names.
"""

from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CanonicalKey(str, Enum):
    """Fixed vocabulary of financial and company fields."""

    FLOAT = "float"
    SHARES_OUTSTANDING = "sharesOutstanding"
    ESTIMATED_CASH = "estimatedCash"
    MARKET_CAP = "marketCap"
    ENTERPRISE_VALUE = "enterpriseValue"
    INSTITUTIONAL_OWNERSHIP = "institutionalOwnership"
    SECTOR = "sector"
    INDUSTRY = "industry"
    COUNTRY = "country"
    EXCHANGE = "exchange"
    DESCRIPTION = "description"
    SHORT_INTEREST = "shortInterest"
    SHORT_INTEREST_RATIO = "shortInterestRatio"
    SHORT_INTEREST_PERCENT_FLOAT = "shortInterestPercentFloat"
    COST_TO_BORROW = "costToBorrow"
    SHORT_SHARES_AVAILABLE = "shortSharesAvailable"
    FINRA_EXEMPT_VOLUME = "finraExemptVolume"
    FAILURE_TO_DELIVER = "failureToDeliver"
    LAST_DATA_UPDATE = "lastDataUpdate"


@dataclass(frozen=True)
class OtherKey:
    """A field outside the canonical vocabulary, kept under its camel-cased label."""

    name: str

    @property
    def value(self) -> str:
        return self.name


FieldKey = Union[CanonicalKey, OtherKey]

_CANONICAL_BY_VALUE = {key.value: key for key in CanonicalKey}

# Merge-once fields: set only while absent on the persistent record.
PROTECTED_KEYS: frozenset[CanonicalKey] = frozenset(
    {CanonicalKey.FLOAT, CanonicalKey.SHARES_OUTSTANDING}
)


def parse_field_key(name: str) -> FieldKey:
    """Resolve a wire name back to its FieldKey.

    Args:
        name: Key name as stored in buckets or scalar_fields.

    Returns:
        The CanonicalKey with that value, else an OtherKey.
    """
    return _CANONICAL_BY_VALUE.get(name) or OtherKey(name)


ScalarValue = Union[int, float, str]


def utc_now() -> datetime:
    return datetime.now(UTC)


class ScanStrategy(str, Enum):
    """Which scanner strategy produced an occurrence."""

    PAIRED_ELEMENT = "pairedElement"
    TABLE = "table"
    INLINE_PROSE = "inlineProse"


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Occurrence(_WireModel):
    """One raw (label, value) observation at a specific document location.

    Attributes:
        label: Label text as it appeared in the document.
        value: Sanitized value text (never empty).
        raw_value: Value text before sanitization.
        strategy: Scanner strategy that produced it.
        structural_path: Provenance path of the value element.
        nearest_heading: Closest preceding heading text, if any.
    """

    label: str
    value: str = Field(..., min_length=1)
    raw_value: str
    strategy: ScanStrategy
    structural_path: str
    nearest_heading: str | None = None


class Table(_WireModel):
    """Header-keyed rows extracted from one tabular structure."""

    key: str = Field(..., min_length=1)
    display_name: str
    headers: list[str] = Field(default_factory=list)
    rows: list[dict[str, str]] = Field(default_factory=list)


class PageCrawlRecord(_WireModel):
    """Everything one crawl of one source learned about one page.

    Attributes:
        source_id: Identifier of the source profile (e.g. "fintel").
        crawled_at: When the snapshot was scanned.
        source_location: URL or other locator of the snapshot.
        buckets: Field wire name -> occurrences in first-seen order.
        inferred_values: Field wire name -> chosen, normalized value.
        tables: Extracted tables in document order.
    """

    source_id: str
    crawled_at: datetime
    source_location: str
    buckets: dict[str, list[Occurrence]] = Field(default_factory=dict)
    inferred_values: dict[str, ScalarValue] = Field(default_factory=dict)
    tables: list[Table] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.buckets and not self.inferred_values and not self.tables


class TickerRecord(_WireModel):
    """Persistent per-symbol record folded from successive crawls."""

    symbol: str = Field(..., min_length=1)
    last_updated_at: datetime
    scalar_fields: dict[str, ScalarValue] = Field(default_factory=dict)
    crawls_by_source: dict[str, PageCrawlRecord] = Field(default_factory=dict)

    def content(self) -> dict:
        """Structural content of the record, ignoring timestamps.

        Two records with equal content differ only in when they were crawled
        or merged; the merge engine uses this for change detection.
        """
        return {
            "symbol": self.symbol,
            "scalar_fields": dict(self.scalar_fields),
            "crawls_by_source": {
                source_id: crawl.model_dump(exclude={"crawled_at"})
                for source_id, crawl in self.crawls_by_source.items()
            },
        }


class MergeResult(BaseModel):
    """Outcome of folding one crawl into a ticker record."""

    record: TickerRecord
    changed: bool
    created: bool = False
