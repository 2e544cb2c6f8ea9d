"""Per-site source profiles.

A profile carries what is specific to one financial site: how its ticker
pages are addressed, the presentation names of its known tables, sentence
patterns that state a value in running text, and summary values derived
from the latest row of known tables.
"""

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from src.exceptions import UnknownSourceError
from src.logger import get_logger
from src.models import Table
from src.scanner import ProsePattern

log = get_logger(__name__)

Derivation = Callable[[Sequence[Table]], dict[str, str]]

TABLE_NAMES: dict[str, str] = {
    "short-shares-availability-table": "Short Shares Available (IBKR):",
    "table-short-borrow-rate": "Cost To Borrow (IBKR):",
    "short-sale-volume-finra-table": "Short Sale Volume (FINRA):",
    "fails-to-deliver-table": "Failure To Deliver (FTDs):",
}


@dataclass(frozen=True)
class SourceProfile:
    """Site knowledge used when crawling one source.

    Attributes:
        source_id: Key of the crawl inside a TickerRecord.
        host: Host name the site is served from.
        ticker_pattern: Matches a ticker page URL; group 1 is the symbol.
        table_names: Table key -> presentation name.
        prose_patterns: Sentence patterns handed to the scanner.
        derivations: Functions adding summary values from extracted tables.
    """

    source_id: str
    host: str
    ticker_pattern: re.Pattern[str]
    table_names: dict[str, str] = field(default_factory=dict)
    prose_patterns: tuple[ProsePattern, ...] = ()
    derivations: tuple[Derivation, ...] = ()

    def symbol_from(self, location: str) -> str | None:
        match = self.ticker_pattern.search(location)
        return match.group(1).upper() if match else None

    def derive(self, tables: Sequence[Table]) -> dict[str, str]:
        derived: dict[str, str] = {}
        for derivation in self.derivations:
            for key, value in derivation(tables).items():
                derived.setdefault(key, value)
        return derived


def _first_header(headers: Sequence[str], pattern: str) -> str | None:
    regex = re.compile(pattern, re.IGNORECASE)
    return next((header for header in headers if regex.search(header)), None)


def latest_row_derivation(
    table_key: str, output_key: str, date_pattern: str, value_pattern: str
) -> Derivation:
    """Build a derivation reading ``"<date>: <value>"`` from a table's first row.

    Args:
        table_key: Normalized key of the table to read.
        output_key: Field name the derived value is stored under.
        date_pattern: Regex picking the date header (falls back to column 0).
        value_pattern: Regex picking the value header (falls back to column 1).
    """

    def derive(tables: Sequence[Table]) -> dict[str, str]:
        table = next((t for t in tables if t.key == table_key), None)
        if table is None or not table.rows:
            return {}
        headers = table.headers or list(table.rows[0])
        value_header = _first_header(headers, value_pattern) or (
            headers[1] if len(headers) > 1 else None
        )
        date_header = _first_header(headers, date_pattern) or (
            headers[0] if headers and headers[0] != value_header else None
        )
        row = table.rows[0]
        value = row.get(value_header, "") if value_header else ""
        if not value:
            return {}
        date = row.get(date_header, "") if date_header else ""
        return {output_key: f"{date}: {value}" if date else value}

    return derive


derive_latest_ctb = latest_row_derivation(
    "table-short-borrow-rate", "latestCTB", r"date", r"borrow\s*rate|fee|ctb"
)
derive_latest_ftd = latest_row_derivation(
    "fails-to-deliver-table", "latestFTD", r"date|settlement", r"ftd|quantity|qty"
)


def derive_latest_from_tables(tables: Sequence[Table]) -> dict[str, str]:
    """Latest cost-to-borrow and fails-to-deliver summaries, where present."""
    return {**derive_latest_ctb(tables), **derive_latest_ftd(tables)}


DILUTION_TRACKER = SourceProfile(
    source_id="dilutiontracker",
    host="dilutiontracker.com",
    ticker_pattern=re.compile(
        r"dilutiontracker\.com/app/search/([A-Z]{1,5})(?:[/?#]|$)", re.IGNORECASE
    ),
    prose_patterns=(
        ProsePattern(
            label="Estimated Cash",
            pattern=re.compile(
                r"(?:estimated\s+)?current\s+cash\s+of\s+(?P<value>\$[\d,.]+\s*[KMB])(?![A-Za-z])",
                re.IGNORECASE,
            ),
        ),
        ProsePattern(
            label="Estimated Cash",
            pattern=re.compile(
                r"estimated\s+cash\s+of\s+(?P<value>\$[\d,.]+\s*[KMB])(?![A-Za-z])",
                re.IGNORECASE,
            ),
        ),
    ),
)

FINTEL = SourceProfile(
    source_id="fintel",
    host="fintel.io",
    ticker_pattern=re.compile(r"fintel\.io/ss/us/([A-Z]{1,5})(?:[/?#]|$)", re.IGNORECASE),
    table_names=dict(TABLE_NAMES),
    derivations=(derive_latest_ctb, derive_latest_ftd),
)

SOURCE_PROFILES: dict[str, SourceProfile] = {
    profile.source_id: profile for profile in (DILUTION_TRACKER, FINTEL)
}


def get_profile(source_id: str) -> SourceProfile | None:
    return SOURCE_PROFILES.get(source_id)


def resolve_source(location: str) -> tuple[SourceProfile, str] | None:
    """Find the profile and ticker symbol addressed by a URL.

    Returns:
        (profile, symbol), or None when no profile recognizes the URL.
    """
    for profile in SOURCE_PROFILES.values():
        symbol = profile.symbol_from(location)
        if symbol:
            return profile, symbol
    return None


def require_source(location: str) -> tuple[SourceProfile, str]:
    """Like resolve_source, but raise UnknownSourceError on no match."""
    resolved = resolve_source(location)
    if resolved is None:
        log.debug("No source profile for location", location=location)
        raise UnknownSourceError(location)
    return resolved
