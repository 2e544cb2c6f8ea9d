"""Table extraction.

Converts a tabular structure into header-keyed rows, keeping only the cells
that carry data. Date/time columns always survive because they anchor each
row in time; label, description and notes columns never do.
"""

import re
from collections.abc import Callable
from dataclasses import dataclass

from config.settings import GlobalConfig, get_config
from src.document import DocumentNode, has_ancestor, nearest_heading
from src.logger import get_logger
from src.models import Table
from src.sanitizer import ValueClassifier, sanitize

log = get_logger(__name__)

_DATE_COLUMN = re.compile(
    r"\b(?:date|time|as of|updated|period|settlement)\b", re.IGNORECASE
)
_DROP_COLUMN = re.compile(
    r"\b(?:label|description|desc|notes?|comments?|remarks?|explanation)\b", re.IGNORECASE
)
_NON_ALNUM = re.compile(r"[^a-z0-9]+")

DEFAULT_TABLE_KEY = "table"


def normalize_table_key(identifier: str) -> str:
    """Stable key form: lower case, runs of non-alphanumerics become '-'."""
    return _NON_ALNUM.sub("-", identifier.lower()).strip("-")


@dataclass
class TableLayout:
    """Cell grid of one table plus where its header row sits.

    Attributes:
        rows: Cell nodes per row, in document order.
        header_index: Index of the header row in ``rows`` (None when empty).
        explicit_header: True when the header row is marked up as such.
    """

    rows: list[list[DocumentNode]]
    header_index: int | None
    explicit_header: bool


def _own_rows(table: DocumentNode) -> list[DocumentNode]:
    # Rows of nested tables belong to those tables.
    rows: list[DocumentNode] = []
    stack = list(reversed(table.children))
    while stack:
        node = stack.pop()
        if node.tag == "tr":
            rows.append(node)
        elif node.tag != "table":
            stack.extend(reversed(node.children))
    return rows


def layout_of(table: DocumentNode) -> TableLayout:
    """Read the cell grid and locate the header row."""
    row_nodes = _own_rows(table)
    rows = [[cell for cell in row.children if cell.tag in ("td", "th")] for row in row_nodes]

    for index, (row, cells) in enumerate(zip(row_nodes, rows)):
        if not cells:
            continue
        if has_ancestor(row, "thead") or all(cell.tag == "th" for cell in cells):
            return TableLayout(rows=rows, header_index=index, explicit_header=True)

    first = next((i for i, cells in enumerate(rows) if cells), None)
    return TableLayout(rows=rows, header_index=first, explicit_header=False)


class TableExtractor:
    """Builds Table models from table nodes.

    Attributes:
        classifier: Supplies the value-like predicate for cells.
        display_names: Known table keys mapped to presentation names.
        heading_lookup: Resolves the heading that names an unlabelled table.
    """

    def __init__(
        self,
        config: GlobalConfig | None = None,
        classifier: ValueClassifier | None = None,
        display_names: dict[str, str] | None = None,
        heading_lookup: Callable[[DocumentNode], str | None] = nearest_heading,
    ) -> None:
        self.config = config or get_config()
        self.classifier = classifier or ValueClassifier(self.config)
        self.display_names = display_names or {}
        self.heading_lookup = heading_lookup

    def extract(self, table: DocumentNode, layout: TableLayout | None = None) -> Table | None:
        """Convert one table node; None when no row keeps a useful cell."""
        layout = layout or layout_of(table)
        if layout.header_index is None:
            return None

        header_cells = layout.rows[layout.header_index]
        headers = [sanitize(cell.text) for cell in header_cells]

        kept_rows: list[dict[str, str]] = []
        for index, cells in enumerate(layout.rows):
            if index == layout.header_index or not cells:
                continue
            row = self._filter_row(headers, cells)
            if row:
                kept_rows.append(row)

        if not kept_rows:
            log.debug("Table dropped - no useful rows", rows=len(layout.rows))
            return None

        ordered_headers: list[str] = []
        for row in kept_rows:
            for name in row:
                if name not in ordered_headers:
                    ordered_headers.append(name)

        identifier, display = self._identity(table)
        return Table(
            key=identifier,
            display_name=display,
            headers=ordered_headers,
            rows=kept_rows,
        )

    def _filter_row(self, headers: list[str], cells: list[DocumentNode]) -> dict[str, str]:
        row: dict[str, str] = {}
        for position, cell in enumerate(cells):
            name = headers[position] if position < len(headers) and headers[position] else ""
            name = name or f"col_{position}"
            value = sanitize(cell.text)
            if not value:
                continue
            if _DATE_COLUMN.search(name):
                row[name] = value
            elif not _DROP_COLUMN.search(name) and self.classifier.is_value_like(value):
                row[name] = value
        return row

    def _identity(self, table: DocumentNode) -> tuple[str, str]:
        explicit = (table.attributes.get("id") or "").strip()
        heading = self.heading_lookup(table)
        source = explicit or heading or ""
        key = normalize_table_key(source) or DEFAULT_TABLE_KEY
        display = self.display_names.get(key) or source or "Table"
        return key, display
