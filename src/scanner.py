"""Document scanning implementing the Strategy Pattern.

The scanner walks a document snapshot and emits raw label/value
Occurrences. Each strategy knows one way financial sites lay out data:

- PairedElementStrategy: definition lists (``dt`` followed by ``dd``)
- TableStrategy: data tables, plus two-cell label/value rows
- InlineProseStrategy: "Label: value" runs inside blocks of text

Strategies are independent. A strategy that finds none of its anchors
raises SourceUnavailable and the scanner moves on to the next one. No
deduplication happens here; the pipeline picks the first usable
occurrence per field later.
"""

import re
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from pydantic import BaseModel, Field

from config.settings import GlobalConfig, get_config
from src.canonicalizer import LabelCanonicalizer
from src.document import (
    DocumentNode,
    find_all,
    flow_text,
    has_ancestor,
    iter_descendants,
    nearest_heading,
    structural_path,
)
from src.exceptions import SourceUnavailable
from src.logger import get_logger
from src.models import Occurrence, ScanStrategy, Table
from src.sanitizer import sanitize
from src.tables import TableExtractor, TableLayout, layout_of

log = get_logger(__name__)

BLOCK_TAGS = frozenset(
    {"p", "div", "li", "section", "article", "header", "footer", "blockquote", "main", "aside"}
)
_CONTAINER_TAGS = BLOCK_TAGS | {"table", "dl", "ul", "ol"}
_TEXT_ROOT_TAGS = BLOCK_TAGS | {"body"}

_SEPARATOR = re.compile(r":(?!\d)|\s[-–—]\s")
_LABEL_CHARS = frozenset(
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789 &%/().'#-"
)
_TOKEN = re.compile(r"\S+")
_LETTER = re.compile(r"[A-Za-z]")
_DIGIT = re.compile(r"\d")

DIGIT_HEAVY_RATIO = 0.4

# Words that narrow a known label into a different field ("Sub Industry").
LABEL_QUALIFIERS = frozenset(
    {
        "sub",
        "avg",
        "average",
        "median",
        "prev",
        "previous",
        "prior",
        "max",
        "min",
        "total",
        "net",
        "adj",
        "adjusted",
        "fwd",
        "forward",
        "trailing",
        "low",
        "high",
    }
)


def is_digit_heavy(text: str) -> bool:
    compact = text.replace(" ", "")
    if not compact:
        return False
    return len(_DIGIT.findall(compact)) / len(compact) >= DIGIT_HEAVY_RATIO


@dataclass(frozen=True)
class ProsePattern:
    """Site-specific sentence pattern yielding one labelled value.

    The pattern must define a named group ``value``.
    """

    label: str
    pattern: re.Pattern[str]


class ScanResult(BaseModel):
    """Occurrences and tables collected from one snapshot."""

    occurrences: list[Occurrence] = Field(default_factory=list)
    tables: list[Table] = Field(default_factory=list)

    def extend(self, other: "ScanResult") -> None:
        self.occurrences.extend(other.occurrences)
        self.tables.extend(other.tables)


@dataclass
class ScanContext:
    """Shared collaborators handed to every strategy.

    Attributes:
        config: Label length limits.
        canonicalizer: Supplies known labels and compound splits.
        table_extractor: Converts table nodes into Table models.
        prose_patterns: Site sentence patterns for the inline strategy.
        heading_lookup: Provenance: nearest heading of a node.
        path_of: Provenance: structural path of a node.
    """

    config: GlobalConfig
    canonicalizer: LabelCanonicalizer
    table_extractor: TableExtractor
    prose_patterns: Sequence[ProsePattern] = field(default_factory=tuple)
    heading_lookup: Callable[[DocumentNode], str | None] = nearest_heading
    path_of: Callable[[DocumentNode], str] = structural_path

    def is_likely_label(self, text: str) -> bool:
        """Contains letters, is short enough, and is not mostly digits."""
        return (
            bool(_LETTER.search(text))
            and len(text) <= self.config.label_max_length
            and not is_digit_heavy(text)
        )

    def occurrence(
        self,
        label: str,
        raw_value: str,
        node: DocumentNode,
        strategy: ScanStrategy,
    ) -> Occurrence | None:
        """Build an Occurrence, or None when label or value is blank."""
        clean_label = sanitize(label).rstrip(":").strip()
        value = sanitize(raw_value)
        if not clean_label or not value:
            return None
        return Occurrence(
            label=clean_label,
            value=value,
            raw_value=raw_value,
            strategy=strategy,
            structural_path=self.path_of(node),
            nearest_heading=self.heading_lookup(node),
        )


class BaseScanStrategy(ABC):
    """Contract for one way of finding label/value pairs in a snapshot."""

    @property
    @abstractmethod
    def name(self) -> ScanStrategy:
        """Strategy identifier recorded on every occurrence it emits."""
        ...

    @abstractmethod
    def scan(self, root: DocumentNode, context: ScanContext) -> ScanResult:
        """Scan the snapshot.

        Raises:
            SourceUnavailable: When the strategy's anchors are absent.
        """
        ...


class PairedElementStrategy(BaseScanStrategy):
    """One occurrence per ``dt`` immediately followed by a ``dd``."""

    @property
    def name(self) -> ScanStrategy:
        return ScanStrategy.PAIRED_ELEMENT

    def scan(self, root: DocumentNode, context: ScanContext) -> ScanResult:
        definitions = find_all(root, "dd")
        if not definitions:
            raise SourceUnavailable(self.name.value, "no definition elements")

        result = ScanResult()
        for definition in definitions:
            term = definition.previous_sibling
            if term is None or term.tag != "dt":
                continue
            found = context.occurrence(term.text, definition.text, definition, self.name)
            if found is not None:
                result.occurrences.append(found)
        return result


class TableStrategy(BaseScanStrategy):
    """Delegates tables to the TableExtractor and harvests label/value rows."""

    @property
    def name(self) -> ScanStrategy:
        return ScanStrategy.TABLE

    def scan(self, root: DocumentNode, context: ScanContext) -> ScanResult:
        tables = find_all(root, "table")
        if not tables:
            raise SourceUnavailable(self.name.value, "no table elements")

        result = ScanResult()
        seen_keys: dict[str, int] = {}
        for table_node in tables:
            layout = layout_of(table_node)

            table = context.table_extractor.extract(table_node, layout)
            if table is not None:
                count = seen_keys.get(table.key, 0) + 1
                seen_keys[table.key] = count
                if count > 1:
                    table = table.model_copy(update={"key": f"{table.key}-{count}"})
                result.tables.append(table)

            result.occurrences.extend(self._label_rows(layout, context))
        return result

    def _label_rows(self, layout: TableLayout, context: ScanContext) -> list[Occurrence]:
        rows = [cells for cells in layout.rows if cells]
        key_value_shaped = bool(rows) and all(
            len(cells) == 2 and context.is_likely_label(sanitize(cells[0].text))
            for cells in rows
        )

        found: list[Occurrence] = []
        for index, cells in enumerate(layout.rows):
            if len(cells) != 2:
                continue
            if index == layout.header_index and not key_value_shaped:
                continue
            label_cell, value_cell = cells
            if not context.is_likely_label(sanitize(label_cell.text)):
                continue
            occurrence = context.occurrence(label_cell.text, value_cell.text, value_cell, self.name)
            if occurrence is not None:
                found.append(occurrence)
        return found


class InlineProseStrategy(BaseScanStrategy):
    """Splits "Label: value Label: value" text blocks into occurrences."""

    @property
    def name(self) -> ScanStrategy:
        return ScanStrategy.INLINE_PROSE

    def scan(self, root: DocumentNode, context: ScanContext) -> ScanResult:
        blocks = self._text_blocks(root)
        if not blocks:
            raise SourceUnavailable(self.name.value, "no text blocks")

        result = ScanResult()
        for block in blocks:
            text = sanitize(flow_text(block, _CONTAINER_TAGS))
            if not text:
                continue
            for label, value in self.split_pairs(text, context):
                result.occurrences.extend(self._emit(label, value, block, context))
            for prose in context.prose_patterns:
                for match in prose.pattern.finditer(text):
                    occurrence = context.occurrence(
                        prose.label, match.group("value"), block, self.name
                    )
                    if occurrence is not None:
                        result.occurrences.append(occurrence)
        return result

    @staticmethod
    def _text_blocks(root: DocumentNode) -> list[DocumentNode]:
        """Blocks whose own text runs are scanned, outside tables and lists.

        Each block contributes only the text not owned by a nested block, so
        no run is scanned twice.
        """
        return [
            node
            for node in (root, *iter_descendants(root))
            if node.tag in _TEXT_ROOT_TAGS and not has_ancestor(node, "table", "dl")
        ]

    def _emit(
        self, label: str, value: str, block: DocumentNode, context: ScanContext
    ) -> list[Occurrence]:
        parts = context.canonicalizer.split_compound(label)
        if parts is not None and value.count("/") == 1:
            left_value, right_value = value.split("/")
            pairs = [(parts[0], left_value), (parts[1], right_value)]
        else:
            pairs = [(label, value)]

        emitted = []
        for part_label, part_value in pairs:
            occurrence = context.occurrence(part_label, part_value, block, self.name)
            if occurrence is not None:
                emitted.append(occurrence)
        return emitted

    def split_pairs(self, text: str, context: ScanContext) -> list[tuple[str, str]]:
        """Slice one text block into (label, value) pairs.

        Example:
            "Sector: Technology Industry: Software" ->
            [("Sector", "Technology"), ("Industry", "Software")]
        """
        entries: list[tuple[int, str, int]] = []
        floor = 0
        for separator in _SEPARATOR.finditer(text):
            if separator.start() < floor:
                continue
            found = self._label_before(text, separator.start(), floor, context)
            if found is None:
                continue
            start, label = found
            entries.append((start, label, separator.end()))
            floor = separator.end()

        pairs = []
        for index, (_, label, value_start) in enumerate(entries):
            value_end = entries[index + 1][0] if index + 1 < len(entries) else len(text)
            pairs.append((label, text[value_start:value_end].strip()))
        return pairs

    @staticmethod
    def _label_before(
        text: str, end: int, floor: int, context: ScanContext
    ) -> tuple[int, str] | None:
        start = end
        while start > floor and text[start - 1] in _LABEL_CHARS:
            start -= 1

        # Leading tokens with digits are the tail of the previous value.
        tokens = list(_TOKEN.finditer(text, start, end))
        while tokens and (_DIGIT.search(tokens[0].group()) or not _LETTER.search(tokens[0].group())):
            tokens.pop(0)
        if not tokens:
            return None
        start = tokens[0].start()
        label = text[start:end].rstrip()
        label_end = start + len(label)

        lowered = label.lower()
        for known in context.canonicalizer.known_labels():
            if lowered == known:
                break
            if not lowered.endswith(" " + known):
                continue
            known_start = label_end - len(known)
            # Two-letter abbreviations (OS, EV) only end a label when capitalized.
            if len(known) < 3 and not text[known_start:label_end].isupper():
                continue
            head = text[start:known_start].rstrip()
            words = head.split()
            qualifier = words[-1] if words else ""
            if qualifier.lower().rstrip(".") in LABEL_QUALIFIERS:
                known_start = start + head.rindex(qualifier)
            start = known_start
            label = text[start:label_end]
            break

        limit = context.config.inline_label_max_length
        if len(label) > limit:
            tail = label[-limit:]
            if not label[-limit - 1].isspace() and " " in tail:
                tail = tail.split(" ", 1)[1]
            start = label_end - len(tail)
            label = tail

        label = label.strip()
        if not label or not _LETTER.search(label) or is_digit_heavy(label):
            return None
        return start, label


class DocumentScanner:
    """Runs every strategy over a snapshot and concatenates their output.

    Example:
        scanner = DocumentScanner()
        result = scanner.scan(parse_html(markup))
        print(len(result.occurrences), len(result.tables))
    """

    def __init__(
        self,
        config: GlobalConfig | None = None,
        canonicalizer: LabelCanonicalizer | None = None,
        table_extractor: TableExtractor | None = None,
        prose_patterns: Sequence[ProsePattern] = (),
        heading_lookup: Callable[[DocumentNode], str | None] = nearest_heading,
        path_of: Callable[[DocumentNode], str] = structural_path,
        strategies: Sequence[BaseScanStrategy] | None = None,
    ) -> None:
        self.config = config or get_config()
        self.context = ScanContext(
            config=self.config,
            canonicalizer=canonicalizer or LabelCanonicalizer(),
            table_extractor=table_extractor
            or TableExtractor(self.config, heading_lookup=heading_lookup),
            prose_patterns=tuple(prose_patterns),
            heading_lookup=heading_lookup,
            path_of=path_of,
        )
        self.strategies: list[BaseScanStrategy] = list(
            strategies
            or (PairedElementStrategy(), TableStrategy(), InlineProseStrategy())
        )

    def scan(self, root: DocumentNode) -> ScanResult:
        """Collect occurrences and tables from all strategies, in strategy order."""
        result = ScanResult()
        for strategy in self.strategies:
            try:
                found = strategy.scan(root, self.context)
            except SourceUnavailable as exc:
                log.debug("Strategy yielded nothing", strategy=exc.strategy, reason=exc.message)
                continue
            log.debug(
                "Strategy complete",
                strategy=strategy.name.value,
                occurrences=len(found.occurrences),
                tables=len(found.tables),
            )
            result.extend(found)
        return result
