"""Crawl pipeline: snapshot in, PageCrawlRecord out.

Runs one extraction pass over a document snapshot:

1. DocumentScanner emits raw occurrences and tables
2. Each occurrence is canonicalized and classified into a field bucket
3. Each bucket's value is inferred from its first occurrence the
   FieldTransformer accepts
4. Source profile derivations fill in summary fields from tables

The pass is synchronous and depends only on the snapshot, so re-running it
on an unchanged snapshot produces the same record apart from its timestamp.
Malformed fragments never abort a crawl: they degrade to "field absent".
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime

from config.settings import GlobalConfig, get_config
from src.canonicalizer import LabelCanonicalizer
from src.document import DocumentNode, nearest_heading, structural_path
from src.exceptions import ConcurrentScanAborted, ParseSkip
from src.logger import bind_crawl, get_logger
from src.models import (
    Occurrence,
    PageCrawlRecord,
    ScalarValue,
    parse_field_key,
    utc_now,
)
from src.sanitizer import ValueClassifier
from src.scanner import DocumentScanner
from src.sources import SourceProfile
from src.tables import TableExtractor
from src.transformer import FieldTransformer

log = get_logger(__name__)


class ScanGuard:
    """Tracks snapshots with a scan in flight.

    A second scan of the same snapshot object while the first is still
    running raises ConcurrentScanAborted instead of starting.
    """

    def __init__(self) -> None:
        self._in_flight: set[int] = set()

    @contextmanager
    def hold(self, root: DocumentNode) -> Iterator[None]:
        snapshot_id = id(root)
        if snapshot_id in self._in_flight:
            raise ConcurrentScanAborted(snapshot_id)
        self._in_flight.add(snapshot_id)
        try:
            yield
        finally:
            self._in_flight.discard(snapshot_id)

    def is_scanning(self, root: DocumentNode) -> bool:
        return id(root) in self._in_flight


class CrawlPipeline:
    """Turns a snapshot into a PageCrawlRecord.

    Attributes:
        canonicalizer: Label -> FieldKey mapping.
        classifier: Keep/discard decision per value.
        transformer: Value normalization for inference.
        clock: Supplies ``crawled_at`` timestamps.
        guard: In-flight scan tracking.

    Example:
        pipeline = CrawlPipeline()
        record = pipeline.crawl(parse_html(markup), "fintel", url, FINTEL)
    """

    def __init__(
        self,
        config: GlobalConfig | None = None,
        canonicalizer: LabelCanonicalizer | None = None,
        classifier: ValueClassifier | None = None,
        transformer: FieldTransformer | None = None,
        clock: Callable[[], datetime] = utc_now,
        heading_lookup: Callable[[DocumentNode], str | None] = nearest_heading,
        path_of: Callable[[DocumentNode], str] = structural_path,
        guard: ScanGuard | None = None,
    ) -> None:
        """Initialize the pipeline.

        Args:
            config: Optional GlobalConfig. Uses singleton if not provided.
            canonicalizer: Optional LabelCanonicalizer with custom synonyms.
            classifier: Optional ValueClassifier.
            transformer: Optional FieldTransformer.
            clock: Returns the current UTC time.
            heading_lookup: Nearest-heading provenance for occurrences.
            path_of: Structural-path provenance for occurrences.
            guard: Shared ScanGuard when several pipelines see the same snapshots.
        """
        self.config = config or get_config()
        self.canonicalizer = canonicalizer or LabelCanonicalizer()
        self.classifier = classifier or ValueClassifier(self.config)
        self.transformer = transformer or FieldTransformer()
        self.clock = clock
        self.heading_lookup = heading_lookup
        self.path_of = path_of
        self.guard = guard or ScanGuard()
        self._scanners: dict[str | None, DocumentScanner] = {}

    def crawl(
        self,
        root: DocumentNode,
        source_id: str,
        source_location: str,
        profile: SourceProfile | None = None,
    ) -> PageCrawlRecord | None:
        """Run one extraction pass.

        Args:
            root: Snapshot root node.
            source_id: Key the crawl is stored under in the ticker record.
            source_location: URL or locator of the snapshot.
            profile: Site profile adding prose patterns, table names and derivations.

        Returns:
            The crawl record, or None when a scan of this snapshot is already running.
        """
        try:
            with self.guard.hold(root):
                return self._crawl(root, source_id, source_location, profile)
        except ConcurrentScanAborted as exc:
            log.info(
                "Scan already in progress, skipping",
                snapshot_id=exc.snapshot_id,
                source_id=source_id,
            )
            return None

    def _crawl(
        self,
        root: DocumentNode,
        source_id: str,
        source_location: str,
        profile: SourceProfile | None,
    ) -> PageCrawlRecord:
        crawl_log = bind_crawl(log, None, source_id)
        scan = self.scanner_for(profile).scan(root)

        buckets = self.build_buckets(scan.occurrences)
        inferred = self.infer(buckets)
        if profile is not None:
            for name, value in profile.derive(scan.tables).items():
                inferred.setdefault(name, value)

        record = PageCrawlRecord(
            source_id=source_id,
            crawled_at=self.clock(),
            source_location=source_location,
            buckets=buckets,
            inferred_values=inferred,
            tables=scan.tables,
        )
        crawl_log.info(
            "Crawl complete",
            location=source_location,
            occurrences=len(scan.occurrences),
            fields=len(buckets),
            inferred=len(inferred),
            tables=len(scan.tables),
        )
        return record

    def scanner_for(self, profile: SourceProfile | None) -> DocumentScanner:
        """Scanner configured with the profile's table names and prose patterns."""
        cache_key = profile.source_id if profile is not None else None
        scanner = self._scanners.get(cache_key)
        if scanner is None:
            extractor = TableExtractor(
                self.config,
                classifier=self.classifier,
                display_names=profile.table_names if profile is not None else None,
                heading_lookup=self.heading_lookup,
            )
            scanner = DocumentScanner(
                self.config,
                canonicalizer=self.canonicalizer,
                table_extractor=extractor,
                prose_patterns=profile.prose_patterns if profile is not None else (),
                heading_lookup=self.heading_lookup,
                path_of=self.path_of,
            )
            self._scanners[cache_key] = scanner
        return scanner

    def build_buckets(self, occurrences: list[Occurrence]) -> dict[str, list[Occurrence]]:
        """Group kept occurrences by field wire name, in first-seen order."""
        buckets: dict[str, list[Occurrence]] = {}
        for occurrence in occurrences:
            key = self.canonicalizer.canonicalize(occurrence.label)
            if key is None:
                continue
            value = self.classifier.classify(occurrence.value, key)
            if value is None:
                log.trace("Value rejected", key=key.value, value=occurrence.value)
                continue
            if value != occurrence.value:
                occurrence = occurrence.model_copy(update={"value": value})
            buckets.setdefault(key.value, []).append(occurrence)
        return buckets

    def infer(self, buckets: dict[str, list[Occurrence]]) -> dict[str, ScalarValue]:
        """Pick each field's value from its first transformable occurrence."""
        inferred: dict[str, ScalarValue] = {}
        for name, occurrences in buckets.items():
            key = parse_field_key(name)
            for occurrence in occurrences:
                try:
                    inferred[name] = self.transformer.transform(key, occurrence.value)
                except ParseSkip as exc:
                    log.debug("Occurrence skipped", key=exc.key, value=exc.value, reason=exc.reason)
                    continue
                break
        return inferred
