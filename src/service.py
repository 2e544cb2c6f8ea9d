"""Crawl service: the async read-modify-write loop around the pipeline.

CrawlService is the surface a host embeds. It crawls a snapshot, merges the
result into the stored record and persists it only when something changed.
Change notifications can be debounced so a page that re-renders repeatedly
is crawled once it settles.

Example:
    service = CrawlService(CrawlPipeline(), MergeEngine(), JsonFileTickerStore())
    result = await service.ingest_url("https://fintel.io/ss/us/ABCD", parse_html(markup))
"""

from src.document import DocumentNode
from src.exceptions import UnknownSourceError
from src.logger import bind_crawl, get_logger
from src.merge import MergeEngine
from src.models import MergeResult
from src.pipeline import CrawlPipeline
from src.scheduler import Debouncer, TTLCache
from src.sources import SourceProfile, get_profile, require_source
from src.store import TickerStore

log = get_logger(__name__)


class CrawlService:
    """Crawl, merge and persist.

    Attributes:
        pipeline: Produces crawl records from snapshots.
        engine: Folds crawls into stored records.
        store: Persistence for records and tracked symbols.
        cache: Optional TTL cache suppressing re-crawls of (symbol, source).
        debouncer: Coalesces ``notify`` calls per location.
    """

    def __init__(
        self,
        pipeline: CrawlPipeline,
        engine: MergeEngine,
        store: TickerStore,
        cache: TTLCache[tuple[str, str], MergeResult] | None = None,
        debouncer: Debouncer[str] | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.engine = engine
        self.store = store
        self.cache = cache
        self.debouncer = debouncer or Debouncer(config=pipeline.config)
        self._latest_snapshots: dict[str, DocumentNode] = {}

    async def ingest(
        self,
        symbol: str,
        source_id: str,
        root: DocumentNode,
        location: str,
        profile: SourceProfile | None = None,
    ) -> MergeResult | None:
        """Crawl one snapshot and persist the merged record if it changed.

        Args:
            symbol: Ticker symbol (case-insensitive).
            source_id: Source the snapshot came from.
            root: Snapshot root node.
            location: URL or locator of the snapshot.
            profile: Source profile; looked up by ``source_id`` when omitted.

        Returns:
            The MergeResult, or None when the crawl was skipped.
        """
        symbol = symbol.strip().upper()
        crawl_log = bind_crawl(log, symbol, source_id)

        cache_key = (symbol, source_id)
        if self.cache is not None and cache_key in self.cache:
            crawl_log.debug("Recently crawled, skipping")
            return None

        crawl = self.pipeline.crawl(root, source_id, location, profile or get_profile(source_id))
        if crawl is None:
            return None

        existing = await self.store.read(symbol)
        result = self.engine.merge(existing, crawl, symbol)

        if result.changed:
            await self.store.write(symbol, result.record)
            if result.created:
                await self.store.track(symbol)
            crawl_log.info(
                "Ticker record saved",
                created=result.created,
                fields=len(result.record.scalar_fields),
            )
        else:
            crawl_log.info("No changes, write skipped")

        if self.cache is not None:
            self.cache.set(cache_key, result)
        return result

    async def ingest_url(self, url: str, root: DocumentNode) -> MergeResult | None:
        """Ingest a snapshot whose source and symbol are read from its URL.

        Raises:
            UnknownSourceError: If no source profile recognizes the URL.
        """
        profile, symbol = require_source(url)
        return await self.ingest(symbol, profile.source_id, root, url, profile)

    def notify(self, url: str, root: DocumentNode) -> None:
        """Record that the page at ``url`` changed; the newest snapshot wins."""
        self._latest_snapshots[url] = root
        self.debouncer.request(url)

    async def flush_due(self) -> list[MergeResult]:
        """Ingest every notified page whose debounce window has elapsed."""
        results: list[MergeResult] = []
        for url in self.debouncer.due():
            root = self._latest_snapshots.pop(url, None)
            if root is None:
                continue
            try:
                result = await self.ingest_url(url, root)
            except UnknownSourceError as exc:
                log.warning("Notification for unknown source dropped", url=url, error=exc.message)
                continue
            if result is not None:
                results.append(result)
        return results
