"""
Orchestration layer for planet-sync.

The Engine owns one Database, the two pipelines and the per-source locks.
It is the only place where follow-up work returned by the pipelines is
scheduled, and it carries the authoring operations (create, follow, post,
mark, remove) used by the CLI.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
import logging
from typing import Iterable

import httpx

from .capabilities import AvatarUpdater, ContentPublisher, NameResolver, Renderer
from .config import AppConfig
from .core.links import resolve_link, source_root_link
from .core.types import (
    DEFAULT_GATEWAY,
    Article,
    FollowUp,
    IngestResult,
    PendingIngest,
    PendingPublish,
    PendingRefresh,
    PublicGateway,
    PublishResult,
    Source,
    SourceKind,
)
from .errors import SourceNotFoundError
from .events import DatabaseStatusChanged, EventBus
from .fetch.fetcher import build_client
from .ingest import IngestionPipeline
from .ipfs import EnsResolver, KuboClient
from .logging_utils import log_event
from .publish import PublicationPipeline
from .storage.articles import ArticleStore
from .storage.database import Database
from .storage.sources import SourceRegistry
from .workspace import DirectoryAvatarUpdater, PlainDirectoryRenderer, PlanetWorkspace

logger = logging.getLogger(__name__)


class Engine:
    """Coordinates ingestion, publication and authoring for all planets."""

    def __init__(
        self,
        db: Database,
        client: httpx.AsyncClient,
        workspace: PlanetWorkspace,
        renderer: Renderer,
        publisher: ContentPublisher,
        name_resolver: NameResolver | None = None,
        avatar_updater: AvatarUpdater | None = None,
        cfg: AppConfig | None = None,
        events: EventBus | None = None,
    ):
        self.cfg = cfg or AppConfig()
        self.db = db
        self.events = events or EventBus()
        self.registry = SourceRegistry(db)
        self.store = ArticleStore(db)
        self.workspace = workspace
        self._client = client
        self.ingestion = IngestionPipeline(
            self.registry,
            self.store,
            client,
            ipfs_cfg=self.cfg.ipfs,
            name_resolver=name_resolver,
            avatar_updater=avatar_updater,
            events=self.events,
        )
        self.publication = PublicationPipeline(
            self.registry,
            self.store,
            workspace,
            renderer,
            publisher,
            client,
            ipfs_cfg=self.cfg.ipfs,
            events=self.events,
        )
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._limit = max(1, self.cfg.schedule.max_concurrent_sources)

    @classmethod
    def from_config(cls, cfg: AppConfig, transport: httpx.AsyncBaseTransport | None = None) -> "Engine":
        """Build an engine with the default Kubo, ENS and filesystem adapters."""
        db = Database.from_path(cfg.storage.resolved_database_path())
        client = build_client(cfg.fetch, transport=transport)
        workspace = PlanetWorkspace(cfg.storage.resolved_planets_dir())
        kubo = KuboClient(cfg.ipfs, client)
        return cls(
            db,
            client,
            workspace,
            renderer=PlainDirectoryRenderer(),
            publisher=kubo,
            name_resolver=EnsResolver(kubo, cfg.names, client),
            avatar_updater=DirectoryAvatarUpdater(workspace),
            cfg=cfg,
        )

    async def __aenter__(self) -> "Engine":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Let gateway propagation finish, then close the client and database."""
        await self.publication.drain(timeout=self.cfg.ipfs.probe_timeout_seconds)
        await self._client.aclose()
        self.db.close()

    def lock_for(self, source_id: str) -> asyncio.Lock:
        return self._locks[source_id]

    # periodic checks

    async def ingest(self, source_id: str, feed_url: str) -> IngestResult:
        async with self.lock_for(source_id):
            return await self.ingestion.ingest(source_id, feed_url)

    async def check_source(self, source_id: str) -> IngestResult:
        """Run one check cycle for a followed planet.

        HTTP feeds are ingested directly. ENS planets are resolved first and
        their feed ingestion, when the content is reachable, is run as a
        follow-up outside the planet's lock. Self-owned and IPNS planets are
        not polled.
        """
        source = self.registry.get(source_id)
        if source is None:
            return IngestResult(source_id=source_id, status="skipped", error="unknown planet")

        if source.kind is SourceKind.DNS:
            async with self.lock_for(source.id):
                return await self.ingestion.check_http_source(source)

        if source.kind is SourceKind.ENS:
            async with self.lock_for(source.id):
                follow_ups = await self.ingestion.check_name_resolved_source(source)
            if not follow_ups:
                return IngestResult(source_id=source.id, status="skipped", error="content not ready")
            results = await self.run_follow_ups(follow_ups)
            ingested = [r for r in results if isinstance(r, IngestResult)]
            return ingested[0] if ingested else IngestResult(source_id=source.id, status="skipped")

        return IngestResult(source_id=source.id, status="skipped")

    async def sync_all(self) -> list[IngestResult]:
        """Check every followed planet concurrently."""
        semaphore = asyncio.Semaphore(self._limit)

        async def _check(source: Source) -> IngestResult:
            async with semaphore:
                return await self.check_source(source.id)

        sources = [s for s in self.registry.following() if s.kind is not SourceKind.IPNS]
        results = await asyncio.gather(*(_check(s) for s in sources))
        created = sum(r.created for r in results)
        failed = [r for r in results if not r.ok and r.status != "skipped"]
        log_event(
            logger,
            f"Sync complete: {len(sources)} planets, {created} new articles, {len(failed)} failed",
            event="sync_complete",
            planets=len(sources),
            new_articles=created,
            failed=len(failed),
        )
        return list(results)

    async def watch(self, interval: float | None = None, cycles: int | None = None) -> None:
        """Run ``sync_all`` repeatedly; forever unless ``cycles`` is given."""
        interval = self.cfg.schedule.interval_seconds if interval is None else interval
        done = 0
        while cycles is None or done < cycles:
            await self.sync_all()
            done += 1
            if cycles is not None and done >= cycles:
                break
            await asyncio.sleep(interval)

    async def run_follow_ups(
        self, follow_ups: Iterable[FollowUp]
    ) -> list[IngestResult | PublishResult | None]:
        """Run follow-up work in order and return each outcome."""
        results: list[IngestResult | PublishResult | None] = []
        for follow_up in follow_ups:
            if isinstance(follow_up, PendingIngest):
                results.append(await self.ingest(follow_up.source_id, follow_up.feed_url))
            elif isinstance(follow_up, PendingPublish):
                results.append(await self.publish(follow_up.source_id, follow_up.article_id))
            elif isinstance(follow_up, PendingRefresh):
                results.append(await self.refresh_article(follow_up.article_id))
        return results

    # publication

    async def publish(self, source_id: str, article_id: str | None = None) -> PublishResult:
        async with self.lock_for(source_id):
            return await self.publication.publish(source_id, article_id)

    async def publish_all(self) -> list[PublishResult]:
        return [await self.publish(source.id) for source in self.registry.owned()]

    async def refresh_article(self, article_id: str) -> PublishResult | None:
        article = self.store.get(article_id)
        if article is None:
            return None
        async with self.lock_for(article.source_id):
            return await self.publication.refresh_article(article_id)

    # planets

    def create_planet(
        self,
        name: str,
        about: str,
        key_name: str,
        key_id: str,
        ipns: str | None = None,
        planet_id: str | None = None,
    ) -> Source:
        source = self.registry.create_planet(name, about, key_name, key_id, ipns=ipns, planet_id=planet_id)
        self.workspace.ensure(source.id)
        self.report_database_status()
        return source

    def follow(self, endpoint: str) -> Source:
        """Follow an ENS name (``*.eth``) or an HTTP feed URL.

        Following an endpoint twice returns the existing planet.

        Raises:
            InvalidSourceError: If an HTTP endpoint has no feed path
        """
        endpoint = endpoint.strip()
        if endpoint.lower().endswith(".eth"):
            ens = endpoint.lower()
            existing = next((s for s in self.registry.following() if s.ens == ens), None)
            source = existing or self.registry.create_ens(ens)
        else:
            existing = next((s for s in self.registry.following() if s.feed_address == endpoint), None)
            source = existing or self.registry.create_dns(endpoint)
        if existing is None:
            self.report_database_status()
        return source

    def follow_ipns(self, ipns: str) -> Source:
        existing = next((s for s in self.registry.following() if s.ipns == ipns.strip()), None)
        if existing is not None:
            return existing
        source = self.registry.create_ipns(ipns)
        self.report_database_status()
        return source

    def update_source_metadata(self, source_id: str, name: str = "", about: str = "") -> PendingPublish | None:
        source = self.registry.update_metadata(source_id, name=name, about=about)
        if source.is_self_owned:
            return PendingPublish(source_id=source.id)
        return None

    def remove_source(self, source_id: str) -> int:
        """Delete a planet, its articles and its directory."""
        removed = self.registry.remove(source_id)
        self.workspace.destroy(source_id)
        self._locks.pop(source_id, None)
        self.report_database_status()
        return removed

    def fix_source(self, source_id: str) -> int:
        source = self.registry.require(source_id)
        fixed = self.store.fix_links(source)
        if fixed:
            logger.info("Fixed %d article links for %s", fixed, source.name)
        return fixed

    # articles

    def create_article(
        self,
        source_id: str,
        title: str,
        content: str,
        link: str = "",
        article_id: str | None = None,
    ) -> tuple[Article | None, list[FollowUp]]:
        """Create an article; self-owned planets get a publish follow-up.

        Returns:
            The new article (None if ``article_id`` already existed) and the
            follow-ups to run
        """
        source = self.registry.require(source_id)
        article = self.store.create_for_source(source, title, content, link=link, article_id=article_id)
        if article is None:
            return None, []
        self.report_database_status()
        if source.is_self_owned:
            return article, [PendingPublish(source_id=source.id, article_id=article.id)]
        return article, []

    def update_article(self, article_id: str, title: str, content: str) -> PendingRefresh | None:
        article = self.store.update_content(article_id, title, content)
        if article is None:
            return None
        return PendingRefresh(article_id=article.id)

    def mark_read(self, article_id: str, read: bool = True) -> bool:
        return self.store.set_read(article_id, read)

    def mark_starred(self, article_id: str, starred: bool = True) -> bool:
        return self.store.set_starred(article_id, starred)

    def remove_article(self, article_id: str) -> bool:
        article = self.store.get(article_id)
        if article is None:
            return False
        self.store.delete([article.id])
        self.workspace.destroy_article(article.source_id, article.id)
        self.report_database_status()
        return True

    def article_status(self, source_id: str) -> tuple[int, int]:
        """Return (unread, total) for one planet."""
        return self.store.status(source_id)

    def link(self, article_id: str, gateway: PublicGateway = DEFAULT_GATEWAY) -> str:
        article = self.store.get(article_id)
        if article is None:
            source = self.registry.get(article_id)
            if source is None:
                raise SourceNotFoundError(article_id)
            return source_root_link(source, gateway)
        return resolve_link(article, self.registry.require(article.source_id), gateway)

    # database

    def report_database_status(self) -> tuple[int, int]:
        """Emit the current counts; orphan articles are purged when no planets remain."""
        sources, articles = self.db.counts()
        if sources == 0 and articles > 0:
            purged = self.registry.purge_orphan_articles()
            logger.info("Removed %d articles without a planet", purged)
            sources, articles = self.db.counts()
        logger.debug("Database status: %d planets, %d articles", sources, articles)
        self.events.emit(DatabaseStatusChanged(sources=sources, articles=articles))
        return sources, articles

    def reset_database(self) -> None:
        for source in self.registry.all():
            self.workspace.destroy(source.id)
        self.registry.reset()
        self._locks.clear()
        log_event(logger, "Database reset", level=logging.WARNING, event="database_reset")
        self.report_database_status()
