"""
Publication pipeline for self-owned planets.

Steps run strictly in order, each aborting the rest on failure:
1. Render every article into the planet directory
2. Add the directory to IPFS, obtaining a new root CID
3. Point the planet's IPNS name at the CID and persist it (commit point)
4. Probe the public gateways in the background to warm their caches

Completed steps are never rolled back. Probes are best-effort: each runs
independently and failures are only logged.
"""

from __future__ import annotations

import asyncio
import logging

import httpx

from .capabilities import ContentPublisher, Renderer
from .config import IpfsConfig
from .core.links import resolve_link, source_root_link
from .core.types import Article, PublicGateway, PublishResult, Source
from .errors import PublishStageError
from .events import ArticleRefreshed, EventBus
from .fetch.fetcher import fetch_url
from .logging_utils import log_event
from .storage.articles import ArticleStore
from .storage.sources import SourceRegistry
from .workspace import PlanetWorkspace

logger = logging.getLogger(__name__)


class PublicationPipeline:
    """Renders, publishes and propagates self-owned planets."""

    def __init__(
        self,
        registry: SourceRegistry,
        store: ArticleStore,
        workspace: PlanetWorkspace,
        renderer: Renderer,
        publisher: ContentPublisher,
        client: httpx.AsyncClient,
        ipfs_cfg: IpfsConfig | None = None,
        events: EventBus | None = None,
    ):
        self._registry = registry
        self._store = store
        self._workspace = workspace
        self._renderer = renderer
        self._publisher = publisher
        self._client = client
        self._ipfs_cfg = ipfs_cfg or IpfsConfig()
        self._events = events or EventBus()
        self._background: set[asyncio.Task] = set()

    async def publish(self, source_id: str, article_id: str | None = None) -> PublishResult:
        """Publish a self-owned planet.

        Args:
            source_id: The planet to publish
            article_id: Article to probe the gateways with; defaults to the
                planet's newest article

        Returns:
            PublishResult; ``propagation`` holds the probe task when the
            pointer was updated
        """
        source = self._registry.get(source_id)
        if source is None or not source.is_self_owned:
            return PublishResult(source_id=source_id, status="skipped")

        directory = self._workspace.ensure(source.id)
        articles = self._store.list_for_source(source.id)

        try:
            for article in articles:
                await self._renderer.render(source, article, directory)
        except Exception as exc:  # noqa: BLE001
            return self._failed(source, "render", exc)

        try:
            cid = await self._publisher.publish_directory(directory)
        except Exception as exc:  # noqa: BLE001
            return self._failed(source, "publish", exc)

        try:
            ipns = await self._publisher.update_pointer(source.key_name or "", cid)
            source = self._registry.update_pointer(source.id, ipns)
        except Exception as exc:  # noqa: BLE001
            result = self._failed(source, "pointer", exc)
            result.cid = cid
            return result

        log_event(
            logger,
            f"Planet published: {source.name} -> /ipfs/{cid}",
            event="publish_complete",
            planet=source.id,
            cid=cid,
            ipns=ipns,
        )

        representative = None
        if article_id:
            representative = self._store.get(article_id)
        if representative is None:
            representative = articles[0] if articles else None
        task = self.start_propagation(source, representative)
        return PublishResult(source_id=source.id, status="ok", cid=cid, ipns=ipns, propagation=task)

    async def refresh_article(self, article_id: str) -> PublishResult | None:
        """Re-render one article, announce it, then publish its planet."""
        article = self._store.get(article_id)
        if article is None:
            return None
        source = self._registry.get(article.source_id)
        if source is None or not source.is_self_owned:
            return None

        directory = self._workspace.ensure(source.id)
        try:
            await self._renderer.render(source, article, directory)
        except Exception as exc:  # noqa: BLE001
            return self._failed(source, "render", exc)
        logger.debug("About to refresh article: %s", article.id)
        self._events.emit(ArticleRefreshed(article_id=article.id))
        return await self.publish(source.id, article.id)

    def start_propagation(self, source: Source, article: Article | None) -> asyncio.Task:
        task = asyncio.create_task(self.propagate(source, article))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def propagate(self, source: Source, article: Article | None) -> dict[PublicGateway, bool]:
        """GET the planet's public link on every gateway.

        Returns:
            Mapping of gateway to whether its probe returned 200
        """
        urls = {
            gateway: resolve_link(article, source, gateway) if article else source_root_link(source, gateway)
            for gateway in PublicGateway
        }
        outcomes = await asyncio.gather(*(self._probe(url) for url in urls.values()))
        return dict(zip(urls, outcomes))

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for running propagation tasks; stragglers are cancelled after ``timeout``."""
        pending = set(self._background)
        if not pending:
            return
        _, pending = await asyncio.wait(pending, timeout=timeout)
        for task in pending:
            task.cancel()
        if pending:
            logger.warning("Cancelled %d unfinished gateway propagation tasks", len(pending))

    async def _probe(self, url: str) -> bool:
        try:
            result = await fetch_url(self._client, url, timeout=self._ipfs_cfg.probe_timeout_seconds)
        except Exception as exc:  # noqa: BLE001
            log_event(
                logger,
                f"Gateway probe failed: {url} ({type(exc).__name__}: {exc})",
                level=logging.WARNING,
                event="probe_failed",
                url=url,
            )
            return False
        if result.ok:
            logger.debug("Pinged public gateway: %s", url)
            return True
        log_event(
            logger,
            f"Gateway probe failed: {url} ({result.error})",
            level=logging.WARNING,
            event="probe_failed",
            url=url,
            status_code=result.status_code,
        )
        return False

    def _failed(self, source: Source, stage: str, exc: Exception) -> PublishResult:
        error = PublishStageError(stage, f"{type(exc).__name__}: {exc}")
        log_event(
            logger,
            f"Publish aborted for {source.name}: {error}",
            level=logging.ERROR,
            event="publish_failed",
            planet=source.id,
            stage=stage,
        )
        return PublishResult(source_id=source.id, status=f"{stage}_failed", error=str(error))
