"""
Ingestion pipeline for followed planets.

For one planet and one feed URL:
1. Fetch the feed document (only HTTP 200 proceeds)
2. Skip unchanged HTTP feeds by sha256 checksum
3. Parse Atom / RSS / JSON Feed
4. Apply the JSON Feed metadata side-channel (name, about, icon)
5. Create articles whose (link, planet) is new, in one transaction

The pipeline never retries; a failed attempt leaves the store untouched
and the next periodic cycle tries again. ENS planets are checked through
``check_name_resolved_source``, which returns the feed ingestion as a
PendingIngest follow-up instead of starting it itself.
"""

from __future__ import annotations

from dataclasses import replace
import logging
from typing import Iterable

import httpx

from .capabilities import AvatarUpdater, NameResolver
from .config import IpfsConfig
from .core.types import FeedEntry, FollowUp, IngestResult, ParsedFeed, PendingIngest, Source, SourceKind
from .errors import FeedParseError, PersistenceError, SourceNotFoundError
from .events import AvatarUpdated, EventBus
from .feeds.parser import link_path, parse_feed
from .fetch.fetcher import categorize_error, fetch_url
from .logging_utils import log_event
from .storage.articles import ArticleStore
from .storage.sources import SourceRegistry

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Fetches, parses and stores feeds of followed planets."""

    def __init__(
        self,
        registry: SourceRegistry,
        store: ArticleStore,
        client: httpx.AsyncClient,
        ipfs_cfg: IpfsConfig | None = None,
        name_resolver: NameResolver | None = None,
        avatar_updater: AvatarUpdater | None = None,
        events: EventBus | None = None,
    ):
        self._registry = registry
        self._store = store
        self._client = client
        self._ipfs_cfg = ipfs_cfg or IpfsConfig()
        self._name_resolver = name_resolver
        self._avatar_updater = avatar_updater
        self._events = events or EventBus()

    async def ingest(self, source_id: str, feed_url: str) -> IngestResult:
        """Fetch ``feed_url`` and merge its new entries into the planet.

        Args:
            source_id: The planet the entries belong to
            feed_url: Feed document URL

        Returns:
            IngestResult with status "ok", "unchanged", "fetch_failed",
            "parse_failed", "store_failed" or "skipped"
        """
        source = self._registry.get(source_id)
        if source is None:
            return IngestResult(source_id=source_id, status="skipped", error="unknown planet")

        log_event(logger, "Fetch start", level=logging.DEBUG, event="fetch_start", planet=source_id, url=feed_url)
        fetched = await fetch_url(self._client, feed_url)
        if not fetched.ok:
            log_event(
                logger,
                f"Fetch failed: {feed_url} ({fetched.error})",
                level=logging.WARNING,
                event="fetch_failed",
                planet=source_id,
                url=feed_url,
                status_code=fetched.status_code,
                error_category=categorize_error(fetched.error, fetched.status_code),
            )
            return IngestResult(source_id=source_id, status="fetch_failed", error=fetched.error)

        checksum = fetched.sha256
        if source.kind is SourceKind.DNS and checksum and checksum == source.feed_sha256:
            log_event(logger, "Feed unchanged", level=logging.DEBUG, event="feed_unchanged", planet=source_id)
            return IngestResult(source_id=source_id, status="unchanged")

        try:
            parsed = parse_feed(fetched.content or b"")
        except FeedParseError as exc:
            log_event(
                logger,
                f"Feed parse failed: {feed_url} ({exc})",
                level=logging.WARNING,
                event="parse_failed",
                planet=source_id,
                url=feed_url,
            )
            return IngestResult(source_id=source_id, status="parse_failed", error=str(exc))

        if parsed.dialect == "json":
            await self._apply_feed_metadata(source, parsed)

        entries = [self._localize(source, entry) for entry in parsed.entries]
        try:
            created, known = self._store.insert_new(
                source.id,
                entries,
                feed_sha256=checksum if source.kind is SourceKind.DNS else None,
            )
        except (PersistenceError, SourceNotFoundError) as exc:
            return IngestResult(source_id=source_id, status="store_failed", error=str(exc))

        log_event(
            logger,
            f"{parsed.dialect} feed: {created} new, {known} known ({source.name})",
            event="ingest_complete",
            planet=source_id,
            dialect=parsed.dialect,
            new_articles=created,
            known_articles=known,
        )
        return IngestResult(source_id=source_id, status="ok", created=created, known=known)

    def update(self, entries: Iterable[FeedEntry]) -> int:
        """Refresh title and link of already-known articles, matched by id."""
        return self._store.update_entries(entries)

    def import_entries(self, source_id: str, entries: Iterable[FeedEntry]) -> int:
        """Store entries keeping their ids, e.g. when restoring a backup."""
        return self._store.import_entries(source_id, entries)

    async def check_http_source(self, source: Source) -> IngestResult:
        if source.kind is not SourceKind.DNS or not source.feed_address:
            return IngestResult(source_id=source.id, status="skipped")
        return await self.ingest(source.id, source.feed_address)

    async def check_name_resolved_source(self, source: Source) -> list[FollowUp]:
        """Resolve an ENS planet and probe its content.

        Content resolution and avatar resolution are independent: a failure
        in one is logged and the other still runs.

        Returns:
            A PendingIngest for the planet's feed when its content root is
            reachable through the local gateway, otherwise an empty list
        """
        if source.kind is not SourceKind.ENS or not source.ens:
            return []
        if self._name_resolver is None:
            logger.warning("No name resolver configured, skipping %s", source.ens)
            return []

        follow_ups: list[FollowUp] = []
        try:
            resolved = await self._name_resolver.resolve(source.ens)
            logger.debug("ENS resolve(%s) => %s", source.ens, resolved)
            if resolved and resolved.lower().startswith("ipfs://"):
                cid = resolved[len("ipfs://"):].strip("/")
                self._registry.update_content_address(source.id, cid)
                follow_up = await self._probe_content(source, cid)
                if follow_up is not None:
                    follow_ups.append(follow_up)
        except Exception as exc:  # noqa: BLE001
            log_event(
                logger,
                f"ENS content check failed: {source.ens} ({exc})",
                level=logging.WARNING,
                event="ens_resolve_failed",
                planet=source.id,
            )

        try:
            avatar = await self._name_resolver.avatar(source.ens)
            if avatar:
                await self._update_avatar(source.id, avatar)
        except Exception as exc:  # noqa: BLE001
            log_event(
                logger,
                f"ENS avatar check failed: {source.ens} ({exc})",
                level=logging.WARNING,
                event="ens_avatar_failed",
                planet=source.id,
            )
        return follow_ups

    async def _probe_content(self, source: Source, cid: str) -> PendingIngest | None:
        gateway = self._ipfs_cfg.local_gateway_url.rstrip("/")
        url = f"{gateway}/ipfs/{cid}"
        result = await fetch_url(self._client, url)
        if not result.ok:
            logger.info("IPFS content not ready (%s): %s", result.error, url)
            return None
        logger.debug("IPFS content returns 200 OK: %s", url)
        return PendingIngest(source_id=source.id, feed_url=f"{url}/{self._ipfs_cfg.feed_filename}")

    async def _apply_feed_metadata(self, source: Source, parsed: ParsedFeed) -> None:
        if parsed.title or parsed.description:
            try:
                self._registry.update_metadata(source.id, name=parsed.title, about=parsed.description)
            except (PersistenceError, SourceNotFoundError) as exc:
                logger.warning("Failed to update planet metadata for %s: %s", source.id, exc)

        if not parsed.icon:
            return
        result = await fetch_url(self._client, parsed.icon)
        if not result.ok or not result.content:
            logger.info("Feed icon unavailable (%s): %s", result.error, parsed.icon)
            return
        try:
            await self._update_avatar(source.id, result.content)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Avatar update failed for %s: %s", source.id, exc)

    async def _update_avatar(self, source_id: str, data: bytes) -> None:
        if self._avatar_updater is None:
            return
        await self._avatar_updater.update_avatar(source_id, data)
        self._events.emit(AvatarUpdated(source_id=source_id))

    @staticmethod
    def _localize(source: Source, entry: FeedEntry) -> FeedEntry:
        """Store content-addressed planets' links as paths under their root."""
        if source.is_content_addressed:
            return replace(entry, link=link_path(entry.link))
        return entry
