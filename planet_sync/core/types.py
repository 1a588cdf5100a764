"""
Core data types for planet-sync.

This module defines the structures shared by every pipeline stage:
- Source: a followed or owned planet, one of four address schemes
- Article: the canonical article model stored per source
- FeedEntry / ParsedFeed: transient output of the feed parser
- IngestResult / PublishResult: outcomes of the two pipelines
- PendingIngest / PendingPublish / PendingRefresh: follow-up work that a
  pipeline hands back to the orchestration layer instead of spawning it
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import uuid

from ..errors import InvalidSourceError


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class SourceKind(str, Enum):
    """Address scheme of a source.

    PLANET is the self-owned IPNS feed, ENS and DNS are followed feeds and
    IPNS is the reserved followed-IPNS variant (stored, never polled).
    """

    PLANET = "planet"
    ENS = "ens"
    IPNS = "ipns"
    DNS = "dns"


class PublicGateway(str, Enum):
    """Public IPFS gateways used for links and propagation probes.

    The first member is the default gateway.
    """

    DWEB = "dweb.link"
    CLOUDFLARE = "www.cloudflare-ipfs.com"
    IPFS = "ipfs.io"


DEFAULT_GATEWAY = next(iter(PublicGateway))

# Scheme-specific fields each kind may carry, and the subset it must carry.
SCHEME_FIELDS: dict[SourceKind, frozenset[str]] = {
    SourceKind.PLANET: frozenset({"key_name", "key_id", "ipns"}),
    SourceKind.ENS: frozenset({"ens", "ipfs"}),
    SourceKind.IPNS: frozenset({"ipns"}),
    SourceKind.DNS: frozenset({"dns", "feed_address", "feed_sha256"}),
}
REQUIRED_FIELDS: dict[SourceKind, frozenset[str]] = {
    SourceKind.PLANET: frozenset({"key_name", "key_id"}),
    SourceKind.ENS: frozenset({"ens"}),
    SourceKind.IPNS: frozenset({"ipns"}),
    SourceKind.DNS: frozenset({"dns", "feed_address"}),
}
ALL_SCHEME_FIELDS = frozenset().union(*SCHEME_FIELDS.values())


@dataclass
class Source:
    """A planet: the unit that owns a collection of articles.

    Only the scheme fields listed in ``SCHEME_FIELDS`` for ``kind`` may be
    set; construction fails with InvalidSourceError otherwise. Because only
    PLANET may carry (and must carry) ``key_name``/``key_id``, ``kind`` and
    the presence of signing-key fields always agree.

    Attributes:
        id: Opaque unique id (UUID string)
        kind: Address scheme
        name: Display name
        about: Description
        created: Creation timestamp (UTC)
        key_name: Signing key reference (PLANET)
        key_id: Signing key identifier (PLANET)
        ipns: Mutable pointer value (PLANET, IPNS)
        ens: Name being resolved (ENS)
        ipfs: Last resolved content address (ENS)
        dns: Feed hostname (DNS)
        feed_address: Feed endpoint URL (DNS)
        feed_sha256: Checksum of the last ingested feed document (DNS)
    """

    id: str
    kind: SourceKind
    name: str
    about: str = ""
    created: datetime = field(default_factory=utc_now)
    key_name: str | None = None
    key_id: str | None = None
    ipns: str | None = None
    ens: str | None = None
    ipfs: str | None = None
    dns: str | None = None
    feed_address: str | None = None
    feed_sha256: str | None = None

    def __post_init__(self) -> None:
        self.kind = SourceKind(self.kind)
        allowed = SCHEME_FIELDS[self.kind]
        illegal = sorted(
            name for name in ALL_SCHEME_FIELDS - allowed if getattr(self, name) is not None
        )
        if illegal:
            raise InvalidSourceError(
                f"{self.kind.value} source cannot carry: {', '.join(illegal)}"
            )
        missing = sorted(name for name in REQUIRED_FIELDS[self.kind] if not getattr(self, name))
        if missing:
            raise InvalidSourceError(
                f"{self.kind.value} source requires: {', '.join(missing)}"
            )

    @property
    def is_self_owned(self) -> bool:
        return self.kind is SourceKind.PLANET

    @property
    def is_content_addressed(self) -> bool:
        """True when article links are paths under an IPFS content root."""
        return self.kind in (SourceKind.PLANET, SourceKind.ENS, SourceKind.IPNS)


@dataclass
class Article:
    """Canonical article model.

    For self-owned sources ``link`` is always ``/{id}/``; for followed
    sources it is the feed-provided URL or path and, with ``source_id``,
    forms the dedup key.
    """

    id: str
    source_id: str
    title: str
    link: str
    content: str | None = None
    summary: str | None = None
    created: datetime = field(default_factory=utc_now)
    read: bool = False
    starred: datetime | None = None
    has_audio: bool = False
    has_video: bool = False


@dataclass
class FeedEntry:
    """One normalized entry produced by the feed parser. Never persisted."""

    id: str
    created: datetime
    title: str
    content: str
    link: str


@dataclass
class ParsedFeed:
    """Result of parsing a feed document.

    ``title``, ``description`` and ``icon`` are only populated for JSON Feed
    documents, where they act as a metadata side-channel for the source.
    """

    dialect: str
    entries: list[FeedEntry] = field(default_factory=list)
    title: str | None = None
    description: str | None = None
    icon: str | None = None


@dataclass
class IngestResult:
    """Outcome of one ingestion attempt for a source.

    Attributes:
        source_id: The source that was ingested
        status: "ok", "unchanged", "fetch_failed", "parse_failed",
            "store_failed" or "skipped"
        created: Number of new articles persisted
        known: Number of entries already present (dedup hits)
        error: Error message when status is a failure
    """

    source_id: str
    status: str = "ok"
    created: int = 0
    known: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status in ("ok", "unchanged")


@dataclass
class PublishResult:
    """Outcome of one publication cycle for a self-owned source.

    Attributes:
        source_id: The published source
        status: "ok", "skipped", "render_failed", "publish_failed" or
            "pointer_failed"
        cid: New root content address, when step 2 succeeded
        ipns: Pointer value after step 3
        error: Error message when a stage failed
        propagation: Background task running the gateway probes; awaiting it
            is optional
    """

    source_id: str
    status: str = "ok"
    cid: str | None = None
    ipns: str | None = None
    error: str | None = None
    propagation: asyncio.Task | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass(frozen=True)
class PendingIngest:
    """Ingest ``feed_url`` into ``source_id``."""

    source_id: str
    feed_url: str


@dataclass(frozen=True)
class PendingPublish:
    """Publish ``source_id``, probing with ``article_id`` when given."""

    source_id: str
    article_id: str | None = None


@dataclass(frozen=True)
class PendingRefresh:
    """Re-render one article, announce it, then publish its source."""

    article_id: str


FollowUp = PendingIngest | PendingPublish | PendingRefresh
