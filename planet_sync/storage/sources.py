"""
Source registry: durable planet records.

The registry exclusively owns planet rows. Removing a planet deletes its
articles in the same transaction; article rows never reference planets
through a database-level foreign key.
"""

from __future__ import annotations

import logging
import re
from urllib.parse import urlsplit

from sqlalchemy import delete, select

from ..core.types import Source, SourceKind, new_id, utc_now
from ..errors import InvalidSourceError, SourceNotFoundError
from .database import Database, as_utc
from .models import ArticleRow, PlanetRow

logger = logging.getLogger(__name__)

_SPACE_RE = re.compile(r"\s+")


def sanitize_name(name: str) -> str:
    """Collapse whitespace runs and trim a display name."""
    return _SPACE_RE.sub(" ", name).strip()


class SourceRegistry:
    """Creates, reads, updates and removes planets."""

    def __init__(self, db: Database):
        self._db = db

    # creation

    def add(self, source: Source) -> Source:
        with self._db.transaction() as session:
            session.add(_to_row(source))
        logger.info("Planet created: %s (%s)", source.name, source.kind.value)
        return source

    def create_planet(
        self,
        name: str,
        about: str,
        key_name: str,
        key_id: str,
        ipns: str | None = None,
        planet_id: str | None = None,
    ) -> Source:
        return self.add(
            Source(
                id=planet_id or new_id(),
                kind=SourceKind.PLANET,
                name=sanitize_name(name),
                about=about,
                key_name=key_name,
                key_id=key_id,
                ipns=ipns,
            )
        )

    def create_ens(self, ens: str) -> Source:
        ens = ens.strip().lower()
        return self.add(Source(id=new_id(), kind=SourceKind.ENS, name=ens, ens=ens))

    def create_ipns(self, ipns: str) -> Source:
        ipns = ipns.strip()
        return self.add(Source(id=new_id(), kind=SourceKind.IPNS, name=ipns, ipns=ipns))

    def create_dns(self, endpoint: str) -> Source:
        """Follow a plain HTTP feed.

        Raises:
            InvalidSourceError: If the endpoint is not an http(s) URL with a
                host and a feed path
        """
        parts = urlsplit(endpoint.strip())
        if parts.scheme not in ("http", "https") or not parts.hostname:
            raise InvalidSourceError(f"Not an HTTP feed URL: {endpoint}")
        if len(parts.path) <= 1:
            raise InvalidSourceError(f"Feed URL has no path: {endpoint}")
        return self.add(
            Source(
                id=new_id(),
                kind=SourceKind.DNS,
                name=parts.hostname,
                dns=parts.hostname,
                feed_address=endpoint.strip(),
            )
        )

    # lookup

    def get(self, source_id: str) -> Source | None:
        with self._db.transaction() as session:
            row = session.get(PlanetRow, source_id)
            return _to_source(row) if row else None

    def require(self, source_id: str) -> Source:
        source = self.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)
        return source

    def exists(self, source_id: str) -> bool:
        return self.get(source_id) is not None

    def all(self) -> list[Source]:
        with self._db.transaction() as session:
            rows = session.scalars(select(PlanetRow).order_by(PlanetRow.created)).all()
            return [_to_source(row) for row in rows]

    def owned(self) -> list[Source]:
        return [s for s in self.all() if s.is_self_owned]

    def following(self) -> list[Source]:
        return [s for s in self.all() if not s.is_self_owned]

    def local_ipns(self) -> set[str]:
        return {s.ipns or "" for s in self.owned()}

    def following_ipns(self) -> set[str]:
        return {s.ipns or "" for s in self.following()}

    # mutation

    def update_metadata(
        self,
        source_id: str,
        name: str | None = None,
        about: str | None = None,
        ipns: str | None = None,
    ) -> Source:
        """Update display metadata; empty strings never overwrite."""
        with self._db.transaction() as session:
            row = _require_row(session, source_id)
            if name:
                row.name = sanitize_name(name)
            if about:
                row.about = about
            if ipns is not None:
                if row.kind not in (SourceKind.PLANET.value, SourceKind.IPNS.value):
                    raise InvalidSourceError(f"{row.kind} source cannot carry: ipns")
                row.ipns = ipns
            return _to_source(row)

    def update_pointer(self, source_id: str, ipns: str) -> Source:
        return self.update_metadata(source_id, ipns=ipns)

    def update_content_address(self, source_id: str, ipfs: str) -> Source:
        with self._db.transaction() as session:
            row = _require_row(session, source_id)
            if row.kind != SourceKind.ENS.value:
                raise InvalidSourceError(f"{row.kind} source cannot carry: ipfs")
            row.ipfs = ipfs
            source = _to_source(row)
        logger.debug("ENS planet content address updated: %s %s", source.name, ipfs)
        return source

    def update_feed_checksum(self, source_id: str, feed_sha256: str) -> Source:
        with self._db.transaction() as session:
            row = _require_row(session, source_id)
            if row.kind != SourceKind.DNS.value:
                raise InvalidSourceError(f"{row.kind} source cannot carry: feed_sha256")
            row.feed_sha256 = feed_sha256
            return _to_source(row)

    def remove(self, source_id: str) -> int:
        """Delete a planet and all of its articles.

        Returns:
            Number of articles removed with the planet
        """
        with self._db.transaction() as session:
            row = _require_row(session, source_id)
            result = session.execute(delete(ArticleRow).where(ArticleRow.source_id == source_id))
            session.delete(row)
            removed = result.rowcount or 0
        logger.info("Planet removed: %s (%d articles)", source_id, removed)
        return removed

    def purge_orphan_articles(self) -> int:
        """Delete articles whose planet no longer exists."""
        with self._db.transaction() as session:
            known = select(PlanetRow.id)
            result = session.execute(delete(ArticleRow).where(ArticleRow.source_id.not_in(known)))
            return result.rowcount or 0

    def reset(self) -> None:
        with self._db.transaction() as session:
            session.execute(delete(ArticleRow))
            session.execute(delete(PlanetRow))


def _require_row(session, source_id: str) -> PlanetRow:
    row = session.get(PlanetRow, source_id)
    if row is None:
        raise SourceNotFoundError(source_id)
    return row


def _to_row(source: Source) -> PlanetRow:
    return PlanetRow(
        id=source.id,
        kind=source.kind.value,
        name=source.name,
        about=source.about,
        created=as_utc(source.created) or utc_now(),
        key_name=source.key_name,
        key_id=source.key_id,
        ipns=source.ipns,
        ens=source.ens,
        ipfs=source.ipfs,
        dns=source.dns,
        feed_address=source.feed_address,
        feed_sha256=source.feed_sha256,
    )


def _to_source(row: PlanetRow) -> Source:
    return Source(
        id=row.id,
        kind=SourceKind(row.kind),
        name=row.name,
        about=row.about,
        created=as_utc(row.created),
        key_name=row.key_name,
        key_id=row.key_id,
        ipns=row.ipns,
        ens=row.ens,
        ipfs=row.ipfs,
        dns=row.dns,
        feed_address=row.feed_address,
        feed_sha256=row.feed_sha256,
    )
