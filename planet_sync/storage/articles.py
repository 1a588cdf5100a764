"""
Article store: durable articles grouped by planet.

Batch operations run in a single transaction, so either every article of a
batch is stored or none is. Lookups inside a batch see the batch's own
earlier writes (the session autoflushes before each query).
"""

from __future__ import annotations

import logging
from typing import Iterable

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from ..core.types import Article, FeedEntry, Source, SourceKind, new_id, utc_now
from .database import Database, as_utc
from .models import ArticleRow, PlanetRow

logger = logging.getLogger(__name__)


def owned_link(article_id: str) -> str:
    """Canonical link of an article on a self-owned planet."""
    return f"/{article_id}/"


class ArticleStore:
    """Existence checks, lookups, batch upserts and deletes for articles."""

    def __init__(self, db: Database):
        self._db = db

    # lookup

    def exists(self, article_id: str) -> bool:
        return self.get(article_id) is not None

    def exists_link(self, link: str, source_id: str) -> bool:
        return self.get_by_link(link, source_id) is not None

    def get(self, article_id: str) -> Article | None:
        with self._db.transaction() as session:
            row = session.get(ArticleRow, article_id)
            return _to_article(row) if row else None

    def get_by_link(self, link: str, source_id: str) -> Article | None:
        with self._db.transaction() as session:
            row = _row_by_link(session, link, source_id)
            return _to_article(row) if row else None

    def list_for_source(self, source_id: str) -> list[Article]:
        """Return a planet's articles, newest first."""
        with self._db.transaction() as session:
            rows = session.scalars(
                select(ArticleRow)
                .where(ArticleRow.source_id == source_id)
                .order_by(ArticleRow.created.desc())
            ).all()
            return [_to_article(row) for row in rows]

    def newest(self, source_id: str) -> Article | None:
        articles = self.list_for_source(source_id)
        return articles[0] if articles else None

    def status(self, source_id: str) -> tuple[int, int]:
        """Return (unread, total) for a planet."""
        with self._db.transaction() as session:
            total = session.scalar(
                select(func.count()).select_from(ArticleRow).where(ArticleRow.source_id == source_id)
            ) or 0
            unread = session.scalar(
                select(func.count())
                .select_from(ArticleRow)
                .where(ArticleRow.source_id == source_id, ArticleRow.read.is_(False))
            ) or 0
        return unread, total

    def count_for_source(self, source_id: str) -> int:
        return self.status(source_id)[1]

    # authoring

    def create_for_source(
        self,
        source: Source,
        title: str,
        content: str,
        link: str = "",
        article_id: str | None = None,
    ) -> Article | None:
        """Create one article, applying the ownership rules of its planet.

        Self-owned planets keep the caller's id, get the ``/{id}/`` link and
        are created read. Followed planets get a fresh id and keep ``link``.

        Returns:
            The new article, or None if ``article_id`` already exists
        """
        article_id = article_id or new_id()
        with self._db.transaction() as session:
            if session.get(ArticleRow, article_id) is not None:
                logger.debug("Article %s already exists, not created", article_id)
                return None
            if source.is_self_owned:
                article = Article(
                    id=article_id,
                    source_id=source.id,
                    title=title,
                    content=content,
                    link=owned_link(article_id),
                    read=True,
                )
            else:
                article = Article(
                    id=new_id(),
                    source_id=source.id,
                    title=title,
                    content=content,
                    link=link,
                )
            session.add(_to_row(article))
        return article

    def update_content(self, article_id: str, title: str, content: str) -> Article | None:
        with self._db.transaction() as session:
            row = session.get(ArticleRow, article_id)
            if row is None:
                return None
            row.title = title
            row.content = content
            if not row.link:
                row.link = owned_link(article_id)
            return _to_article(row)

    # ingestion batches

    def insert_new(
        self,
        source_id: str,
        entries: Iterable[FeedEntry],
        feed_sha256: str | None = None,
    ) -> tuple[int, int]:
        """Create articles for entries whose (link, source) is not yet known.

        Known articles are left untouched so read/star state, content and
        timestamps survive re-polling. A DNS planet's ``feed_sha256`` is
        recorded in the same transaction, so a failed batch never marks the
        document as seen.

        Returns:
            (created, known) counts
        """
        created = known = 0
        with self._db.transaction() as session:
            for entry in entries:
                if _row_by_link(session, entry.link, source_id) is not None:
                    known += 1
                    continue
                session.add(
                    _to_row(
                        Article(
                            id=new_id(),
                            source_id=source_id,
                            title=entry.title,
                            content=entry.content,
                            link=entry.link,
                            created=entry.created,
                        )
                    )
                )
                created += 1
            if feed_sha256:
                planet = session.get(PlanetRow, source_id)
                if planet is not None and planet.kind == SourceKind.DNS.value:
                    planet.feed_sha256 = feed_sha256
        return created, known

    def update_entries(self, entries: Iterable[FeedEntry]) -> int:
        """Overwrite title and link of articles matched by entry id.

        Returns:
            Number of articles updated
        """
        updated = 0
        with self._db.transaction() as session:
            for entry in entries:
                row = session.get(ArticleRow, entry.id)
                if row is None:
                    continue
                row.title = entry.title
                row.link = entry.link or owned_link(row.id)
                updated += 1
        return updated

    def import_entries(self, source_id: str, entries: Iterable[FeedEntry]) -> int:
        """Create articles keeping the ids supplied by the entries.

        Returns:
            Number of articles imported; ids that already exist are skipped
        """
        imported = 0
        with self._db.transaction() as session:
            for entry in entries:
                if session.get(ArticleRow, entry.id) is not None:
                    continue
                session.add(
                    _to_row(
                        Article(
                            id=entry.id,
                            source_id=source_id,
                            title=entry.title,
                            content=entry.content,
                            link=entry.link,
                            created=entry.created,
                        )
                    )
                )
                imported += 1
        return imported

    def fix_links(self, source: Source) -> int:
        """Restore ``/{id}/`` links on a self-owned planet's articles."""
        if not source.is_self_owned:
            return 0
        fixed = 0
        with self._db.transaction() as session:
            rows = session.scalars(select(ArticleRow).where(ArticleRow.source_id == source.id)).all()
            for row in rows:
                if row.link != owned_link(row.id):
                    row.link = owned_link(row.id)
                    fixed += 1
        return fixed

    # flags

    def set_read(self, article_id: str, read: bool = True) -> bool:
        with self._db.transaction() as session:
            row = session.get(ArticleRow, article_id)
            if row is None:
                return False
            row.read = read
        return True

    def set_starred(self, article_id: str, starred: bool = True) -> bool:
        with self._db.transaction() as session:
            row = session.get(ArticleRow, article_id)
            if row is None:
                return False
            row.starred = utc_now() if starred else None
        return True

    # deletion

    def delete(self, article_ids: Iterable[str]) -> int:
        ids = list(article_ids)
        if not ids:
            return 0
        with self._db.transaction() as session:
            result = session.execute(delete(ArticleRow).where(ArticleRow.id.in_(ids)))
            return result.rowcount or 0

    def delete_for_source(self, source_id: str) -> int:
        with self._db.transaction() as session:
            result = session.execute(delete(ArticleRow).where(ArticleRow.source_id == source_id))
            return result.rowcount or 0


def _row_by_link(session: Session, link: str, source_id: str) -> ArticleRow | None:
    return session.scalars(
        select(ArticleRow).where(ArticleRow.link == link, ArticleRow.source_id == source_id)
    ).first()


def _to_row(article: Article) -> ArticleRow:
    return ArticleRow(
        id=article.id,
        source_id=article.source_id,
        title=article.title,
        link=article.link,
        content=article.content,
        summary=article.summary,
        created=as_utc(article.created) or utc_now(),
        read=article.read,
        starred=as_utc(article.starred),
        has_audio=article.has_audio,
        has_video=article.has_video,
    )


def _to_article(row: ArticleRow) -> Article:
    return Article(
        id=row.id,
        source_id=row.source_id,
        title=row.title,
        link=row.link,
        content=row.content,
        summary=row.summary,
        created=as_utc(row.created),
        read=row.read,
        starred=as_utc(row.starred),
        has_audio=row.has_audio,
        has_video=row.has_video,
    )
