"""
Database handle shared by the source registry and the article store.

One Database instance is created by the caller and passed to every store,
so tests can run against isolated databases. Each store operation runs in
exactly one transaction: it is committed as a whole or rolled back.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timezone
import logging
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from ..errors import PersistenceError
from .models import ArticleRow, Base, PlanetRow

logger = logging.getLogger(__name__)


class Database:
    """SQLite database holding the planets and articles tables.

    Attributes:
        url: SQLAlchemy database URL
        engine: The SQLAlchemy engine
    """

    def __init__(self, url: str):
        self.url = url
        if url in ("sqlite://", "sqlite:///:memory:"):
            # A single shared connection, otherwise each session gets its own empty database.
            self.engine = create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(url, connect_args={"check_same_thread": False})
        self._sessions = sessionmaker(self.engine, expire_on_commit=False)
        Base.metadata.create_all(self.engine)

    @classmethod
    def from_path(cls, path: Path) -> "Database":
        path.parent.mkdir(parents=True, exist_ok=True)
        return cls(f"sqlite:///{path}")

    @classmethod
    def in_memory(cls) -> "Database":
        return cls("sqlite://")

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """Yield a session whose changes are committed atomically on exit.

        Raises:
            PersistenceError: If any database statement or the commit fails;
                the transaction is rolled back first.
        """
        session = self._sessions()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            logger.error("Transaction rolled back: %s", exc)
            raise PersistenceError(str(exc)) from exc
        except BaseException:
            session.rollback()
            raise
        finally:
            session.close()

    def counts(self) -> tuple[int, int]:
        """Return (planets, articles) row counts."""
        with self.transaction() as session:
            planets = session.scalar(select(func.count()).select_from(PlanetRow)) or 0
            articles = session.scalar(select(func.count()).select_from(ArticleRow)) or 0
        return planets, articles

    def close(self) -> None:
        self.engine.dispose()


def as_utc(value: datetime | None) -> datetime | None:
    """SQLite drops tzinfo; stored values are always UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
