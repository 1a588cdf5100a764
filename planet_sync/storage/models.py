"""SQLAlchemy table definitions for planets and their articles."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class PlanetRow(Base):
    __tablename__ = "planets"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False, default="")
    about: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # planet
    key_name: Mapped[str | None] = mapped_column(String, nullable=True)
    key_id: Mapped[str | None] = mapped_column(String, nullable=True)
    ipns: Mapped[str | None] = mapped_column(String, nullable=True)
    # ens
    ens: Mapped[str | None] = mapped_column(String, nullable=True)
    ipfs: Mapped[str | None] = mapped_column(String, nullable=True)
    # dns
    dns: Mapped[str | None] = mapped_column(String, nullable=True)
    feed_address: Mapped[str | None] = mapped_column(String, nullable=True)
    feed_sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        return f"<PlanetRow(id={self.id} kind={self.kind} name={self.name!r})>"


class ArticleRow(Base):
    __tablename__ = "articles"
    __table_args__ = (
        UniqueConstraint("source_id", "link", name="uq_articles_source_link"),
        Index("ix_articles_source_created", "source_id", "created"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    # Lookup-only back-reference; removing a planet deletes these explicitly.
    source_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String, nullable=False)
    link: Mapped[str] = mapped_column(String, nullable=False)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    summary: Mapped[str | None] = mapped_column(Text, nullable=True)
    created: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    read: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    starred: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    has_audio: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    has_video: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    def __repr__(self) -> str:
        return f"<ArticleRow(id={self.id} title={self.title[:30]!r})>"
