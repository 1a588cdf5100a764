"""
Feed parsing for Atom, RSS and JSON Feed documents.

The dialect is detected from the document itself: JSON documents go to the
JSON Feed parser, everything else is handed to feedparser and split on the
version it reports. Entries missing a link or title are skipped; only a
document that cannot be parsed at all raises FeedParseError.
"""

from __future__ import annotations

import io
import logging
import time
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

import feedparser

from ..core.types import FeedEntry, ParsedFeed, new_id, utc_now
from ..errors import FeedParseError
from .json_feed import parse_json_feed

logger = logging.getLogger(__name__)


def detect_dialect(raw: bytes) -> str:
    """Return "json" for JSON documents and "xml" for everything else."""
    head = raw.lstrip()[:1]
    if head == b"\xef":
        head = raw.lstrip()[3:4]
    return "json" if head == b"{" else "xml"


def parse_feed(raw: bytes) -> ParsedFeed:
    """Parse raw feed bytes into a ParsedFeed.

    Args:
        raw: The fetched feed document

    Returns:
        ParsedFeed with dialect "atom", "rss" or "json"

    Raises:
        FeedParseError: If the document is empty or not a recognizable feed
    """
    if not raw or not raw.strip():
        raise FeedParseError("Empty feed document")
    if detect_dialect(raw) == "json":
        return parse_json_feed(raw)

    parsed = feedparser.parse(io.BytesIO(raw))
    version = parsed.get("version") or ""
    if not version:
        reason = parsed.get("bozo_exception") or "unrecognized feed format"
        raise FeedParseError(f"Invalid feed document: {reason}")

    if version.startswith("atom"):
        entries = [e for e in (_atom_entry(item) for item in parsed.entries) if e]
        return ParsedFeed(dialect="atom", entries=entries)
    entries = [e for e in (_rss_entry(item) for item in parsed.entries) if e]
    return ParsedFeed(dialect="rss", entries=entries)


def _atom_entry(item: Any) -> FeedEntry | None:
    href = item.get("link") or _first_link(item)
    link = normalize_link(href) if href else None
    title = (item.get("title") or "").strip()
    if not link or not title:
        logger.debug("Skipping Atom entry %s: missing link or title", item.get("id", "unknown"))
        return None

    content = ""
    for block in item.get("content") or []:
        content = block.get("value") or block.get("src") or ""
        if content:
            break

    return FeedEntry(
        id=new_id(),
        created=_struct_to_datetime(item.get("published_parsed")),
        title=title,
        content=content,
        link=link,
    )


def _rss_entry(item: Any) -> FeedEntry | None:
    link = (item.get("link") or "").strip()
    title = (item.get("title") or "").strip()
    if not link or not title:
        logger.debug("Skipping RSS item %s: missing link or title", item.get("id", "unknown"))
        return None

    content = ""
    for block in item.get("content") or []:
        content = block.get("value") or ""
        if content:
            break
    if not content:
        content = item.get("summary") or ""

    return FeedEntry(
        id=new_id(),
        created=_struct_to_datetime(item.get("published_parsed")),
        title=title,
        content=content,
        link=link,
    )


def _first_link(item: Any) -> str | None:
    for link in item.get("links") or []:
        if link.get("href"):
            return link["href"]
    return None


def normalize_link(href: str) -> str | None:
    """Reduce a link to ``scheme://host/path``, dropping query and fragment.

    Relative links are reduced to their path.

    Examples:
        >>> normalize_link("https://example.com/post/1?utm=x#top")
        'https://example.com/post/1'
        >>> normalize_link("/2024-01-01/")
        '/2024-01-01/'
    """
    try:
        parts = urlsplit(href.strip())
    except ValueError:
        return None
    if parts.scheme and parts.netloc:
        return f"{parts.scheme}://{parts.netloc}{parts.path}"
    return parts.path or None


def link_path(link: str) -> str:
    """Return only the path of a link, keeping relative links unchanged."""
    try:
        parts = urlsplit(link)
    except ValueError:
        return link
    return parts.path or "/"


def _struct_to_datetime(value: time.struct_time | None) -> datetime:
    if not value:
        return utc_now()
    try:
        return datetime(*value[:6], tzinfo=timezone.utc)
    except (TypeError, ValueError):
        return utc_now()
