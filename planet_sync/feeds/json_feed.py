"""JSON Feed parser.

This module parses JSON Feed documents (https://jsonfeed.org) into a
ParsedFeed. The format uses:
- Top-level metadata (version, title, description, icon)
- An items array with id, url, title, content_html, date_published
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as date_parser

from ..core.types import FeedEntry, ParsedFeed, new_id, utc_now
from ..errors import FeedParseError

logger = logging.getLogger(__name__)


def parse_json_feed(raw: bytes) -> ParsedFeed:
    """Parse a JSON Feed document.

    The JSON Feed structure:
        {
            "version": "https://jsonfeed.org/version/1.1",
            "title": "Planet Name",
            "description": "About this planet",
            "icon": "https://example.com/avatar.png",
            "items": [
                {
                    "id": "2f1c...",
                    "url": "https://example.com/2024-01-01/",
                    "title": "Article Title",
                    "content_html": "<p>Body</p>",
                    "date_published": "2024-01-01T10:00:00Z"
                }
            ]
        }

    Args:
        raw: The feed document bytes

    Returns:
        A ParsedFeed whose title/description/icon carry the feed-level
        metadata. Items missing ``url`` or ``title`` are skipped.

    Raises:
        FeedParseError: If the document is not JSON or has no items array
    """
    try:
        data = json.loads(raw)
    except (UnicodeDecodeError, ValueError) as exc:
        raise FeedParseError(f"Invalid JSON Feed: {exc}") from exc

    if not isinstance(data, dict) or not isinstance(data.get("items"), list):
        raise FeedParseError("Invalid JSON Feed: missing 'items' array")

    entries: list[FeedEntry] = []
    for item in data["items"]:
        if not isinstance(item, dict):
            continue
        url = _text(item.get("url"))
        title = _text(item.get("title"))
        if not url or not title:
            logger.debug("Skipping JSON Feed item %s: missing url or title", item.get("id", "unknown"))
            continue
        entries.append(
            FeedEntry(
                id=new_id(),
                created=_parse_date(item.get("date_published")),
                title=title,
                content=_text(item.get("content_html")) or _text(item.get("content_text")) or "",
                link=url,
            )
        )

    return ParsedFeed(
        dialect="json",
        entries=entries,
        title=_text(data.get("title")),
        description=_text(data.get("description")),
        icon=_text(data.get("icon")),
    )


def _text(value: Any) -> str | None:
    if not isinstance(value, str):
        return None
    value = value.strip()
    return value or None


def _parse_date(value: Any) -> datetime:
    """Parse an RFC 3339 date, falling back to the current time.

    Examples:
        >>> _parse_date("2024-01-01T10:00:00Z")
        datetime.datetime(2024, 1, 1, 10, 0, tzinfo=tzutc())
    """
    if not isinstance(value, str) or not value.strip():
        return utc_now()
    try:
        parsed = date_parser.isoparse(value.strip())
    except (ValueError, OverflowError):
        return utc_now()
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
