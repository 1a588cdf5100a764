"""
Feed parsing.

This package turns raw Atom, RSS and JSON Feed documents into
normalized FeedEntry values.
"""

from .json_feed import parse_json_feed
from .parser import detect_dialect, link_path, normalize_link, parse_feed

__all__ = [
    "detect_dialect",
    "link_path",
    "normalize_link",
    "parse_feed",
    "parse_json_feed",
]
