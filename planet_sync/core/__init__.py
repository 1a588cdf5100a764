"""
Core domain models and link resolution.

This package contains data types and pure functions that are
independent of storage, networking and any pipeline stage.
"""

from .links import resolve_link, source_root_link
from .types import (
    DEFAULT_GATEWAY,
    Article,
    FeedEntry,
    FollowUp,
    IngestResult,
    ParsedFeed,
    PendingIngest,
    PendingPublish,
    PendingRefresh,
    PublicGateway,
    PublishResult,
    Source,
    SourceKind,
    new_id,
    utc_now,
)

__all__ = [
    "Article",
    "DEFAULT_GATEWAY",
    "FeedEntry",
    "FollowUp",
    "IngestResult",
    "ParsedFeed",
    "PendingIngest",
    "PendingPublish",
    "PendingRefresh",
    "PublicGateway",
    "PublishResult",
    "Source",
    "SourceKind",
    "new_id",
    "resolve_link",
    "source_root_link",
    "utc_now",
]
