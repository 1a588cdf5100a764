"""
Persistence for planets and articles.

Both stores share one Database; each of their operations is a single
SQLAlchemy transaction.
"""

from .articles import ArticleStore, owned_link
from .database import Database
from .sources import SourceRegistry, sanitize_name

__all__ = [
    "ArticleStore",
    "Database",
    "SourceRegistry",
    "owned_link",
    "sanitize_name",
]
