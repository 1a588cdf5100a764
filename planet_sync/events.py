"""
Typed notifications emitted by the engine.

Presentation code subscribes per event type; the engine never depends on a
subscriber being present. A failing subscriber is logged and does not
affect the engine or other subscribers.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
import logging
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AvatarUpdated:
    source_id: str


@dataclass(frozen=True)
class ArticleRefreshed:
    article_id: str


@dataclass(frozen=True)
class DatabaseStatusChanged:
    sources: int
    articles: int


Event = AvatarUpdated | ArticleRefreshed | DatabaseStatusChanged
E = TypeVar("E", AvatarUpdated, ArticleRefreshed, DatabaseStatusChanged)


class EventBus:
    """Observer registry keyed by event type."""

    def __init__(self) -> None:
        self._subscribers: dict[type, list[Callable[[Event], None]]] = defaultdict(list)

    def subscribe(self, event_type: type[E], callback: Callable[[E], None]) -> Callable[[], None]:
        """Register a callback; returns a function that unregisters it."""
        self._subscribers[event_type].append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers[event_type]:
                self._subscribers[event_type].remove(callback)

        return unsubscribe

    def emit(self, event: Event) -> None:
        for callback in list(self._subscribers[type(event)]):
            try:
                callback(event)
            except Exception:  # noqa: BLE001
                logger.exception("Subscriber failed for %s", type(event).__name__)
