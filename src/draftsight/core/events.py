"""
Notification channel and typed notification payloads.

Components publish dataclass notifications on an EventBus; subscribers
register per notification type (or for every type with `subscribe_all`).
A failing subscriber is logged and skipped so one consumer cannot stall the
detection loop or the log watcher.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple, Type
import logging
import threading

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CardsDetected:
    card_ids: Tuple[str, ...]
    confidences: Tuple[float, ...] = ()
    source: str = "visual"


@dataclass(frozen=True)
class StateChanged:
    previous: str
    current: str


@dataclass(frozen=True)
class DraftStarted:
    pass


@dataclass(frozen=True)
class DraftCompleted:
    picks: Tuple = ()


@dataclass(frozen=True)
class HeroSelected:
    hero_id: str


@dataclass(frozen=True)
class HeroOptions:
    options: Tuple[str, ...]


@dataclass(frozen=True)
class CardOptions:
    pick_number: int
    options: Tuple[str, ...]


@dataclass(frozen=True)
class CardPicked:
    pick_number: int
    selected: str
    options: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class DeckCardDetected:
    card_id: str


Handler = Callable[[object], None]


class EventBus:
    """Thread-safe publish/subscribe channel keyed by notification type."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: Dict[Optional[Type], List[Handler]] = {}

    def subscribe(self, event_type: Type, handler: Handler) -> Callable[[], None]:
        """Register handler for event_type. Returns an unsubscribe callable."""
        with self._lock:
            self._handlers.setdefault(event_type, []).append(handler)

        def _unsubscribe() -> None:
            with self._lock:
                handlers = self._handlers.get(event_type, [])
                if handler in handlers:
                    handlers.remove(handler)

        return _unsubscribe

    def subscribe_all(self, handler: Handler) -> Callable[[], None]:
        return self.subscribe(None, handler)  # type: ignore[arg-type]

    def publish(self, event: object) -> None:
        with self._lock:
            handlers = list(self._handlers.get(type(event), [])) + list(self._handlers.get(None, []))
        for handler in handlers:
            try:
                handler(event)
            except Exception:
                logger.exception("events: subscriber failed for %s", type(event).__name__)


__all__ = [
    "CardsDetected",
    "StateChanged",
    "DraftStarted",
    "DraftCompleted",
    "HeroSelected",
    "HeroOptions",
    "CardOptions",
    "CardPicked",
    "DeckCardDetected",
    "EventBus",
]
