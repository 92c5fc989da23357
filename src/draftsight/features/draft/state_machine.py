"""
Draft state machine.

Folds game-log markers (authoritative) and confirmed visual detections
(fallback) into one draft session:

    INACTIVE -> STARTED -> HERO_SELECTION -> CARD_SELECTION -> COMPLETED

Transitions only move forward. A new draft start resets the session (back to
INACTIVE, then STARTED) and entering an arena match after COMPLETED resets it
to INACTIVE. Notifications are published after the session lock is released
so subscribers may query the machine.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Set, Tuple
import logging
import threading
import time

from ...core import events as ev
from .log_events import (
    ArenaGameStart,
    CardChosen,
    CardShown,
    DeckCard,
    DraftBegin,
    DraftComplete,
    HeroMarker,
    LogEvent,
)

logger = logging.getLogger(__name__)

GROUP_SIZE = 3


class DraftState(str, Enum):
    INACTIVE = "INACTIVE"
    STARTED = "STARTED"
    HERO_SELECTION = "HERO_SELECTION"
    CARD_SELECTION = "CARD_SELECTION"
    COMPLETED = "COMPLETED"


@dataclass(frozen=True)
class DraftPick:
    pick_number: int
    options: Tuple[str, ...]
    selected: str


@dataclass
class DraftSession:
    state: DraftState = DraftState.INACTIVE
    picks: List[DraftPick] = field(default_factory=list)
    selected_hero: Optional[str] = None
    hero_options: Tuple[str, ...] = ()
    pending_options: Tuple[str, ...] = ()
    seen_deck_ids: Set[str] = field(default_factory=set)
    group: List[str] = field(default_factory=list)
    last_shown_at: Optional[float] = None
    pick_counter: int = 0


class DraftStateMachine:
    def __init__(
        self,
        bus: Optional[ev.EventBus] = None,
        group_window_s: float = 2.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.bus = bus or ev.EventBus()
        self.group_window_s = group_window_s
        self._clock = clock
        self._lock = threading.Lock()
        self._session = DraftSession()
        self._outbox: List[object] = []

    # ------------------------------------------------------------------ queries
    @property
    def state(self) -> DraftState:
        return self._session.state

    @property
    def picks(self) -> List[DraftPick]:
        with self._lock:
            return list(self._session.picks)

    @property
    def selected_hero(self) -> Optional[str]:
        return self._session.selected_hero

    @property
    def hero_options(self) -> Tuple[str, ...]:
        return self._session.hero_options

    @property
    def pending_options(self) -> Tuple[str, ...]:
        return self._session.pending_options

    @property
    def pick_number(self) -> int:
        return self._session.pick_counter

    # ------------------------------------------------------------------ inputs
    def handle(self, event: LogEvent) -> None:
        with self._lock:
            if isinstance(event, DraftBegin):
                self._on_begin()
            elif isinstance(event, DraftComplete):
                self._on_complete()
            elif isinstance(event, ArenaGameStart):
                if self._session.state is DraftState.COMPLETED:
                    self._reset()
            elif isinstance(event, CardShown):
                self._on_shown(event.card_id)
            elif isinstance(event, CardChosen):
                self._on_chosen(event.card_id)
            elif isinstance(event, HeroMarker):
                self._on_hero_marker(event.card_id)
            elif isinstance(event, DeckCard):
                self._on_deck_card(event.card_id)
            else:
                logger.debug("draft: ignoring %r", event)
        self._flush()

    def on_visual_detection(self, card_ids) -> None:
        """Fallback input: a confirmed visual card set for the current slot."""
        ids = tuple(c for c in card_ids if c)
        if not ids:
            return
        with self._lock:
            s = self._session
            if s.state is DraftState.STARTED:
                s.hero_options = ids
                self._emit(ev.HeroOptions(ids))
                self._transition(DraftState.HERO_SELECTION)
            elif s.state is DraftState.HERO_SELECTION and not s.hero_options:
                s.hero_options = ids
                self._emit(ev.HeroOptions(ids))
            elif s.state is DraftState.CARD_SELECTION and not s.pending_options:
                s.pending_options = ids
                self._emit(ev.CardOptions(s.pick_counter, ids))
        self._flush()

    def reset(self) -> None:
        with self._lock:
            self._reset()
        self._flush()

    # ------------------------------------------------------------------ rules
    def _on_begin(self) -> None:
        if self._session.state is not DraftState.INACTIVE:
            self._reset()
        self._transition(DraftState.STARTED)
        self._emit(ev.DraftStarted())

    def _on_complete(self) -> None:
        s = self._session
        if s.state in (DraftState.INACTIVE, DraftState.COMPLETED):
            return
        self._transition(DraftState.COMPLETED)
        self._emit(ev.DraftCompleted(tuple(s.picks)))
        logger.info("draft: completed with %d picks (hero=%s)", len(s.picks), s.selected_hero)

    def _on_shown(self, card_id: str) -> None:
        s = self._session
        if s.state not in (DraftState.STARTED, DraftState.HERO_SELECTION, DraftState.CARD_SELECTION):
            return
        now = self._clock()
        stale = s.last_shown_at is None or now - s.last_shown_at > self.group_window_s
        if stale or len(s.group) >= GROUP_SIZE:
            s.group = []
        s.group.append(card_id)
        s.last_shown_at = now
        if len(s.group) < GROUP_SIZE:
            return
        options = tuple(s.group)
        if s.state is DraftState.STARTED:
            s.hero_options = options
            self._emit(ev.HeroOptions(options))
            self._transition(DraftState.HERO_SELECTION)
        else:
            s.pending_options = options
            self._emit(ev.CardOptions(s.pick_counter, options))

    def _on_chosen(self, card_id: str) -> None:
        s = self._session
        if s.state is DraftState.HERO_SELECTION:
            s.selected_hero = card_id
            s.group = []
            self._emit(ev.HeroSelected(card_id))
            self._transition(DraftState.CARD_SELECTION)
        elif s.state is DraftState.CARD_SELECTION:
            pick = DraftPick(s.pick_counter, s.pending_options, card_id)
            s.picks.append(pick)
            s.pick_counter += 1
            s.pending_options = ()
            s.group = []
            logger.info("draft: pick %d -> %s (options=%s)", pick.pick_number, card_id, list(pick.options))
            self._emit(ev.CardPicked(pick.pick_number, card_id, pick.options))
        else:
            logger.debug("draft: chosen %s ignored in %s", card_id, s.state.value)

    def _on_hero_marker(self, card_id: str) -> None:
        s = self._session
        if s.state is DraftState.COMPLETED:
            return
        if s.selected_hero != card_id:
            s.selected_hero = card_id
            self._emit(ev.HeroSelected(card_id))
        if s.state in (DraftState.INACTIVE, DraftState.STARTED, DraftState.HERO_SELECTION):
            self._transition(DraftState.CARD_SELECTION)

    def _on_deck_card(self, card_id: str) -> None:
        s = self._session
        if card_id in s.seen_deck_ids:
            return
        s.seen_deck_ids.add(card_id)
        self._emit(ev.DeckCardDetected(card_id))
        if s.state in (DraftState.INACTIVE, DraftState.STARTED):
            self._transition(DraftState.CARD_SELECTION)

    # ------------------------------------------------------------------ plumbing
    def _transition(self, new: DraftState) -> None:
        old = self._session.state
        if old is new:
            return
        self._session.state = new
        logger.info("draft: %s -> %s", old.value, new.value)
        self._emit(ev.StateChanged(old.value, new.value))

    def _reset(self) -> None:
        old = self._session.state
        self._session = DraftSession()
        if old is not DraftState.INACTIVE:
            logger.info("draft: session reset (%s -> INACTIVE)", old.value)
            self._emit(ev.StateChanged(old.value, DraftState.INACTIVE.value))

    def _emit(self, event: object) -> None:
        self._outbox.append(event)

    def _flush(self) -> None:
        with self._lock:
            pending, self._outbox = self._outbox, []
        for event in pending:
            self.bus.publish(event)


__all__ = ["DraftPick", "DraftSession", "DraftState", "DraftStateMachine"]
