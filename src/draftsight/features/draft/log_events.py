"""
Game log line parsing.

Each tracked log file has its own small set of markers. parse_line() maps a
raw line to a typed LogEvent or None; a line that carries a recognised marker
but no usable card id raises MalformedLogLine so the watcher can count and
skip it.

Arena.log
    Draft.OnBegin / SetDraftMode - DRAFTING     -> DraftBegin
    Draft.OnComplete                            -> DraftComplete
    Draft.OnChosen(): id=<id>                   -> CardChosen
    Hero Card = <id>                            -> HeroMarker
    Draft deck contains card <id>               -> DeckCard
Power.log
    SHOW_ENTITY ... ZONE=HAND ... cardId=<id>   -> CardShown
LoadingScreen.log
    Gameplay.Start ... GameType=GT_ARENA        -> ArenaGameStart
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union
import re

from ...core.errors import MalformedLogLine

ARENA_LOG = "Arena.log"
POWER_LOG = "Power.log"
LOADING_LOG = "LoadingScreen.log"
TRACKED_LOGS = (ARENA_LOG, POWER_LOG, LOADING_LOG)


@dataclass(frozen=True)
class DraftBegin:
    pass


@dataclass(frozen=True)
class DraftComplete:
    pass


@dataclass(frozen=True)
class CardChosen:
    card_id: str


@dataclass(frozen=True)
class HeroMarker:
    card_id: str


@dataclass(frozen=True)
class DeckCard:
    card_id: str


@dataclass(frozen=True)
class CardShown:
    card_id: str


@dataclass(frozen=True)
class ArenaGameStart:
    pass


LogEvent = Union[DraftBegin, DraftComplete, CardChosen, HeroMarker, DeckCard, CardShown, ArenaGameStart]

_CHOSEN = re.compile(r"OnChosen\(\)\s*:?\s*id=(\w+)")
_HERO = re.compile(r"Hero Card\s*=\s*(\w+)")
_DECK = re.compile(r"Draft deck contains card\s+(\w+)")
_CARD_ID = re.compile(r"cardId=(\w+)")


def _payload(pattern: "re.Pattern[str]", line: str, reason: str) -> str:
    m = pattern.search(line)
    if not m:
        raise MalformedLogLine(line, reason)
    return m.group(1)


def parse_arena_line(line: str) -> Optional[LogEvent]:
    if "Draft.OnBegin" in line or "SetDraftMode - DRAFTING" in line:
        return DraftBegin()
    if "Draft.OnComplete" in line:
        return DraftComplete()
    if "OnChosen()" in line:
        return CardChosen(_payload(_CHOSEN, line, "chosen marker without id"))
    if "Hero Card" in line:
        return HeroMarker(_payload(_HERO, line, "hero marker without id"))
    if "Draft deck contains card" in line:
        return DeckCard(_payload(_DECK, line, "deck marker without id"))
    return None


def parse_power_line(line: str) -> Optional[LogEvent]:
    if "SHOW_ENTITY" not in line or "ZONE=HAND" not in line:
        return None
    return CardShown(_payload(_CARD_ID, line, "shown entity without cardId"))


def parse_loading_line(line: str) -> Optional[LogEvent]:
    if "Gameplay.Start" in line and "GameType=GT_ARENA" in line:
        return ArenaGameStart()
    return None


_PARSERS = {
    ARENA_LOG: parse_arena_line,
    POWER_LOG: parse_power_line,
    LOADING_LOG: parse_loading_line,
}


def parse_line(source: str, line: str) -> Optional[LogEvent]:
    """Parse one line from the named log file; None when it is not a draft marker."""
    parser = _PARSERS.get(source)
    if parser is None or not line:
        return None
    return parser(line)


__all__ = [
    "ARENA_LOG",
    "POWER_LOG",
    "LOADING_LOG",
    "TRACKED_LOGS",
    "ArenaGameStart",
    "CardChosen",
    "CardShown",
    "DeckCard",
    "DraftBegin",
    "DraftComplete",
    "HeroMarker",
    "LogEvent",
    "parse_line",
]
