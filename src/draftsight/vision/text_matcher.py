"""
Fuzzy card-name matcher for OCR output.

Names are expanded into variants once (normalised, punctuation kept,
stop words dropped, common OCR digit/letter confusions) and OCR text is
matched against them with rapidfuzz. Short reads are penalised because a
three-letter fragment fuzzes into far too many names.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Tuple
import logging
import re

from rapidfuzz import fuzz, process

from ..config import vision as vc
from ..data.cards import CardRecord

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^\w\s]")
_SPACES = re.compile(r"\s+")

LETTER_TO_DIGIT = str.maketrans({"o": "0", "l": "1", "i": "1", "s": "5", "b": "8"})
DIGIT_TO_LETTER = str.maketrans({"0": "o", "1": "l", "5": "s", "8": "b"})


def normalize_text(text: str) -> str:
    """Lowercase, strip punctuation and collapse whitespace."""
    text = _NON_WORD.sub("", str(text or "").lower())
    return _SPACES.sub(" ", text).strip()


def name_variants(name: str) -> List[str]:
    """Distinct comparison forms of a card name, normalised form first."""
    base = normalize_text(name)
    raw = _SPACES.sub(" ", str(name).lower()).strip()
    no_stop = " ".join(w for w in base.split() if w not in vc.TEXT_STOP_WORDS)
    out: List[str] = []
    for v in (base, raw, no_stop, base.translate(LETTER_TO_DIGIT), base.translate(DIGIT_TO_LETTER)):
        if v and v not in out:
            out.append(v)
    return out


def length_penalty(text: str) -> float:
    return max(0.0, (10 - len(text)) * 0.05)


@dataclass
class TextMatch:
    card_id: Optional[str]
    confidence: float
    similarity: float = 0.0
    text: str = ""

    @property
    def matched(self) -> bool:
        return self.card_id is not None


class TextMatcher:
    """Matches recognised name text against the card corpus."""

    def __init__(self, cards: Iterable[CardRecord]) -> None:
        self._variants: List[str] = []
        self._variant_ids: List[str] = []
        self._names: Dict[str, str] = {}
        for card in cards:
            if not card.name:
                continue
            self._names[card.id] = card.name
            for v in name_variants(card.name):
                self._variants.append(v)
                self._variant_ids.append(card.id)

    @property
    def ready(self) -> bool:
        return bool(self._names)

    def _best_variant(self, query: str) -> Tuple[Optional[str], float]:
        best_id, best = None, 0.0
        for q in dict.fromkeys((query, query.translate(DIGIT_TO_LETTER))):
            hit = process.extractOne(q, self._variants, scorer=fuzz.ratio)
            if hit is None:
                continue
            _, score, idx = hit
            if score / 100.0 > best:
                best_id, best = self._variant_ids[idx], score / 100.0
            if best >= vc.TEXT_EARLY_EXIT:
                break
        return best_id, best

    def match(self, text: str, ocr_confidence: float = 0.0) -> TextMatch:
        query = normalize_text(text)
        if not self.ready or len(query) < vc.TEXT_MIN_LENGTH:
            return TextMatch(None, 0.0, 0.0, query)

        penalty = length_penalty(query)
        card_id, similarity = self._best_variant(query)

        if card_id is None or similarity < vc.TEXT_MIN_SIMILARITY:
            hit = process.extractOne(query, self._names, scorer=fuzz.WRatio, processor=normalize_text)
            if hit is not None and hit[1] / 100.0 > similarity:
                similarity = hit[1] / 100.0
                card_id = hit[2]

        if card_id is None or similarity < vc.TEXT_MIN_SIMILARITY + penalty:
            logger.debug("text: %r unmatched (best=%.3f penalty=%.2f)", query, similarity, penalty)
            return TextMatch(None, 0.0, similarity, query)

        conf = vc.TEXT_SIMILARITY_WEIGHT * (similarity - penalty) + vc.TEXT_OCR_WEIGHT * float(ocr_confidence)
        conf = max(0.0, min(1.0, conf))
        logger.debug("text: %r -> %s sim=%.3f conf=%.3f", query, card_id, similarity, conf)
        return TextMatch(card_id, conf, similarity, query)


__all__ = ["TextMatch", "TextMatcher", "length_penalty", "name_variants", "normalize_text"]
