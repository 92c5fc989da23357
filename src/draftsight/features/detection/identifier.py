"""
Per-region card identification.

CardIdentifier runs the three matchers over one captured card buffer and
combines their candidates:

- hash: whole card, perceptual hash lookup
- template: cost and rarity icons, resolved to a card through the reference
  store (best-ranked consistent card in the hash ranking, else the unique
  consistent card)
- text: OCR of the name banner, fuzzy matched against card names

A matcher that is not ready, or that fails, contributes no candidate.
"""
from __future__ import annotations

from typing import List, Optional, Sequence, Tuple
import logging

import numpy as np

from ...config import vision as vc
from ...data.cards import ReferenceStore
from ...vision.consensus import Identification, MatchCandidate, combine
from ...vision.hash_matcher import HashMatcher
from ...vision.ocr import TextRecognizer
from ...vision.preprocess import crop
from ...vision.regions import CaptureRegion, local_box
from ...vision.template_matcher import IconMatch, IconTemplateMatcher
from ...vision.text_matcher import TextMatcher

logger = logging.getLogger(__name__)


def resolve_icon_candidate(
    store: ReferenceStore,
    cost: IconMatch,
    rarity: IconMatch,
    ranking: Sequence[Tuple[str, float]] = (),
) -> Tuple[Optional[str], float]:
    """Turn matched icon classes into (card_id, confidence)."""
    matched = [m for m in (cost, rarity) if m.matched]
    if not matched:
        return None, 0.0
    conf = sum(m.confidence for m in matched) / len(matched)
    consistent = store.consistent_with(
        cost.value if cost.matched else None,  # type: ignore[arg-type]
        rarity.value if rarity.matched else None,  # type: ignore[arg-type]
    )
    ids = {c.id for c in consistent}
    for card_id, _ in ranking:
        if card_id in ids:
            return card_id, conf
    if len(consistent) == 1:
        return consistent[0].id, conf
    return None, 0.0


class CardIdentifier:
    def __init__(
        self,
        store: ReferenceStore,
        hash_matcher: Optional[HashMatcher] = None,
        icon_matcher: Optional[IconTemplateMatcher] = None,
        text_matcher: Optional[TextMatcher] = None,
        recognizer: Optional[TextRecognizer] = None,
        min_confidence: float = vc.CONSENSUS_MIN_CONFIDENCE,
    ) -> None:
        self.store = store
        self.hash_matcher = hash_matcher if hash_matcher is not None else HashMatcher(store.hashes)
        self.icon_matcher = icon_matcher if icon_matcher is not None else IconTemplateMatcher(
            store.cost_templates, store.rarity_templates
        )
        self.text_matcher = text_matcher if text_matcher is not None else TextMatcher(store.cards())
        self.recognizer = recognizer
        self.min_confidence = min_confidence

    @property
    def ready(self) -> bool:
        """True when at least one matcher can produce candidates."""
        return self.hash_matcher.ready or self.icon_matcher.ready or self._text_ready

    @property
    def _text_ready(self) -> bool:
        return self.text_matcher.ready and self.recognizer is not None

    def identify(self, region: CaptureRegion, image: np.ndarray) -> Identification:
        idx = region.index
        candidates: List[MatchCandidate] = []
        h, w = image.shape[:2]
        ranking: Sequence[Tuple[str, float]] = ()

        if self.hash_matcher.ready:
            try:
                hm = self.hash_matcher.match(image)
                ranking = hm.ranking
                candidates.append(MatchCandidate(idx, hm.card_id, hm.confidence, "hash"))
            except Exception:
                logger.exception("identify: hash matcher failed for %s", region.name)

        if self.icon_matcher.ready:
            try:
                cost = self.icon_matcher.match_cost(crop(image, local_box(w, h, vc.COST_SUBREGION)))
                rarity = self.icon_matcher.match_rarity(crop(image, local_box(w, h, vc.RARITY_SUBREGION)))
                card_id, conf = resolve_icon_candidate(self.store, cost, rarity, ranking)
                candidates.append(MatchCandidate(idx, card_id, conf, "template"))
            except Exception:
                logger.exception("identify: icon matcher failed for %s", region.name)

        if self._text_ready:
            try:
                text, ocr_conf = self.recognizer.recognize(crop(image, local_box(w, h, vc.NAME_SUBREGION)))  # type: ignore[union-attr]
                tm = self.text_matcher.match(text, ocr_conf)
                candidates.append(MatchCandidate(idx, tm.card_id, tm.confidence, "text"))
            except Exception:
                logger.exception("identify: text matcher failed for %s", region.name)

        result = combine(candidates, self.min_confidence, region=idx)
        logger.debug(
            "identify: %s -> %s (%.3f, %s)", region.name, result.card_id, result.confidence, result.rule
        )
        return result


__all__ = ["CardIdentifier", "resolve_icon_candidate"]
