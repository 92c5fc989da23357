"""
Consensus combination of per-method candidates for one card region.

Precedence, first rule that applies wins:
1) every available method names the same card: confidence max(0.95, mean)
2) the hash candidate is above 0.85: trust it
3) template and text agree on a card the hash does not name, and their mean
   beats the hash confidence by more than 0.15: take their agreement
4) confidence-weighted vote among candidates at or above min_confidence,
   ties broken by the higher mean confidence
5) otherwise the region stays unidentified

Matchers that are not ready simply contribute no candidate.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence
import logging

from ..config import vision as vc

logger = logging.getLogger(__name__)

METHODS = ("hash", "template", "text")


@dataclass(frozen=True)
class MatchCandidate:
    region: int
    card_id: Optional[str]
    confidence: float
    method: str

    def __post_init__(self) -> None:
        if self.method not in METHODS:
            raise ValueError(f"unknown match method {self.method!r}")
        conf = max(0.0, min(1.0, float(self.confidence)))
        if self.card_id is None:
            conf = 0.0
        object.__setattr__(self, "confidence", conf)

    @property
    def empty(self) -> bool:
        return self.card_id is None


@dataclass
class Identification:
    region: int
    card_id: Optional[str]
    confidence: float
    rule: str
    candidates: List[MatchCandidate] = field(default_factory=list)

    @property
    def identified(self) -> bool:
        return self.card_id is not None


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def combine(
    candidates: Sequence[MatchCandidate],
    min_confidence: float = vc.CONSENSUS_MIN_CONFIDENCE,
    region: Optional[int] = None,
) -> Identification:
    cands = list(candidates)
    if region is None:
        region = cands[0].region if cands else -1
    by_method: Dict[str, MatchCandidate] = {c.method: c for c in cands}
    filled = [c for c in cands if not c.empty]

    if len(cands) >= 2 and len(filled) == len(cands) and len({c.card_id for c in filled}) == 1:
        conf = max(vc.CONSENSUS_ALL_AGREE_FLOOR, _mean([c.confidence for c in filled]))
        return Identification(region, filled[0].card_id, conf, "all_agree", cands)

    hashed = by_method.get("hash")
    if hashed is not None and not hashed.empty and hashed.confidence > vc.CONSENSUS_HASH_TRUST:
        return Identification(region, hashed.card_id, hashed.confidence, "hash_trusted", cands)

    tpl, txt = by_method.get("template"), by_method.get("text")
    if tpl is not None and txt is not None and not tpl.empty and tpl.card_id == txt.card_id:
        hash_id = hashed.card_id if hashed is not None else None
        hash_conf = hashed.confidence if hashed is not None else 0.0
        pair = _mean([tpl.confidence, txt.confidence])
        if tpl.card_id != hash_id and pair > hash_conf + vc.CONSENSUS_AGREEMENT_MARGIN:
            return Identification(region, tpl.card_id, pair, "secondary_agree", cands)

    votes: Dict[str, List[float]] = {}
    for c in filled:
        if c.confidence >= min_confidence:
            votes.setdefault(c.card_id, []).append(c.confidence)  # type: ignore[arg-type]
    if votes:
        card_id, confs = max(votes.items(), key=lambda kv: (sum(kv[1]), _mean(kv[1])))
        return Identification(region, card_id, _mean(confs), "vote", cands)

    logger.debug("consensus: region %s unidentified (%s)", region, [(c.method, c.card_id, round(c.confidence, 3)) for c in cands])
    return Identification(region, None, 0.0, "none", cands)


__all__ = ["METHODS", "MatchCandidate", "Identification", "combine"]
