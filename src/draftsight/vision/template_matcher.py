"""
Icon template matcher for the cost crystal and the rarity gem.

Usage:
    icons = IconTemplateMatcher(store.cost_templates, store.rarity_templates)
    cost = icons.match_cost(cost_bgr)       # IconMatch(kind="cost", value=3, ...)
    rarity = icons.match_rarity(rarity_bgr)

Both captures and references are resized to the reference icon resolution;
a pixel counts as mismatched when its BGR distance exceeds a tolerance band
(a fraction of the largest possible distance). Similarity is the share of
matching pixels and the best class is accepted at 0.7 or above.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple
import logging
import math

import numpy as np

from ..config import vision as vc
from .preprocess import resize_icon

logger = logging.getLogger(__name__)

MAX_BGR_DISTANCE = math.sqrt(3) * 255.0


@dataclass(frozen=True)
class IconMatch:
    kind: str
    value: object
    confidence: float
    matched: bool

    @classmethod
    def empty(cls, kind: str) -> "IconMatch":
        return cls(kind, None, 0.0, False)


@dataclass
class _Tpl:
    value: object
    pixels: np.ndarray  # int32 BGR at ICON_SIZE


def icon_similarity(a: np.ndarray, b: np.ndarray, tolerance: float = vc.ICON_PIXEL_TOLERANCE) -> float:
    """1 - mismatched/total for two same-size BGR arrays."""
    if a.shape != b.shape or a.size == 0:
        return 0.0
    diff = a.astype(np.int32) - b.astype(np.int32)
    d2 = np.einsum("ijk,ijk->ij", diff, diff)
    limit = (tolerance * MAX_BGR_DISTANCE) ** 2
    mismatched = int(np.count_nonzero(d2 > limit))
    return 1.0 - mismatched / float(d2.size)


class _Bank:
    def __init__(self, kind: str, templates: Mapping, size: Tuple[int, int]) -> None:
        self.kind = kind
        self.size = size
        self.items: List[_Tpl] = []
        for value, img in templates.items():
            if img is None or img.size == 0:
                continue
            self.items.append(_Tpl(value, resize_icon(img, size).astype(np.int32)))

    def best(self, img: Optional[np.ndarray], accept: float, tolerance: float) -> IconMatch:
        if not self.items or img is None or img.size == 0:
            return IconMatch.empty(self.kind)
        probe = resize_icon(img, self.size).astype(np.int32)
        scores = [(icon_similarity(probe, t.pixels, tolerance), t.value) for t in self.items]
        score, value = max(scores, key=lambda s: s[0])
        logger.debug("icons: %s best=%s score=%.3f", self.kind, value, score)
        if score >= accept:
            return IconMatch(self.kind, value, float(score), True)
        return IconMatch(self.kind, None, float(score), False)


class IconTemplateMatcher:
    """Classifies cost and rarity icon crops against reference bitmaps."""

    def __init__(
        self,
        cost_templates: Optional[Dict[int, np.ndarray]] = None,
        rarity_templates: Optional[Dict[str, np.ndarray]] = None,
        size: Tuple[int, int] = vc.ICON_SIZE,
        accept: float = vc.ICON_ACCEPT,
        tolerance: float = vc.ICON_PIXEL_TOLERANCE,
    ) -> None:
        self.accept = accept
        self.tolerance = tolerance
        self._cost = _Bank("cost", cost_templates or {}, size)
        self._rarity = _Bank("rarity", rarity_templates or {}, size)

    @property
    def cost_ready(self) -> bool:
        return bool(self._cost.items)

    @property
    def rarity_ready(self) -> bool:
        return bool(self._rarity.items)

    @property
    def ready(self) -> bool:
        return self.cost_ready or self.rarity_ready

    def match_cost(self, img: Optional[np.ndarray]) -> IconMatch:
        return self._cost.best(img, self.accept, self.tolerance)

    def match_rarity(self, img: Optional[np.ndarray]) -> IconMatch:
        return self._rarity.best(img, self.accept, self.tolerance)


__all__ = ["IconMatch", "IconTemplateMatcher", "icon_similarity"]
