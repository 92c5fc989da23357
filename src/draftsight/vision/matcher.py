"""
Sliding-window template scoring and candidate suppression.

Pure functions that take numpy arrays and return scores and match boxes. The
region locator composes these to find card frames on a full-screen capture.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple
import logging
import numpy as np

from ..config.vision import REGION_MATCH_THRESHOLD, REGION_PIXEL_TOLERANCE, REGION_STRIDE

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WindowMatch:
    x: int
    y: int
    w: int
    h: int
    score: float

    @property
    def box(self) -> Tuple[int, int, int, int]:
        return (self.x, self.y, self.w, self.h)


def pixel_match_score(window: np.ndarray, template: np.ndarray, tolerance: float = REGION_PIXEL_TOLERANCE) -> float:
    """Fraction of pixels whose Euclidean BGR distance is below tolerance."""
    if window.shape != template.shape or window.size == 0:
        return 0.0
    diff = window.astype(np.int32) - template.astype(np.int32)
    if diff.ndim == 3:
        d2 = np.einsum("ijk,ijk->ij", diff, diff)
    else:
        d2 = diff * diff
    return float(np.count_nonzero(d2 < tolerance * tolerance)) / float(d2.size)


def sliding_window(
    screen: np.ndarray,
    template: np.ndarray,
    stride: int = REGION_STRIDE,
    tolerance: float = REGION_PIXEL_TOLERANCE,
    threshold: float = REGION_MATCH_THRESHOLD,
    sample_step: int = 1,
) -> List[WindowMatch]:
    """Score every stride-aligned window and return those above threshold.

    sample_step > 1 scores a regular pixel subgrid of each window, which keeps
    full-screen scans tractable at the cost of some precision.
    """
    H, W = screen.shape[:2]
    th, tw = template.shape[:2]
    if th > H or tw > W or th == 0 or tw == 0:
        return []
    stride = max(1, int(stride))
    step = max(1, int(sample_step))
    tpl = template[::step, ::step]
    out: List[WindowMatch] = []
    for y in range(0, H - th + 1, stride):
        band = screen[y:y + th:step]
        for x in range(0, W - tw + 1, stride):
            score = pixel_match_score(band[:, x:x + tw:step], tpl, tolerance)
            if score > threshold:
                out.append(WindowMatch(x, y, tw, th, score))
    return out


def iou(a: Sequence[float], b: Sequence[float]) -> float:
    """Intersection over union of two (x, y, w, h) boxes."""
    ax, ay, aw, ah = a
    bx, by, bw, bh = b
    ix = max(0.0, min(ax + aw, bx + bw) - max(ax, bx))
    iy = max(0.0, min(ay + ah, by + bh) - max(ay, by))
    inter = ix * iy
    union = aw * ah + bw * bh - inter
    return inter / union if union > 0 else 0.0


def non_max_suppression(matches: Sequence[WindowMatch], iou_threshold: float) -> List[WindowMatch]:
    """Drop any match overlapping a higher-scoring kept match by more than iou_threshold."""
    kept: List[WindowMatch] = []
    for m in sorted(matches, key=lambda m: m.score, reverse=True):
        if all(iou(m.box, k.box) <= iou_threshold for k in kept):
            kept.append(m)
    return kept


__all__ = ["WindowMatch", "pixel_match_score", "sliding_window", "iou", "non_max_suppression"]
