"""
Perceptual-hash card matcher with an adaptive acceptance threshold.

Usage:
    matcher = HashMatcher(store.hashes)
    result = matcher.match(card_bgr)
    if result.card_id: ...

Notes:
- Captures go through preprocess.hash_variants (2-4 variants) and each
  variant is hashed with imagehash.phash into a hex string.
- Similarity between two hex hashes blends positional agreement (70 %) with
  aligned-chunk agreement (30 %); hashes of different length never match.
- The acceptance threshold is owned by AdaptiveThreshold, which drifts
  within [0.1, 0.6] based on a rolling window of recent best scores.
"""
from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from pathlib import Path
from typing import Deque, Dict, List, Mapping, Optional, Tuple
import logging
import threading

import cv2
import imagehash
import numpy as np
from PIL import Image

from ..config import vision as vc
from .preprocess import hash_variants, prepare_for_hash

logger = logging.getLogger(__name__)

IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".webp"}


def hash_similarity(a: str, b: str) -> float:
    """Similarity in [0, 1] between two equal-length hash strings; 0.0 otherwise."""
    if not a or len(a) != len(b):
        return 0.0
    n = len(a)
    same = sum(1 for x, y in zip(a, b) if x == y)
    size = max(4, n // 8)
    covered = 0
    for i in range(0, n, size):
        if a[i:i + size] == b[i:i + size]:
            covered += len(a[i:i + size])
    return 0.7 * (same / n) + 0.3 * (covered / n)


def compute_hash(gray: np.ndarray, hash_size: int = vc.HASH_SIZE) -> str:
    """Perceptual hash of a preprocessed grayscale image as a hex string."""
    return str(imagehash.phash(Image.fromarray(gray), hash_size=hash_size))


def build_hash_table(images_dir: Path, hash_size: int = vc.HASH_SIZE) -> Dict[str, str]:
    """Hash every card image in images_dir; the file stem is the card id."""
    table: Dict[str, str] = {}
    for path in sorted(Path(images_dir).iterdir()):
        if path.suffix.lower() not in IMAGE_SUFFIXES:
            continue
        img = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if img is None:
            logger.warning("hash: unreadable image %s", path)
            continue
        table[path.stem] = compute_hash(prepare_for_hash(img), hash_size)
    logger.info("hash: built %d reference hashes from %s", len(table), images_dir)
    return table


class AdaptiveThreshold:
    """Bounded acceptance threshold that follows the recent score distribution."""

    def __init__(
        self,
        start: float = vc.HASH_THRESHOLD_START,
        floor: float = vc.HASH_THRESHOLD_FLOOR,
        ceiling: float = vc.HASH_THRESHOLD_CEILING,
        step: float = vc.HASH_THRESHOLD_STEP,
        window: int = vc.HASH_THRESHOLD_WINDOW,
    ) -> None:
        self.floor = floor
        self.ceiling = ceiling
        self.step = step
        self._lock = threading.Lock()
        self._recent: Deque[float] = deque(maxlen=max(1, int(window)))
        self._value = self._clamp(start)

    def _clamp(self, value: float) -> float:
        return max(self.floor, min(self.ceiling, float(value)))

    def get(self) -> float:
        with self._lock:
            return self._value

    def set(self, value: float) -> None:
        with self._lock:
            self._value = self._clamp(value)
            self._recent.clear()

    def record(self, confidence: float) -> float:
        """Add a best-match score; adjust once the window is full. Returns the threshold."""
        with self._lock:
            self._recent.append(float(confidence))
            if len(self._recent) < (self._recent.maxlen or 1):
                return self._value
            avg = sum(self._recent) / len(self._recent)
            lo, hi = min(self._recent), max(self._recent)
            old = self._value
            if avg < old and hi < old:
                self._value = self._clamp(old - self.step)
            elif avg > old + 0.25 and lo > old:
                self._value = self._clamp(old + self.step)
            if self._value != old:
                logger.info("hash: threshold %.2f -> %.2f (avg=%.3f)", old, self._value, avg)
                self._recent.clear()
            return self._value


@dataclass
class HashMatch:
    card_id: Optional[str]
    confidence: float
    variant: Optional[str] = None
    threshold: float = 0.0
    ranking: List[Tuple[str, float]] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return self.card_id is not None


class HashMatcher:
    """Best-of-variants perceptual hash lookup over a reference table."""

    def __init__(
        self,
        table: Mapping[str, str],
        threshold: Optional[AdaptiveThreshold] = None,
        variant_count: int = 4,
        hash_size: int = vc.HASH_SIZE,
        ranking_size: int = vc.HASH_RANKING_SIZE,
    ) -> None:
        self.threshold = threshold or AdaptiveThreshold()
        self.variant_count = variant_count
        self.hash_size = hash_size
        self.ranking_size = ranking_size
        # hash length -> (ids, code matrix); unequal lengths never compare
        self._groups: Dict[int, Tuple[List[str], np.ndarray]] = {}
        by_len: Dict[int, List[Tuple[str, str]]] = {}
        for card_id, h in table.items():
            h = str(h).strip().lower()
            if h:
                by_len.setdefault(len(h), []).append((card_id, h))
        for n, items in by_len.items():
            ids = [i for i, _ in items]
            codes = np.frombuffer("".join(h for _, h in items).encode("ascii"), dtype=np.uint8).reshape(len(items), n)
            self._groups[n] = (ids, codes)
        self.size = sum(len(ids) for ids, _ in self._groups.values())

    @property
    def ready(self) -> bool:
        return self.size > 0

    def hash_variants(self, img: np.ndarray) -> Dict[str, str]:
        return {name: compute_hash(gray, self.hash_size) for name, gray in hash_variants(img, self.variant_count).items()}

    def _scores(self, query: str) -> Tuple[List[str], np.ndarray]:
        group = self._groups.get(len(query))
        if group is None:
            return [], np.zeros(0, dtype=np.float64)
        ids, codes = group
        n = len(query)
        q = np.frombuffer(query.encode("ascii"), dtype=np.uint8)
        eq = codes == q
        same = eq.mean(axis=1)
        size = max(4, n // 8)
        full = (n // size) * size
        covered = eq[:, :full].reshape(len(ids), -1, size).all(axis=2).sum(axis=1) * size
        if full < n:
            covered = covered + eq[:, full:].all(axis=1) * (n - full)
        return ids, 0.7 * same + 0.3 * (covered / n)

    def match(self, img: np.ndarray) -> HashMatch:
        thr = self.threshold.get()
        if not self.ready or img is None or img.size == 0:
            return HashMatch(None, 0.0, threshold=thr)

        best: Dict[str, Tuple[float, str]] = {}
        for name, h in self.hash_variants(img).items():
            ids, scores = self._scores(h.lower())
            for card_id, score in zip(ids, scores.tolist()):
                prev = best.get(card_id)
                if prev is None or score > prev[0]:
                    best[card_id] = (score, name)

        if not best:
            return HashMatch(None, 0.0, threshold=thr)
        ranked = sorted(best.items(), key=lambda kv: kv[1][0], reverse=True)
        top_id, (top_score, top_variant) = ranked[0]
        ranking = [(cid, round(sc, 4)) for cid, (sc, _) in ranked[: self.ranking_size]]
        self.threshold.record(top_score)

        if top_score >= thr:
            logger.debug("hash: %s score=%.3f variant=%s thr=%.2f", top_id, top_score, top_variant, thr)
            return HashMatch(top_id, float(top_score), top_variant, thr, ranking)
        logger.debug("hash: best %s score=%.3f below thr=%.2f", top_id, top_score, thr)
        return HashMatch(None, 0.0, None, thr, ranking)


__all__ = [
    "AdaptiveThreshold",
    "HashMatch",
    "HashMatcher",
    "build_hash_table",
    "compute_hash",
    "hash_similarity",
]
