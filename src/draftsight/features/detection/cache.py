"""
Short-lived per-region capture cache.

Entries are keyed by region geometry and hold the captured buffer, its
fingerprint and (once computed) the identification. Within the TTL a cached
buffer is reused instead of capturing again; a fresh capture whose
fingerprint equals the cached one reuses the cached identification. The
cache is bounded and evicts the oldest entry first.
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Callable, Hashable, Optional
import hashlib
import threading
import time

import cv2
import numpy as np

from ...vision.consensus import Identification
from ...vision.preprocess import to_gray


def fingerprint(img: np.ndarray) -> str:
    """Digest of a coarse 32x32 grayscale thumbnail; tolerant to sensor noise."""
    if img is None or img.size == 0:
        return ""
    thumb = cv2.resize(to_gray(img), (32, 32), interpolation=cv2.INTER_AREA)
    return hashlib.blake2b((thumb >> 4).tobytes(), digest_size=16).hexdigest()


@dataclass
class CacheEntry:
    buffer: np.ndarray
    timestamp: float
    fingerprint: str
    identification: Optional[Identification] = None


class DetectionCache:
    def __init__(
        self,
        ttl_s: float = 0.5,
        max_entries: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_s = ttl_s
        self.max_entries = max(1, int(max_entries))
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: "OrderedDict[Hashable, CacheEntry]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def fresh(self, key: Hashable) -> Optional[CacheEntry]:
        """Entry captured less than ttl_s ago, else None."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._clock() - entry.timestamp > self.ttl_s:
                return None
            return entry

    def put(self, key: Hashable, buffer: np.ndarray, fp: Optional[str] = None) -> str:
        """Store a fresh capture; keeps the identification when the fingerprint is unchanged."""
        fp = fp if fp is not None else fingerprint(buffer)
        with self._lock:
            prev = self._entries.pop(key, None)
            ident = prev.identification if prev is not None and prev.fingerprint == fp else None
            self._entries[key] = CacheEntry(buffer, self._clock(), fp, ident)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)
        return fp

    def identification(self, key: Hashable, fp: str) -> Optional[Identification]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or entry.fingerprint != fp:
                return None
            return entry.identification

    def remember(self, key: Hashable, fp: str, identification: Identification) -> None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.fingerprint == fp:
                entry.identification = identification

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()


__all__ = ["CacheEntry", "DetectionCache", "fingerprint"]
