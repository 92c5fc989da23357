"""
Vision configuration knobs centralization.

All thresholds, strides, tolerances and environment toggles live here. The
matchers, the region locator and the detection loop import from this module
instead of hardcoding values.
"""
from __future__ import annotations

from typing import List, Tuple
import os


def _env_float(name: str, default: float) -> float:
    try:
        raw = os.environ.get(name, "")
        return float(raw) if raw.strip() else default
    except Exception:
        return default


# Region locator
REGION_STRIDE: int = int(_env_float("DS_VISION_REGION_STRIDE", 10))
REGION_PIXEL_TOLERANCE: float = 50.0  # Euclidean BGR distance
REGION_MATCH_THRESHOLD: float = _env_float("DS_VISION_REGION_THRESHOLD", 0.7)
REGION_NMS_IOU: float = 0.5
REGION_COUNT: int = 3
REGION_RESOLUTION_TOLERANCE: int = 50  # px on either axis

# Heuristic layout (fractions of the screen)
LAYOUT_CARD_WIDTH: float = 0.15
LAYOUT_CARD_HEIGHT: float = 0.30
LAYOUT_SPACING: float = 0.05
LAYOUT_TOP: float = 0.35

# Sub-regions (fractions of the card box): (x, y, w, h)
COST_SUBREGION: Tuple[float, float, float, float] = (0.0, 0.0, 0.2, 0.1)
RARITY_SUBREGION: Tuple[float, float, float, float] = (0.4, 0.8, 0.2, 0.1)
NAME_SUBREGION: Tuple[float, float, float, float] = (0.1, 0.45, 0.8, 0.12)

# Hash matcher
HASH_SIZE: int = 16
HASH_UPSCALE_BELOW: int = 150
HASH_UPSCALE_FACTOR: float = 3.0
HASH_THRESHOLD_START: float = _env_float("DS_VISION_HASH_THRESHOLD", 0.35)
HASH_THRESHOLD_FLOOR: float = 0.1
HASH_THRESHOLD_CEILING: float = 0.6
HASH_THRESHOLD_STEP: float = 0.05
HASH_THRESHOLD_WINDOW: int = 20
HASH_RANKING_SIZE: int = 10

# Icon templates
ICON_SIZE: Tuple[int, int] = (30, 30)  # (w, h)
ICON_PIXEL_TOLERANCE: float = 0.2  # fraction of the max BGR distance
ICON_ACCEPT: float = _env_float("DS_VISION_ICON_ACCEPT", 0.7)
RARITY_TIERS: List[str] = ["free", "common", "rare", "epic", "legendary"]
MAX_COST: int = 10

# Text matcher
TEXT_MIN_LENGTH: int = 3
TEXT_EARLY_EXIT: float = 0.85
TEXT_MIN_SIMILARITY: float = 0.55
TEXT_SIMILARITY_WEIGHT: float = 0.7
TEXT_OCR_WEIGHT: float = 0.3
TEXT_STOP_WORDS: List[str] = ["the", "of", "a", "an"]

# Consensus
CONSENSUS_MIN_CONFIDENCE: float = _env_float("DS_VISION_MIN_CONFIDENCE", 0.5)
CONSENSUS_HASH_TRUST: float = 0.85
CONSENSUS_AGREEMENT_MARGIN: float = 0.15
CONSENSUS_ALL_AGREE_FLOOR: float = 0.95

# Full-screen template scans sample every Nth pixel of the template
REGION_SCAN_SAMPLE_STEP: int = int(_env_float("DS_VISION_SCAN_SAMPLE_STEP", 4))

__all__ = [
    "REGION_STRIDE",
    "REGION_PIXEL_TOLERANCE",
    "REGION_MATCH_THRESHOLD",
    "REGION_NMS_IOU",
    "REGION_COUNT",
    "REGION_RESOLUTION_TOLERANCE",
    "LAYOUT_CARD_WIDTH",
    "LAYOUT_CARD_HEIGHT",
    "LAYOUT_SPACING",
    "LAYOUT_TOP",
    "COST_SUBREGION",
    "RARITY_SUBREGION",
    "NAME_SUBREGION",
    "HASH_SIZE",
    "HASH_UPSCALE_BELOW",
    "HASH_UPSCALE_FACTOR",
    "HASH_THRESHOLD_START",
    "HASH_THRESHOLD_FLOOR",
    "HASH_THRESHOLD_CEILING",
    "HASH_THRESHOLD_STEP",
    "HASH_THRESHOLD_WINDOW",
    "HASH_RANKING_SIZE",
    "ICON_SIZE",
    "ICON_PIXEL_TOLERANCE",
    "ICON_ACCEPT",
    "RARITY_TIERS",
    "MAX_COST",
    "TEXT_MIN_LENGTH",
    "TEXT_EARLY_EXIT",
    "TEXT_MIN_SIMILARITY",
    "TEXT_SIMILARITY_WEIGHT",
    "TEXT_OCR_WEIGHT",
    "TEXT_STOP_WORDS",
    "CONSENSUS_MIN_CONFIDENCE",
    "CONSENSUS_HASH_TRUST",
    "CONSENSUS_AGREEMENT_MARGIN",
    "CONSENSUS_ALL_AGREE_FLOOR",
    "REGION_SCAN_SAMPLE_STEP",
]
