"""
Pure image preprocessing utilities.

This module contains only stateless, side-effect-free functions used by the
matchers: colour normalisation, clamped cropping, the perceptual-hash
preparation chain and its variants, and icon resizing.

Logging: Functions here avoid heavy logging for performance; callers can
wrap them and log as needed at DEBUG level.
"""
from __future__ import annotations

from typing import Dict, Tuple
import logging
import cv2
import numpy as np

from ..config.vision import HASH_UPSCALE_BELOW, HASH_UPSCALE_FACTOR, ICON_SIZE

logger = logging.getLogger(__name__)

Box = Tuple[int, int, int, int]

VARIANT_ORDER = ("base", "extra_sharp", "high_contrast", "reduced")


def to_bgr(img: np.ndarray) -> np.ndarray:
    """Return a 3-channel uint8 BGR view of a gray, BGR or BGRA array."""
    if img.dtype != np.uint8:
        img = np.clip(img, 0, 255).astype(np.uint8)
    if img.ndim == 2:
        return cv2.cvtColor(img, cv2.COLOR_GRAY2BGR)
    if img.shape[2] == 4:
        return img[:, :, :3]
    return img


def to_gray(img: np.ndarray) -> np.ndarray:
    if img.ndim == 2:
        return img
    return cv2.cvtColor(to_bgr(img), cv2.COLOR_BGR2GRAY)


def crop(img: np.ndarray, box: Box) -> np.ndarray:
    """Crop (x, y, w, h) clamped to the image bounds; may return an empty array."""
    x, y, w, h = (int(round(v)) for v in box)
    H, W = img.shape[:2]
    x0, y0 = max(0, x), max(0, y)
    x1, y1 = min(W, x + w), min(H, y + h)
    if x1 <= x0 or y1 <= y0:
        return img[0:0, 0:0]
    return img[y0:y1, x0:x1]


def _gamma(img: np.ndarray, gamma: float) -> np.ndarray:
    lut = np.array([((i / 255.0) ** (1.0 / gamma)) * 255.0 for i in range(256)], dtype=np.float32)
    return cv2.LUT(img, np.clip(lut, 0, 255).astype(np.uint8))


def _unsharp(img: np.ndarray, sigma: float = 1.0, amount: float = 0.5) -> np.ndarray:
    soft = cv2.GaussianBlur(img, (0, 0), sigma)
    return cv2.addWeighted(img, 1.0 + amount, soft, -amount, 0)


def prepare_for_hash(img: np.ndarray) -> np.ndarray:
    """Denoise and normalise a card capture before perceptual hashing.

    Chain: upscale small captures, median 5, light blur, unsharp mask, min-max
    normalisation, gamma 1.3 with a linear gain, grayscale, CLAHE (8x8).
    Returns a uint8 grayscale image.
    """
    bgr = to_bgr(img)
    h, w = bgr.shape[:2]
    if w < HASH_UPSCALE_BELOW or h < HASH_UPSCALE_BELOW:
        bgr = cv2.resize(
            bgr,
            (max(1, int(w * HASH_UPSCALE_FACTOR)), max(1, int(h * HASH_UPSCALE_FACTOR))),
            interpolation=cv2.INTER_CUBIC,
        )
    out = cv2.medianBlur(bgr, 5)
    out = cv2.GaussianBlur(out, (3, 3), 0.3)
    out = _unsharp(out)
    out = cv2.normalize(out, None, 0, 255, cv2.NORM_MINMAX)
    out = _gamma(out, 1.3)
    out = cv2.convertScaleAbs(out, alpha=1.2, beta=-15)
    gray = cv2.cvtColor(out, cv2.COLOR_BGR2GRAY)
    try:
        clahe = cv2.createCLAHE(clipLimit=2.0, tileGridSize=(8, 8))
        gray = clahe.apply(gray)
    except cv2.error:
        gray = cv2.equalizeHist(gray)
    return gray


def hash_variants(img: np.ndarray, count: int = 4) -> Dict[str, np.ndarray]:
    """Return 2..4 preprocessed grayscale variants of a capture for hashing.

    - base: prepare_for_hash output
    - extra_sharp: base with a strong 3x3 sharpening kernel
    - high_contrast: base with a steeper linear gain
    - reduced: base posterised to 4 bits per pixel
    """
    count = max(2, min(len(VARIANT_ORDER), int(count)))
    base = prepare_for_hash(img)
    kernel = np.array([[0, -1, 0], [-1, 5, -1], [0, -1, 0]], dtype=np.float32)
    variants = {
        "base": base,
        "extra_sharp": cv2.filter2D(base, -1, kernel),
        "high_contrast": cv2.convertScaleAbs(base, alpha=1.3, beta=-20),
        "reduced": (base & 0xF0).astype(np.uint8),
    }
    return {k: variants[k] for k in VARIANT_ORDER[:count]}


def resize_icon(img: np.ndarray, size: Tuple[int, int] = ICON_SIZE) -> np.ndarray:
    """Resize an icon capture to the reference (w, h) as BGR uint8."""
    bgr = to_bgr(img)
    if bgr.shape[1] == size[0] and bgr.shape[0] == size[1]:
        return bgr
    return cv2.resize(bgr, size, interpolation=cv2.INTER_AREA)


__all__ = [
    "Box",
    "VARIANT_ORDER",
    "to_bgr",
    "to_gray",
    "crop",
    "prepare_for_hash",
    "hash_variants",
    "resize_icon",
]
