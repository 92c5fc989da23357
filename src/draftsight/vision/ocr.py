"""
OCR adapter.

TesseractRecognizer wraps pytesseract behind the small TextRecognizer
protocol the card identifier uses: recognize(image) -> (text, confidence),
confidence in [0, 1]. Recognition failures yield ("", 0.0) and are logged.
"""
from __future__ import annotations

from typing import Optional, Protocol, Tuple, runtime_checkable
import logging

import cv2
import numpy as np
import pytesseract

from .preprocess import to_gray

logger = logging.getLogger(__name__)

NAME_WHITELIST = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789',.-"


@runtime_checkable
class TextRecognizer(Protocol):
    def recognize(self, image: np.ndarray) -> Tuple[str, float]: ...


def prepare_for_ocr(img: np.ndarray) -> np.ndarray:
    """Upscale the name banner and binarise it for single-line recognition."""
    gray = to_gray(img)
    h, w = gray.shape[:2]
    if h < 48:
        f = 48.0 / max(1, h)
        gray = cv2.resize(gray, (max(1, int(w * f)), 48), interpolation=cv2.INTER_CUBIC)
    gray = cv2.GaussianBlur(gray, (3, 3), 0)
    _, bw = cv2.threshold(gray, 0, 255, cv2.THRESH_BINARY + cv2.THRESH_OTSU)
    # Card names render light on dark; tesseract prefers dark text
    if float(np.mean(bw)) < 127.0:
        bw = cv2.bitwise_not(bw)
    return bw


class TesseractRecognizer:
    def __init__(self, tesseract_cmd: Optional[str] = None, psm: int = 7) -> None:
        if tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = tesseract_cmd
        self.config = f'--psm {int(psm)} -c tessedit_char_whitelist="{NAME_WHITELIST}"'

    def recognize(self, image: np.ndarray) -> Tuple[str, float]:
        if image is None or image.size == 0:
            return "", 0.0
        try:
            data = pytesseract.image_to_data(
                prepare_for_ocr(image), config=self.config, output_type=pytesseract.Output.DICT
            )
        except (pytesseract.TesseractError, pytesseract.TesseractNotFoundError, OSError) as e:
            logger.warning("ocr: recognition failed: %s", e)
            return "", 0.0
        words, confs = [], []
        for text, conf in zip(data.get("text", []), data.get("conf", [])):
            try:
                c = float(conf)
            except (TypeError, ValueError):
                continue
            if text and text.strip() and c >= 0:
                words.append(text.strip())
                confs.append(c)
        if not words:
            return "", 0.0
        return " ".join(words), max(0.0, min(1.0, sum(confs) / len(confs) / 100.0))


__all__ = ["NAME_WHITELIST", "TextRecognizer", "TesseractRecognizer", "prepare_for_ocr"]
