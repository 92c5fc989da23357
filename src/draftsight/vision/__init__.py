"""Vision package: pure image ops and the card matchers.

Submodules:
- preprocess: stateless image preprocessing utilities
- matcher: sliding-window scoring and non-max suppression
- regions: card region location and persistence
- hash_matcher: perceptual-hash matching with an adaptive threshold
- template_matcher: cost and rarity icon classification
- text_matcher: fuzzy matching of OCR'd card names
- consensus: combination of per-method candidates
- ocr: pytesseract adapter
"""
from .consensus import Identification, MatchCandidate, combine
from .hash_matcher import AdaptiveThreshold, HashMatcher, hash_similarity
from .regions import CaptureRegion, RegionLocator, RegionStore
from .template_matcher import IconTemplateMatcher
from .text_matcher import TextMatcher

__all__ = [
    "AdaptiveThreshold",
    "CaptureRegion",
    "HashMatcher",
    "IconTemplateMatcher",
    "Identification",
    "MatchCandidate",
    "RegionLocator",
    "RegionStore",
    "TextMatcher",
    "combine",
    "hash_similarity",
]
