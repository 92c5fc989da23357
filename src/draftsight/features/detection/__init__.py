"""Visual detection: per-region identification, capture cache and the polling loop."""
from .cache import DetectionCache
from .identifier import CardIdentifier
from .loop import DetectionLoop, DetectionResult, LoopSettings

__all__ = ["CardIdentifier", "DetectionCache", "DetectionLoop", "DetectionResult", "LoopSettings"]
