"""IO adapters: screen capture."""
from .capture import CaptureProvider, MssCaptureProvider

__all__ = ["CaptureProvider", "MssCaptureProvider"]
