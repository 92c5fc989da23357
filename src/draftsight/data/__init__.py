"""Reference data: card records, reference hashes and icon templates."""
from .cards import CardRecord, ReferenceStore

__all__ = ["CardRecord", "ReferenceStore"]
