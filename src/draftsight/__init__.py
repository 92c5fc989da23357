"""DraftSight: draft card identification and draft-state tracking."""

__version__ = "0.1.0"
