"""Feature packages: visual detection loop and draft state tracking."""
