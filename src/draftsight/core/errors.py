"""Error taxonomy.

Adapters and loaders raise these; the detection loop and the tracker facade
catch them and turn them into result statuses and log records. Low match
confidence is not an error: it is an ordinary unidentified outcome.
"""


class DraftSightError(Exception):
    """Base class for all tracker errors."""


class CaptureUnavailable(DraftSightError):
    """The capture collaborator could not produce a frame for a region."""


class NoRegionsConfigured(DraftSightError):
    """No card regions could be established for the current screen."""


class ReferenceDataMissing(DraftSightError):
    """A reference table (cards, hashes or icon templates) is absent or empty."""


class MalformedLogLine(DraftSightError):
    """A recognised log marker carried an unusable payload."""

    def __init__(self, line: str, reason: str = "") -> None:
        super().__init__(f"{reason or 'malformed line'}: {line.strip()[:200]}")
        self.line = line
        self.reason = reason
