"""
FlashRecall – Error types
==========================
Raised by the scheduling engine, the analytics aggregator and the
database-facing operations.
"""


class FlashRecallError(Exception):
    """Base class for every error raised by FlashRecall."""


class InvalidInput(FlashRecallError, ValueError):
    """Caller supplied a value the core refuses (e.g. quality outside 0-5)."""


class NotFound(FlashRecallError, LookupError):
    """A referenced card, deck or category does not exist."""


class InconsistentStateError(FlashRecallError, ValueError):
    """A stored card state is broken beyond what clamping can repair."""
