"""
Error types raised by the Internet Mood service.

The HTTP layer maps each of these to a JSON response; see ``server.py``.
"""


class MoodError(Exception):
    """Base class for all service errors."""


class InvalidPayload(MoodError):
    """The request body could not be parsed into a mood submission."""


class RateLimitExceeded(MoodError):
    """A client has used up its daily submission allowance."""

    def __init__(self, limit: int, current: int, retry_after_hours: int = 24) -> None:
        super().__init__(f"Daily limit of {limit} submissions reached")
        self.limit = limit
        self.current = current
        self.retry_after_hours = retry_after_hours


class PersistenceError(MoodError):
    """Neither the primary store nor the fallback file accepted a record."""


class AggregationReadError(MoodError):
    """Records could not be read for computing statistics."""
