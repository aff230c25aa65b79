"""Error types raised by the highlight pipeline.

Everything derives from HighlightError so callers can catch the whole family.
Where an error also has a natural builtin meaning (bad value, bad index,
runtime failure) it subclasses that builtin too.
"""


class HighlightError(Exception):
    """Base class for pipeline errors."""


class InvalidInputFormatError(HighlightError, ValueError):
    """Fetched object is not a readable PDF."""


class EmptyPayloadError(HighlightError, ValueError):
    """Fetched object has no bytes."""


class MalformedToolCallError(HighlightError, ValueError):
    """A tool call is missing a required field or carries an invalid value."""


class UnexpectedStopError(HighlightError):
    """The model ended a turn with a stop signal we do not handle."""

    def __init__(self, finish_reason: str | None, message: str | None = None):
        self.finish_reason = finish_reason
        super().__init__(message or f"Unexpected stop signal: {finish_reason!r}")


class UnboundedLoopError(HighlightError):
    """The conversation did not complete within the turn limit."""

    def __init__(self, max_turns: int):
        self.max_turns = max_turns
        super().__init__(f"Agent did not finish within {max_turns} turns")


class ConversationCancelledError(HighlightError):
    """Cancellation was requested between turns."""


class OutOfRangePageError(HighlightError, IndexError):
    """A highlight targets a page the document does not have."""

    def __init__(self, page_number: int, page_count: int):
        self.page_number = page_number
        self.page_count = page_count
        super().__init__(
            f"Page {page_number} out of range (document has {page_count} pages)"
        )


class InvalidRegionError(HighlightError, ValueError):
    """A mapped region has a negative width or height."""


class TransportError(HighlightError, RuntimeError):
    """A remote collaborator failed after retries were exhausted."""


class ObjectNotFoundError(TransportError):
    """The requested object does not exist in the store."""


class ConfigurationError(HighlightError, ValueError):
    """A required setting is missing or holds a bad value."""
