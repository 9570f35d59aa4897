"""
Coupler exception hierarchy.
"""

from typing import Optional


class CouplerError(Exception):
    """Base class for all coupler errors."""


class InvalidLengthError(CouplerError, ValueError):
    """A bit sequence length violates a stage's grouping requirement."""

    def __init__(self, length: int, multiple: int, stage: str = ""):
        self.length = length
        self.multiple = multiple
        self.stage = stage
        where = f"{stage}: " if stage else ""
        super().__init__(
            f"{where}bit sequence length {length} is not a multiple of {multiple}"
        )


class FramingError(CouplerError):
    """Bits could not be grouped or delimited."""


class SyncNotFoundError(FramingError):
    """No preamble and start flag within the search window."""


class TruncatedFrameError(FramingError):
    """The stream ended before the terminating start flag."""


class UncorrectableError(CouplerError):
    """
    A codeword carries more errors than the FEC can correct.

    Attributes:
        group_index: Index of the offending codeword (0-based)
    """

    def __init__(self, group_index: int, syndrome: Optional[int] = None):
        self.group_index = group_index
        self.syndrome = syndrome
        super().__init__(
            f"uncorrectable error in codeword {group_index} (syndrome={syndrome})"
        )


class InvalidTransitionError(CouplerError):
    """An event is not accepted in the session's current state."""

    def __init__(self, state, event, message: str = ""):
        self.state = state
        self.event = event
        super().__init__(message or f"event {event.name} not valid in state {state.name}")


class HandshakeError(InvalidTransitionError):
    """A preamble arrived before the tone exchange completed."""
