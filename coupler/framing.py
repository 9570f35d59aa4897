"""
Frame assembly and sync-marker search.

Frame layout (bits, in transmission order):
- Preamble: 8 bits (10101010), twice - symbol timing lock
- Start flag: 8 bits (00010110) - payload starts after it
- Payload: FEC codewords
- Start flag: 8 bits - end-of-frame marker, there is no length field

No codeword equals the start flag, but the flag is one bit away from the
codeword for 0111. An aligned flag inside the payload is therefore only a
candidate end until what follows it shows whether the frame goes on.
"""

from typing import Iterable, NamedTuple, Optional, Sequence

from . import IDLE_BLOCKS, PREAMBLE, SEARCH_WINDOW, START_FLAG
from .bits import BitSequence, as_bits
from .errors import SyncNotFoundError, TruncatedFrameError
from .hamming import CODE_BITS, correctable


class FrameSpan(NamedTuple):
    """Bit offsets of a located frame within a stream."""

    payload_start: int
    payload_end: int
    frame_end: int


def _find(stream: Sequence[int], pattern: Sequence[int], start: int, stop: int, step: int = 1) -> Optional[int]:
    """First index in [start, stop) with step where pattern matches exactly."""
    n = len(pattern)
    for i in range(start, min(stop, len(stream) - n + 1), step):
        if tuple(stream[i:i + n]) == tuple(pattern):
            return i
    return None


def frame(payload: Iterable[int]) -> BitSequence:
    """
    Wrap an FEC-coded payload with preamble and start flags.

    Returns:
        preamble + preamble + flag + payload + flag
    """
    payload = as_bits(payload)
    return PREAMBLE + PREAMBLE + START_FLAG + payload + START_FLAG


def _find_end(stream: BitSequence, payload_start: int, block_size: int, partial: bool) -> Optional[int]:
    """
    Index of the terminating flag, or None if it is not settled yet.

    A flag-valued block becomes the candidate end. The candidate is
    confirmed by IDLE_BLOCKS all-zero blocks (the idle channel), by a block
    no codeword is near (noise after the frame) or by the end of a complete
    stream. A later flag reached through decodable blocks replaces it, the
    earlier one being a codeword with a flipped bit.
    """
    candidate = None
    idle = 0

    for pos in range(payload_start, len(stream), block_size):
        block = stream[pos:pos + block_size]
        if len(block) < block_size:
            break

        if candidate is not None:
            if not any(block):
                idle += 1
                if idle >= IDLE_BLOCKS:
                    return candidate
                continue
            if not correctable(block):
                return candidate
            idle = 0

        if block == START_FLAG:
            candidate = pos

    return None if partial else candidate


def locate_frame(
    stream: Iterable[int],
    search_window: int = SEARCH_WINDOW,
    block_size: int = CODE_BITS,
    partial: bool = False,
) -> FrameSpan:
    """
    Locate the first frame in a bit stream.

    The preamble and the start flag following it are matched exactly and
    must both begin within the first search_window bits. The terminating
    flag is only looked for on block_size boundaries counted from the
    payload start, and must be confirmed by what follows it (see _find_end).

    Args:
        stream: Received bits
        search_window: Bits from the stream start in which sync must appear
        block_size: Payload alignment (codeword size)
        partial: The stream may still grow; an end flag that nothing
            confirms yet is reported as truncation rather than accepted

    Returns:
        FrameSpan with payload bounds and the index just past the frame

    Raises:
        SyncNotFoundError: No preamble/start flag within the window
        TruncatedFrameError: Stream ended before the terminating flag
    """
    stream = as_bits(stream)

    preamble_at = _find(stream, PREAMBLE, 0, search_window)
    if preamble_at is None:
        raise SyncNotFoundError(f"no preamble within the first {search_window} bits")

    flag_at = _find(stream, START_FLAG, preamble_at + len(PREAMBLE), search_window)
    if flag_at is None:
        raise SyncNotFoundError(
            f"no start flag after preamble at bit {preamble_at} within {search_window} bits"
        )

    payload_start = flag_at + len(START_FLAG)
    end_at = _find_end(stream, payload_start, block_size, partial)
    if end_at is None:
        raise TruncatedFrameError(
            f"stream ended after {len(stream) - payload_start} payload bits without end flag"
        )

    return FrameSpan(payload_start, end_at, end_at + len(START_FLAG))


def unframe(
    stream: Iterable[int],
    search_window: int = SEARCH_WINDOW,
    block_size: int = CODE_BITS,
) -> BitSequence:
    """
    Strip preamble and flags from a complete stream, returning the payload bits.

    See locate_frame() for the search rules and errors raised.
    """
    stream = as_bits(stream)
    span = locate_frame(stream, search_window, block_size)
    return stream[span.payload_start:span.payload_end]
