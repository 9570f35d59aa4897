"""
Tests for frame assembly and sync search.
"""

import random

import pytest

from coupler import (
    PREAMBLE,
    START_FLAG,
    SyncNotFoundError,
    TruncatedFrameError,
    bits_of,
    frame,
    locate_frame,
    unframe,
)
from coupler.hamming import decode, encode

IDLE = (0,) * 16


def random_payload(n_nibbles, seed=0):
    rng = random.Random(seed)
    return encode(tuple(rng.randint(0, 1) for _ in range(4 * n_nibbles)))


def flag_lookalike_payload():
    """Coded "p" with one bit flipped so its first codeword reads as the flag."""
    payload = list(encode(bits_of("p")))
    payload[4] ^= 1
    return tuple(payload)


class TestFrame:
    """Test frame layout."""

    def test_layout(self):
        """Test preamble, flags and payload positions."""
        payload = encode((1, 0, 1, 1))
        framed = frame(payload)
        assert framed[:8] == PREAMBLE
        assert framed[8:16] == PREAMBLE
        assert framed[16:24] == START_FLAG
        assert framed[24:32] == payload
        assert framed[32:] == START_FLAG

    def test_constants(self):
        """Test preamble and start flag values."""
        assert PREAMBLE == (1, 0, 1, 0, 1, 0, 1, 0)
        assert START_FLAG == (0, 0, 0, 1, 0, 1, 1, 0)

    def test_overhead(self):
        """Test that framing adds 32 bits."""
        assert len(frame(())) == 32


class TestUnframe:
    """Test sync search and payload extraction."""

    def test_round_trip(self):
        """Test frame then unframe for several payload sizes."""
        for n in (0, 1, 4, 20, 100):
            payload = random_payload(n, seed=n)
            assert unframe(frame(payload)) == payload

    def test_no_codeword_equals_flag(self):
        """Test that no error-free codeword is mistaken for the end flag."""
        for value in range(16):
            nibble = tuple((value >> i) & 1 for i in range(3, -1, -1))
            assert encode(nibble) != START_FLAG

    def test_leading_noise(self):
        """Test sync after a few junk bits."""
        payload = random_payload(6)
        stream = (0, 0, 1, 1, 0) + frame(payload)
        assert unframe(stream) == payload

    def test_trailing_bits_ignored(self):
        """Test that a short tail after the end flag is not part of the frame."""
        payload = random_payload(3)
        stream = frame(payload) + (1, 1, 0, 1, 0, 0, 1)
        span = locate_frame(stream)
        assert span.payload_start == 24
        assert span.payload_end == 24 + len(payload)
        assert span.frame_end == 32 + len(payload)
        assert unframe(stream) == payload

    def test_no_preamble(self):
        """Test that a stream without preamble fails sync."""
        with pytest.raises(SyncNotFoundError):
            unframe((0,) * 100)

    def test_no_start_flag(self):
        """Test that a preamble without start flag fails sync."""
        with pytest.raises(SyncNotFoundError):
            unframe(PREAMBLE * 10)

    def test_sync_outside_window(self):
        """Test that sync must begin within the search window."""
        stream = (0,) * 40 + frame(random_payload(2))
        with pytest.raises(SyncNotFoundError):
            unframe(stream, search_window=32)
        assert unframe(stream, search_window=80) == random_payload(2)

    def test_truncated(self):
        """Test that a missing end flag is reported as truncation."""
        framed = frame(random_payload(5))
        with pytest.raises(TruncatedFrameError):
            unframe(framed[:-1])

    def test_truncated_before_payload(self):
        """Test truncation right after the start flag."""
        with pytest.raises(TruncatedFrameError):
            unframe(PREAMBLE + PREAMBLE + START_FLAG)

    def test_unaligned_flag_not_terminator(self):
        """Test that flag bits straddling codewords do not end the frame."""
        # 11100001 01100110 carries 00010110 at offset 4
        payload = encode((1, 0, 0, 0, 1, 0, 1, 1))
        assert payload == (1, 1, 1, 0, 0, 0, 0, 1, 0, 1, 1, 0, 0, 1, 1, 0)
        assert payload[4:12] == START_FLAG
        assert unframe(frame(payload)) == payload


class TestEndFlag:
    """Test confirmation of the terminating flag."""

    def test_flag_lookalike_codeword(self):
        """Test that a codeword one bit from the flag does not end the frame."""
        payload = flag_lookalike_payload()
        assert payload[:8] == START_FLAG
        assert unframe(frame(payload)) == payload
        assert decode(payload) == (bits_of("p"), 1)

    def test_flag_lookalike_in_open_stream(self):
        """Test the lookalike codeword while the stream is still growing."""
        payload = flag_lookalike_payload()
        span = locate_frame(frame(payload) + IDLE, partial=True)
        assert span.payload_end - span.payload_start == len(payload)

    def test_open_stream_waits_for_idle(self):
        """Test that an unconfirmed end flag is reported as truncation."""
        stream = frame(encode(bits_of("ok")))
        with pytest.raises(TruncatedFrameError):
            locate_frame(stream, partial=True)
        with pytest.raises(TruncatedFrameError):
            locate_frame(stream + (0,) * 8, partial=True)

        span = locate_frame(stream + IDLE, partial=True)
        assert span.frame_end == len(stream)

    def test_noise_confirms_end(self):
        """Test that a block no codeword is near confirms the end flag."""
        stream = frame(encode(bits_of("ok")))
        # 11000000 is two bits from every codeword
        span = locate_frame(stream + (1, 1, 0, 0, 0, 0, 0, 0), partial=True)
        assert span.frame_end == len(stream)
