"""
Extended Hamming(8,4) forward error correction.

Each 4-bit group d1 d2 d3 d4 becomes the 8-bit codeword

    p1 p2 d1 p3 d2 d3 d4 p0

with
    p1 = d1 ^ d2 ^ d4
    p2 = d1 ^ d3 ^ d4
    p3 = d2 ^ d3 ^ d4
    p0 = parity of the first seven bits

Single-bit errors are corrected, double-bit errors are detected.
"""

import logging
from typing import Iterable, Sequence, Tuple

from .bits import BitSequence, as_bits
from .errors import InvalidLengthError, UncorrectableError

_logger = logging.getLogger(__name__)

DATA_BITS = 4
CODE_BITS = 8


def _encode_group(d1: int, d2: int, d3: int, d4: int) -> list[int]:
    p1 = d1 ^ d2 ^ d4
    p2 = d1 ^ d3 ^ d4
    p3 = d2 ^ d3 ^ d4
    word = [p1, p2, d1, p3, d2, d3, d4]
    p0 = 0
    for bit in word:
        p0 ^= bit
    word.append(p0)
    return word


def _syndrome(word: list[int]) -> int:
    """Position (1..7) of a single error in the Hamming part, 0 if none."""
    s1 = word[0] ^ word[2] ^ word[4] ^ word[6]
    s2 = word[1] ^ word[2] ^ word[5] ^ word[6]
    s3 = word[3] ^ word[4] ^ word[5] ^ word[6]
    return s1 | (s2 << 1) | (s3 << 2)


def correctable(word: Sequence[int]) -> bool:
    """True if word is a codeword or a single bit away from one."""
    word = list(word)
    parity = 0
    for bit in word:
        parity ^= bit
    return not (_syndrome(word) and not parity)


def encode(bits: Iterable[int]) -> BitSequence:
    """
    Encode bits four at a time into 8-bit codewords.

    Args:
        bits: Data bits, length a multiple of 4

    Returns:
        Codewords concatenated in input order

    Raises:
        InvalidLengthError: If the length is not a multiple of 4
    """
    bits = as_bits(bits)
    if len(bits) % DATA_BITS != 0:
        raise InvalidLengthError(len(bits), DATA_BITS, "hamming encode")

    code = []
    for i in range(0, len(bits), DATA_BITS):
        code.extend(_encode_group(*bits[i:i + DATA_BITS]))
    return tuple(code)


def decode(code: Iterable[int]) -> Tuple[BitSequence, int]:
    """
    Decode 8-bit codewords, correcting single-bit errors.

    Args:
        code: Codeword bits, length a multiple of 8

    Returns:
        Tuple of (data_bits, errors_corrected)

    Raises:
        InvalidLengthError: If the length is not a multiple of 8
        UncorrectableError: On a double-bit error, with the codeword index
    """
    code = as_bits(code)
    if len(code) % CODE_BITS != 0:
        raise InvalidLengthError(len(code), CODE_BITS, "hamming decode")

    data = []
    corrected = 0

    for group, i in enumerate(range(0, len(code), CODE_BITS)):
        word = list(code[i:i + CODE_BITS])
        syndrome = _syndrome(word)
        parity = 0
        for bit in word:
            parity ^= bit

        if syndrome and not parity:
            raise UncorrectableError(group, syndrome)
        if syndrome:
            word[syndrome - 1] ^= 1
            corrected += 1
        elif parity:
            # Only the overall parity bit flipped
            word[7] ^= 1
            corrected += 1

        data.extend((word[2], word[4], word[5], word[6]))

    if corrected:
        _logger.debug(f"Corrected {corrected} bit error(s) in {len(code) // CODE_BITS} codewords")

    return tuple(data), corrected


class HammingCoder:
    """
    Hamming(8,4) coder that keeps channel-quality statistics.

    Counts are cumulative across calls until reset_statistics().
    """

    def __init__(self):
        self.groups_decoded = 0
        self.errors_corrected = 0
        self.uncorrectable = 0

    def encode(self, bits: Iterable[int]) -> BitSequence:
        return encode(bits)

    def decode(self, code: Iterable[int]) -> Tuple[BitSequence, int]:
        try:
            data, corrected = decode(code)
        except UncorrectableError:
            self.uncorrectable += 1
            raise

        self.groups_decoded += len(data) // DATA_BITS
        self.errors_corrected += corrected
        return data, corrected

    def reset_statistics(self):
        self.groups_decoded = 0
        self.errors_corrected = 0
        self.uncorrectable = 0

    def get_statistics(self) -> dict:
        """
        Get decoding statistics.

        Returns:
            Dict with: groups_decoded, errors_corrected, uncorrectable
        """
        return {
            "groups_decoded": self.groups_decoded,
            "errors_corrected": self.errors_corrected,
            "uncorrectable": self.uncorrectable,
        }
