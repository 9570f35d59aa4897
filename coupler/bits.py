"""
Conversion between application payloads and bit sequences.

Bytes are expanded most-significant bit first, both on the way out
and on the way back in.
"""

from typing import Iterable, Tuple, Union

from .errors import FramingError

BitSequence = Tuple[int, ...]


def as_bits(values: Iterable) -> BitSequence:
    """
    Normalise an iterable of binary values to a bit sequence.

    Accepts lists, tuples, numpy arrays or any iterable whose items compare
    equal to 0 or 1.

    Raises:
        ValueError: If any value is not exactly 0 or 1
    """
    bits = []
    for i, value in enumerate(values):
        if value == 1:
            bits.append(1)
        elif value == 0:
            bits.append(0)
        else:
            raise ValueError(f"bit {i} is {value!r}, expected 0 or 1")
    return tuple(bits)


def bits_of(data: Union[str, bytes]) -> BitSequence:
    """
    Convert text or bytes to bits (MSB first).

    Text is UTF-8 encoded first.

    Args:
        data: Payload as str or bytes

    Returns:
        8 bits per byte
    """
    if isinstance(data, str):
        data = data.encode("utf-8")

    bits = []
    for byte in bytes(data):
        for i in range(7, -1, -1):
            bits.append((byte >> i) & 1)
    return tuple(bits)


def bytes_of(bits: Iterable[int]) -> bytes:
    """
    Pack bits (MSB first) back into bytes.

    Raises:
        FramingError: If the bit count is not a multiple of 8
    """
    bits = as_bits(bits)
    if len(bits) % 8 != 0:
        raise FramingError(f"{len(bits)} bits do not form whole bytes")

    data = bytearray()
    for i in range(0, len(bits), 8):
        byte = 0
        for bit in bits[i:i + 8]:
            byte = (byte << 1) | bit
        data.append(byte)
    return bytes(data)


def text_of(bits: Iterable[int], errors: str = "strict") -> str:
    """Pack bits into bytes and decode them as UTF-8."""
    return bytes_of(bits).decode("utf-8", errors=errors)
