"""
Transmitter - turns payloads into CPFSK audio.
"""

import logging
from pathlib import Path
from typing import Optional, Union

import numpy as np

from . import HANDSHAKE_SYMBOLS, TONE_WINDOW_SYMBOLS
from .audio import play, write_pcm16
from .bits import BitSequence, bits_of
from .config import ModulationConfig
from .framing import frame
from .hamming import HammingCoder
from .modem import Modulator, Tone

_logger = logging.getLogger(__name__)


def wav_name(name: str) -> str:
    """Append .wav unless the name already carries an extension."""
    return name if Path(name).suffix else f"{name}.wav"


class Transmitter:
    """
    Payload to waveform pipeline.

    bits_of -> Hamming(8,4) encode -> frame -> CPFSK modulate
    """

    def __init__(
        self,
        config: Optional[ModulationConfig] = None,
        handshake_symbols: int = HANDSHAKE_SYMBOLS,
    ):
        """
        Initialize transmitter.

        Args:
            config: Modem parameters
            handshake_symbols: Length of each handshake tone in symbol periods
        """
        self.config = config or ModulationConfig()
        self.handshake_symbols = handshake_symbols
        self.coder = HammingCoder()
        self.modulator = Modulator(self.config)

    def encode(self, data: Union[str, bytes]) -> BitSequence:
        """
        Build the framed, FEC-coded bit sequence for a payload.

        Returns:
            Bits ready for modulation
        """
        payload = bits_of(data)
        coded = self.coder.encode(payload)
        framed = frame(coded)
        _logger.debug(
            f"Encoded {len(payload) // 8} bytes: {len(payload)} data bits, "
            f"{len(coded)} coded bits, {len(framed)} framed bits"
        )
        return framed

    def modulate(self, data: Union[str, bytes]) -> np.ndarray:
        """Modulate a payload's frame, starting from zero phase."""
        self.modulator.reset_phase()
        return self.modulator.modulate(self.encode(data))

    def handshake(self, tone: Tone) -> np.ndarray:
        """Generate one handshake tone, continuing the current phase."""
        return self.modulator.tone(tone.frequency, self.handshake_symbols)

    def transmission(
        self,
        data: Union[str, bytes],
        dial: bool = True,
        answer: bool = True,
        tail_symbols: int = 2 * TONE_WINDOW_SYMBOLS,
    ) -> np.ndarray:
        """
        Generate a complete transmission.

        Layout: [dial tone] [answer tone] frame [silence]. Including the
        answer tone simulates both sides of the exchange in one recording.

        Args:
            data: Payload text or bytes
            dial: Prefix the dial tone
            answer: Follow with the answer tone
            tail_symbols: Trailing silence in symbol periods; the receiver
                needs idle bits after the end flag to close the frame

        Returns:
            Float samples in [-amplitude, amplitude]
        """
        self.modulator.reset_phase()

        parts = []
        if dial:
            parts.append(self.handshake(Tone.DIAL))
        if answer:
            parts.append(self.handshake(Tone.ANSWER))
        parts.append(self.modulator.modulate(self.encode(data)))
        if tail_symbols:
            parts.append(self.modulator.silence(tail_symbols))

        signal = np.concatenate(parts)
        _logger.info(
            f"Transmission: {len(signal)} samples "
            f"({len(signal) / self.config.sample_rate:.2f}s at {self.config.baud_rate} baud)"
        )
        return signal

    def send_to_file(self, output_path: Union[str, Path], data: Union[str, bytes], **kwargs):
        """
        Generate a transmission and save it as 16-bit PCM WAV.

        Keyword arguments are passed to transmission().
        """
        signal = self.transmission(data, **kwargs)
        write_pcm16(output_path, signal, int(self.config.sample_rate))

    def send(self, data: Union[str, bytes], device: Optional[int] = None, **kwargs):
        """Play a transmission on an output device, blocking until done."""
        signal = self.transmission(data, **kwargs)
        play(signal, int(self.config.sample_rate), device=device)
