"""
Continuous-phase FSK modulation and demodulation.

Symbol mapping (natural binary, not Gray coded):
- BFSK: 0 -> carrier, 1 -> carrier + deviation
- QFSK: 00 -> carrier, 01 -> carrier + deviation,
        10 -> carrier + 2 * deviation, 11 -> carrier + 3 * deviation

Bits are consumed MSB first within each QFSK symbol.
"""

import logging
import math
from enum import Enum
from typing import Iterable, Optional

import numpy as np
from scipy.signal import hilbert

from . import AMPLITUDE, ANSWER_TONE, DIAL_TONE, SAMPLE_RATE
from .bits import BitSequence, as_bits
from .config import ModulationConfig
from .errors import InvalidLengthError

_logger = logging.getLogger(__name__)

TWO_PI = 2 * math.pi


def to_pcm16(signal: np.ndarray) -> np.ndarray:
    """Round and clip samples into the signed 16-bit range."""
    return np.clip(np.rint(signal), -32768, 32767).astype(np.int16)


class Modulator:
    """
    CPFSK modulator.

    The waveform phase is the running sum of per-sample phase increments
    dphi = f * pi / (sample_rate / 2), so there is no phase jump at symbol
    boundaries. The accumulator is reduced modulo 2*pi after every symbol
    and carries over between calls until reset_phase().
    """

    def __init__(self, config: Optional[ModulationConfig] = None):
        self.config = config or ModulationConfig()

        # Phase accumulator for continuous phase
        self.phase = 0.0

    def reset_phase(self):
        """Reset phase accumulator."""
        self.phase = 0.0

    def symbols(self, bits: Iterable[int]) -> list[int]:
        """
        Group bits into symbol values.

        Raises:
            InvalidLengthError: If bits do not fill whole symbols
        """
        bits = as_bits(bits)
        k = self.config.bits_per_symbol
        if len(bits) % k != 0:
            raise InvalidLengthError(len(bits), k, f"{self.config.scheme.name} modulation")

        values = []
        for i in range(0, len(bits), k):
            value = 0
            for bit in bits[i:i + k]:
                value = (value << 1) | bit
            values.append(value)
        return values

    def _segments(self, frequencies: list[float]) -> list[tuple[float, int]]:
        """Pair each symbol frequency with its sample count."""
        segments = []
        for index, freq in enumerate(frequencies):
            start, stop = self.config.symbol_bounds(index)
            segments.append((freq, stop - start))
        return segments

    def _integrate(self, segments: list[tuple[float, int]]) -> np.ndarray:
        """
        Integrate phase over (frequency, n_samples) segments.

        Returns:
            Phase of every sample, each segment offset by the reduced
            phase at the end of the previous one
        """
        nyquist = self.config.nyquist
        phases = []
        for freq, n_samples in segments:
            dphi = freq * math.pi / nyquist
            segment = self.phase + dphi * np.arange(1, n_samples + 1)
            phases.append(segment)
            if n_samples:
                self.phase = math.fmod(segment[-1], TWO_PI)

        if not phases:
            return np.zeros(0)
        return np.concatenate(phases)

    def frequencies(self, bits: Iterable[int]) -> np.ndarray:
        """Instantaneous frequency of every output sample."""
        tones = self.config.tones
        segments = self._segments([tones[s] for s in self.symbols(bits)])
        return np.concatenate(
            [np.full(n, freq) for freq, n in segments] or [np.zeros(0)]
        )

    def phase_of(self, bits: Iterable[int]) -> np.ndarray:
        """
        Instantaneous phase for bits, starting from time zero.

        Does not disturb the running accumulator.
        """
        saved = self.phase
        self.phase = 0.0
        try:
            tones = self.config.tones
            return self._integrate(self._segments([tones[s] for s in self.symbols(bits)]))
        finally:
            self.phase = saved

    def modulate(self, bits: Iterable[int]) -> np.ndarray:
        """
        Modulate bits into a float waveform in [-amplitude, amplitude].

        The waveform starts from the phase the previous call ended on, so
        consecutive calls join without a jump. Call reset_phase() first to
        reproduce a waveform exactly.

        Args:
            bits: Bit sequence, length a multiple of bits_per_symbol

        Returns:
            One held tone per symbol, config.symbols_to_samples(n) samples
        """
        tones = self.config.tones
        symbols = self.symbols(bits)
        phase = self._integrate(self._segments([tones[s] for s in symbols]))

        _logger.debug(
            f"Modulated {len(symbols)} {self.config.scheme.name} symbols "
            f"into {len(phase)} samples"
        )

        return self.config.amplitude * np.sin(phase)

    def tone(self, freq: float, n_symbols: int) -> np.ndarray:
        """
        Generate a steady tone lasting n_symbols symbol periods.

        Used for dial and answer tones; shares the phase accumulator so a
        tone followed by data stays continuous.
        """
        phase = self._integrate(self._segments([freq] * n_symbols))
        return self.config.amplitude * np.sin(phase)

    def silence(self, n_symbols: int) -> np.ndarray:
        return np.zeros(self.config.symbols_to_samples(n_symbols))


class Demodulator:
    """
    CPFSK demodulator based on instantaneous frequency.

    The analytic signal's unwrapped phase is differentiated to estimate the
    frequency of every sample. Each symbol period's estimates are trimmed at
    both edges, reduced with a median, and mapped to the nearest tone.
    Decisions are correct while the estimate stays within deviation / 2 of
    the transmitted tone.
    """

    def __init__(self, config: Optional[ModulationConfig] = None, trim: float = 0.15):
        """
        Initialize demodulator.

        Args:
            config: Modem parameters shared with the transmitter
            trim: Fraction of each symbol period ignored at both edges
        """
        if not 0 <= trim < 0.5:
            raise ValueError(f"trim must be in [0, 0.5), got {trim}")
        self.config = config or ModulationConfig()
        self.trim = trim
        self._tones = np.array(self.config.tones)

    def instantaneous_frequency(self, signal: np.ndarray) -> np.ndarray:
        """
        Per-sample frequency estimate in Hz (same length as signal).

        The signal is mirrored at both ends before the Hilbert transform so
        the transform's edge ringing falls outside the returned samples.
        """
        samples = np.asarray(signal, dtype=np.float64)
        if len(samples) < 2:
            return np.zeros(len(samples))

        pad = min(int(self.config.samples_per_symbol), len(samples) - 1)
        padded = np.pad(samples, pad, mode="reflect")
        phase = np.unwrap(np.angle(hilbert(padded)))
        freq = np.diff(phase) * self.config.sample_rate / TWO_PI
        freq = np.concatenate([freq[:1], freq])
        return freq[pad:pad + len(samples)]

    def symbol_count(self, n_samples: int) -> int:
        """Number of whole symbols contained in n_samples."""
        sps = self.config.samples_per_symbol
        count = int(n_samples // sps)
        while self.config.symbols_to_samples(count + 1) <= n_samples:
            count += 1
        while count and self.config.symbols_to_samples(count) > n_samples:
            count -= 1
        return count

    def symbol_frequencies(self, signal: np.ndarray, offset: int = 0) -> np.ndarray:
        """
        Estimate the frequency of each whole symbol in signal[offset:].

        Returns:
            One median frequency estimate per symbol
        """
        samples = np.asarray(signal, dtype=np.float64)[offset:]
        inst = self.instantaneous_frequency(samples)

        estimates = []
        for index in range(self.symbol_count(len(samples))):
            start, stop = self.config.symbol_bounds(index)
            cut = int((stop - start) * self.trim)
            window = inst[start + cut:stop - cut]
            if len(window) == 0:
                window = inst[start:stop]
            estimates.append(float(np.median(window)))

        return np.array(estimates)

    def nearest_symbol(self, freq: float) -> int:
        """Symbol value whose tone is closest to freq."""
        return int(np.argmin(np.abs(self._tones - freq)))

    def demodulate(self, signal: np.ndarray, offset: int = 0) -> BitSequence:
        """
        Recover bits from a symbol-aligned signal.

        Args:
            signal: Samples, first symbol starting at offset
            offset: Sample index of the first symbol

        Returns:
            bits_per_symbol bits (MSB first) for every whole symbol
        """
        k = self.config.bits_per_symbol
        bits = []
        for freq in self.symbol_frequencies(signal, offset):
            value = self.nearest_symbol(freq)
            for i in range(k - 1, -1, -1):
                bits.append((value >> i) & 1)
        return tuple(bits)


class Tone(Enum):
    """Handshake tones."""

    DIAL = DIAL_TONE
    ANSWER = ANSWER_TONE

    @property
    def frequency(self) -> float:
        return self.value


class ToneDetector:
    """
    Detects dial and answer tones in a window of samples.

    For each tone, the single-bin DFT power is compared with the window's
    mean power; a pure tone scores close to 1 and other signals close to 0.
    """

    def __init__(
        self,
        sample_rate: float = SAMPLE_RATE,
        threshold: float = 0.5,
        silence_rms: float = AMPLITUDE * 0.01,
    ):
        """
        Initialize detector.

        Args:
            sample_rate: Audio sample rate (Hz)
            threshold: Minimum fraction of window power in the tone bin
            silence_rms: Windows quieter than this never contain a tone
        """
        self.sample_rate = sample_rate
        self.threshold = threshold
        self.silence_rms = silence_rms

    def _bin_power(self, samples: np.ndarray, freq: float) -> float:
        n = len(samples)
        reference = np.exp(-2j * np.pi * freq * np.arange(n) / self.sample_rate)
        coeff = np.dot(samples, reference)
        return float(2 * np.abs(coeff) ** 2 / n ** 2)

    def scores(self, window: np.ndarray) -> dict:
        """
        Fraction of window power carried by each tone.

        Returns:
            Dict mapping Tone to score, empty for silent windows
        """
        samples = np.asarray(window, dtype=np.float64)
        if len(samples) == 0:
            return {}

        power = float(np.mean(samples ** 2))
        if math.sqrt(power) < self.silence_rms:
            return {}

        return {tone: self._bin_power(samples, tone.frequency) / power for tone in Tone}

    def detect(self, window: np.ndarray) -> Optional[Tone]:
        """
        Return the tone present in the window, if any.
        """
        scores = self.scores(window)
        if not scores:
            return None

        tone, score = max(scores.items(), key=lambda item: item[1])
        if score >= self.threshold:
            return tone
        return None
