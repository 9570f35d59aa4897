"""
Modem configuration.
"""

import math
from dataclasses import dataclass
from enum import Enum

from . import AMPLITUDE, BAUD_RATE, CARRIER_FREQ, DEVIATION_FREQ, SAMPLE_RATE

PCM16_MAX = 32767.0


class ModulationScheme(Enum):
    """FSK variants: number of tones is 2 ** bits_per_symbol."""

    BFSK = 1
    QFSK = 2

    @property
    def bits_per_symbol(self) -> int:
        return self.value

    @property
    def tone_count(self) -> int:
        return 2 ** self.value


@dataclass(frozen=True)
class ModulationConfig:
    """
    Validated CPFSK parameters.

    Tone k (symbol value k) sits at carrier_freq + k * deviation_freq.
    When sample_rate / baud_rate is not integral, symbol boundaries are
    placed at floor(k * samples_per_symbol) so the rounding error never
    exceeds one sample over any number of symbols.
    """

    sample_rate: float = SAMPLE_RATE
    baud_rate: int = BAUD_RATE
    amplitude: float = AMPLITUDE
    scheme: ModulationScheme = ModulationScheme.BFSK
    carrier_freq: float = CARRIER_FREQ
    deviation_freq: float = DEVIATION_FREQ

    def __post_init__(self):
        if isinstance(self.scheme, str):
            object.__setattr__(self, "scheme", ModulationScheme[self.scheme.upper()])

        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.baud_rate <= 0 or int(self.baud_rate) != self.baud_rate:
            raise ValueError(f"baud_rate must be a positive integer, got {self.baud_rate}")
        if self.samples_per_symbol < 1:
            raise ValueError(
                f"baud_rate {self.baud_rate} exceeds sample_rate {self.sample_rate}"
            )
        if not 0 < self.amplitude <= PCM16_MAX:
            raise ValueError(f"amplitude must be in (0, {PCM16_MAX:.0f}], got {self.amplitude}")
        if self.carrier_freq <= 0:
            raise ValueError(f"carrier_freq must be positive, got {self.carrier_freq}")
        if self.deviation_freq <= 0:
            raise ValueError(f"deviation_freq must be positive, got {self.deviation_freq}")
        if self.highest_tone >= self.nyquist:
            raise ValueError(
                f"highest tone {self.highest_tone} Hz must be below Nyquist ({self.nyquist} Hz)"
            )

    @property
    def samples_per_symbol(self) -> float:
        return self.sample_rate / self.baud_rate

    @property
    def nyquist(self) -> float:
        return self.sample_rate / 2

    @property
    def bits_per_symbol(self) -> int:
        return self.scheme.bits_per_symbol

    @property
    def tones(self) -> tuple[float, ...]:
        """Tone frequency for each symbol value."""
        return tuple(
            self.carrier_freq + k * self.deviation_freq
            for k in range(self.scheme.tone_count)
        )

    @property
    def highest_tone(self) -> float:
        return self.tones[-1]

    def symbol_bounds(self, index: int) -> tuple[int, int]:
        """Sample range [start, stop) occupied by symbol index."""
        sps = self.samples_per_symbol
        return math.floor(index * sps), math.floor((index + 1) * sps)

    def symbols_to_samples(self, n_symbols: int) -> int:
        return math.floor(n_symbols * self.samples_per_symbol)

    def seconds_to_symbols(self, seconds: float) -> int:
        return int(round(seconds * self.baud_rate))
