"""
Tests for CPFSK modulation, demodulation and tone detection.
"""

import math
import random

import numpy as np
import pytest

from coupler import (
    Demodulator,
    InvalidLengthError,
    ModulationConfig,
    ModulationScheme,
    Modulator,
    Tone,
    ToneDetector,
    Transmitter,
    to_pcm16,
)

BFSK = ModulationConfig()
QFSK = ModulationConfig(scheme=ModulationScheme.QFSK)


def random_bits(n, seed=0):
    rng = random.Random(seed)
    return tuple(rng.randint(0, 1) for _ in range(n))


class TestModulator:
    """Test waveform generation."""

    def test_hi_example(self):
        """Test sample count for "hi" at 300 baud."""
        transmitter = Transmitter(ModulationConfig(baud_rate=300, sample_rate=44100))
        bits = transmitter.encode("hi")
        # 16 data bits -> 4 codewords of 8 bits -> +32 framing bits
        assert len(bits) == 64

        signal = transmitter.modulate("hi")
        assert transmitter.config.samples_per_symbol == 147
        assert len(signal) == 64 * 147

    def test_qfsk_length(self):
        """Test that QFSK carries two bits per symbol."""
        signal = Modulator(QFSK).modulate(random_bits(64))
        assert len(signal) == 32 * 147

    def test_amplitude_range(self):
        """Test peak amplitude."""
        signal = Modulator(BFSK).modulate(random_bits(50))
        assert np.max(np.abs(signal)) <= BFSK.amplitude
        assert np.max(np.abs(signal)) > 0.9 * BFSK.amplitude

    def test_bfsk_mapping(self):
        """Test BFSK symbol frequencies."""
        mod = Modulator(BFSK)
        freqs = mod.frequencies((0, 1))
        assert np.all(freqs[:147] == 3000)
        assert np.all(freqs[147:] == 6000)

    def test_qfsk_natural_binary_mapping(self):
        """Test QFSK natural binary mapping."""
        mod = Modulator(QFSK)
        assert mod.symbols((0, 0, 0, 1, 1, 0, 1, 1)) == [0, 1, 2, 3]
        freqs = mod.frequencies((1, 1, 0, 1))
        assert freqs[0] == 12000
        assert freqs[147] == 6000

    def test_qfsk_odd_length(self):
        """Test that QFSK rejects an odd bit count."""
        with pytest.raises(InvalidLengthError):
            Modulator(QFSK).modulate((1, 0, 1))

    def test_fractional_samples_per_symbol(self):
        """Test total length with fractional samples per symbol."""
        config = ModulationConfig(baud_rate=400)
        signal = Modulator(config).modulate(random_bits(4))
        assert len(signal) == 441

    def test_empty(self):
        """Test empty input."""
        assert len(Modulator(BFSK).modulate(())) == 0

    def test_first_sample_includes_one_increment(self):
        """Test that the first sample already carries one phase increment."""
        signal = Modulator(BFSK).modulate((0,))
        dphi = 3000 * math.pi / (44100 / 2)
        assert signal[0] == pytest.approx(BFSK.amplitude * math.sin(dphi))

    @pytest.mark.parametrize("config", [BFSK, QFSK], ids=["bfsk", "qfsk"])
    def test_phase_continuity(self, config):
        """Phase never jumps by more than one sample's increment."""
        mod = Modulator(config)
        bits = random_bits(200, seed=3)
        phase = mod.phase_of(bits)
        dphi = mod.frequencies(bits) * math.pi / config.nyquist

        steps = np.diff(np.unwrap(phase))
        assert np.allclose(steps, dphi[1:])
        assert np.max(steps) <= np.max(dphi) + 1e-9

        # Symbol boundaries specifically
        sps = int(config.samples_per_symbol)
        boundaries = np.arange(sps, len(phase), sps)
        assert np.allclose(steps[boundaries - 1], dphi[boundaries])

    @pytest.mark.parametrize("config", [BFSK, QFSK], ids=["bfsk", "qfsk"])
    def test_sample_slew(self, config):
        """Test that no sample step exceeds the highest tone's slew."""
        mod = Modulator(config)
        bits = random_bits(100, seed=4)
        signal = mod.modulate(bits)
        max_dphi = config.highest_tone * math.pi / config.nyquist
        assert np.max(np.abs(np.diff(signal))) <= config.amplitude * max_dphi + 1e-6

    def test_reduced_phase_matches_cumulative_sum(self):
        """Test reduced phase against the unreduced cumulative sum."""
        mod = Modulator(QFSK)
        bits = random_bits(40, seed=5)
        dphi = mod.frequencies(bits) * math.pi / QFSK.nyquist
        reference = QFSK.amplitude * np.sin(np.cumsum(dphi))
        assert np.allclose(mod.modulate(bits), reference, atol=0.05)

    def test_phase_stays_bounded(self):
        """Test that the phase accumulator stays within one turn."""
        mod = Modulator(BFSK)
        mod.modulate(random_bits(2000, seed=6))
        assert 0 <= abs(mod.phase) < 2 * math.pi

    def test_phase_carries_between_calls(self):
        """Test that phase continues between calls."""
        mod = Modulator(BFSK)
        first = mod.modulate((1, 0))
        second = mod.modulate((1,))
        mod.reset_phase()
        whole = mod.modulate((1, 0, 1))
        assert np.allclose(np.concatenate([first, second]), whole, atol=1e-6)

    def test_replay_after_reset_phase(self):
        """Test that modulate reproduces a waveform once the phase is reset."""
        # 1000 Hz turns 3 1/3 times per symbol, so each call ends off zero
        mod = Modulator(ModulationConfig(carrier_freq=1000))
        bits = (0,) * 7
        first = mod.modulate(bits)
        assert not np.allclose(mod.modulate(bits), first)

        mod.reset_phase()
        assert np.array_equal(mod.modulate(bits), first)

    def test_phase_of_leaves_accumulator(self):
        """Test that phase_of does not disturb the accumulator."""
        mod = Modulator(BFSK)
        mod.modulate((1, 1, 0))
        saved = mod.phase
        mod.phase_of((0, 1))
        assert mod.phase == saved

    def test_tone(self):
        """Test handshake tone length and range."""
        mod = Modulator(BFSK)
        tone = mod.tone(800.0, 10)
        assert len(tone) == 1470
        assert np.max(np.abs(tone)) <= BFSK.amplitude


class TestToPcm16:
    """Test 16-bit conversion."""

    def test_rounds_and_clips(self):
        """Test rounding and clipping to int16."""
        out = to_pcm16(np.array([40000.0, -40000.0, 1.4, -1.6, 32767.4]))
        assert out.dtype == np.int16
        assert out.tolist() == [32767, -32768, 1, -2, 32767]


class TestDemodulator:
    """Test symbol detection."""

    @pytest.mark.parametrize("config", [BFSK, QFSK], ids=["bfsk", "qfsk"])
    def test_clean_round_trip(self, config):
        """Test modulate then demodulate."""
        bits = random_bits(120, seed=8)
        signal = Modulator(config).modulate(bits)
        assert Demodulator(config).demodulate(signal) == bits

    def test_int16_input(self):
        """Test demodulating int16 samples."""
        bits = random_bits(40, seed=9)
        signal = to_pcm16(Modulator(BFSK).modulate(bits))
        assert Demodulator(BFSK).demodulate(signal) == bits

    def test_symbol_frequency_estimates(self):
        """Test per-symbol frequency estimates."""
        bits = (0, 0, 0, 1, 1, 0, 1, 1)
        signal = Modulator(QFSK).modulate(bits)
        estimates = Demodulator(QFSK).symbol_frequencies(signal)
        assert np.allclose(estimates, [3000, 6000, 9000, 12000], atol=100)

    def test_offset(self):
        """Test demodulating from a sample offset."""
        bits = random_bits(30, seed=10)
        signal = np.concatenate([np.zeros(50), Modulator(BFSK).modulate(bits)])
        assert Demodulator(BFSK).demodulate(signal, offset=50) == bits

    def test_partial_symbol_ignored(self):
        """Test that a trailing partial symbol is dropped."""
        bits = random_bits(10, seed=11)
        signal = Modulator(BFSK).modulate(bits)[:-20]
        assert Demodulator(BFSK).demodulate(signal) == bits[:-1]

    def test_tolerates_quarter_deviation_error(self):
        """Each symbol is sent up to deviation / 4 off its nominal tone."""
        config = QFSK
        mod = Modulator(config)
        bits = random_bits(200, seed=12)
        rng = random.Random(13)

        sps = int(config.samples_per_symbol)
        freqs = []
        for symbol in mod.symbols(bits):
            error = rng.choice((-1, 1)) * rng.uniform(0.8, 1.0) * config.deviation_freq / 4
            freqs.extend([config.tones[symbol] + error] * sps)
        phase = np.cumsum(np.array(freqs) * math.pi / config.nyquist)
        signal = config.amplitude * np.sin(phase)

        assert Demodulator(config).demodulate(signal) == bits

    def test_invalid_trim(self):
        """Test that a trim of half a symbol or more is rejected."""
        with pytest.raises(ValueError):
            Demodulator(BFSK, trim=0.5)


class TestToneDetector:
    """Test dial/answer tone detection."""

    def setup_method(self):
        self.detector = ToneDetector(44100)
        self.mod = Modulator(BFSK)

    def test_dial_tone(self):
        """Test dial tone detection."""
        assert self.detector.detect(self.mod.tone(800.0, 10)) is Tone.DIAL

    def test_answer_tone(self):
        """Test answer tone detection."""
        assert self.detector.detect(self.mod.tone(200.0, 10)) is Tone.ANSWER

    def test_data_is_not_a_tone(self):
        """Test that modulated data is not mistaken for a tone."""
        signal = self.mod.modulate(random_bits(10, seed=14))
        assert self.detector.detect(signal) is None

    def test_silence(self):
        """Test that silence is never a tone."""
        assert self.detector.detect(np.zeros(1470)) is None
        assert self.detector.scores(np.zeros(1470)) == {}

    def test_other_tone(self):
        """Test that other tones are not detected."""
        assert self.detector.detect(self.mod.tone(1500.0, 10)) is None

    def test_tone_values(self):
        """Test tone frequencies."""
        assert Tone.DIAL.frequency == 800.0
        assert Tone.ANSWER.frequency == 200.0
