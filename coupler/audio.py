"""
Audio sink and source boundary: WAV files and sound devices.

Samples cross this boundary as mono signed 16-bit PCM.
"""

import logging
from pathlib import Path
from typing import Iterator, Optional

import numpy as np
import soundfile as sf

from .modem import to_pcm16

_logger = logging.getLogger(__name__)


def write_pcm16(output_path: str | Path, signal: np.ndarray, sample_rate: int, blocksize: int = 65536):
    """
    Write a signal to a mono 16-bit WAV file.

    The file is closed on every exit path, including errors mid-write.

    Args:
        output_path: Output WAV file path
        signal: Samples in the int16 range (float or int)
        sample_rate: Sample rate (Hz)
        blocksize: Samples written per call
    """
    pcm = to_pcm16(signal) if signal.dtype != np.int16 else signal

    with sf.SoundFile(
        str(output_path),
        mode="w",
        samplerate=int(sample_rate),
        channels=1,
        subtype="PCM_16",
        format="WAV",
    ) as f:
        for start in range(0, len(pcm), blocksize):
            f.write(pcm[start:start + blocksize])

    _logger.info(f"Wrote {len(pcm)} samples ({len(pcm) / sample_rate:.2f}s) to {output_path}")


def read_pcm16(input_path: str | Path) -> tuple[np.ndarray, int]:
    """
    Read a WAV file as mono int16 samples.

    Multi-channel files are reduced to their first channel.

    Returns:
        Tuple of (samples, sample_rate)
    """
    samples, sample_rate = sf.read(str(input_path), dtype="int16", always_2d=True)
    if samples.shape[1] > 1:
        _logger.warning(f"{input_path} has {samples.shape[1]} channels, using the first")
    return samples[:, 0].copy(), sample_rate


def iter_blocks(samples: np.ndarray, blocksize: int) -> Iterator[np.ndarray]:
    """Yield consecutive blocks of samples, the last one possibly short."""
    for start in range(0, len(samples), blocksize):
        yield samples[start:start + blocksize]


def play(signal: np.ndarray, sample_rate: int, device: Optional[int] = None, blocking: bool = True):
    """
    Play a signal on an output device.

    Args:
        signal: Samples in the int16 range
        sample_rate: Sample rate (Hz)
        device: Output device number (None = default)
        blocking: Wait until playback has finished
    """
    import sounddevice as sd

    pcm = to_pcm16(signal) if signal.dtype != np.int16 else signal
    sd.play(pcm, samplerate=sample_rate, device=device)
    if blocking:
        sd.wait()


def list_devices() -> list[tuple[int, str, int, int]]:
    """
    List audio devices.

    Returns:
        List of (index, name, max_input_channels, max_output_channels)
    """
    import sounddevice as sd

    return [
        (i, dev["name"], dev["max_input_channels"], dev["max_output_channels"])
        for i, dev in enumerate(sd.query_devices())
    ]
