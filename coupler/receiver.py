"""
Receiver - drives a ChannelSession from an audio sample stream.

Samples are consumed in fixed windows of TONE_WINDOW_SYMBOLS symbol
periods, counted from the start of the stream. Until the tone exchange
completes each window goes to the tone detector; afterwards windows are
demodulated and the bits searched for the preamble, then fed to the
session as frame bits.
"""

import logging
import math
import threading
from collections import deque
from pathlib import Path
from typing import Callable, Optional

import numpy as np

from . import IDLE_BLOCKS, PREAMBLE, RECEIVE_TIMEOUT, RING_BUFFER_SECONDS, TONE_WINDOW_SYMBOLS
from .audio import iter_blocks, play, read_pcm16
from .config import ModulationConfig
from .hamming import CODE_BITS
from .modem import Demodulator, Modulator, Tone, ToneDetector
from .ringbuffer import SampleRingBuffer
from .session import (
    ChannelSession,
    Reception,
    SessionEvent,
    SessionState,
)

_logger = logging.getLogger(__name__)

_TONE_EVENTS = {
    Tone.DIAL: SessionEvent.DIAL_TONE,
    Tone.ANSWER: SessionEvent.ANSWER_TONE,
}


class Receiver:
    """
    Window-by-window decoder for one channel.

    Not thread-safe on its own: exactly one consumer calls process_window()
    or feed(). The session it drives is safe to reset from other threads.
    """

    def __init__(
        self,
        config: Optional[ModulationConfig] = None,
        session: Optional[ChannelSession] = None,
        window_symbols: int = TONE_WINDOW_SYMBOLS,
        callback: Optional[Callable[[Reception], None]] = None,
        on_dial: Optional[Callable[[], None]] = None,
    ):
        """
        Initialize receiver.

        Args:
            config: Modem parameters shared with the transmitter
            session: Session to drive (a new one by default)
            window_symbols: Window length in symbol periods
            callback: Called with each successful Reception
            on_dial: Called when a dial tone starts a new call
        """
        self.config = config or ModulationConfig()
        self.session = session or ChannelSession(
            timeout_bits=self.config.seconds_to_symbols(RECEIVE_TIMEOUT) * self.config.bits_per_symbol
        )
        self.callback = callback
        self.on_dial = on_dial

        self.window_symbols = window_symbols
        self.window = self.config.symbols_to_samples(window_symbols)
        self.demodulator = Demodulator(self.config)
        self.tone_detector = ToneDetector(
            self.config.sample_rate,
            silence_rms=self.config.amplitude * 0.01,
        )

        self.receptions: list[Reception] = []
        self._recent: deque[int] = deque(maxlen=len(PREAMBLE))
        self._elapsed_bits = 0
        self._pending = np.zeros(0)

        self.session.add_listener(self._on_transition)

    def _on_transition(self, old: SessionState, new: SessionState, event: SessionEvent):
        if old is not new:
            self._recent.clear()
            self._elapsed_bits = 0

    def _hear(self, tone: Tone):
        event = _TONE_EVENTS[tone]
        if not self.session.accepts(event):
            _logger.debug(f"Ignoring {tone.name} tone while {self.session.state.name}")
            return

        new_call = self.session.state is SessionState.LISTENING
        self.session.hear(tone)
        if new_call and self.on_dial is not None:
            self.on_dial()

    def _check_timeout(self, bits: int):
        self._elapsed_bits += bits
        if self._elapsed_bits > self.session.timeout_bits:
            self.session.timeout()

    def process_window(self, window: np.ndarray) -> list[Reception]:
        """
        Process one window of samples.

        The session lock is held while the window drives the session, so a
        reset from another thread lands between windows.

        Returns:
            Receptions completed within this window
        """
        with self.session.lock:
            reception = self._drive(window)

        if reception is None:
            return []

        self.receptions.append(reception)
        if self.callback:
            self.callback(reception)
        return [reception]

    def _drive(self, window: np.ndarray) -> Optional[Reception]:
        window_bits = self.window_symbols * self.config.bits_per_symbol
        state = self.session.state

        if state in (SessionState.LISTENING, SessionState.ANSWER):
            tone = self.tone_detector.detect(window)
            if tone is not None:
                self._hear(tone)
                if self.session.state is SessionState.ANSWER:
                    self._check_timeout(window_bits)
                return None
            if state is SessionState.LISTENING:
                return None
            if not self.session.handshake_complete:
                self._check_timeout(window_bits)
                return None

        bits = self.demodulator.demodulate(window)

        if self.session.state is SessionState.ANSWER:
            for i, bit in enumerate(bits):
                self._recent.append(bit)
                if tuple(self._recent) == PREAMBLE:
                    self.session.begin_frame(PREAMBLE)
                    bits = bits[i + 1:]
                    break
            else:
                self._check_timeout(len(bits))
                return None

        if self.session.state is not SessionState.RECEIVING or not bits:
            return None

        return self.session.receive_bits(bits)

    def feed(self, samples: np.ndarray) -> list[Reception]:
        """
        Process an arbitrary run of samples, holding back partial windows.

        Returns:
            Receptions completed by these samples
        """
        self._pending = np.concatenate([self._pending, np.asarray(samples, dtype=np.float64)])

        receptions = []
        while len(self._pending) >= self.window:
            window = self._pending[:self.window]
            self._pending = self._pending[self.window:]
            receptions.extend(self.process_window(window))
        return receptions

    def flush(self) -> list[Reception]:
        """
        Finish a finite stream.

        A held-back partial window is processed padded with silence, then
        silent windows follow while a frame is still open so its end flag
        is confirmed.
        """
        receptions = []
        if len(self._pending):
            window = np.zeros(self.window)
            window[:len(self._pending)] = self._pending
            self._pending = np.zeros(0)
            receptions.extend(self.process_window(window))

        window_bits = self.window_symbols * self.config.bits_per_symbol
        for _ in range(math.ceil(IDLE_BLOCKS * CODE_BITS / window_bits)):
            if self.session.state is not SessionState.RECEIVING:
                break
            receptions.extend(self.process_window(np.zeros(self.window)))
        return receptions

    def reset(self):
        """Drop buffered samples and return the session to LISTENING."""
        self._pending = np.zeros(0)
        self.session.reset()

    def run(self, buffer: SampleRingBuffer, stop_event: threading.Event, poll: float = 0.5):
        """
        Consume windows from a ring buffer until stopped or closed.

        Returns within one window (or poll interval) of stop_event being set
        or the buffer being closed.
        """
        _logger.debug(f"Receiver loop started, window={self.window} samples")
        while not stop_event.is_set():
            window = buffer.read(self.window, timeout=poll)
            if window is None:
                if buffer.closed:
                    break
                continue
            self.process_window(window)
        _logger.debug("Receiver loop stopped")


class Listener:
    """
    Real-time receiver from an audio input device.

    The sounddevice callback writes into a SampleRingBuffer (producer); a
    worker thread runs the Receiver over it (consumer).
    """

    def __init__(
        self,
        config: Optional[ModulationConfig] = None,
        callback: Optional[Callable[[Reception], None]] = None,
        device: Optional[int] = None,
        answer: bool = False,
        buffer_seconds: float = RING_BUFFER_SECONDS,
    ):
        """
        Initialize listener.

        Args:
            config: Modem parameters
            callback: Called with each Reception (on the worker thread)
            device: Audio device (None = default), used for input and answer tone
            answer: Play the answer tone when a dial tone is heard
            buffer_seconds: Ring buffer capacity
        """
        self.config = config or ModulationConfig()
        self.device = device
        self.answer = answer
        self.receiver = Receiver(self.config, callback=callback, on_dial=self._answer_call)
        self.buffer = SampleRingBuffer(int(self.config.sample_rate * buffer_seconds))

        self.stream = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()

    @property
    def session(self) -> ChannelSession:
        return self.receiver.session

    def _answer_call(self):
        if not self.answer:
            return
        _logger.info("Answering call")
        modulator = Modulator(self.config)
        tone = modulator.tone(Tone.ANSWER.frequency, self.receiver.window_symbols * 3)
        self.session.answer()
        play(tone, int(self.config.sample_rate), device=self.device, blocking=False)

    def _audio_callback(self, indata: np.ndarray, frames, time_info, status):
        """
        Called by sounddevice for each audio block.

        Must not block: the ring buffer drops the oldest samples when full.
        """
        if status:
            _logger.warning(f"Audio status: {status}")
        self.buffer.write(indata[:, 0])

    def start(self):
        """Start capturing and decoding."""
        if self.stream is not None:
            return  # Already running

        import sounddevice as sd

        self._stop.clear()
        self._thread = threading.Thread(
            target=self.receiver.run,
            args=(self.buffer, self._stop),
            name="coupler-receiver",
            daemon=True,
        )
        self._thread.start()

        self.stream = sd.InputStream(
            device=self.device,
            channels=1,
            samplerate=self.config.sample_rate,
            dtype="int16",
            callback=self._audio_callback,
        )
        self.stream.start()
        _logger.info(f"Listening at {self.config.sample_rate:.0f} Hz")

    def stop(self):
        """Stop capture, reset the session, and join the worker."""
        self.session.stop()
        self._stop.set()
        self.buffer.close()

        if self.stream is not None:
            try:
                self.stream.stop()
            finally:
                self.stream.close()
                self.stream = None

        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()

    def get_statistics(self) -> dict:
        """
        Get listener statistics.

        Returns:
            Session statistics plus dropped_samples
        """
        stats = self.session.get_statistics()
        stats["dropped_samples"] = self.buffer.dropped
        return stats


def decode_file(
    file_path: str | Path,
    config: Optional[ModulationConfig] = None,
) -> list[Reception]:
    """
    Decode every frame in a recorded transmission.

    Args:
        file_path: Path to audio file
        config: Modem parameters; the file is resampled to its sample rate

    Returns:
        Receptions in stream order
    """
    config = config or ModulationConfig()
    samples, sr = read_pcm16(file_path)

    # Resample if needed
    if sr != config.sample_rate:
        from scipy import signal
        num_samples = int(len(samples) * config.sample_rate / sr)
        _logger.info(f"Resampling {file_path} from {sr} Hz to {config.sample_rate:.0f} Hz")
        samples = signal.resample(samples.astype(np.float64), num_samples)

    receiver = Receiver(config)
    for block in iter_blocks(samples, receiver.window):
        receiver.feed(block)
    receiver.flush()

    if receiver.session.last_error is not None:
        _logger.warning(f"Last frame error: {receiver.session.last_error}")

    return receiver.receptions
