"""
Channel session state machine.

States:
- LISTENING: idle, waiting for a call
- ANSWER: dial/answer tone exchange in progress
- RECEIVING: frame bits being collected
- RESET: error or abort, immediately recovers to LISTENING

The session is long-lived and cycles; LISTENING is both the initial and
the quiescent state.
"""

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional

from . import RECEIVE_TIMEOUT, SEARCH_WINDOW, BAUD_RATE
from .bits import BitSequence, as_bits, bytes_of
from .errors import (
    FramingError,
    HandshakeError,
    InvalidTransitionError,
    SyncNotFoundError,
    TruncatedFrameError,
    UncorrectableError,
)
from .framing import locate_frame
from .hamming import HammingCoder
from .modem import Tone

_logger = logging.getLogger(__name__)


class SessionState(Enum):
    LISTENING = "listening"
    ANSWER = "answer"
    RECEIVING = "receiving"
    RESET = "reset"


class SessionEvent(Enum):
    DIAL_TONE = "dial_tone"
    ANSWER_TONE = "answer_tone"
    PREAMBLE = "preamble"
    FRAME_OK = "frame_ok"
    FRAME_ERROR = "frame_error"
    TIMEOUT = "timeout"
    RESET = "reset"
    RECOVER = "recover"


class Role(Enum):
    """Which side of the half-duplex call this endpoint plays."""

    ORIGINATE = "originate"
    ANSWER = "answer"


_TRANSITIONS = {
    (SessionState.LISTENING, SessionEvent.DIAL_TONE): SessionState.ANSWER,
    (SessionState.LISTENING, SessionEvent.RESET): SessionState.RESET,
    (SessionState.ANSWER, SessionEvent.DIAL_TONE): SessionState.ANSWER,
    (SessionState.ANSWER, SessionEvent.ANSWER_TONE): SessionState.ANSWER,
    (SessionState.ANSWER, SessionEvent.PREAMBLE): SessionState.RECEIVING,
    (SessionState.ANSWER, SessionEvent.TIMEOUT): SessionState.RESET,
    (SessionState.ANSWER, SessionEvent.RESET): SessionState.RESET,
    (SessionState.RECEIVING, SessionEvent.FRAME_OK): SessionState.LISTENING,
    (SessionState.RECEIVING, SessionEvent.FRAME_ERROR): SessionState.RESET,
    (SessionState.RECEIVING, SessionEvent.TIMEOUT): SessionState.RESET,
    (SessionState.RECEIVING, SessionEvent.RESET): SessionState.RESET,
    (SessionState.RESET, SessionEvent.RECOVER): SessionState.LISTENING,
}


def transition(state: SessionState, event: SessionEvent) -> SessionState:
    """
    Next state for (state, event).

    Raises:
        InvalidTransitionError: If the event is not accepted in state
    """
    try:
        return _TRANSITIONS[(state, event)]
    except KeyError:
        raise InvalidTransitionError(state, event) from None


def accepts(state: SessionState, event: SessionEvent) -> bool:
    return (state, event) in _TRANSITIONS


@dataclass(frozen=True)
class Reception:
    """A successfully received frame."""

    data: bytes
    corrected: int = 0
    bits: BitSequence = field(default=(), repr=False)

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")


StateListener = Callable[[SessionState, SessionState, SessionEvent], None]


class ChannelSession:
    """
    Handshake and reception lifecycle for one endpoint.

    All mutation goes through the session lock, so a capture thread and an
    application thread may both drive it.
    """

    def __init__(
        self,
        search_window: int = SEARCH_WINDOW,
        timeout_bits: int = int(RECEIVE_TIMEOUT * BAUD_RATE),
        coder: Optional[HammingCoder] = None,
    ):
        """
        Initialize session.

        Args:
            search_window: Bits in which the start flag must follow the preamble
            timeout_bits: Bits collected in ANSWER or RECEIVING before giving up
            coder: FEC coder (a fresh HammingCoder by default)
        """
        self.search_window = search_window
        self.timeout_bits = timeout_bits
        self.coder = coder or HammingCoder()

        self._lock = threading.RLock()
        self._state = SessionState.LISTENING
        self._listeners: list[StateListener] = []

        self.role: Optional[Role] = None
        self.tones_heard: set[Tone] = set()
        self.last_error: Optional[Exception] = None
        self._buffer: list[int] = []

        # Statistics
        self.frames_received = 0
        self.frames_failed = 0
        self.errors_corrected = 0

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def handshake_complete(self) -> bool:
        return {Tone.DIAL, Tone.ANSWER} <= self.tones_heard

    @property
    def buffered_bits(self) -> int:
        with self._lock:
            return len(self._buffer)

    @property
    def lock(self):
        """Re-entrant session lock, held by drivers that check the state and then act on it."""
        return self._lock

    def add_listener(self, listener: StateListener):
        """Register listener(old_state, new_state, event), called on every transition."""
        self._listeners.append(listener)

    def accepts(self, event: SessionEvent) -> bool:
        with self._lock:
            return accepts(self._state, event)

    def handle(self, event: SessionEvent) -> SessionState:
        """
        Apply an event, recovering automatically from RESET.

        Returns:
            The state after the event

        Raises:
            InvalidTransitionError: If the event is not valid now
        """
        with self._lock:
            if (
                event is SessionEvent.PREAMBLE
                and self._state is SessionState.ANSWER
                and not self.handshake_complete
            ):
                raise HandshakeError(
                    self._state,
                    event,
                    f"preamble before tone exchange completed (heard {sorted(t.name for t in self.tones_heard)})",
                )

            self._move(event)
            if self._state is SessionState.RESET:
                self._clear()
                self._move(SessionEvent.RECOVER)
            elif self._state is SessionState.LISTENING:
                self._clear()
            return self._state

    def _move(self, event: SessionEvent):
        old = self._state
        self._state = transition(old, event)
        _logger.debug(f"Session {old.name} --{event.name}--> {self._state.name}")
        for listener in self._listeners:
            listener(old, self._state, event)

    def _clear(self):
        self._buffer = []
        self.role = None
        self.tones_heard = set()

    # Handshake

    def dial(self) -> SessionState:
        """Originate a call: this endpoint emits the dial tone."""
        with self._lock:
            state = self.handle(SessionEvent.DIAL_TONE)
            self.role = Role.ORIGINATE
            self.tones_heard.add(Tone.DIAL)
            return state

    def answer(self) -> SessionState:
        """Answer a call: this endpoint emits the answer tone."""
        return self.hear(Tone.ANSWER)

    def hear(self, tone: Tone) -> SessionState:
        """
        Record a handshake tone observed on (or emitted into) the channel.
        """
        with self._lock:
            event = SessionEvent.DIAL_TONE if tone is Tone.DIAL else SessionEvent.ANSWER_TONE
            if self._state is SessionState.LISTENING and tone is Tone.DIAL:
                self.role = Role.ANSWER
            state = self.handle(event)
            if tone not in self.tones_heard:
                _logger.info(f"Heard {tone.name} tone ({tone.frequency:.0f} Hz)")
            self.tones_heard.add(tone)
            return state

    # Reception

    def begin_frame(self, preamble_bits: Iterable[int] = ()) -> SessionState:
        """
        Enter RECEIVING after a preamble was detected.

        Args:
            preamble_bits: The bits that matched, kept as the start of the frame
        """
        with self._lock:
            state = self.handle(SessionEvent.PREAMBLE)
            self._buffer = list(as_bits(preamble_bits))
            _logger.info("Preamble detected, receiving frame")
            return state

    def receive_bits(self, bits: Iterable[int]) -> Optional[Reception]:
        """
        Append demodulated bits and try to complete the frame.

        Returns:
            Reception once the frame is complete and decoded, else None.
            The end flag counts as complete once idle bits or noise follow
            it, so a frame at the very end of a stream needs trailing silence.
            Failed frames reset the session and are kept in last_error.

        Raises:
            InvalidTransitionError: If not RECEIVING
        """
        with self._lock:
            if self._state is not SessionState.RECEIVING:
                raise InvalidTransitionError(
                    self._state, SessionEvent.FRAME_OK, f"cannot receive bits while {self._state.name}"
                )

            self._buffer.extend(as_bits(bits))

            try:
                span = locate_frame(self._buffer, self.search_window, partial=True)
            except TruncatedFrameError as e:
                if len(self._buffer) > self.timeout_bits:
                    self._fail(SessionEvent.TIMEOUT, e)
                return None
            except SyncNotFoundError as e:
                if len(self._buffer) >= self.search_window:
                    self._fail(SessionEvent.FRAME_ERROR, e)
                return None

            payload = self._buffer[span.payload_start:span.payload_end]
            trailing = len(self._buffer) - span.frame_end
            try:
                data_bits, corrected = self.coder.decode(payload)
                data = bytes_of(data_bits)
            except (UncorrectableError, FramingError) as e:
                self._fail(SessionEvent.FRAME_ERROR, e)
                return None

            if trailing:
                _logger.debug(f"Discarding {trailing} bits after end of frame")

            self.frames_received += 1
            self.errors_corrected += corrected
            self.last_error = None
            if corrected:
                _logger.info(f"Frame received, corrected {corrected} bit error(s)")
            else:
                _logger.info(f"Frame received ({len(data)} bytes)")

            self.handle(SessionEvent.FRAME_OK)
            return Reception(data=data, corrected=corrected, bits=tuple(data_bits))

    def _fail(self, event: SessionEvent, error: Exception):
        self.frames_failed += 1
        self.last_error = error
        _logger.warning(f"Frame failed ({event.name}): {error}")
        self.handle(event)

    def timeout(self) -> SessionState:
        """Abandon a handshake or frame that took too long."""
        with self._lock:
            self.last_error = TimeoutError(f"no progress while {self._state.name}")
            _logger.warning(f"Session timed out while {self._state.name}")
            return self.handle(SessionEvent.TIMEOUT)

    def reset(self) -> SessionState:
        """Abort whatever is in progress and return to LISTENING."""
        with self._lock:
            return self.handle(SessionEvent.RESET)

    stop = reset

    def get_statistics(self) -> dict:
        """
        Get session statistics.

        Returns:
            Dict with: state, frames_received, frames_failed, errors_corrected
        """
        with self._lock:
            return {
                "state": self._state.name,
                "frames_received": self.frames_received,
                "frames_failed": self.frames_failed,
                "errors_corrected": self.errors_corrected,
            }
