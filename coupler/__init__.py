"""
Coupler - a software acoustic coupler.
A continuous-phase FSK modem with Hamming FEC and tone handshaking.
"""

__version__ = "0.1.0"

# Modem defaults
SAMPLE_RATE = 44100  # Hz
BAUD_RATE = 300  # symbols per second
CARRIER_FREQ = 3000.0  # Hz - symbol 0
DEVIATION_FREQ = 3000.0  # Hz - spacing between tones
AMPLITUDE = 32767.0  # full scale for signed 16-bit output

# Handshake tones
DIAL_TONE = 800.0  # Hz - emitted by the originating side
ANSWER_TONE = 200.0  # Hz - emitted by the answering side
TONE_WINDOW_SYMBOLS = 10  # tone detection window, in symbol periods
HANDSHAKE_SYMBOLS = 30  # length of each emitted handshake tone

# Frame structure (MSB first)
# Preamble:   8 alternating bits, sent twice for symbol-timing lock
# Start flag: 8 bits, marks the start of the payload and again its end
PREAMBLE = (1, 0, 1, 0, 1, 0, 1, 0)
START_FLAG = (0, 0, 0, 1, 0, 1, 1, 0)

# Receiver limits
SEARCH_WINDOW = 64  # bits in which preamble and start flag must appear
IDLE_BLOCKS = 2  # all-zero codewords after an end flag that confirm it
RECEIVE_TIMEOUT = 10.0  # seconds of symbols before a frame is abandoned
RING_BUFFER_SECONDS = 5.0

from .errors import (
    CouplerError,
    FramingError,
    HandshakeError,
    InvalidLengthError,
    InvalidTransitionError,
    SyncNotFoundError,
    TruncatedFrameError,
    UncorrectableError,
)
from .bits import as_bits, bits_of, bytes_of, text_of
from .hamming import HammingCoder
from .framing import FrameSpan, frame, locate_frame, unframe
from .config import ModulationConfig, ModulationScheme
from .modem import Demodulator, Modulator, Tone, ToneDetector, to_pcm16
from .session import (
    ChannelSession,
    Reception,
    Role,
    SessionEvent,
    SessionState,
    transition,
)
from .ringbuffer import SampleRingBuffer
from .transmitter import Transmitter
from .receiver import Listener, Receiver, decode_file

__all__ = [
    "CouplerError",
    "FramingError",
    "HandshakeError",
    "InvalidLengthError",
    "InvalidTransitionError",
    "SyncNotFoundError",
    "TruncatedFrameError",
    "UncorrectableError",
    "as_bits",
    "bits_of",
    "bytes_of",
    "text_of",
    "HammingCoder",
    "FrameSpan",
    "frame",
    "locate_frame",
    "unframe",
    "ModulationConfig",
    "ModulationScheme",
    "Demodulator",
    "Modulator",
    "Tone",
    "ToneDetector",
    "to_pcm16",
    "ChannelSession",
    "Reception",
    "Role",
    "SessionEvent",
    "SessionState",
    "transition",
    "SampleRingBuffer",
    "Transmitter",
    "Listener",
    "Receiver",
    "decode_file",
]
