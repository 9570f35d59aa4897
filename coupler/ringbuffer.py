"""
Bounded sample buffer between audio capture and decoding.

One producer (the capture callback) writes, one consumer (the decoder
thread) reads. Writes never block: when the buffer is full the oldest
unread samples are dropped and counted.
"""

import logging
import threading
from typing import Optional

import numpy as np

_logger = logging.getLogger(__name__)


class SampleRingBuffer:
    """
    Fixed-capacity ring of int16 samples with drop-oldest overflow.
    """

    def __init__(self, capacity: int, dtype=np.int16):
        """
        Initialize buffer.

        Args:
            capacity: Maximum number of unread samples held
            dtype: Sample type
        """
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")

        self.capacity = capacity
        self._data = np.zeros(capacity, dtype=dtype)
        self._read = 0  # total samples consumed
        self._write = 0  # total samples produced
        self._closed = False
        self._cond = threading.Condition()

        # Statistics
        self.dropped = 0

    def __len__(self) -> int:
        with self._cond:
            return self._write - self._read

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, samples: np.ndarray) -> int:
        """
        Append samples, overwriting the oldest unread ones if full.

        Returns:
            Number of unread samples dropped to make room
        """
        samples = np.asarray(samples).reshape(-1)
        with self._cond:
            if self._closed:
                return 0

            # Only the newest `capacity` samples can survive; the skipped
            # ones still count as produced so the overflow below drops them
            if len(samples) > self.capacity:
                skipped = len(samples) - self.capacity
                self._write += skipped
                samples = samples[skipped:]

            n = len(samples)
            start = self._write % self.capacity
            first = min(n, self.capacity - start)
            self._data[start:start + first] = samples[:first]
            self._data[:n - first] = samples[first:]
            self._write += n

            lost = 0
            unread = self._write - self._read
            if unread > self.capacity:
                lost = unread - self.capacity
                self._read += lost

            if lost:
                self.dropped += lost
                _logger.warning(f"Ring buffer overflow, dropped {lost} oldest samples")

            self._cond.notify_all()
            return lost

    def read(self, n: int, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        """
        Remove and return exactly n samples, in capture order.

        Blocks until n samples are available, the timeout expires, or the
        buffer is closed.

        Returns:
            Array of n samples, or None on timeout/close
        """
        if n > self.capacity:
            raise ValueError(f"cannot read {n} samples from a buffer of {self.capacity}")

        with self._cond:
            ready = self._cond.wait_for(
                lambda: self._closed or self._write - self._read >= n,
                timeout=timeout,
            )
            if not ready or self._write - self._read < n:
                return None

            start = self._read % self.capacity
            first = min(n, self.capacity - start)
            out = np.concatenate([self._data[start:start + first], self._data[:n - first]])
            self._read += n
            return out

    def clear(self):
        """Discard all unread samples."""
        with self._cond:
            self._read = self._write

    def close(self):
        """Wake any blocked reader; further writes are ignored."""
        with self._cond:
            self._closed = True
            self._cond.notify_all()
