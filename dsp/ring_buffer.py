"""
Rolling audio buffer for the decode pipeline.

Holds the most recent `duration * sample_rate` float32 samples. The audio callback
writes chunks of any size; the decode cycle reads a consistent copy via snapshot().
One writer, one reader; both go through a lock so a snapshot never observes a
half-written chunk.
"""

import threading

import numpy as np

from core.errors import InvalidConfiguration


def seconds_to_samples(seconds: float, sample_rate: int) -> int:
    """Number of samples covering `seconds` at `sample_rate`."""
    return int(round(seconds * sample_rate))


def samples_to_ms(num_samples: int, sample_rate: int) -> float:
    """Duration in milliseconds of `num_samples` at `sample_rate`."""
    if num_samples <= 0 or sample_rate <= 0:
        return 0.0
    return (num_samples / sample_rate) * 1000.0


class RingBuffer:
    """
    Fixed-capacity circular store of float32 samples.

    - write(): appends at the tail, discarding the oldest samples. A chunk longer
      than the capacity keeps only its newest `capacity` samples.
    - snapshot(): returns a chronological copy (oldest first, newest last).
    - The backing array is allocated once; writes copy into it in place.
    """

    def __init__(self, capacity: int):
        """
        Args:
            capacity: Number of samples retained (must be positive).
        """
        if capacity <= 0:
            raise InvalidConfiguration(f"Buffer length must be positive, got {capacity}")
        self.capacity = int(capacity)
        self._data = np.zeros(self.capacity, dtype=np.float32)
        self._head = 0  # index of the oldest sample; next write lands here
        self._total_written = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return self.capacity

    def write(self, chunk, gain: float = 1.0) -> None:
        """Append a chunk of mono samples, optionally scaled by a linear gain."""
        chunk = np.asarray(chunk, dtype=np.float32).reshape(-1)
        n = chunk.shape[0]
        if n == 0:
            return
        if n > self.capacity:
            chunk = chunk[n - self.capacity:]
        with self._lock:
            self._total_written += n
            m = chunk.shape[0]
            first = min(m, self.capacity - self._head)
            self._copy_into(self._head, chunk[:first], gain)
            if m > first:
                self._copy_into(0, chunk[first:], gain)
            self._head = (self._head + m) % self.capacity

    def _copy_into(self, start: int, part: np.ndarray, gain: float) -> None:
        dest = self._data[start:start + part.shape[0]]
        if gain == 1.0:
            np.copyto(dest, part)
        else:
            np.multiply(part, np.float32(gain), out=dest)

    def snapshot(self) -> np.ndarray:
        """Copy of the current contents, oldest sample first."""
        out = np.empty(self.capacity, dtype=np.float32)
        with self._lock:
            tail = self.capacity - self._head
            out[:tail] = self._data[self._head:]
            out[tail:] = self._data[:self._head]
        return out

    def clear(self) -> None:
        """Zero the buffer (e.g. when a capture session restarts)."""
        with self._lock:
            self._data.fill(0.0)
            self._head = 0

    def total_written(self) -> int:
        """Total samples ever written (for stats)."""
        with self._lock:
            return self._total_written
