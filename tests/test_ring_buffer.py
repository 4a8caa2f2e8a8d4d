"""
Tests for the rolling sample buffer (length invariant, newest-sample retention, gain, snapshot copy).
Run: python3 -m unittest tests.test_ring_buffer -v
"""

import threading
import unittest

import numpy as np

from core.errors import InvalidConfiguration
from dsp.ring_buffer import RingBuffer, samples_to_ms, seconds_to_samples


class TestRingBuffer(unittest.TestCase):
    def test_rejects_non_positive_capacity(self):
        with self.assertRaises(InvalidConfiguration):
            RingBuffer(0)
        with self.assertRaises(InvalidConfiguration):
            RingBuffer(-5)

    def test_starts_zeroed(self):
        buf = RingBuffer(8)
        self.assertEqual(len(buf), 8)
        np.testing.assert_array_equal(buf.snapshot(), np.zeros(8, dtype=np.float32))

    def test_write_appends_at_tail(self):
        buf = RingBuffer(5)
        buf.write([1, 2])
        np.testing.assert_array_equal(buf.snapshot(), [0, 0, 0, 1, 2])
        buf.write([3, 4, 5])
        np.testing.assert_array_equal(buf.snapshot(), [1, 2, 3, 4, 5])
        buf.write([6])
        np.testing.assert_array_equal(buf.snapshot(), [2, 3, 4, 5, 6])

    def test_length_and_tail_invariant_for_any_chunking(self):
        rng = np.random.default_rng(0)
        capacity = 37
        buf = RingBuffer(capacity)
        written = []
        for size in [1, 5, 36, 37, 2, 50, 3, 0, 11, 74]:
            chunk = rng.standard_normal(size).astype(np.float32)
            buf.write(chunk)
            written.extend(chunk.tolist())
            snap = buf.snapshot()
            self.assertEqual(len(snap), capacity)
            k = min(capacity, len(written))
            np.testing.assert_array_equal(snap[capacity - k:], np.array(written[-k:], dtype=np.float32))

    def test_oversized_chunk_keeps_newest(self):
        buf = RingBuffer(4)
        buf.write(np.arange(10, dtype=np.float32))
        np.testing.assert_array_equal(buf.snapshot(), [6, 7, 8, 9])
        self.assertEqual(buf.total_written(), 10)

    def test_gain_applied_on_write(self):
        buf = RingBuffer(3)
        buf.write([1.0, 2.0, 3.0], gain=2.0)
        np.testing.assert_allclose(buf.snapshot(), [2.0, 4.0, 6.0])

    def test_snapshot_is_a_copy(self):
        buf = RingBuffer(3)
        buf.write([1, 2, 3])
        snap = buf.snapshot()
        snap[:] = 0
        np.testing.assert_array_equal(buf.snapshot(), [1, 2, 3])

    def test_clear(self):
        buf = RingBuffer(3)
        buf.write([1, 2, 3])
        buf.clear()
        np.testing.assert_array_equal(buf.snapshot(), [0, 0, 0])

    def test_concurrent_writes_and_snapshots(self):
        """Snapshots taken during writes always see whole chunks of a constant value."""
        buf = RingBuffer(64)
        stop = threading.Event()

        def writer():
            value = 0
            while not stop.is_set():
                value += 1
                buf.write(np.full(64, value, dtype=np.float32))

        t = threading.Thread(target=writer)
        t.start()
        try:
            for _ in range(200):
                snap = buf.snapshot()
                self.assertEqual(len(np.unique(snap)), 1)
        finally:
            stop.set()
            t.join()

    def test_total_written_counts_concurrent_writes(self):
        buf = RingBuffer(16)
        seen = []

        def writer():
            for _ in range(1000):
                buf.write(np.ones(3, dtype=np.float32))

        threads = [threading.Thread(target=writer) for _ in range(4)]
        for t in threads:
            t.start()
        while any(t.is_alive() for t in threads):
            seen.append(buf.total_written())
        for t in threads:
            t.join()
        self.assertEqual(seen, sorted(seen))
        self.assertEqual(buf.total_written(), 4 * 1000 * 3)


class TestDurations(unittest.TestCase):
    def test_seconds_to_samples(self):
        self.assertEqual(seconds_to_samples(12, 3200), 38400)
        self.assertEqual(seconds_to_samples(0.1, 3200), 320)

    def test_samples_to_ms(self):
        self.assertAlmostEqual(samples_to_ms(3200, 3200), 1000.0)
        self.assertEqual(samples_to_ms(0, 3200), 0.0)


if __name__ == "__main__":
    unittest.main()
