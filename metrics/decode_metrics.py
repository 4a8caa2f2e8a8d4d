"""
Decode observability metrics.

Thread-safe counters and latency samples for decode sessions. One instance is
owned by the service and shared by its pipelines; exposed via
GET /metrics/decoding (JSON snapshot).
"""

import threading
from collections import deque
from typing import Any, Dict


class DecodeMetrics:
    """Counters for sessions, cycles, failures, dropped and stale results."""

    def __init__(self, max_samples: int = 1000):
        self._lock = threading.Lock()
        self._active_sessions = 0
        self._latency_samples: deque = deque(maxlen=max_samples)
        self._cycles = 0
        self._failed_cycles = 0
        self._model_load_failures = 0
        self._dropped_cycles = 0
        self._stale_results = 0

    def record_session_open(self) -> None:
        """Call when a capture session starts."""
        with self._lock:
            self._active_sessions += 1

    def record_session_close(self) -> None:
        """Call when a capture session stops."""
        with self._lock:
            self._active_sessions = max(0, self._active_sessions - 1)

    def record_cycle(self, latency_ms: float, failed: bool = False) -> None:
        """Record one finished decode cycle and its end-to-end latency."""
        with self._lock:
            self._cycles += 1
            self._latency_samples.append(latency_ms)
            if failed:
                self._failed_cycles += 1

    def record_model_load_failure(self) -> None:
        with self._lock:
            self._model_load_failures += 1

    def record_dropped_cycle(self) -> None:
        """Call when a timer trigger is skipped because too many cycles are in flight."""
        with self._lock:
            self._dropped_cycles += 1

    def record_stale_result(self) -> None:
        """Call when a result arrives after a newer cycle was already delivered."""
        with self._lock:
            self._stale_results += 1

    def get_snapshot(self) -> Dict[str, Any]:
        """Return a JSON-serializable snapshot."""
        with self._lock:
            samples = list(self._latency_samples)
            snapshot = {
                "active_sessions": self._active_sessions,
                "cycles": self._cycles,
                "failed_cycles": self._failed_cycles,
                "model_load_failures": self._model_load_failures,
                "dropped_cycles": self._dropped_cycles,
                "stale_results": self._stale_results,
            }
        n = len(samples)
        if n == 0:
            avg_latency_ms = None
            p95_latency_ms = None
        else:
            avg_latency_ms = round(sum(samples) / n, 2)
            sorted_s = sorted(samples)
            idx = max(0, int(0.95 * n) - 1)
            p95_latency_ms = round(sorted_s[idx], 2)
        snapshot["avg_latency_ms"] = avg_latency_ms
        snapshot["p95_latency_ms"] = p95_latency_ms
        snapshot["latency_sample_count"] = n
        return snapshot
