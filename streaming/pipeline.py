"""
Decode session: ring buffer + periodic decode cycle + inference gateway.

The audio producer calls write_audio() from any thread. While running, an
asyncio timer triggers a decode cycle every `inference_interval_s`: snapshot the
buffer, read the current filter selection, hand the snapshot to the gateway and
deliver the resulting segments to the caller.

Overlap policy: cycles may overlap up to `max_in_flight`; beyond that a trigger is
skipped (counted as dropped). Results are delivered only if newer than the last
delivered cycle, so the most recently issued cycle wins and late results from
older cycles are discarded (counted as stale). Failed or empty cycles deliver an
empty segment list.
"""

import asyncio
import inspect
import itertools
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Set, Union

from core.errors import InferenceFailure, InvalidConfiguration, ModelLoadFailure
from core.text_decoder import TextSegment, segments_to_text
from dsp.bandpass import DEFAULT_PASSES, FilterSpec
from dsp.fft import is_power_of_two
from dsp.frequency import constrain_center, gain_db_to_linear
from dsp.ring_buffer import RingBuffer, seconds_to_samples
from metrics.decode_metrics import DecodeMetrics
from streaming.inference_gateway import InferenceGateway

logger = logging.getLogger(__name__)

STATE_IDLE = "idle"
STATE_LOADING = "loading"
STATE_READY = "ready"
STATE_STOPPED = "stopped"


@dataclass
class PipelineConfig:
    sample_rate: int = 3200
    buffer_duration_s: float = 12.0
    fft_size: int = 256
    hop_size: int = 64
    inference_interval_s: float = 0.1
    max_in_flight: int = 3

    @property
    def buffer_samples(self) -> int:
        return seconds_to_samples(self.buffer_duration_s, self.sample_rate)

    def validate(self) -> "PipelineConfig":
        """Raise InvalidConfiguration on any unusable value."""
        if self.sample_rate <= 0:
            raise InvalidConfiguration(f"sample_rate must be positive, got {self.sample_rate}")
        if self.buffer_samples <= 0:
            raise InvalidConfiguration(f"buffer of {self.buffer_duration_s}s holds no samples")
        if not is_power_of_two(self.fft_size) or self.fft_size < 2:
            raise InvalidConfiguration(f"fft_size must be a power of two >= 2, got {self.fft_size}")
        if self.hop_size <= 0:
            raise InvalidConfiguration(f"hop_size must be positive, got {self.hop_size}")
        if self.inference_interval_s <= 0:
            raise InvalidConfiguration(f"inference_interval_s must be positive, got {self.inference_interval_s}")
        if self.max_in_flight < 1:
            raise InvalidConfiguration(f"max_in_flight must be >= 1, got {self.max_in_flight}")
        return self


@dataclass
class DecodeResult:
    cycle: int
    segments: List[TextSegment] = field(default_factory=list)
    error: Optional[str] = None
    latency_ms: Optional[int] = None

    @property
    def text(self) -> str:
        return segments_to_text(self.segments)

    def to_dict(self) -> dict:
        payload = {
            "type": "decode_result",
            "cycle": self.cycle,
            "text": self.text,
            "segments": [s.to_dict() for s in self.segments],
            "latency_ms": self.latency_ms,
        }
        if self.error:
            payload["error"] = self.error
        return payload


ResultCallback = Callable[[DecodeResult], Union[None, Awaitable[None]]]


def select_filter(center_hz: Optional[float], width_hz: Optional[float], passes: int = DEFAULT_PASSES) -> Optional[FilterSpec]:
    """FilterSpec for a requested band, or None (filter off) when center or width is missing, non-positive or not finite."""
    if center_hz is None or width_hz is None:
        return None
    center_hz, width_hz = float(center_hz), float(width_hz)
    if not (math.isfinite(center_hz) and math.isfinite(width_hz)) or width_hz <= 0:
        return None
    return FilterSpec(constrain_center(center_hz, width_hz), width_hz, passes)


class Pipeline:
    """One capture session. Construct once, then start()/stop()."""

    def __init__(
        self,
        config: PipelineConfig,
        gateway: InferenceGateway,
        profile: str = "en",
        filter_spec: Optional[FilterSpec] = None,
        gain_db: float = 0.0,
        metrics: Optional[DecodeMetrics] = None,
        owns_gateway: bool = False,
    ):
        """
        Args:
            config: Validated on construction.
            gateway: Inference boundary (may be shared between sessions).
            profile: Language profile name.
            filter_spec: Initial band-pass selection (None = filter off).
            gain_db: Input gain applied on write.
            metrics: Shared metrics; a private instance is created if None.
            owns_gateway: Close the gateway on stop().
        """
        self.config = config.validate()
        self.gateway = gateway
        self.profile = profile
        self.filter_spec = filter_spec
        self.metrics = metrics or DecodeMetrics()
        self.buffer = RingBuffer(config.buffer_samples)
        self._gain = gain_db_to_linear(gain_db)
        self._owns_gateway = owns_gateway
        self._cycles = itertools.count(1)
        self._last_delivered = 0
        self._in_flight: Set[asyncio.Task] = set()
        self._timer: Optional[asyncio.Task] = None
        self._on_result: Optional[ResultCallback] = None
        self._running = False
        self._stopped = False

    # ----- producer side -----

    def write_audio(self, chunk) -> None:
        """Audio callback entry point; ignored after stop()."""
        if self._stopped:
            return
        self.buffer.write(chunk, gain=self._gain)

    # ----- controls -----

    def set_filter(self, center_hz: Optional[float], width_hz: float, passes: int = DEFAULT_PASSES) -> Optional[FilterSpec]:
        """Select (or clear, with center_hz=None) the band-pass; the center is kept inside the decodable band."""
        self.filter_spec = select_filter(center_hz, width_hz, passes)
        return self.filter_spec

    def set_gain(self, gain_db: float) -> None:
        self._gain = gain_db_to_linear(gain_db)

    @property
    def gain(self) -> float:
        return self._gain

    @property
    def running(self) -> bool:
        return self._running

    @property
    def state(self) -> str:
        if self._stopped:
            return STATE_STOPPED
        if self.gateway.is_loaded(self.profile):
            return STATE_READY
        return STATE_LOADING if self._running else STATE_IDLE

    # ----- lifecycle -----

    async def start(self, on_result: Optional[ResultCallback] = None) -> None:
        """Start the periodic decode timer. The model load starts right away."""
        if self._stopped:
            raise RuntimeError("Pipeline was stopped; create a new one")
        if self._running:
            return
        self._on_result = on_result
        self._running = True
        self.metrics.record_session_open()
        self._timer = asyncio.create_task(self._run_timer())

    async def stop(self) -> None:
        """Stop accepting audio and cancel the timer; in-flight cycles finish but are not delivered."""
        if self._stopped:
            return
        was_running = self._running
        self._stopped = True
        self._running = False
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None
        if was_running:
            self.metrics.record_session_close()
        if self._owns_gateway:
            self.gateway.close()

    async def _run_timer(self) -> None:
        interval = self.config.inference_interval_s
        while self._running:
            self._trigger()
            await asyncio.sleep(interval)

    def _trigger(self) -> None:
        self._in_flight = {t for t in self._in_flight if not t.done()}
        if len(self._in_flight) >= self.config.max_in_flight:
            self.metrics.record_dropped_cycle()
            logger.debug("Skipping decode trigger: %d cycles in flight", len(self._in_flight))
            return
        task = asyncio.create_task(self._cycle())
        self._in_flight.add(task)

    async def _cycle(self) -> None:
        result = await self.decode_once()
        if self._stopped:
            return
        if result.cycle <= self._last_delivered:
            self.metrics.record_stale_result()
            logger.debug("Discarding stale result for cycle %d (delivered %d)", result.cycle, self._last_delivered)
            return
        self._last_delivered = result.cycle
        await self._emit(result)

    async def _emit(self, result: DecodeResult) -> None:
        if self._on_result is None:
            return
        try:
            outcome: Any = self._on_result(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.warning("Result callback failed for cycle %d: %s", result.cycle, e)

    # ----- one cycle -----

    async def decode_once(self) -> DecodeResult:
        """
        Run one decode cycle on the current buffer contents.

        Never raises for model or inference failures: the cycle yields an empty
        result with `error` set.
        """
        cycle = next(self._cycles)
        samples = self.buffer.snapshot()
        filter_spec = self.filter_spec
        t0 = time.perf_counter()
        result = DecodeResult(cycle=cycle)
        try:
            result.segments = await self.gateway.run_inference(self.profile, samples, filter_spec)
        except ModelLoadFailure as e:
            self.metrics.record_model_load_failure()
            logger.warning("Cycle %d: model for %s not available: %s", cycle, self.profile, e)
            result.error = f"model_unavailable: {e}"
        except InferenceFailure as e:
            logger.warning("Cycle %d: inference failed: %s", cycle, e)
            result.error = f"inference_failed: {e}"
        result.latency_ms = round((time.perf_counter() - t0) * 1000)
        self.metrics.record_cycle(result.latency_ms, failed=result.error is not None)
        return result

