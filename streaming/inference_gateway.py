"""
Caller side of the inference boundary.

Submits InferenceRequests to a worker running on an executor and routes each
response back to the coroutine that issued it by correlation id. Responses can
arrive in any order; each is delivered exactly once, and responses nobody is
waiting for any more (timed out, gateway closed) are dropped.

Model loads are memoized per profile: concurrent callers share one in-flight
load, and a failed load is forgotten so the next call retries it.
"""

import asyncio
import itertools
import logging
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from typing import Dict, List, Optional

import numpy as np

from core.errors import InferenceFailure, ModelLoadFailure
from core.text_decoder import TextSegment
from dsp.bandpass import FilterSpec
from streaming.protocol import (
    ERROR,
    MODEL_LOADED,
    InferenceRequest,
    InferenceResponse,
    error_response,
    load_model_request,
    run_inference_request,
)

logger = logging.getLogger(__name__)


class InferenceGateway:
    """Non-blocking request/response channel to an InferenceWorker."""

    def __init__(
        self,
        worker,
        executor: Optional[Executor] = None,
        max_workers: int = 2,
        timeout_s: Optional[float] = None,
    ):
        """
        Args:
            worker: Object with handle(InferenceRequest) -> InferenceResponse.
            executor: Execution boundary; a private thread pool is created if None.
            max_workers: Thread count for the private pool.
            timeout_s: Per-request timeout in seconds (None or <= 0 = wait forever).
        """
        self._worker = worker
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="cw-inference"
        )
        self.timeout_s = timeout_s if timeout_s and timeout_s > 0 else None
        self._ids = itertools.count(1)
        self._pending: Dict[int, asyncio.Future] = {}
        self._loads: Dict[str, asyncio.Future] = {}
        self._loaded: set = set()
        self._closed = False

    # ----- correlation -----

    def next_id(self) -> int:
        return next(self._ids)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def closed(self) -> bool:
        return self._closed

    async def request(self, request: InferenceRequest) -> InferenceResponse:
        """Submit `request` and wait for the response carrying the same id."""
        if self._closed:
            raise InferenceFailure("Inference gateway is closed")
        if request.id in self._pending:
            raise InferenceFailure(f"Duplicate request id {request.id}")

        loop = asyncio.get_running_loop()
        waiter = loop.create_future()
        self._pending[request.id] = waiter
        try:
            job = self._executor.submit(self._worker.handle, request)
        except RuntimeError as e:
            self._pending.pop(request.id, None)
            raise InferenceFailure(f"Inference boundary unavailable: {e}") from e
        job.add_done_callback(
            lambda f, rid=request.id: self._post_from_worker(loop, rid, f)
        )

        try:
            if self.timeout_s is None:
                return await waiter
            return await asyncio.wait_for(asyncio.shield(waiter), self.timeout_s)
        except asyncio.TimeoutError:
            # drop the job if it has not started; a running one finishes and its response is dropped
            job.cancel()
            raise InferenceFailure(f"Request {request.id} timed out after {self.timeout_s}s")
        finally:
            self._pending.pop(request.id, None)

    def _post_from_worker(self, loop: asyncio.AbstractEventLoop, request_id: int, job: Future) -> None:
        if job.cancelled():
            response = error_response(request_id, "Request cancelled")
        elif job.exception() is not None:
            response = error_response(request_id, f"Inference boundary crashed: {job.exception()}")
        else:
            response = job.result()
        if loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(self.deliver, response)
        except RuntimeError:
            logger.debug("Event loop gone; dropping response %s", request_id)

    def deliver(self, response: InferenceResponse) -> bool:
        """Hand `response` to the waiter with the same id. Returns False if nobody is waiting."""
        waiter = self._pending.pop(response.id, None)
        if waiter is None or waiter.done():
            logger.debug("Dropping response %s (%s): no pending request", response.id, response.kind)
            return False
        waiter.set_result(response)
        return True

    # ----- model loading -----

    def is_loaded(self, profile: str) -> bool:
        return profile in self._loaded

    async def ensure_profile(self, profile: str) -> None:
        """Load `profile` once; concurrent callers share the in-flight load."""
        if profile in self._loaded:
            return
        load = self._loads.get(profile)
        if load is not None and load.done() and (load.cancelled() or load.exception() is not None):
            self._loads.pop(profile, None)
            load = None
        if load is None:
            load = asyncio.ensure_future(self._load(profile))
            self._loads[profile] = load
        await asyncio.shield(load)

    async def _load(self, profile: str) -> None:
        response = await self.request(load_model_request(self.next_id(), profile))
        if response.kind != MODEL_LOADED:
            logger.warning("Model load for %s failed: %s", profile, response.error)
            raise ModelLoadFailure(response.error or f"Could not load profile {profile!r}")
        self._loaded.add(profile)
        logger.info("Profile %s loaded", profile)

    # ----- inference -----

    async def run_inference(
        self,
        profile: str,
        samples: np.ndarray,
        filter_spec: Optional[FilterSpec] = None,
    ) -> List[TextSegment]:
        """
        Decode one window of samples.

        `samples` is handed to the boundary; the caller must not read or write it
        afterwards. It is marked read-only here.

        Raises:
            ModelLoadFailure: profile could not be loaded (retried on next call).
            InferenceFailure: this request failed; later requests are unaffected.
        """
        await self.ensure_profile(profile)
        if isinstance(samples, np.ndarray):
            samples.setflags(write=False)
        response = await self.request(run_inference_request(self.next_id(), profile, samples, filter_spec))
        if response.kind == ERROR:
            raise InferenceFailure(response.error or "Inference failed")
        return list(response.segments)

    def close(self) -> None:
        """Release the boundary; waiting requests fail, queued work is cancelled."""
        if self._closed:
            return
        self._closed = True
        for request_id, waiter in list(self._pending.items()):
            if not waiter.done():
                waiter.set_result(error_response(request_id, "Inference gateway closed"))
        self._pending.clear()
        if self._owns_executor:
            self._executor.shutdown(wait=False, cancel_futures=True)
