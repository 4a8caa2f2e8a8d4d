"""
Worker side of the inference boundary.

Runs on an executor thread (or synchronously, for offline decoding). Holds the
loaded model per profile, turns a sample window into a [1, T, F, 1] tensor, runs
the model and decodes its output to TextSegments. Every request gets exactly one
response; exceptions become `error` responses.
"""

import logging
import threading
import time
from typing import Any, Callable, Dict, List, Mapping, Optional

import numpy as np

from core.errors import InferenceFailure, ModelLoadFailure
from core.profiles import LanguageProfile
from core.text_decoder import TextSegment, decode_predictions
from dsp.stft import STFT, audio_to_spectrogram
from streaming.protocol import (
    INFERENCE_RESULT,
    LOAD_MODEL,
    MODEL_LOADED,
    RUN_INFERENCE,
    InferenceRequest,
    InferenceResponse,
    error_response,
)

logger = logging.getLogger(__name__)

ModelLoader = Callable[[str], Callable[[np.ndarray], Any]]


def build_input_tensor(spectrogram: List[np.ndarray]) -> np.ndarray:
    """Flatten frames time-major into a float32 [1, time_steps, freq_bins, 1] tensor."""
    if not spectrogram:
        return np.zeros((1, 0, 0, 1), dtype=np.float32)
    features = np.stack(spectrogram).astype(np.float32, copy=False)
    return features.reshape(1, features.shape[0], features.shape[1], 1)


class InferenceWorker:
    """Executes loadModel / runInference requests against per-profile models."""

    def __init__(
        self,
        profiles: Mapping[str, LanguageProfile],
        model_loader: ModelLoader,
        sample_rate: int,
        fft_size: int,
        hop_size: int,
    ):
        """
        Args:
            profiles: Language profiles by name.
            model_loader: model_reference -> callable(features [1,T,F,1]) -> scores [B,T,C].
            sample_rate: Sample rate of incoming windows (Hz).
            fft_size: STFT frame length (power of two).
            hop_size: STFT hop in samples.
        """
        self.profiles = dict(profiles)
        self.sample_rate = sample_rate
        self._model_loader = model_loader
        self._stft = STFT(fft_size, hop_size)
        self._sessions: Dict[str, Callable[[np.ndarray], Any]] = {}
        self._lock = threading.Lock()

    def handle(self, request: InferenceRequest) -> InferenceResponse:
        """Process one request. Never raises."""
        try:
            if request.kind == LOAD_MODEL:
                self._ensure_session(request.profile)
                return InferenceResponse(id=request.id, kind=MODEL_LOADED)
            if request.kind == RUN_INFERENCE:
                segments = self.run(request)
                return InferenceResponse(id=request.id, kind=INFERENCE_RESULT, segments=segments)
            return error_response(request.id, f"Unsupported request kind: {request.kind!r}")
        except Exception as e:
            logger.warning("Request %s (%s, %s) failed: %s", request.id, request.kind, request.profile, e)
            return error_response(request.id, str(e) or e.__class__.__name__)

    def is_loaded(self, profile: str) -> bool:
        return profile in self._sessions

    def _get_profile(self, name: str) -> LanguageProfile:
        profile = self.profiles.get(name)
        if profile is None:
            raise ModelLoadFailure(f"Unknown language profile: {name!r}")
        return profile

    def _ensure_session(self, name: str) -> Callable[[np.ndarray], Any]:
        session = self._sessions.get(name)
        if session is not None:
            return session
        with self._lock:
            session = self._sessions.get(name)
            if session is None:
                profile = self._get_profile(name)
                t0 = time.perf_counter()
                try:
                    session = self._model_loader(profile.model_reference)
                except ModelLoadFailure:
                    raise
                except Exception as e:
                    raise ModelLoadFailure(f"Could not load model for {name!r}: {e}") from e
                self._sessions[name] = session
                logger.info("Profile %s ready in %d ms", name, round((time.perf_counter() - t0) * 1000))
        return session

    def run(self, request: InferenceRequest) -> List[TextSegment]:
        """Spectrogram -> model -> greedy decode for one window. Empty window yields []."""
        profile = self._get_profile(request.profile)
        session = self._ensure_session(request.profile)
        if request.samples is None:
            raise InferenceFailure("runInference request carries no samples")

        spectrogram = audio_to_spectrogram(request.samples, self.sample_rate, request.filter_spec, self._stft)
        if not spectrogram:
            return []

        features = build_input_tensor(spectrogram)
        pred = np.asarray(session(features))
        decoded = decode_predictions(pred, profile.vocabulary, profile.abbreviations)
        return decoded[0] if decoded else []


def decode_samples(
    worker: InferenceWorker,
    profile: str,
    samples: np.ndarray,
    filter_freq: Optional[float] = None,
    filter_width: float = 0.0,
) -> InferenceResponse:
    """Synchronous in-process call through the same request/response contract."""
    loaded = worker.handle(InferenceRequest(id=1, kind=LOAD_MODEL, profile=profile))
    if not loaded.ok:
        return loaded
    return worker.handle(
        InferenceRequest(
            id=2,
            kind=RUN_INFERENCE,
            profile=profile,
            samples=samples,
            filter_freq=filter_freq,
            filter_width=filter_width,
        )
    )
