"""
Messages exchanged across the inference boundary.

Request  {id, kind: loadModel(profile) | runInference(profile, samples, filter_freq, filter_width)}
Response {id, kind: modelLoaded | inferenceResult(segments) | error(message)}

Exactly one response per request, carrying the request's id.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from core.text_decoder import TextSegment
from dsp.bandpass import DEFAULT_PASSES, FilterSpec

LOAD_MODEL = "loadModel"
RUN_INFERENCE = "runInference"

MODEL_LOADED = "modelLoaded"
INFERENCE_RESULT = "inferenceResult"
ERROR = "error"


@dataclass
class InferenceRequest:
    id: int
    kind: str
    profile: str
    samples: Optional[np.ndarray] = None
    filter_freq: Optional[float] = None
    filter_width: float = 0.0
    filter_passes: int = DEFAULT_PASSES

    @property
    def filter_spec(self) -> Optional[FilterSpec]:
        if self.filter_freq is None or self.filter_width <= 0:
            return None
        return FilterSpec(self.filter_freq, self.filter_width, self.filter_passes)


@dataclass
class InferenceResponse:
    id: int
    kind: str
    segments: List[TextSegment] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.kind != ERROR


def load_model_request(request_id: int, profile: str) -> InferenceRequest:
    return InferenceRequest(id=request_id, kind=LOAD_MODEL, profile=profile)


def run_inference_request(
    request_id: int,
    profile: str,
    samples: np.ndarray,
    filter_spec: Optional[FilterSpec],
) -> InferenceRequest:
    if filter_spec is None:
        return InferenceRequest(id=request_id, kind=RUN_INFERENCE, profile=profile, samples=samples)
    return InferenceRequest(
        id=request_id,
        kind=RUN_INFERENCE,
        profile=profile,
        samples=samples,
        filter_freq=filter_spec.center_hz,
        filter_width=filter_spec.bandwidth_hz,
        filter_passes=filter_spec.passes,
    )


def error_response(request_id: int, message: str) -> InferenceResponse:
    return InferenceResponse(id=request_id, kind=ERROR, error=message)
