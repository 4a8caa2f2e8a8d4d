"""
Real-time decode layer.

- protocol: request/response messages across the inference boundary.
- inference_worker: model execution, spectrogram and decode behind the boundary.
- inference_gateway: correlation ids, memoized model loads, executor dispatch.
- pipeline: per-session ring buffer + periodic decode cycle.
- websocket_server: WebSocket handler for /ws/decode (import separately to avoid pulling FastAPI).
"""

from streaming.inference_gateway import InferenceGateway
from streaming.inference_worker import InferenceWorker
from streaming.pipeline import DecodeResult, Pipeline, PipelineConfig

__all__ = [
    "DecodeResult",
    "InferenceGateway",
    "InferenceWorker",
    "Pipeline",
    "PipelineConfig",
]
