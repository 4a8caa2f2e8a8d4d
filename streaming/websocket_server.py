"""
WebSocket server for /ws/decode.

- Query params: lang (profile), freq + width (band-pass, optional), gain (dB).
- Binary messages: little-endian float32 mono PCM at the pipeline sample rate,
  written into a per-connection Pipeline.
- Text messages: JSON controls {"type": "set_filter", "freq", "width"},
  {"type": "clear_filter"}, {"type": "set_gain", "gain"}, or "stop".
- Every inference interval a decode_result is pushed back:
  {"type": "decode_result", "cycle", "text", "segments", "latency_ms"[, "error"]}.
"""

import asyncio
import json
import logging
import math
from typing import Any, Callable, Mapping, Optional

import numpy as np
from fastapi import WebSocket, WebSocketDisconnect

from dsp.frequency import DEFAULT_FILTER_WIDTH_HZ
from metrics.decode_metrics import DecodeMetrics
from streaming.inference_gateway import InferenceGateway
from streaming.pipeline import DecodeResult, Pipeline, PipelineConfig

logger = logging.getLogger(__name__)

STOP_MESSAGES = ("end", "stop", "final")


def _parse_float(value: Optional[str]) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        parsed = float(value)
    except ValueError:
        return None
    return parsed if math.isfinite(parsed) else None


def pcm_from_bytes(data: bytes) -> np.ndarray:
    """Decode little-endian float32 PCM; a trailing partial sample is ignored."""
    usable = len(data) - (len(data) % 4)
    if usable <= 0:
        return np.zeros(0, dtype=np.float32)
    return np.frombuffer(data[:usable], dtype="<f4").astype(np.float32)


def apply_control(pipeline: Pipeline, message: Mapping[str, Any]) -> bool:
    """Apply a JSON control message. Returns False if the type is unknown."""
    kind = message.get("type")
    if kind == "set_filter":
        width = _parse_float(str(message.get("width", ""))) or DEFAULT_FILTER_WIDTH_HZ
        pipeline.set_filter(_parse_float(str(message.get("freq", ""))), width)
        return True
    if kind == "clear_filter":
        pipeline.set_filter(None, 0.0)
        return True
    if kind == "set_gain":
        pipeline.set_gain(_parse_float(str(message.get("gain", ""))) or 0.0)
        return True
    return False


def build_ws_decode_handler(
    get_gateway: Callable[[], InferenceGateway],
    get_profiles: Callable[[], Mapping[str, Any]],
    pipeline_config: PipelineConfig,
    default_lang: str = "en",
    get_metrics: Optional[Callable[[], DecodeMetrics]] = None,
    idle_timeout_s: float = 300.0,
) -> Callable:
    """
    Build the async WebSocket handler for /ws/decode.

    Args:
        get_gateway: Callable returning the shared InferenceGateway.
        get_profiles: Callable returning the loaded language profiles by name.
        pipeline_config: Sizes and intervals for each session's Pipeline.
        default_lang: Profile used when `lang` is not given.
        get_metrics: Optional callable returning the shared DecodeMetrics.
        idle_timeout_s: Close the session after this long without a message.

    Returns:
        Async function (websocket: WebSocket) -> None for use with FastAPI.
    """

    async def handle_ws_decode(websocket: WebSocket) -> None:
        params = websocket.query_params
        lang = params.get("lang") or default_lang
        if lang not in get_profiles():
            await websocket.close(code=1008, reason=f"Unknown language {lang!r}")
            return

        await websocket.accept()
        pipeline = Pipeline(
            pipeline_config,
            get_gateway(),
            profile=lang,
            gain_db=_parse_float(params.get("gain")) or 0.0,
            metrics=get_metrics() if get_metrics else None,
        )
        pipeline.set_filter(
            _parse_float(params.get("freq")),
            _parse_float(params.get("width")) or DEFAULT_FILTER_WIDTH_HZ,
        )

        async def send_result(result: DecodeResult) -> None:
            payload = result.to_dict()
            payload["state"] = pipeline.state
            try:
                await websocket.send_json(payload)
            except (WebSocketDisconnect, RuntimeError):
                pass

        await websocket.send_json({
            "type": "ready",
            "lang": lang,
            "sample_rate": pipeline_config.sample_rate,
            "interval_s": pipeline_config.inference_interval_s,
        })
        await pipeline.start(send_result)

        try:
            while True:
                try:
                    data = await asyncio.wait_for(websocket.receive(), timeout=idle_timeout_s)
                except asyncio.TimeoutError:
                    break
                if data.get("type") == "websocket.disconnect":
                    break
                if data.get("type") != "websocket.receive":
                    continue
                if data.get("bytes") is not None:
                    pipeline.write_audio(pcm_from_bytes(data["bytes"]))
                    continue
                text = (data.get("text") or "").strip()
                if text.lower() in STOP_MESSAGES:
                    break
                try:
                    message = json.loads(text)
                except json.JSONDecodeError:
                    continue
                if isinstance(message, dict) and not apply_control(pipeline, message):
                    logger.debug("Ignoring unknown control message %r", message.get("type"))
        except WebSocketDisconnect:
            pass
        except Exception as e:
            logger.warning("Decode session error: %s", e)
            try:
                await websocket.send_json({"type": "error", "message": str(e)})
            except Exception:
                pass
        finally:
            await pipeline.stop()

        try:
            await websocket.close()
        except (WebSocketDisconnect, RuntimeError):
            pass

    return handle_ws_decode
