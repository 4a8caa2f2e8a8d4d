"""
Real-time CW (Morse) decoder API.

Audio -> band-pass -> STFT spectrogram -> sequence-labeling model -> greedy decode
-> collapsed text with prosign abbreviations.

- WS /ws/decode: stream float32 PCM, receive decode_result every inference interval.
- POST /decode: decode the last buffer_duration_s seconds of an uploaded audio file in one window.
- GET /profiles, GET /metrics/decoding, GET / (health).
"""
import asyncio
import logging
import os
import shutil
import uuid
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, Mapping, Optional

import librosa
import numpy as np
import uvicorn
from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware

import config
from core.errors import InferenceFailure, ModelLoadFailure
from core.model_runtime import load_sequence_model
from core.profiles import LanguageProfile, load_profiles, profile_names
from core.text_decoder import segments_to_text
from dsp.frequency import DEFAULT_FILTER_WIDTH_HZ
from metrics.decode_metrics import DecodeMetrics
from streaming.inference_gateway import InferenceGateway
from streaming.inference_worker import InferenceWorker
from streaming.pipeline import PipelineConfig, select_filter
from streaming.websocket_server import build_ws_decode_handler

logger = logging.getLogger(__name__)


def _load_audio(path: str, sample_rate: int) -> np.ndarray:
    """Load any librosa-readable file as mono float32 at `sample_rate`."""
    y, _ = librosa.load(path, sr=sample_rate, mono=True)
    return y.astype(np.float32)


def create_app(
    pipeline_config: Optional[PipelineConfig] = None,
    profiles: Optional[Mapping[str, LanguageProfile]] = None,
    model_loader: Optional[Callable[[str], Any]] = None,
    default_lang: Optional[str] = None,
    inference_workers: Optional[int] = None,
    inference_timeout_s: Optional[float] = None,
) -> FastAPI:
    """
    Build the API with explicitly owned state (gateway, profiles, metrics on app.state).

    Arguments default to the environment configuration in config.py.
    """
    pipeline_config = pipeline_config or config.get_pipeline_config()
    if profiles is None:
        profiles = load_profiles(config.MODEL_PATH, config.PROFILES_PATH or None)
    if model_loader is None:
        model_loader = lambda ref: load_sequence_model(ref, device=config.DEVICE)
    default_lang = default_lang or config.DEFAULT_LANG
    if inference_timeout_s is None:
        inference_timeout_s = config.get_inference_timeout()

    worker = InferenceWorker(
        profiles,
        model_loader,
        sample_rate=pipeline_config.sample_rate,
        fft_size=pipeline_config.fft_size,
        hop_size=pipeline_config.hop_size,
    )
    gateway = InferenceGateway(
        worker,
        max_workers=inference_workers or config.INFERENCE_WORKERS,
        timeout_s=inference_timeout_s,
    )
    metrics = DecodeMetrics()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("CW decoder ready: profiles=%s", ", ".join(profile_names(profiles)))
        yield
        gateway.close()

    app = FastAPI(title="CW Decoder API", lifespan=lifespan)
    app.state.gateway = gateway
    app.state.profiles = dict(profiles)
    app.state.metrics = metrics
    app.state.pipeline_config = pipeline_config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.get_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    def health_check():
        return {
            "status": "ok",
            "message": "CW decoder API is running",
            "profiles": list(profile_names(profiles)),
            "loaded": [name for name in profiles if gateway.is_loaded(name)],
        }

    @app.get("/profiles")
    def list_profiles():
        return {
            "default": default_lang,
            "sample_rate": pipeline_config.sample_rate,
            "profiles": [profiles[name].describe() for name in profile_names(profiles)],
        }

    @app.post("/decode")
    async def decode_file(
        audio: UploadFile = File(...),
        lang: str = Query(default_lang, description="Language profile"),
        freq: Optional[float] = Query(None, description="Band-pass center (Hz); omit to disable"),
        width: float = Query(DEFAULT_FILTER_WIDTH_HZ, description="Band-pass width (Hz)"),
    ) -> Dict[str, Any]:
        if lang not in profiles:
            raise HTTPException(status_code=404, detail=f"Language {lang!r} not found")

        temp_filename = f"temp_decode_{uuid.uuid4().hex}_{os.path.basename(audio.filename or 'audio')}"
        try:
            with open(temp_filename, "wb") as buffer:
                shutil.copyfileobj(audio.file, buffer)
            loop = asyncio.get_running_loop()
            try:
                samples = await loop.run_in_executor(
                    None, _load_audio, temp_filename, pipeline_config.sample_rate
                )
            except Exception as e:
                raise HTTPException(status_code=400, detail=f"Unreadable audio: {e}")

            duration_s = round(len(samples) / pipeline_config.sample_rate, 3)
            # newest buffer_duration_s seconds only
            window = samples[-pipeline_config.buffer_samples:]
            window_s = round(len(window) / pipeline_config.sample_rate, 3)
            try:
                segments = await gateway.run_inference(lang, window, select_filter(freq, width))
            except ModelLoadFailure as e:
                metrics.record_model_load_failure()
                raise HTTPException(status_code=503, detail=f"Model unavailable: {e}")
            except InferenceFailure as e:
                raise HTTPException(status_code=500, detail=str(e))
            return {
                "lang": lang,
                "duration_s": duration_s,
                "window_s": window_s,
                "text": segments_to_text(segments),
                "segments": [s.to_dict() for s in segments],
            }
        finally:
            if os.path.exists(temp_filename):
                try:
                    os.remove(temp_filename)
                except OSError:
                    logger.warning("Could not remove %s", temp_filename)

    @app.get("/metrics/decoding", include_in_schema=False)
    def metrics_decoding():
        """JSON snapshot: active_sessions, cycles, failures, dropped/stale results, latency."""
        return metrics.get_snapshot()

    app.websocket("/ws/decode")(
        build_ws_decode_handler(
            get_gateway=lambda: gateway,
            get_profiles=lambda: profiles,
            pipeline_config=pipeline_config,
            default_lang=default_lang,
            get_metrics=lambda: metrics,
        )
    )
    return app


if __name__ == "__main__":
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(create_app(), host=config.HOST, port=config.PORT)
