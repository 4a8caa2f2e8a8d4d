"""
Production configuration via environment variables.
Load with python-dotenv; no hardcoded model paths or secrets.
"""
import os

from dotenv import load_dotenv

from core.errors import InvalidConfiguration
from streaming.pipeline import PipelineConfig

load_dotenv()

# ----- Server -----
PORT = int(os.environ.get("PORT", "8001"))
HOST = os.environ.get("HOST", "0.0.0.0")
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# ----- Signal chain (must match the model's training front end) -----
SAMPLE_RATE = int(os.environ.get("CW_SAMPLE_RATE", "3200"))
BUFFER_DURATION_S = float(os.environ.get("CW_BUFFER_SECONDS", "12"))
FFT_SIZE = int(os.environ.get("CW_FFT_SIZE", "256"))
HOP_SIZE = int(os.environ.get("CW_HOP_SIZE", "64"))

# ----- Decode loop -----
INFERENCE_INTERVAL_S = float(os.environ.get("CW_INFERENCE_INTERVAL", "0.1"))
# Max overlapping decode cycles per session; further timer ticks are skipped
MAX_IN_FLIGHT = int(os.environ.get("CW_MAX_IN_FLIGHT", "3"))
INFERENCE_WORKERS = int(os.environ.get("CW_INFERENCE_WORKERS", "2"))
# Per-request timeout in seconds; 0 disables
INFERENCE_TIMEOUT_S = float(os.environ.get("CW_INFERENCE_TIMEOUT", "5.0"))

# ----- Models and language profiles -----
MODEL_PATH = os.environ.get("CW_MODEL_PATH", "model.pt")
# Optional JSON file with extra profiles (see core/profiles.py)
PROFILES_PATH = os.environ.get("CW_PROFILES_PATH", "")
DEFAULT_LANG = os.environ.get("CW_DEFAULT_LANG", "en")

# auto | cuda | cpu
DEVICE = os.environ.get("DEVICE", "auto")

# ----- CORS (production: set to specific origins) -----
CORS_ORIGINS = os.environ.get("CORS_ORIGINS", "*")


def get_cors_origins() -> list:
    """Return list of allowed CORS origins from env."""
    if CORS_ORIGINS == "*":
        return ["*"]
    return [o.strip() for o in CORS_ORIGINS.split(",") if o.strip()]


def get_pipeline_config() -> PipelineConfig:
    """PipelineConfig from env; raises InvalidConfiguration on bad values."""
    return PipelineConfig(
        sample_rate=SAMPLE_RATE,
        buffer_duration_s=BUFFER_DURATION_S,
        fft_size=FFT_SIZE,
        hop_size=HOP_SIZE,
        inference_interval_s=INFERENCE_INTERVAL_S,
        max_in_flight=MAX_IN_FLIGHT,
    ).validate()


def get_inference_timeout() -> float:
    if INFERENCE_TIMEOUT_S < 0:
        raise InvalidConfiguration(f"CW_INFERENCE_TIMEOUT must be >= 0, got {INFERENCE_TIMEOUT_S}")
    return INFERENCE_TIMEOUT_S
