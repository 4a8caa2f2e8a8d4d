"""
Torch runtime for the CW sequence-labeling model.

The model is a TorchScript module: input float32 [1, T, F, 1] spectrogram,
output [1, T, C] per-timestep class scores. It is treated as opaque.
"""
import logging
import os
from typing import Optional

import numpy as np
import torch

from core.errors import ModelLoadFailure

logger = logging.getLogger(__name__)


class SequenceModel:
    """Callable wrapper: numpy features in, numpy scores out."""

    def __init__(self, module: torch.nn.Module, device: str = "cpu"):
        self.module = module
        self.device = device

    def __call__(self, features: np.ndarray) -> np.ndarray:
        inputs = torch.from_numpy(np.ascontiguousarray(features, dtype=np.float32)).to(self.device)
        with torch.no_grad():
            outputs = self.module(inputs)
        if isinstance(outputs, (tuple, list)):
            outputs = outputs[0]
        return outputs.detach().cpu().numpy()


def resolve_torch_device(device: Optional[str] = None) -> str:
    """'auto' (or None) picks cuda when available, else cpu."""
    if device and device != "auto":
        return device
    return "cuda" if torch.cuda.is_available() else "cpu"


def load_sequence_model(model_reference: str, device: Optional[str] = None) -> SequenceModel:
    """
    Load a TorchScript model file.

    Raises:
        ModelLoadFailure: file missing or not loadable.
    """
    if not model_reference or not os.path.isfile(model_reference):
        raise ModelLoadFailure(f"Model file not found: {model_reference!r}")
    device = resolve_torch_device(device)
    try:
        module = torch.jit.load(model_reference, map_location=device)
    except Exception as e:
        raise ModelLoadFailure(f"Could not load model {model_reference!r}: {e}") from e
    module.eval()
    logger.info("Loaded model %s on %s", model_reference, device)
    return SequenceModel(module, device)
