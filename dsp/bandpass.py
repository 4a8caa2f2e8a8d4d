"""
Cascaded biquad band-pass filter.

The section is the RBJ constant-0-dB-peak band-pass; it is run `passes` times in
the same direction (not zero-phase), each pass starting from zero state.
"""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
from scipy.signal import lfilter

DEFAULT_PASSES = 4


@dataclass(frozen=True)
class FilterSpec:
    center_hz: Optional[float]
    bandwidth_hz: float
    passes: int = DEFAULT_PASSES

    @property
    def enabled(self) -> bool:
        if self.center_hz is None or self.passes <= 0:
            return False
        return math.isfinite(self.center_hz) and math.isfinite(self.bandwidth_hz) and self.bandwidth_hz > 0


def bandpass_coefficients(
    center_hz: float,
    bandwidth_hz: float,
    sample_rate: int,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Normalized biquad coefficients (b, a) with a[0] == 1.

    Q = center / bandwidth, w = 2*pi*center/sample_rate, alpha = sin(w) / (2Q).
    """
    q = center_hz / bandwidth_hz
    omega = 2.0 * math.pi * center_hz / sample_rate
    alpha = math.sin(omega) / (2.0 * q)

    a0 = 1.0 + alpha
    b = np.array([alpha, 0.0, -alpha]) / a0
    a = np.array([a0, -2.0 * math.cos(omega), 1.0 - alpha]) / a0
    return b, a


def apply_bandpass_filter(
    samples: np.ndarray,
    sample_rate: int,
    spec: Optional[FilterSpec],
) -> np.ndarray:
    """
    Filter `samples` through `spec.passes` sequential biquad passes.

    Returns the input unchanged when the filter is disabled (spec is None, no
    center frequency, or bandwidth <= 0). Output length equals input length.
    """
    samples = np.asarray(samples, dtype=np.float32)
    if spec is None or not spec.enabled:
        return samples

    b, a = bandpass_coefficients(spec.center_hz, spec.bandwidth_hz, sample_rate)
    out = samples.astype(np.float64)
    for _ in range(spec.passes):
        # lfilter without zi starts from zero state: x1 = x2 = y1 = y2 = 0
        out = lfilter(b, a, out)
    return out.astype(np.float32)
