"""
Frequency-band helpers for filter selection and input gain.
"""

import math
from typing import Optional, Tuple

# Range shown by the spectrum scope
MIN_FREQ_HZ = 100.0
MAX_FREQ_HZ = 1500.0

# Range the model was trained on; a filter band must fit inside it
DECODABLE_MIN_FREQ_HZ = 400.0
DECODABLE_MAX_FREQ_HZ = 1200.0

DEFAULT_FILTER_WIDTH_HZ = 250.0
FILTER_WIDTHS_HZ = (50.0, 100.0, 250.0, 300.0, 500.0)


def constrain_center(
    center_hz: float,
    width_hz: float,
    bounds: Tuple[float, float] = (DECODABLE_MIN_FREQ_HZ, DECODABLE_MAX_FREQ_HZ),
) -> float:
    """Shift `center_hz` so that [center - width/2, center + width/2] lies within bounds."""
    lower, upper = bounds
    half = width_hz / 2.0
    if half * 2.0 >= upper - lower:
        return (lower + upper) / 2.0
    if center_hz - half < lower:
        return lower + half
    if center_hz + half > upper:
        return upper - half
    return center_hz


def band_edges(center_hz: Optional[float], width_hz: float) -> Optional[Tuple[float, float]]:
    """(low, high) edges of the pass band clipped to the display range, or None if disabled."""
    if center_hz is None or width_hz <= 0:
        return None
    half = width_hz / 2.0
    return max(MIN_FREQ_HZ, center_hz - half), min(MAX_FREQ_HZ, center_hz + half)


def gain_db_to_linear(gain_db: float) -> float:
    return math.pow(10.0, gain_db / 20.0)
