"""
Short-time Fourier transform and the cropped magnitude spectrogram fed to the model.

Pipeline per decode cycle:
    samples -> band-pass (optional) -> Hann-windowed frames -> FFT -> |X[k]| for
    k in 0..N/2 -> keep the central half of the bins.
"""

import math
from typing import List, Optional

import numpy as np

from core.errors import InvalidConfiguration
from dsp.bandpass import FilterSpec, apply_bandpass_filter
from dsp.fft import FFT


def hann_window(size: int) -> np.ndarray:
    """Symmetric Hann window 0.5 * (1 - cos(2*pi*i / (size - 1)))."""
    i = np.arange(size, dtype=np.float64)
    return 0.5 * (1.0 - np.cos(2.0 * math.pi * i / (size - 1)))


def frame_count(signal_length: int, fft_size: int, hop_size: int) -> int:
    """Number of full frames: floor((L - N) / H) + 1 when L >= N, else 0."""
    if signal_length < fft_size:
        return 0
    return (signal_length - fft_size) // hop_size + 1


class STFT:
    """Framed FFT over a real signal; trailing partial frames are dropped."""

    def __init__(self, fft_size: int, hop_size: int):
        if fft_size < 2:
            raise InvalidConfiguration(f"FFT size must be at least 2, got {fft_size}")
        if hop_size <= 0:
            raise InvalidConfiguration(f"Hop size must be positive, got {hop_size}")
        self.fft_size = fft_size
        self.hop_size = hop_size
        self.fft = FFT(fft_size)
        self.window = hann_window(fft_size)

    @property
    def num_bins(self) -> int:
        return self.fft_size // 2 + 1

    def analyze(self, signal: np.ndarray) -> List[np.ndarray]:
        """Return one interleaved complex frame (length 2N) per hop."""
        signal = np.asarray(signal, dtype=np.float64).reshape(-1)
        n = self.fft_size
        frames: List[np.ndarray] = []
        complex_frame = np.zeros(2 * n, dtype=np.float64)
        for start in range(0, frame_count(signal.shape[0], n, self.hop_size) * self.hop_size, self.hop_size):
            complex_frame[0::2] = signal[start:start + n] * self.window
            complex_frame[1::2] = 0.0
            self.fft.transform(complex_frame)
            frames.append(complex_frame.copy())
        return frames

    def magnitudes(self, complex_frames: List[np.ndarray]) -> List[np.ndarray]:
        """|X[k]| = sqrt(re^2 + im^2) for bins 0..N/2 inclusive, as float32."""
        nb = self.num_bins
        out = []
        for frame in complex_frames:
            re = frame[0:2 * nb:2]
            im = frame[1:2 * nb:2]
            out.append(np.sqrt(re * re + im * im).astype(np.float32))
        return out


def crop_spectrogram(spectrogram: List[np.ndarray]) -> List[np.ndarray]:
    """Drop the lowest and highest quarter of the bins; keep [cut, n_bins - cut)."""
    if not spectrogram:
        return []
    n_bins = spectrogram[0].shape[0]
    cut = n_bins // 4
    return [frame[cut:n_bins - cut].copy() for frame in spectrogram]


def audio_to_spectrogram(
    samples: np.ndarray,
    sample_rate: int,
    filter_spec: Optional[FilterSpec],
    stft: STFT,
) -> List[np.ndarray]:
    """Filtered, cropped magnitude spectrogram; empty list when shorter than one frame."""
    filtered = apply_bandpass_filter(samples, sample_rate, filter_spec)
    complex_frames = stft.analyze(filtered)
    return crop_spectrogram(stft.magnitudes(complex_frames))
