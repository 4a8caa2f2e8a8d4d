"""
Signal processing for the decoder.

- ring_buffer: rolling store of the most recent audio samples.
- bandpass: cascaded biquad band-pass filter.
- fft: radix-2 in-place FFT with precomputed tables.
- stft: Hann-windowed STFT and cropped magnitude spectrogram.
"""

from dsp.bandpass import FilterSpec, apply_bandpass_filter
from dsp.fft import FFT
from dsp.ring_buffer import RingBuffer
from dsp.stft import STFT, audio_to_spectrogram

__all__ = [
    "FFT",
    "STFT",
    "FilterSpec",
    "RingBuffer",
    "apply_bandpass_filter",
    "audio_to_spectrogram",
]
