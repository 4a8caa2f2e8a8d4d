"""
Radix-2 iterative Cooley-Tukey FFT.

Size is fixed at construction; the bit-reversal permutation and the twiddle
tables (angle -2*pi*i/N) are computed once and reused on every call. The
transform is forward and unscaled.
"""

import math

import numpy as np

from core.errors import InvalidSize


def is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


class FFT:
    """
    In-place FFT over an interleaved (re, im, re, im, ...) float array of length 2N.
    """

    def __init__(self, fft_size: int):
        if not isinstance(fft_size, (int, np.integer)) or not is_power_of_two(int(fft_size)):
            raise InvalidSize(f"FFT size must be a power of 2, got {fft_size!r}")
        self.fft_size = int(fft_size)
        n = self.fft_size

        # rev[i + limit] = rev[i] + bit, doubling limit and halving bit each round
        self._reverse_table = np.zeros(n, dtype=np.int64)
        limit, bit = 1, n >> 1
        while limit < n:
            self._reverse_table[limit:2 * limit] = self._reverse_table[:limit] + bit
            limit <<= 1
            bit >>= 1

        angles = -2.0 * math.pi * np.arange(n, dtype=np.float64) / n
        self._sin_table = np.sin(angles)
        self._cos_table = np.cos(angles)

    @property
    def reverse_table(self) -> np.ndarray:
        return self._reverse_table.copy()

    def transform(self, complex_array: np.ndarray) -> None:
        """
        Forward FFT in place.

        Args:
            complex_array: 1-D float ndarray of length 2 * fft_size, interleaved re/im.
        """
        n = self.fft_size
        if not isinstance(complex_array, np.ndarray) or complex_array.shape != (2 * n,):
            raise ValueError(f"Expected interleaved array of length {2 * n}")

        z = complex_array[0::2] + 1j * complex_array[1::2]
        z = z[self._reverse_table]

        half = 1
        while half < n:
            step = half * 2
            stride = n // step
            w = self._cos_table[0:half * stride:stride] + 1j * self._sin_table[0:half * stride:stride]
            blocks = z.reshape(-1, step)
            even = blocks[:, :half].copy()
            t = w * blocks[:, half:]
            blocks[:, :half] = even + t
            blocks[:, half:] = even - t
            half = step

        complex_array[0::2] = z.real
        complex_array[1::2] = z.imag
