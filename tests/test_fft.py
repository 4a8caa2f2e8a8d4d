"""
Tests for the radix-2 FFT engine: size validation, agreement with numpy, round trip, linearity.
Run: python3 -m unittest tests.test_fft -v
"""

import unittest

import numpy as np

from core.errors import InvalidConfiguration, InvalidSize
from dsp.fft import FFT, is_power_of_two


def _interleave(x: np.ndarray) -> np.ndarray:
    buf = np.zeros(2 * len(x), dtype=np.float64)
    buf[0::2] = np.real(x)
    buf[1::2] = np.imag(x)
    return buf


def _to_complex(buf: np.ndarray) -> np.ndarray:
    return buf[0::2] + 1j * buf[1::2]


def _forward(fft: FFT, x: np.ndarray) -> np.ndarray:
    buf = _interleave(x)
    fft.transform(buf)
    return _to_complex(buf)


def _inverse(fft: FFT, spectrum: np.ndarray) -> np.ndarray:
    """Inverse via the conjugation identity: ifft(X) = conj(fft(conj(X))) / N."""
    return np.conj(_forward(fft, np.conj(spectrum))) / fft.fft_size


class TestFFTConstruction(unittest.TestCase):
    def test_non_power_of_two_rejected(self):
        for n in (0, -4, 3, 6, 100, 255):
            with self.assertRaises(InvalidSize):
                FFT(n)

    def test_invalid_size_is_configuration_error(self):
        with self.assertRaises(InvalidConfiguration):
            FFT(12)

    def test_is_power_of_two(self):
        self.assertTrue(is_power_of_two(1))
        self.assertTrue(is_power_of_two(256))
        self.assertFalse(is_power_of_two(0))
        self.assertFalse(is_power_of_two(96))

    def test_bit_reversal_table(self):
        self.assertEqual(FFT(8).reverse_table.tolist(), [0, 4, 2, 6, 1, 5, 3, 7])

    def test_wrong_buffer_length(self):
        with self.assertRaises(ValueError):
            FFT(8).transform(np.zeros(8))


class TestFFTTransform(unittest.TestCase):
    def test_matches_numpy(self):
        rng = np.random.default_rng(0)
        for n in (1, 2, 4, 8, 64, 256, 1024):
            x = rng.standard_normal(n) + 1j * rng.standard_normal(n)
            np.testing.assert_allclose(_forward(FFT(n), x), np.fft.fft(x), rtol=1e-9, atol=1e-9)

    def test_round_trip_real_input(self):
        rng = np.random.default_rng(1)
        for n in (2, 16, 128, 512):
            fft = FFT(n)
            x = rng.standard_normal(n)
            recovered = _inverse(fft, _forward(fft, x))
            np.testing.assert_allclose(recovered.real, x, atol=1e-9)
            np.testing.assert_allclose(recovered.imag, np.zeros(n), atol=1e-9)
            # independent inverse
            np.testing.assert_allclose(np.fft.ifft(_forward(fft, x)).real, x, atol=1e-9)

    def test_linearity(self):
        rng = np.random.default_rng(2)
        fft = FFT(256)
        a = rng.standard_normal(256)
        b = rng.standard_normal(256)
        np.testing.assert_allclose(_forward(fft, a) + _forward(fft, b), _forward(fft, a + b), atol=1e-9)

    def test_unscaled_dc(self):
        fft = FFT(16)
        out = _forward(fft, np.ones(16))
        self.assertAlmostEqual(out[0].real, 16.0)
        np.testing.assert_allclose(np.abs(out[1:]), np.zeros(15), atol=1e-12)

    def test_deterministic_across_calls(self):
        fft = FFT(64)
        x = np.random.default_rng(3).standard_normal(64)
        first = _forward(fft, x)
        second = _forward(fft, x)
        np.testing.assert_array_equal(first, second)

    def test_in_place_on_float32(self):
        fft = FFT(8)
        buf = np.zeros(16, dtype=np.float32)
        buf[0::2] = 1.0
        fft.transform(buf)
        self.assertAlmostEqual(float(buf[0]), 8.0, places=5)
        self.assertEqual(buf.dtype, np.float32)


if __name__ == "__main__":
    unittest.main()
