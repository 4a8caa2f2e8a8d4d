"""
Tests for the cascaded biquad band-pass and the frequency helpers.
Run: python3 -m unittest tests.test_bandpass -v
"""

import math
import unittest

import numpy as np

from dsp.bandpass import FilterSpec, apply_bandpass_filter, bandpass_coefficients
from dsp.frequency import (
    DECODABLE_MAX_FREQ_HZ,
    DECODABLE_MIN_FREQ_HZ,
    band_edges,
    constrain_center,
    gain_db_to_linear,
)

SR = 3200


def _tone(freq, seconds=2.0, sr=SR):
    t = np.arange(int(seconds * sr)) / sr
    return np.sin(2 * math.pi * freq * t).astype(np.float32)


def _reference_biquad(x, b, a, passes):
    """Direct-form difference equation, state reset per pass."""
    out = np.asarray(x, dtype=np.float64)
    for _ in range(passes):
        y = np.zeros_like(out)
        x1 = x2 = y1 = y2 = 0.0
        for i, x0 in enumerate(out):
            y0 = b[0] * x0 + b[1] * x1 + b[2] * x2 - a[1] * y1 - a[2] * y2
            y[i] = y0
            x2, x1 = x1, x0
            y2, y1 = y1, y0
        out = y
    return out


class TestBandpassFilter(unittest.TestCase):
    def test_disabled_is_identity(self):
        x = np.random.default_rng(1).standard_normal(500).astype(np.float32)
        np.testing.assert_array_equal(apply_bandpass_filter(x, SR, None), x)
        np.testing.assert_array_equal(apply_bandpass_filter(x, SR, FilterSpec(None, 250.0)), x)
        np.testing.assert_array_equal(apply_bandpass_filter(x, SR, FilterSpec(700.0, 0.0)), x)

    def test_non_finite_band_is_disabled(self):
        x = np.random.default_rng(2).standard_normal(500).astype(np.float32)
        for spec in (
            FilterSpec(float("nan"), 250.0),
            FilterSpec(float("inf"), 250.0),
            FilterSpec(700.0, float("inf")),
            FilterSpec(700.0, float("nan")),
        ):
            self.assertFalse(spec.enabled)
            np.testing.assert_array_equal(apply_bandpass_filter(x, SR, spec), x)

    def test_output_length_matches_input(self):
        x = _tone(700, 0.5)
        y = apply_bandpass_filter(x, SR, FilterSpec(700.0, 250.0))
        self.assertEqual(y.shape, x.shape)
        self.assertEqual(y.dtype, np.float32)

    def test_coefficients(self):
        b, a = bandpass_coefficients(800.0, 200.0, SR)
        omega = 2 * math.pi * 800.0 / SR
        alpha = math.sin(omega) / (2 * 4.0)
        self.assertAlmostEqual(a[0], 1.0)
        self.assertAlmostEqual(b[0], alpha / (1 + alpha))
        self.assertAlmostEqual(b[1], 0.0)
        self.assertAlmostEqual(b[2], -alpha / (1 + alpha))
        self.assertAlmostEqual(a[1], -2 * math.cos(omega) / (1 + alpha))
        self.assertAlmostEqual(a[2], (1 - alpha) / (1 + alpha))

    def test_matches_difference_equation(self):
        x = np.random.default_rng(2).standard_normal(300).astype(np.float32)
        spec = FilterSpec(600.0, 100.0, passes=3)
        b, a = bandpass_coefficients(600.0, 100.0, SR)
        expected = _reference_biquad(x, b, a, 3)
        np.testing.assert_allclose(apply_bandpass_filter(x, SR, spec), expected, rtol=1e-4, atol=1e-5)

    def test_passes_center_attenuates_far_tone(self):
        spec = FilterSpec(700.0, 100.0)
        in_band = apply_bandpass_filter(_tone(700), SR, spec)
        out_band = apply_bandpass_filter(_tone(1200), SR, spec)
        # skip the transient
        rms_in = np.sqrt(np.mean(in_band[SR // 2:] ** 2))
        rms_out = np.sqrt(np.mean(out_band[SR // 2:] ** 2))
        self.assertGreater(rms_in, 0.5)
        self.assertLess(rms_out, rms_in * 0.01)


class TestFrequencyHelpers(unittest.TestCase):
    def test_constrain_inside_band_unchanged(self):
        self.assertEqual(constrain_center(800.0, 250.0), 800.0)

    def test_constrain_low_and_high(self):
        self.assertEqual(constrain_center(300.0, 250.0), DECODABLE_MIN_FREQ_HZ + 125.0)
        self.assertEqual(constrain_center(1190.0, 100.0), DECODABLE_MAX_FREQ_HZ - 50.0)

    def test_constrain_band_wider_than_range(self):
        self.assertEqual(constrain_center(500.0, 2000.0), (DECODABLE_MIN_FREQ_HZ + DECODABLE_MAX_FREQ_HZ) / 2)

    def test_band_edges(self):
        self.assertIsNone(band_edges(None, 250.0))
        self.assertEqual(band_edges(700.0, 200.0), (600.0, 800.0))
        self.assertEqual(band_edges(120.0, 100.0), (100.0, 170.0))

    def test_gain(self):
        self.assertAlmostEqual(gain_db_to_linear(0.0), 1.0)
        self.assertAlmostEqual(gain_db_to_linear(20.0), 10.0)
        self.assertAlmostEqual(gain_db_to_linear(-6.0), 0.501187, places=5)


if __name__ == "__main__":
    unittest.main()
