"""
Unit tests for band-pass filtering and the magnitude spectrum.
Run with:  pytest tests/test_filtering.py
"""

from __future__ import annotations

import math

import numpy as np
import pytest

from rppg_af.filtering import bandpass, fft_magnitude, first_order_bandpass


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _two_tone(length: int, fs: float = 30.0, low_hz: float = 0.3, pass_hz: float = 1.0) -> np.ndarray:
    t = np.arange(length) / fs
    return np.sin(2 * np.pi * low_hz * t) + np.sin(2 * np.pi * pass_hz * t)


def _amplitude(freq: float, signal: np.ndarray, fs: float) -> float:
    """Amplitude of a single frequency component via a one-bin DFT projection."""
    n = np.arange(len(signal))
    basis = np.exp(-2j * np.pi * freq * n / fs)
    return float(2.0 * np.abs(np.sum(signal * basis)) / len(signal))


# ---------------------------------------------------------------------------
# bandpass
# ---------------------------------------------------------------------------

class TestBandpass:

    @pytest.mark.parametrize("use_fft", [True, False])
    def test_short_inputs_returned_unchanged(self, use_fft):
        assert bandpass([], use_fft=use_fft).size == 0
        out = bandpass([0.42], use_fft=use_fft)
        assert out.tolist() == [0.42]

    @pytest.mark.parametrize("length", [2, 3, 100, 256, 315, 1000, 4097])
    @pytest.mark.parametrize("use_fft", [True, False])
    def test_length_preserved(self, length, use_fft):
        signal = _two_tone(length)
        assert len(bandpass(signal, 30.0, use_fft=use_fft)) == length

    def test_attenuates_out_of_band_component(self):
        """0.3 Hz must be suppressed while 1.0 Hz passes (non power-of-two length)."""
        fs = 30.0
        signal = _two_tone(315, fs)
        filtered = bandpass(signal, fs, 0.7, 4.0)

        low_before = _amplitude(0.3, signal, fs)
        high_before = _amplitude(1.0, signal, fs)
        low_after = _amplitude(0.3, filtered, fs)
        high_after = _amplitude(1.0, filtered, fs)

        assert low_after < low_before * 0.6, f"0.3 Hz not attenuated: {low_after:.3f}"
        assert high_after > high_before * 0.5, f"1.0 Hz lost: {high_after:.3f}"
        assert high_after > low_after

    def test_attenuates_out_of_band_component_long_signal(self):
        fs = 30.0
        signal = _two_tone(4097, fs)
        filtered = bandpass(signal, fs, 0.7, 4.0)

        low_before = _amplitude(0.3, signal, fs)
        high_before = _amplitude(1.0, signal, fs)
        low_after = _amplitude(0.3, filtered, fs)
        high_after = _amplitude(1.0, filtered, fs)

        assert low_after < low_before * 0.5
        assert high_after > high_before * 0.5
        assert high_after > low_after

    def test_removes_dc_offset(self):
        fs = 30.0
        t = np.arange(512) / fs
        signal = 5.0 + np.sin(2 * np.pi * 1.5 * t)
        filtered = bandpass(signal, fs)
        assert abs(float(np.mean(filtered))) < 0.05


class TestFirstOrderBandpass:

    def test_matches_reference_recurrence(self):
        """The vectorised filter must reproduce the explicit RC recurrences."""
        fs, low_cut, high_cut = 30.0, 0.7, 4.0
        rng = np.random.default_rng(7)
        signal = rng.normal(size=200) + _two_tone(200, fs)

        dt = 1.0 / fs
        rc_h = 1.0 / (2 * math.pi * low_cut)
        a_h = rc_h / (rc_h + dt)
        rc_l = 1.0 / (2 * math.pi * high_cut)
        a_l = dt / (rc_l + dt)

        high = [signal[0]]
        for i in range(1, len(signal)):
            high.append(a_h * (high[i - 1] + signal[i] - signal[i - 1]))
        band = [high[0]]
        for i in range(1, len(signal)):
            band.append(band[i - 1] + a_l * (high[i] - band[i - 1]))

        out = first_order_bandpass(signal, fs, low_cut, high_cut)
        np.testing.assert_allclose(out, band, rtol=1e-10, atol=1e-12)

    def test_seeded_with_first_sample(self):
        out = first_order_bandpass([3.0, 3.0, 3.0], 30.0)
        assert out[0] == pytest.approx(3.0)


# ---------------------------------------------------------------------------
# fft_magnitude
# ---------------------------------------------------------------------------

class TestFFTMagnitude:

    def test_non_power_of_two_returns_empty(self):
        assert fft_magnitude(np.ones(100)).size == 0
        assert fft_magnitude([]).size == 0

    def test_half_length_spectrum(self):
        assert len(fft_magnitude(np.zeros(64))) == 32

    def test_normalised_sine_magnitude(self):
        n = 64
        signal = np.sin(2 * np.pi * 4 * np.arange(n) / n)
        spectrum = fft_magnitude(signal)
        assert int(np.argmax(spectrum)) == 4
        assert spectrum[4] == pytest.approx(0.5, abs=1e-9)
