"""
Unit tests for the adaptive peak detector.
Run with:  pytest tests/test_peak_detector.py
"""

from __future__ import annotations

import numpy as np

from rppg_af.peak_detector import detect_peaks

FS = 30.0


def _sine(length: int = 90, freq: float = 1.0, fs: float = FS) -> np.ndarray:
    return np.sin(2 * np.pi * freq * np.arange(length) / fs)


class TestPeakDetector:

    def test_too_short_returns_empty(self):
        assert detect_peaks([], FS) == []
        assert detect_peaks([0.0, 1.0], FS) == []

    def test_sine_maxima(self):
        """1 Hz sine over 3 s at 30 fps: peaks near samples 8, 38 and 68."""
        peaks = detect_peaks(_sine(), FS)
        assert len(peaks) == 3, f"Expected 3 peaks, got {peaks}"
        for got, expected in zip(peaks, [8, 38, 68]):
            assert abs(got - expected) <= 1, f"Peak {got} too far from {expected}"

    def test_secondary_harmonic_ignored(self):
        t = np.arange(90) / FS
        signal = np.sin(2 * np.pi * 1.0 * t) + 0.3 * np.sin(2 * np.pi * 5.0 * t)
        assert len(detect_peaks(signal, FS)) == 3

    def test_declining_amplitude(self):
        i = np.arange(90)
        signal = (1.0 - 0.7 * i / 90) * np.sin(2 * np.pi * i / FS)
        assert len(detect_peaks(signal, FS)) == 3

    def test_adapts_to_amplitude_drop(self):
        i = np.arange(90)
        amp = np.where(i < 45, 1.0, 0.2)
        peaks = detect_peaks(amp * np.sin(2 * np.pi * i / FS), FS)
        assert len(peaks) == 3
        for got, expected in zip(peaks, [8, 38, 68]):
            assert abs(got - expected) <= 1

    def test_t_waves_suppressed(self):
        """A smaller bump 12 samples after each beat must not count as a beat."""
        signal = np.zeros(120)
        for offset in (0, 40, 80):
            signal[offset + 10] = 1.0
            signal[offset + 22] = 0.4
        assert detect_peaks(signal, FS) == [10, 50, 90]

    def test_peaks_are_ascending(self):
        rng = np.random.default_rng(3)
        signal = _sine(300, 1.3) + 0.05 * rng.normal(size=300)
        peaks = detect_peaks(signal, FS)
        assert peaks == sorted(peaks)
        assert all(b - a > int(0.4 * FS) for a, b in zip(peaks, peaks[1:]))
