"""
Unit tests for jitter-corrected RMSSD.
"""

from __future__ import annotations

import math

import pytest

from rppg_af.hrv_correction import JITTER_SIGMA_MS, corrected_rmssd


class TestHRVCorrection:

    @pytest.mark.parametrize("measured", [0.0, 30.0, 60.0, 84.0])
    def test_clamps_to_zero_below_noise_floor(self, measured):
        assert measured < JITTER_SIGMA_MS * math.sqrt(2)
        assert corrected_rmssd(measured) == 0.0

    @pytest.mark.parametrize("measured", [90.0, 120.0, 250.0])
    def test_matches_formula_above_noise_floor(self, measured):
        expected = math.sqrt(measured ** 2 - 2 * 60.0 ** 2)
        assert corrected_rmssd(measured) == pytest.approx(expected, abs=1e-9)

    def test_custom_sigma(self):
        assert corrected_rmssd(50.0, sigma_ms=0.0) == pytest.approx(50.0)
