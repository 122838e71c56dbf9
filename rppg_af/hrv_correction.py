"""
RMSSD de-biasing for camera timing jitter.

Independent frame-timestamp jitter with standard deviation σ inflates the
squared RMSSD by ``2σ²``.  The correction subtracts that floor and clamps at
zero::

    corrected = sqrt(max(0, measured² - 2σ²))
"""

from __future__ import annotations

import math

# Assumed standard deviation of capture-timing jitter (ms)
JITTER_SIGMA_MS: float = 60.0


def corrected_rmssd(measured: float, sigma_ms: float = JITTER_SIGMA_MS) -> float:
    """Return the jitter-corrected RMSSD (ms) for a *measured* RMSSD (ms)."""
    return math.sqrt(max(0.0, measured * measured - 2.0 * sigma_ms * sigma_ms))
