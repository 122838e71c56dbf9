"""
Adaptive-threshold peak detector for band-passed pulse signals.

Algorithm
---------
1. For every interior sample compute the mean and standard deviation of a
   trailing one-second window (prefix sums, O(1) per sample).  A sample is a
   candidate when it exceeds ``mean + 0.1 * std`` and is a local maximum
   (strictly above its left neighbour, at least equal to its right one).
2. Visit candidates from the highest amplitude down and accept each one that
   is at least ``0.3 s`` away from every accepted peak (refractory period).
3. Walk the accepted peaks in time order and, for any pair no more than
   ``0.4 s`` apart, keep only the larger one.  This removes secondary
   (T-wave–like) bumps that survived step 2 because of selection order.
"""

from __future__ import annotations

from typing import List, Sequence

import numpy as np

THRESHOLD_STD_FACTOR: float = 0.1
REFRACTORY_SECONDS: float = 0.3
MIN_RR_SECONDS: float = 0.4


def detect_peaks(signal: Sequence[float], sample_rate: float) -> List[int]:
    """
    Return the ascending indices of pulse peaks in *signal*.

    Parameters
    ----------
    signal:
        Input samples (typically the band-passed CHROM signal).
    sample_rate:
        Sampling rate in Hz.  Sets the threshold window (one second), the
        refractory period and the minimum RR distance.
    """
    x = np.asarray(signal, dtype=np.float64)
    n = x.size
    if n < 3:
        return []

    window = max(int(round(sample_rate)), 1)
    refractory = int(REFRACTORY_SECONDS * sample_rate)
    min_rr = int(MIN_RR_SECONDS * sample_rate)

    prefix_sum = np.concatenate(([0.0], np.cumsum(x)))
    prefix_sq = np.concatenate(([0.0], np.cumsum(x * x)))

    idx = np.arange(1, n - 1)
    start = np.maximum(0, idx - window + 1)
    count = idx - start + 1
    mean = (prefix_sum[idx + 1] - prefix_sum[start]) / count
    mean_sq = (prefix_sq[idx + 1] - prefix_sq[start]) / count
    std = np.sqrt(np.maximum(mean_sq - mean * mean, 0.0))
    threshold = mean + THRESHOLD_STD_FACTOR * std

    centre = x[1:-1]
    is_candidate = (centre > threshold) & (centre > x[:-2]) & (centre >= x[2:])
    candidates = idx[is_candidate]

    # Highest amplitude first; stable sort keeps earlier index on ties
    order = np.argsort(-x[candidates], kind="stable")
    accepted: List[int] = []
    for i in candidates[order]:
        i = int(i)
        if all(abs(i - p) >= refractory for p in accepted):
            accepted.append(i)
    accepted.sort()

    peaks: List[int] = []
    for i in accepted:
        if peaks and i - peaks[-1] <= min_rr:
            if x[i] > x[peaks[-1]]:
                peaks[-1] = i
        else:
            peaks.append(i)
    return peaks
