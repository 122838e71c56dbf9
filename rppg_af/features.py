"""
RR-interval statistics and the logistic AF feature vector.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

# Physiologic RR bounds (s)
RR_MIN_S: float = 0.3
RR_MAX_S: float = 2.0
# Successive-difference threshold for the pNN50 fraction (s)
NN50_THRESHOLD_S: float = 0.05

FEATURE_NAMES: Tuple[str, ...] = (
    "mean_rr",
    "median_rr",
    "std_rr",
    "rmssd",
    "pnn50",
    "hr_mean",
    "hr_std",
    "num_beats",
    "beats_per_second",
    "ppg_mean",
    "ppg_std",
)


def inter_beat_intervals(peaks: Sequence[int], timestamps: Sequence[float]) -> List[float]:
    """Seconds between consecutive peaks, using the samples' own timestamps."""
    return [float(timestamps[b] - timestamps[a]) for a, b in zip(peaks, peaks[1:])]


def rmssd_ms(intervals: Sequence[float]) -> float:
    """RMSSD of *intervals* (s), in milliseconds.  Zero for fewer than two."""
    if len(intervals) < 2:
        return 0.0
    diffs = np.diff(np.asarray(intervals, dtype=np.float64))
    return float(np.sqrt(np.mean(diffs * diffs)) * 1000.0)


def _sample_std(values: np.ndarray) -> float:
    if values.size < 2:
        return 0.0
    return float(np.std(values, ddof=1))


def logistic_features(
    peaks: Sequence[int],
    timestamps: Sequence[float],
    chrom_signal: Sequence[float],
) -> Optional[Dict[str, float]]:
    """
    Build the feature mapping consumed by :class:`~rppg_af.af_model.AFLogisticModel`.

    Parameters
    ----------
    peaks:
        Peak indices into *timestamps* / *chrom_signal*.
    timestamps:
        Capture time of every sample (s).
    chrom_signal:
        Raw (unfiltered) CHROM pulse signal.

    Returns
    -------
    dict or None
        The eleven features in :data:`FEATURE_NAMES`, or *None* when there are
        fewer than three peaks, fewer than two RR intervals inside
        ``[RR_MIN_S, RR_MAX_S]``, or the recording has no time span.
    """
    if len(peaks) < 3 or len(timestamps) == 0:
        return None
    first, last = float(timestamps[0]), float(timestamps[-1])
    if last <= first:
        return None
    if any(p < 0 or p >= len(timestamps) for p in peaks):
        return None

    intervals = np.asarray(inter_beat_intervals(peaks, timestamps), dtype=np.float64)
    rr = intervals[(intervals >= RR_MIN_S) & (intervals <= RR_MAX_S)]
    if rr.size < 2:
        return None

    diffs = np.diff(rr)
    heart_rates = 60.0 / rr
    ppg = np.asarray(chrom_signal, dtype=np.float64)

    return {
        "mean_rr": float(np.mean(rr)),
        "median_rr": float(np.median(rr)),
        "std_rr": _sample_std(rr),
        "rmssd": float(np.sqrt(np.mean(diffs * diffs))),
        "pnn50": float(np.mean(np.abs(diffs) > NN50_THRESHOLD_S)),
        "hr_mean": float(np.mean(heart_rates)),
        "hr_std": _sample_std(heart_rates),
        "num_beats": float(len(peaks)),
        "beats_per_second": len(peaks) / (last - first),
        "ppg_mean": float(np.mean(ppg)) if ppg.size else 0.0,
        "ppg_std": _sample_std(ppg),
    }
