"""
Value types shared by the signal processor and its consumers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, NamedTuple, Optional, Tuple


class ColorSample(NamedTuple):
    """ROI-averaged colour of one frame, channels as fractions of full scale."""

    r: float
    g: float
    b: float
    timestamp: float


@dataclass(frozen=True)
class VitalSigns:
    """Heart rate (BPM) and RMSSD-based HRV (ms) for one analysis pass."""

    heart_rate: float
    hrv_corrected: float
    hrv_measured: float


@dataclass
class Waveform:
    """
    Fixed-capacity circular buffer of smoothed waveform samples.

    While the buffer is filling, samples are appended and ``index`` tracks
    ``len(samples) % capacity``.  Once full, each write overwrites the
    oldest sample at ``index`` and advances it, so ``index`` always marks
    the seam between the newest and oldest data.
    """

    capacity: int
    samples: List[float] = field(default_factory=list)
    index: int = 0

    def write(self, value: float) -> None:
        if self.capacity <= 0:
            return
        if len(self.samples) < self.capacity:
            self.samples.append(value)
            self.index = len(self.samples) % self.capacity
        else:
            self.samples[self.index] = value
            self.index = (self.index + 1) % self.capacity

    def clear(self) -> None:
        self.samples = []
        self.index = 0

    def copy(self) -> "Waveform":
        return Waveform(self.capacity, list(self.samples), self.index)

    def ordered(self) -> List[float]:
        """Samples from oldest to newest."""
        if len(self.samples) < self.capacity:
            return list(self.samples)
        return self.samples[self.index:] + self.samples[: self.index]


@dataclass(frozen=True)
class SignalAnalysis:
    """
    Result of analysing one complete measurement session.

    All index lists (``peaks``, ``outlier_peaks``) refer to positions in
    ``raw_chrom_signal`` / ``filtered_chrom_signal`` / ``timestamps``, which
    always share one length.
    """

    raw_chrom_signal: Tuple[float, ...]
    filtered_chrom_signal: Tuple[float, ...]
    timestamps: Tuple[float, ...]
    peaks: Tuple[int, ...]
    outlier_peaks: Tuple[int, ...]
    vitals: VitalSigns
    raw_vitals: VitalSigns
    outliers_removed: bool
    frame_rate: float
    af_probability_with_outliers: Optional[float] = None
    af_probability_without_outliers: Optional[float] = None
    af_features_with_outliers: Optional[Dict[str, float]] = None
    af_features_without_outliers: Optional[Dict[str, float]] = None

    @property
    def af_probability(self) -> Optional[float]:
        """Outlier-free probability when available, else the raw one."""
        if self.af_probability_without_outliers is not None:
            return self.af_probability_without_outliers
        return self.af_probability_with_outliers

    @property
    def af_features(self) -> Optional[Dict[str, float]]:
        if self.af_features_without_outliers is not None:
            return self.af_features_without_outliers
        return self.af_features_with_outliers

    def summary(self) -> dict:
        """JSON-serialisable measurement summary."""
        return {
            "raw_chrom_signal": list(self.raw_chrom_signal),
            "filtered_chrom_signal": list(self.filtered_chrom_signal),
            "timestamps": list(self.timestamps),
            "peaks": list(self.peaks),
            "outlier_peaks": list(self.outlier_peaks),
            "frame_rate": self.frame_rate,
            "heart_rate": self.vitals.heart_rate,
            "hrv": self.vitals.hrv_corrected,
            "measured_hrv": self.vitals.hrv_measured,
            "raw_heart_rate": self.raw_vitals.heart_rate,
            "raw_hrv": self.raw_vitals.hrv_measured,
            "outliers_removed": self.outliers_removed,
            "af_probability": self.af_probability,
        }
