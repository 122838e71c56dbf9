"""
rPPG signal processor: CHROM pulse extraction, vitals and AF scoring.

Algorithm
---------
1. Each frame contributes one ROI-averaged colour sample ``(r, g, b, t)``.
2. Over a window of samples, estimate the effective sample rate from the
   timestamps and normalise each channel by its mean.
3. CHROM projection (De Haan & Jeanne, 2013)::

       X = 3R - 2G
       Y = 1.5R + G - 1.5B
       S = X - (std(X) / std(Y)) * Y

4. Band-pass ``S`` (default 0.7 – 4.0 Hz = 42 – 240 BPM), detect peaks and
   derive inter-beat intervals (IBIs) from the peak timestamps.
5. Merge double-detected beats, then heart rate = ``60 / mean(IBI)`` (with a
   spectral fallback) and HRV = jitter-corrected RMSSD.

Modes
-----
*Live* (:meth:`SignalProcessor.process`) keeps a sliding window: every time
``window_size`` samples are buffered the pipeline runs on them and the oldest
half is evicted (50 % overlap).

*Measurement* (:meth:`SignalProcessor.process_measurement`) accumulates every
sample since the session started.  The full pipeline, including AF scoring,
runs once in :meth:`SignalProcessor.analyze_measurement`; meanwhile each
frame schedules a waveform-only update on a single background worker.

Threading
---------
Two locks: the data lock guards buffers, cached results and the waveform;
the analysis lock serialises full analyses and waveform updates.  Analyses
copy a snapshot under the data lock and compute without holding it.
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from enum import Enum, auto
from typing import Callable, Deque, List, NamedTuple, Optional, Sequence, Tuple, Union

import numpy as np

from rppg_af.af_detector import AFDetector
from rppg_af.features import inter_beat_intervals, logistic_features, rmssd_ms
from rppg_af.filtering import DEFAULT_HIGH_CUT, DEFAULT_LOW_CUT, bandpass, fft_magnitude
from rppg_af.hrv_correction import corrected_rmssd
from rppg_af.models import ColorSample, SignalAnalysis, VitalSigns, Waveform
from rppg_af.peak_detector import detect_peaks
from rppg_af.roi import Rect, roi_mean_color

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_SIZE: int = 256
DEFAULT_WAVEFORM_DURATION: float = 12.0
NOMINAL_FPS: float = 30.0
# Trailing moving-average length applied to live waveform samples
SMOOTHING_WINDOW: int = 5

# Double-beat merging thresholds, as fractions of the median IBI
SHORT_IBI_FRACTION: float = 0.6
MERGED_IBI_LOW: float = 0.8
MERGED_IBI_HIGH: float = 1.2

# Relative magnitude below which the pass-band counts as empty
SILENT_BAND_TOLERANCE: float = 1e-12

RGB = Tuple[float, float, float]
WaveformListener = Callable[[Waveform], None]


class ProcessingMode(Enum):
    LIVE = auto()
    MEASUREMENT = auto()


class ProcessorState(Enum):
    IDLE = auto()
    ACCUMULATING = auto()
    ANALYZED = auto()


# ---------------------------------------------------------------------------
# Pipeline helpers
# ---------------------------------------------------------------------------

def estimate_sample_rate(timestamps: Sequence[float], fallback: float = NOMINAL_FPS) -> float:
    """``(n - 1) / (t_last - t_first)``, or *fallback* for a non-positive span."""
    n = len(timestamps)
    if n < 2:
        return fallback
    duration = float(timestamps[-1]) - float(timestamps[0])
    return (n - 1) / duration if duration > 0 else fallback


def normalize_channel(values: Sequence[float]) -> np.ndarray:
    """``(v - mean) / mean``; values are returned unchanged when the mean is zero."""
    x = np.asarray(values, dtype=np.float64)
    if x.size == 0:
        return x
    m = float(np.mean(x))
    if m == 0:
        return x
    return (x - m) / m


def chrom_signal(r: Sequence[float], g: Sequence[float], b: Sequence[float]) -> np.ndarray:
    """CHROM pulse signal from raw (un-normalised) channel traces."""
    nr = normalize_channel(r)
    ng = normalize_channel(g)
    nb = normalize_channel(b)
    x = 3.0 * nr - 2.0 * ng
    y = 1.5 * nr + ng - 1.5 * nb
    std_y = float(np.std(y))
    alpha = float(np.std(x)) / std_y if std_y > 0 else 0.0
    return x - alpha * y


def remove_double_beat_outliers(ibis: Sequence[float]) -> Tuple[List[float], List[int]]:
    """
    Merge spuriously short intervals with their successor.

    An interval shorter than ``0.6 × median`` is merged with the following one
    when their sum lies within ``[0.8, 1.2] × median``.  Each merge removes
    one detection; the index of the later interval of the pair is reported,
    which is also the index (into the peak list) of the spurious peak.

    Returns
    -------
    (cleaned, removed)
        Cleaned intervals and the removed interval indices, ascending.
    """
    values = [float(v) for v in ibis]
    if not values:
        return [], []

    median = float(np.median(values))
    short = SHORT_IBI_FRACTION * median
    low = MERGED_IBI_LOW * median
    high = MERGED_IBI_HIGH * median

    cleaned: List[float] = []
    removed: List[int] = []
    i = 0
    while i < len(values):
        current = values[i]
        if current < short and i + 1 < len(values):
            merged = current + values[i + 1]
            if low <= merged <= high:
                cleaned.append(merged)
                removed.append(i + 1)
                i += 2
                continue
        cleaned.append(current)
        i += 1
    return cleaned, removed


def spectral_heart_rate(
    filtered: Sequence[float],
    sample_rate: float,
    low_cut: float = DEFAULT_LOW_CUT,
    high_cut: float = DEFAULT_HIGH_CUT,
) -> float:
    """
    Heart rate (BPM) from the strongest pass-band bin of the FFT.

    The FFT runs over the largest power-of-two trailing part of *filtered*;
    leading samples beyond that length are discarded.  Returns 0.0 when the
    spectrum carries no energy in the pass-band.
    """
    x = np.asarray(filtered, dtype=np.float64)
    n = x.size
    if n < 2:
        return 0.0
    fft_count = 1 << (n.bit_length() - 1)
    spectrum = fft_magnitude(x[-fft_count:])
    if spectrum.size == 0:
        return 0.0

    resolution = sample_rate / fft_count
    low_index = int(low_cut / resolution)
    high_index = min(int(high_cut / resolution), spectrum.size - 1)
    if low_index >= spectrum.size or high_index < low_index:
        return 0.0

    band = spectrum[low_index:high_index + 1]
    # Float residue of a flat trace is not energy
    if float(band.max()) <= SILENT_BAND_TOLERANCE * max(1.0, float(np.abs(x).max())):
        return 0.0
    peak_index = low_index + int(np.argmax(band))
    return peak_index * resolution * 60.0


def _vitals_from_intervals(intervals: Sequence[float]) -> VitalSigns:
    mean_ibi = float(np.mean(intervals)) if len(intervals) else 0.0
    heart_rate = 60.0 / mean_ibi if mean_ibi > 0 else 0.0
    measured = rmssd_ms(intervals)
    return VitalSigns(
        heart_rate=heart_rate,
        hrv_corrected=corrected_rmssd(measured),
        hrv_measured=measured,
    )


# ---------------------------------------------------------------------------
# Sample storage
# ---------------------------------------------------------------------------

class _Window(NamedTuple):
    r: np.ndarray
    g: np.ndarray
    b: np.ndarray
    t: np.ndarray


class _SampleBuffer:
    """Column-wise storage of colour samples.  Guarded by the caller's lock."""

    def __init__(self) -> None:
        self._r: List[float] = []
        self._g: List[float] = []
        self._b: List[float] = []
        self._t: List[float] = []

    def __len__(self) -> int:
        return len(self._t)

    def append(self, sample: ColorSample) -> None:
        self._r.append(sample.r)
        self._g.append(sample.g)
        self._b.append(sample.b)
        self._t.append(sample.timestamp)

    def snapshot(self, last: Optional[int] = None) -> _Window:
        start = 0 if last is None else max(len(self._t) - last, 0)
        return _Window(
            np.array(self._r[start:], dtype=np.float64),
            np.array(self._g[start:], dtype=np.float64),
            np.array(self._b[start:], dtype=np.float64),
            np.array(self._t[start:], dtype=np.float64),
        )

    def drop_oldest(self, count: int) -> None:
        count = min(count, len(self._t))
        del self._r[:count]
        del self._g[:count]
        del self._b[:count]
        del self._t[:count]


class _LiveWindow:
    """Sliding window, evicted by half after every analysed window."""

    mode = ProcessingMode.LIVE

    def __init__(self) -> None:
        self.samples = _SampleBuffer()


class _MeasurementSession:
    """Unbounded accumulation for the duration of one measurement."""

    mode = ProcessingMode.MEASUREMENT

    def __init__(self) -> None:
        self.samples = _SampleBuffer()


# ---------------------------------------------------------------------------
# Processor
# ---------------------------------------------------------------------------

class SignalProcessor:
    """
    Stateful rPPG engine fed with one ROI colour sample per frame.

    Parameters
    ----------
    window_size:
        Samples per live analysis window, and the minimum number of samples
        a measurement needs before it can be analysed (default 256 ≈ 8.5 s
        at 30 fps).
    waveform_duration:
        Seconds of smoothed waveform kept for display (default 12 s).
    low_cut, high_cut:
        Band-pass edges in Hz.
    nominal_fps:
        Frame rate assumed when timestamps cannot provide one; also sizes the
        waveform ring (``waveform_duration × nominal_fps`` samples).
    af_detector:
        AF scorer used by :meth:`analyze_measurement`.  Defaults to an
        :class:`~rppg_af.af_detector.AFDetector` with the bundled model.
    """

    def __init__(
        self,
        window_size: int = DEFAULT_WINDOW_SIZE,
        waveform_duration: float = DEFAULT_WAVEFORM_DURATION,
        low_cut: float = DEFAULT_LOW_CUT,
        high_cut: float = DEFAULT_HIGH_CUT,
        nominal_fps: float = NOMINAL_FPS,
        af_detector: Optional[AFDetector] = None,
    ) -> None:
        self.window_size = window_size
        self.waveform_duration = waveform_duration
        self.low_cut = low_cut
        self.high_cut = high_cut
        self.nominal_fps = nominal_fps
        self.waveform_window = int(waveform_duration * nominal_fps)
        self.af_detector = af_detector if af_detector is not None else AFDetector()

        self._data_lock = threading.Lock()
        self._analysis_lock = threading.Lock()
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="rppg-waveform")
        self._closed = False

        self._active: Union[_LiveWindow, _MeasurementSession] = _LiveWindow()
        self._session: Optional[_MeasurementSession] = None
        self._last_vitals: Optional[VitalSigns] = None
        self._last_analysis: Optional[SignalAnalysis] = None

        self._waveform = Waveform(self.waveform_window)
        self._smoothing: Deque[float] = deque(maxlen=SMOOTHING_WINDOW)
        self._listeners: List[WaveformListener] = []

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Finish pending waveform updates and stop the background worker."""
        with self._data_lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "SignalProcessor":
        return self

    def __exit__(self, *_) -> None:
        self.close()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def mode(self) -> ProcessingMode:
        with self._data_lock:
            return self._active.mode

    @property
    def state(self) -> ProcessorState:
        with self._data_lock:
            if self._last_analysis is not None:
                return ProcessorState.ANALYZED
            if len(self._active.samples) or (self._session is not None and len(self._session.samples)):
                return ProcessorState.ACCUMULATING
            return ProcessorState.IDLE

    @property
    def last_vitals(self) -> Optional[VitalSigns]:
        with self._data_lock:
            return self._last_vitals

    @property
    def last_analysis(self) -> Optional[SignalAnalysis]:
        with self._data_lock:
            return self._last_analysis

    @property
    def sample_count(self) -> int:
        """Samples held by the active live window or measurement session."""
        with self._data_lock:
            return len(self._active.samples)

    @property
    def buffer_fill_ratio(self) -> float:
        """Progress towards the next analysable window (0 – 1)."""
        with self._data_lock:
            return min(1.0, len(self._active.samples) / self.window_size)

    @property
    def waveform(self) -> Waveform:
        """Snapshot of the live waveform ring buffer."""
        with self._data_lock:
            return self._waveform.copy()

    def subscribe_waveform(self, listener: WaveformListener) -> Callable[[], None]:
        """
        Call *listener* with a waveform snapshot after every update.

        Listeners run on whichever thread produced the sample and must not
        block.  Returns a callable that removes the listener.
        """
        with self._data_lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._data_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def reset_measurement(self, mode: ProcessingMode = ProcessingMode.MEASUREMENT) -> None:
        """
        Discard all samples, cached vitals, the last analysis and the waveform,
        and start over in *mode*.
        """
        with self._data_lock:
            if mode is ProcessingMode.MEASUREMENT:
                session = _MeasurementSession()
                self._active = session
                self._session = session
            else:
                self._active = _LiveWindow()
                self._session = None
            self._last_vitals = None
            self._last_analysis = None
            self._waveform.clear()
            self._smoothing.clear()
            snapshot = self._waveform.copy()
            listeners = list(self._listeners)
        logger.info("Measurement reset (mode=%s)", mode.name.lower())
        self._notify(listeners, snapshot)

    # ------------------------------------------------------------------
    # Frame ingestion
    # ------------------------------------------------------------------

    def push_frame(
        self,
        frame: np.ndarray,
        roi: Optional[Rect],
        timestamp: float,
        measurement: bool = False,
    ) -> Optional[VitalSigns]:
        """
        Average *roi* in the BGR *frame* and feed the result to
        :meth:`process` (or :meth:`process_measurement` if *measurement*).
        """
        rgb = roi_mean_color(frame, roi) if roi is not None else None
        if measurement:
            return self.process_measurement(rgb, timestamp)
        return self.process(rgb, timestamp)

    def process(self, rgb: Optional[RGB], timestamp: float) -> Optional[VitalSigns]:
        """
        Live mode: append one sample and, once ``window_size`` samples are
        buffered, analyse them and evict the oldest half.

        Parameters
        ----------
        rgb:
            ROI-averaged ``(r, g, b)`` in [0, 1], or *None* when the frame
            has no usable ROI (the call is then a no-op).
        timestamp:
            Capture time in seconds.

        Returns
        -------
        VitalSigns or None
            Fresh vitals when a window completed, else the last known ones.
        """
        if rgb is None:
            with self._data_lock:
                return self._last_vitals

        sample = ColorSample(float(rgb[0]), float(rgb[1]), float(rgb[2]), float(timestamp))
        with self._data_lock:
            live = self._ensure_live_locked()
            live.samples.append(sample)
            if len(live.samples) < self.window_size:
                return self._last_vitals
            window = live.samples.snapshot(self.window_size)

        chrom, filtered, sample_rate = self._filter_window(window)
        if filtered.size:
            self._publish_waveform_sample(float(filtered[-1]), live)

        peaks = detect_peaks(filtered, sample_rate)
        clean, _ = remove_double_beat_outliers(inter_beat_intervals(peaks, window.t))
        vitals = self._pulse_vitals(clean, filtered, sample_rate)
        logger.debug(
            "Live window: fs=%.2f Hz peaks=%d HR=%.1f HRV=%.1f ms",
            sample_rate, len(peaks), vitals.heart_rate, vitals.hrv_corrected,
        )

        with self._data_lock:
            if self._active is live:
                live.samples.drop_oldest(self.window_size // 2)
                self._last_vitals = vitals
        return vitals

    def process_measurement(self, rgb: Optional[RGB], timestamp: float) -> Optional[VitalSigns]:
        """
        Measurement mode: accumulate one sample without analysing it.

        Schedules a waveform update on the background worker and returns the
        vitals of the previous completed analysis, if any.
        """
        with self._data_lock:
            current = self._last_analysis.vitals if self._last_analysis is not None else None
            if rgb is None:
                return current
            session = self._ensure_session_locked()
            session.samples.append(
                ColorSample(float(rgb[0]), float(rgb[1]), float(rgb[2]), float(timestamp))
            )
            if not self._closed:
                self._executor.submit(self._update_waveform, session)
        return current

    # ------------------------------------------------------------------
    # Measurement analysis
    # ------------------------------------------------------------------

    def analyze_measurement(self) -> Optional[VitalSigns]:
        """
        Run the full pipeline over the whole measurement buffer and store a
        new :class:`~rppg_af.models.SignalAnalysis`.

        Returns the outlier-corrected vitals, or the previous analysis' vitals
        when fewer than ``window_size`` samples have been accumulated.
        """
        with self._analysis_lock:
            with self._data_lock:
                session = self._session
                previous = self._last_analysis.vitals if self._last_analysis is not None else None
                count = len(session.samples) if session is not None else 0
                window = session.samples.snapshot() if count >= self.window_size else None

            if window is None:
                logger.warning(
                    "Measurement analysis skipped: %d samples (need %d)", count, self.window_size
                )
                return previous

            analysis = self._analyze(window)

            with self._data_lock:
                if self._session is session:
                    self._last_vitals = analysis.vitals
                    self._last_analysis = analysis
                else:
                    logger.info("Measurement was reset during analysis; result discarded")

        logger.info(
            "Measurement analysed: %d samples, HR=%.1f BPM, HRV=%.1f ms, outliers=%d, AF=%s",
            len(analysis.timestamps),
            analysis.vitals.heart_rate,
            analysis.vitals.hrv_corrected,
            len(analysis.outlier_peaks),
            "n/a" if analysis.af_probability is None else f"{analysis.af_probability:.3f}",
        )
        return analysis.vitals

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _ensure_live_locked(self) -> _LiveWindow:
        if not isinstance(self._active, _LiveWindow):
            # The finished session stays in self._session for analysis
            self._active = _LiveWindow()
        return self._active

    def _ensure_session_locked(self) -> _MeasurementSession:
        if not isinstance(self._active, _MeasurementSession):
            session = _MeasurementSession()
            self._active = session
            self._session = session
            logger.info("Measurement session started")
        return self._active

    def _filter_window(self, window: _Window) -> Tuple[np.ndarray, np.ndarray, float]:
        sample_rate = estimate_sample_rate(window.t, fallback=self.nominal_fps)
        chrom = chrom_signal(window.r, window.g, window.b)
        filtered = bandpass(chrom, sample_rate, self.low_cut, self.high_cut)
        return chrom, filtered, sample_rate

    def _pulse_vitals(
        self, intervals: Sequence[float], filtered: np.ndarray, sample_rate: float
    ) -> VitalSigns:
        vitals = _vitals_from_intervals(intervals)
        if vitals.heart_rate <= 0:
            vitals = replace(
                vitals,
                heart_rate=spectral_heart_rate(filtered, sample_rate, self.low_cut, self.high_cut),
            )
        return vitals

    def _analyze(self, window: _Window) -> SignalAnalysis:
        chrom, filtered, sample_rate = self._filter_window(window)
        peaks = detect_peaks(filtered, sample_rate)
        ibis = inter_beat_intervals(peaks, window.t)

        raw_vitals = _vitals_from_intervals(ibis)
        clean, removed = remove_double_beat_outliers(ibis)
        vitals = self._pulse_vitals(clean, filtered, sample_rate)

        outlier_peaks = [peaks[i] for i in removed]
        outlier_set = set(outlier_peaks)
        peaks_clean = [p for p in peaks if p not in outlier_set]

        features_with = logistic_features(peaks, window.t, chrom)
        probability_with = (
            self.af_detector.probability(features_with) if features_with is not None else None
        )
        if peaks_clean == peaks:
            features_without, probability_without = features_with, probability_with
        else:
            features_without = logistic_features(peaks_clean, window.t, chrom)
            probability_without = (
                self.af_detector.probability(features_without)
                if features_without is not None
                else None
            )

        return SignalAnalysis(
            raw_chrom_signal=tuple(chrom.tolist()),
            filtered_chrom_signal=tuple(filtered.tolist()),
            timestamps=tuple(window.t.tolist()),
            peaks=tuple(peaks),
            outlier_peaks=tuple(outlier_peaks),
            vitals=vitals,
            raw_vitals=raw_vitals,
            outliers_removed=bool(removed),
            frame_rate=sample_rate,
            af_probability_with_outliers=probability_with,
            af_probability_without_outliers=probability_without,
            af_features_with_outliers=features_with,
            af_features_without_outliers=features_without,
        )

    def _update_waveform(self, session: _MeasurementSession) -> None:
        """Background worker: recompute the newest waveform sample of *session*."""
        with self._analysis_lock:
            with self._data_lock:
                if (
                    self._active is not session
                    or self.waveform_window < 2
                    or len(session.samples) < self.waveform_window
                ):
                    return
                window = session.samples.snapshot(self.waveform_window)
            _, filtered, _ = self._filter_window(window)
            if filtered.size:
                self._publish_waveform_sample(float(filtered[-1]), session)

    def _publish_waveform_sample(
        self, value: float, source: Union[_LiveWindow, _MeasurementSession]
    ) -> None:
        with self._data_lock:
            if self._active is not source:
                return
            self._smoothing.append(value)
            smoothed = sum(self._smoothing) / len(self._smoothing)
            self._waveform.write(smoothed)
            snapshot = self._waveform.copy()
            listeners = list(self._listeners)
        self._notify(listeners, snapshot)

    @staticmethod
    def _notify(listeners: Sequence[WaveformListener], waveform: Waveform) -> None:
        for listener in listeners:
            try:
                listener(waveform)
            except Exception as e:  # noqa: BLE001
                logger.warning("Waveform listener failed: %s", e)
