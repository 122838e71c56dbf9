"""
Band-pass filtering and magnitude spectra for rPPG pulse signals.

Two band-pass implementations are provided:

* :func:`bandpass` – FFT brick-wall filter.  The signal is zero-padded to the
  next power of two, every bin whose absolute frequency lies outside
  ``[low_cut, high_cut]`` is zeroed, and the inverse transform is truncated
  back to the input length.
* :func:`first_order_bandpass` – cascaded first-order RC high-pass and
  low-pass stages.  Cheaper and causal, but with a much softer roll-off.

Both return an array of exactly the input length.
"""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np
from scipy.signal import lfilter

logger = logging.getLogger(__name__)

# Default pass-band (Hz): 42 – 240 BPM
DEFAULT_LOW_CUT: float = 0.7
DEFAULT_HIGH_CUT: float = 4.0
DEFAULT_SAMPLE_RATE: float = 30.0


def _is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def _next_power_of_two(n: int) -> int:
    return 1 << (n - 1).bit_length()


def bandpass(
    signal: Sequence[float],
    sample_rate: float = DEFAULT_SAMPLE_RATE,
    low_cut: float = DEFAULT_LOW_CUT,
    high_cut: float = DEFAULT_HIGH_CUT,
    use_fft: bool = True,
) -> np.ndarray:
    """
    Band-pass *signal* to ``[low_cut, high_cut]`` Hz.

    Parameters
    ----------
    signal:
        Input samples.
    sample_rate:
        Sampling rate of *signal* in Hz.
    low_cut, high_cut:
        Pass-band edges in Hz.
    use_fft:
        Use the FFT brick-wall filter (default).  When *False* the
        first-order IIR cascade is used instead.

    Returns
    -------
    numpy.ndarray
        Filtered samples, same length as *signal*.  Inputs of length 0 or 1
        are returned unchanged.
    """
    x = np.asarray(signal, dtype=np.float64)
    n = x.size
    if n <= 1:
        return x

    if not use_fft:
        return first_order_bandpass(x, sample_rate, low_cut, high_cut)

    fft_count = n if _is_power_of_two(n) else _next_power_of_two(n)
    padded = np.zeros(fft_count, dtype=np.float64)
    padded[:n] = x

    spectrum = np.fft.fft(padded)
    # Folded bin -> frequency mapping; bins above Nyquist map to negative
    freqs = np.abs(np.fft.fftfreq(fft_count, d=1.0 / sample_rate))
    spectrum[(freqs < low_cut) | (freqs > high_cut)] = 0.0

    # np.fft.ifft already applies the 1/N scaling
    filtered = np.fft.ifft(spectrum).real
    return filtered[:n]


def first_order_bandpass(
    signal: Sequence[float],
    sample_rate: float = DEFAULT_SAMPLE_RATE,
    low_cut: float = DEFAULT_LOW_CUT,
    high_cut: float = DEFAULT_HIGH_CUT,
) -> np.ndarray:
    """
    Cascade of a first-order RC high-pass (``low_cut``) and low-pass
    (``high_cut``) filter.

    Both stages are seeded with the first input sample, i.e.
    ``high[0] = band[0] = signal[0]``.
    """
    x = np.asarray(signal, dtype=np.float64)
    if x.size <= 1:
        return x

    dt = 1.0 / sample_rate

    # high[i] = a * (high[i-1] + x[i] - x[i-1])
    rc_high = 1.0 / (2.0 * math.pi * low_cut)
    a_high = rc_high / (rc_high + dt)
    high, _ = lfilter(
        [a_high, -a_high], [1.0, -a_high], x, zi=[(1.0 - a_high) * x[0]]
    )

    # band[i] = band[i-1] + a * (high[i] - band[i-1])
    rc_low = 1.0 / (2.0 * math.pi * high_cut)
    a_low = dt / (rc_low + dt)
    band, _ = lfilter(
        [a_low], [1.0, -(1.0 - a_low)], high, zi=[(1.0 - a_low) * high[0]]
    )
    return band


def fft_magnitude(signal: Sequence[float]) -> np.ndarray:
    """
    Normalised one-sided magnitude spectrum ``|DFT(k)| / N`` for
    ``k < N / 2``.

    The length of *signal* must be a power of two; otherwise an empty array
    is returned and the caller is expected to truncate or pad first.
    """
    x = np.asarray(signal, dtype=np.float64)
    n = x.size
    if not _is_power_of_two(n):
        logger.debug("fft_magnitude: length %d is not a power of two", n)
        return np.array([])
    magnitudes = np.abs(np.fft.fft(x)) / n
    return magnitudes[: n // 2]


# Short alias matching the rest of the toolkit's naming
fft = fft_magnitude
