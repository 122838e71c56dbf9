"""
Region-of-interest colour averaging.

The face/ROI locator is external; it hands over a normalised rectangle
``(x, y, w, h)`` in image coordinates (origin top-left, all values as
fractions of the frame size).  The rectangle is clamped to the frame before
averaging, so partially off-screen ROIs still contribute their visible part.
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

Rect = Tuple[float, float, float, float]


def roi_pixel_bounds(roi: Rect, width: int, height: int) -> Optional[Tuple[int, int, int, int]]:
    """
    Convert a normalised *roi* to clamped pixel bounds ``(x, y, w, h)``.

    Returns *None* when nothing of the ROI lies inside the frame.
    """
    rx, ry, rw, rh = roi
    x = int(rx * width)
    y = int(ry * height)
    w = int(rw * width)
    h = int(rh * height)

    if x < 0:
        w += x
        x = 0
    if y < 0:
        h += y
        y = 0
    if x + w > width:
        w = width - x
    if y + h > height:
        h = height - y
    if w <= 0 or h <= 0:
        return None
    return x, y, w, h


def roi_mean_color(frame: np.ndarray, roi: Rect) -> Optional[Tuple[float, float, float]]:
    """
    Mean ``(r, g, b)`` of the ROI in *frame*, each as a fraction of 255.

    Parameters
    ----------
    frame:
        BGR image array (H × W × 3 or H × W × 4, uint8).
    roi:
        Normalised ``(x, y, w, h)`` rectangle.
    """
    height, width = frame.shape[:2]
    bounds = roi_pixel_bounds(roi, width, height)
    if bounds is None:
        return None
    x, y, w, h = bounds
    patch = frame[y:y + h, x:x + w, :3].astype(np.float64)
    b, g, r = patch.reshape(-1, 3).mean(axis=0) / 255.0
    return float(r), float(g), float(b)
