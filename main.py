#!/usr/bin/env python3
"""
rPPG AF monitor – command-line entry point.

Usage
-----
    python main.py [OPTIONS]

Options
-------
    --source SRC          Camera index or video file path (default: 0)
    --fps INT             Requested camera frame rate (default: 30)
    --roi X,Y,W,H         Normalised ROI rectangle (default: centre square)
    --window INT          Live analysis window in samples (default: 256)
    --waveform-duration S Seconds of smoothed waveform kept (default: 12)
    --warmup FLOAT        Live-mode seconds before a measurement starts (default: 1)
    --duration FLOAT      Measurement length in seconds; 0 = live only (default: 30)
    --model PATH          AF logistic model artifact (default: bundled)
    --json                Print the measurement summary as JSON
    --verbose             Debug logging

The face/ROI locator is not part of this tool: a fixed ROI is averaged in
every frame.  Point the camera so that the ROI covers skin (e.g. forehead).
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import Optional, Tuple

from rppg_af.af_detector import AFDetector
from rppg_af.camera import VideoSource
from rppg_af.models import SignalAnalysis, VitalSigns
from rppg_af.signal_processor import SignalProcessor

logger = logging.getLogger("rppg_af")

# Centre square covering 35 % of each frame dimension
DEFAULT_ROI: Tuple[float, float, float, float] = (0.325, 0.325, 0.35, 0.35)


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def parse_roi(text: str) -> Tuple[float, float, float, float]:
    """Parse ``"x,y,w,h"`` into a normalised ROI tuple."""
    try:
        x, y, w, h = (float(v) for v in text.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError(
            f"invalid ROI {text!r}; expected four comma-separated numbers x,y,w,h"
        ) from None
    if w <= 0 or h <= 0:
        raise argparse.ArgumentTypeError("ROI width and height must be positive")
    return x, y, w, h


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Heart rate, HRV and AF risk from a face video (rPPG, CHROM)",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--source", default="0",
                        help="Camera index or path to a video file")
    parser.add_argument("--fps", type=int, default=30,
                        help="Requested camera frame rate")
    parser.add_argument("--roi", type=parse_roi, default=DEFAULT_ROI,
                        help="Normalised ROI rectangle x,y,w,h (origin top-left)")
    parser.add_argument("--window", type=int, default=256,
                        help="Live analysis window in samples")
    parser.add_argument("--waveform-duration", type=float, default=12.0,
                        help="Seconds of smoothed waveform kept for display")
    parser.add_argument("--warmup", type=float, default=1.0,
                        help="Seconds of live mode before the measurement starts")
    parser.add_argument("--duration", type=float, default=30.0,
                        help="Measurement length in seconds (0 = live mode only)")
    parser.add_argument("--model", type=Path, default=None,
                        help="AF logistic model JSON (default: bundled model)")
    parser.add_argument("--json", action="store_true",
                        help="Print the measurement summary as JSON")
    parser.add_argument("--verbose", action="store_true",
                        help="Enable debug logging")
    return parser.parse_args(argv)


# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------

def format_vitals(vitals: Optional[VitalSigns]) -> str:
    if vitals is None:
        return "Waiting for signal…"
    return (
        f"HR={vitals.heart_rate:.1f} BPM  "
        f"HRV={vitals.hrv_corrected:.1f} ms (measured {vitals.hrv_measured:.1f} ms)"
    )


def report_analysis(analysis: Optional[SignalAnalysis], as_json: bool) -> None:
    if analysis is None:
        print("Measurement too short – no analysis available.")
        return
    if as_json:
        print(json.dumps(analysis.summary()))
        return
    af = analysis.af_probability
    print(f"Frame rate : {analysis.frame_rate:.2f} fps")
    print(f"Vitals     : {format_vitals(analysis.vitals)}")
    print(f"Raw vitals : {format_vitals(analysis.raw_vitals)}")
    print(f"Peaks      : {len(analysis.peaks)} ({len(analysis.outlier_peaks)} merged as double beats)")
    print(f"AF risk    : {'unavailable' if af is None else f'{af * 100:.1f} %'}")


# ---------------------------------------------------------------------------
# Main loop
# ---------------------------------------------------------------------------

def run(args: argparse.Namespace) -> int:
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s – %(message)s",
        datefmt="%H:%M:%S",
    )

    source = VideoSource(args.source, fps=args.fps)
    processor = SignalProcessor(
        window_size=args.window,
        waveform_duration=args.waveform_duration,
        nominal_fps=float(args.fps),
        af_detector=AFDetector(model_path=args.model),
    )

    measuring = False
    measurement_start: Optional[float] = None
    first_timestamp: Optional[float] = None
    frame_idx = 0
    log_interval = max(args.fps, 1)  # roughly once per second

    logger.info("Starting rPPG monitor.  Press Ctrl-C to stop.")
    try:
        with source, processor:
            for frame, timestamp in source.frames():
                if first_timestamp is None:
                    first_timestamp = timestamp

                if (
                    not measuring
                    and measurement_start is None
                    and args.duration > 0
                    and timestamp - first_timestamp >= args.warmup
                ):
                    processor.reset_measurement()
                    measuring = True
                    measurement_start = timestamp
                    logger.info("Measurement started (%.0f s).", args.duration)

                vitals = processor.push_frame(frame, args.roi, timestamp, measurement=measuring)

                if frame_idx % log_interval == 0:
                    ts = time.strftime("%H:%M:%S")
                    if measuring:
                        elapsed = timestamp - measurement_start
                        print(f"[{ts}] measuring {elapsed:5.1f}/{args.duration:.0f} s")
                    else:
                        print(f"[{ts}] {format_vitals(vitals)}  fill={processor.buffer_fill_ratio:.0%}")

                if measuring and timestamp - measurement_start >= args.duration:
                    break
                frame_idx += 1

            if measuring:
                processor.analyze_measurement()
                report_analysis(processor.last_analysis, args.json)

    except RuntimeError as e:
        logger.error("%s", e)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted.")

    return 0


def main(argv: list[str] | None = None) -> int:
    return run(parse_args(argv))


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    sys.exit(main())
