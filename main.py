#!/usr/bin/env python3
"""
evpscope - offline EVP analysis of WAV recordings.
Main entry point for the application.

Usage:
    python main.py analyze session.wav --sensitivity 0.6 --json
"""

import argparse
import json
import sys
import wave

from dotenv import load_dotenv
from loguru import logger

from evpscope.audio.evp import (
    ConfigurationError,
    DetectionConfig,
    EVPDetector,
    run_offline,
)
from evpscope.audio.sources import WaveFileSource
from evpscope.audio.spectral.windows import WindowType
from evpscope.monitoring import configure_logging


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="evpscope", description="Spectral EVP analysis of audio recordings"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Analyse a WAV file")
    analyze.add_argument("path", help="PCM WAV file to analyse")
    analyze.add_argument("--sensitivity", type=float, help="Voice score threshold (0-1)")
    analyze.add_argument(
        "--classification-threshold", type=float, help="Minimum confidence (0-1)"
    )
    analyze.add_argument("--fft-size", type=int, help="FFT size (power of two)")
    analyze.add_argument(
        "--window", choices=[w.value for w in WindowType], help="Analysis window"
    )
    analyze.add_argument(
        "--hop", type=int, help="Samples between ticks (defaults to FFT size / 4)"
    )
    analyze.add_argument(
        "--no-conditioning",
        action="store_true",
        help="Skip the band-pass filter and noise gate",
    )
    analyze.add_argument("--json", action="store_true", help="Print JSON lines")
    analyze.add_argument("--log-level", default="WARNING", help="Logging level")
    return parser


def analyze(args: argparse.Namespace) -> int:
    """Run the detector over one file and print its detections."""
    source = WaveFileSource.from_file(args.path)

    overrides = {
        "sensitivity": args.sensitivity,
        "classification_threshold": args.classification_threshold,
        "fft_size": args.fft_size,
        "window_function": args.window,
        "enable_conditioning": False if args.no_conditioning else None,
    }
    config = DetectionConfig.from_env(
        sample_rate=source.sample_rate,
        **{k: v for k, v in overrides.items() if v is not None},
    )
    if args.hop is not None and args.hop <= 0:
        raise ConfigurationError(
            f"hop must be a positive number of samples, got {args.hop}"
        )
    source.hop_size = args.hop if args.hop is not None else config.fft_size // 4

    with EVPDetector(config) as detector:
        detections = run_offline(detector, source)

    for detection in detections:
        if args.json:
            print(json.dumps(detection.to_dict()))
        else:
            print(
                f"{detection.classification.class_id:8} "
                f"confidence={detection.confidence:.2f} "
                f"snr={detection.signal_to_noise_ratio:.1f}dB "
                f"frequency={detection.dominant_frequency:.1f}Hz "
                f"duration={detection.duration_ms:.0f}ms"
            )

    if not args.json:
        print(f"{len(detections)} detection(s) in {source.duration:.2f}s of audio")
    return 0


def main(argv=None) -> int:
    """Main entry point for evpscope."""
    load_dotenv()

    args = build_parser().parse_args(argv)
    try:
        configure_logging(level=args.log_level)
    except ValueError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    try:
        if args.command == "analyze":
            return analyze(args)
    except ConfigurationError as e:
        logger.error(f"Invalid configuration: {e}")
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    except (OSError, EOFError, wave.Error, ValueError) as e:
        logger.error(f"Could not read audio: {e}")
        print(f"Could not read audio: {e}", file=sys.stderr)
        return 1
    return 1


if __name__ == "__main__":
    sys.exit(main())
