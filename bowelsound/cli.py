"""
bowelsound - command line interface.

Example usage:
    # Classify a recording
    bowelsound analyze path/to/recording.wav
    bowelsound analyze --json path/to/recording.wav

    # Play a file, printing the position
    bowelsound play path/to/recording.wav

    # Record ten seconds from the microphone and classify it
    bowelsound record --seconds 10 --analyze

    # List capture devices
    bowelsound devices
"""

import argparse
import sys
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from bowelsound.core.models import PredictionResult, WaveformSource
from bowelsound.core.session import SessionController, create_session
from bowelsound.core.timing import reset_label
from bowelsound.utils.config import load_config
from bowelsound.utils.errors import BowelSoundError
from bowelsound.utils.logging import get_logger, setup_logging_from_config

logger = get_logger("cli")


def print_source(source: WaveformSource) -> None:
    """Print source metadata."""
    print(f"File: {source.name}")
    print(f"  Format: {source.format}" + (f" ({source.subtype})" if source.subtype else ""))
    print(f"  Sample Rate: {source.sample_rate} Hz")
    print(f"  Channels: {source.channels}")
    print(f"  Duration: {source.duration:.3f}s")


def print_prediction(result: PredictionResult) -> None:
    """Print classification results, best label first."""
    print("\n" + "=" * 60)
    print("PREDICTION")
    print("=" * 60)
    print(result.format_lines() or "No labels returned")
    print("-" * 60)
    print(f"Classifier: {result.classifier}")
    print(f"Processing Time: {result.processing_time:.3f}s")


def run_analyze(session: SessionController, args: argparse.Namespace) -> int:
    source = session.open_file(args.audio_file, autoplay=False)
    result = session.analyze()
    if args.json:
        print(result.to_json(indent=2))
    else:
        print_source(source)
        print_prediction(result)
    return 0


def run_play(session: SessionController, args: argparse.Namespace) -> int:
    source = session.open_file(args.audio_file, autoplay=False)
    print_source(source)
    if args.start:
        session.seek(args.start)
    session.play()
    try:
        for tick in session.position_ticks():
            print(f"\r{tick.label}", end="", flush=True)
    except KeyboardInterrupt:
        session.pause()
    print(f"\r{reset_label(source.duration)}")
    return 0


def run_record(session: SessionController, args: argparse.Namespace) -> int:
    path = session.start_recording()
    print(f"Recording to {path} (Ctrl+C to stop early)")
    try:
        time.sleep(args.seconds)
    except KeyboardInterrupt:
        pass
    source = session.stop_recording()
    print(f"Recording saved to: {source.file_path}")
    print_source(source)
    if args.analyze:
        print_prediction(session.analyze())
    return 0


def run_devices(session: SessionController, args: argparse.Namespace) -> int:
    inputs = session.recorder.available_inputs()
    if not inputs:
        print("No input devices available.")
        return 1
    print("Available input devices:")
    for name in inputs:
        print(f"  - {name}")
    return 0


COMMANDS = {
    "analyze": run_analyze,
    "play": run_play,
    "record": run_record,
    "devices": run_devices,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bowelsound",
        description="Record, play back and classify bowel sound recordings"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Classify an audio file")
    analyze.add_argument("audio_file", type=Path, help="WAV, AIFF or MP3 file")
    analyze.add_argument("--json", action="store_true", help="Print JSON output")

    play = subparsers.add_parser("play", help="Play an audio file")
    play.add_argument("audio_file", type=Path, help="WAV, AIFF or MP3 file")
    play.add_argument("--start", type=float, default=0.0, help="Start position in seconds")

    record = subparsers.add_parser("record", help="Record from the microphone")
    record.add_argument("--seconds", type=float, default=5.0, help="Recording length")
    record.add_argument("--analyze", action="store_true", help="Classify the recording")

    subparsers.add_parser("devices", help="List audio input devices")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Console entry point."""
    args = build_parser().parse_args(argv)

    try:
        config: Dict[str, Any] = load_config(str(args.config) if args.config else None)
    except BowelSoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    setup_logging_from_config(config.get("logging", {}), verbose=args.verbose)

    try:
        session = create_session(config)
    except BowelSoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        return COMMANDS[args.command](session, args)
    except BowelSoundError as e:
        logger.debug(f"{args.command} failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        session.close()


if __name__ == "__main__":
    sys.exit(main())
