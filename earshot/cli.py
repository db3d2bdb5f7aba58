"""
Earshot - command-line interface

Headless front end for listening from a terminal.

Example usage:
    earshot                            # listen until Ctrl+C
    earshot listen --duration 30       # listen for 30 seconds
    earshot listen --model other.tflite --device "USB"
    earshot devices                    # list input devices
    earshot info                       # show the model's audio format
"""

import argparse
import sys
import threading
import time
from typing import Any, Dict, List, Optional

from earshot.core.capture import list_input_devices
from earshot.core.classifier import create_classifier
from earshot.core.listener import create_sound_listener
from earshot.core.models import ListenerState
from earshot.core.permission import InputDevicePermission
from earshot.ui.display import ConsoleDisplay, QueueDispatcher
from earshot.utils.config import load_config
from earshot.utils.errors import CaptureError, EarshotError
from earshot.utils.logging import get_logger, setup_logging_from_config

logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="earshot",
        description="Listen to the microphone and classify ambient sounds",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to configuration file"
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output"
    )

    subparsers = parser.add_subparsers(dest="command")

    listen = subparsers.add_parser("listen", help="Listen and print detected sounds (default)")
    listen.add_argument(
        "--duration",
        type=float,
        default=None,
        help="Seconds to listen before stopping (default: until Ctrl+C)"
    )
    listen.add_argument("--model", type=str, default=None, help="Path to a .tflite model")
    listen.add_argument("--labels", type=str, default=None, help="Path to a labels file")
    listen.add_argument(
        "--device",
        type=str,
        default=None,
        help="Input device index or name fragment"
    )

    subparsers.add_parser("devices", help="List audio input devices")

    info = subparsers.add_parser("info", help="Load the model and show its requirements")
    info.add_argument("--model", type=str, default=None, help="Path to a .tflite model")
    info.add_argument("--labels", type=str, default=None, help="Path to a labels file")

    return parser


def apply_overrides(config: Dict[str, Any], args: argparse.Namespace) -> Dict[str, Any]:
    """Apply command-line overrides to the loaded configuration."""
    if getattr(args, "model", None):
        config["model"]["path"] = args.model
    if getattr(args, "labels", None):
        config["model"]["labels_path"] = args.labels
    if getattr(args, "device", None) is not None:
        device = args.device
        config["capture"]["device"] = int(device) if device.isdigit() else device
    return config


def listen(config: Dict[str, Any], duration: Optional[float] = None) -> int:
    """
    Listen until interrupted (or for ``duration`` seconds).

    Returns:
        Process exit code
    """
    dispatcher = QueueDispatcher()
    listener = create_sound_listener(
        config,
        display=ConsoleDisplay(),
        dispatcher=dispatcher,
        permission=InputDevicePermission(config["capture"].get("device")),
        on_status=lambda message: print(f"[{message}]", file=sys.stderr),
    )

    if not listener.gate.check_on_launch():
        print("Error: no usable microphone was found.", file=sys.stderr)
        return 1
    if not listener.start():
        dispatcher.drain()
        return 1

    deadline = time.monotonic() + duration if duration is not None else None
    stop_requested = threading.Event()

    def done() -> bool:
        if stop_requested.is_set() or not listener.is_recording:
            return True
        return deadline is not None and time.monotonic() >= deadline

    try:
        dispatcher.run_until(done)
    except KeyboardInterrupt:
        stop_requested.set()
        print("", file=sys.stderr)
    finally:
        faulted = listener.state is ListenerState.FAULTED
        listener.stop()
        dispatcher.drain()

    return 1 if faulted else 0


def print_devices() -> int:
    try:
        devices = list_input_devices()
    except CaptureError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1

    if not devices:
        print("No input devices found.")
        return 1
    for device in devices:
        print(
            f"{device['index']:>3}  {device['name']}  "
            f"({device['channels']} ch, {device['default_samplerate']:.0f} Hz)"
        )
    return 0


def print_model_info(config: Dict[str, Any]) -> int:
    classifier = create_classifier(config)
    try:
        print(f"Model: {classifier.model_name}")
        print(classifier.required_format.describe())
        print(f"Window: {classifier.required_input_buffer_size} samples")
        print(f"Classes: {classifier.num_classes} ({len(classifier.labels)} labels)")
    finally:
        classifier.close()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = apply_overrides(load_config(args.config), args)
        setup_logging_from_config(config, verbose=args.verbose)

        if args.command == "devices":
            return print_devices()
        if args.command == "info":
            return print_model_info(config)
        return listen(config, getattr(args, "duration", None))
    except EarshotError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
