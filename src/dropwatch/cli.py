#!/usr/bin/env python3
"""
CLI for running the drop folder watcher.

Usage:
    dropwatch run --config config.json
    dropwatch run --config config.json --roots /mnt/ingest /mnt/renders --ext .mov
    dropwatch check-config --config config.json
"""

import argparse
import json
import logging
import signal
import sys
import time
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import WatcherConfig, find_config_path, load_config
from .engine import WatchEngine
from .exceptions import ConfigurationError
from .sinks import (
    ConsoleSink,
    DailyFileLogSink,
    DesktopNotifier,
    LogDispatcher,
    NotificationDispatcher,
    SoundPlayer,
)

logger = logging.getLogger("dropwatch.cli")


def setup_logging(verbose: bool = False) -> None:
    """Configure console logging for the host process."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    # watchdog is chatty at DEBUG
    logging.getLogger("watchdog").setLevel(logging.INFO)


class GracefulShutdown:
    """Handle graceful shutdown on SIGINT/SIGTERM."""

    def __init__(self):
        self.should_exit = False
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        self.should_exit = True


def _load(args) -> WatcherConfig:
    config = load_config(find_config_path(args.config))

    if getattr(args, "roots", None):
        config.watch_folders = [Path(r).resolve() for r in args.roots]
    if getattr(args, "ext", None):
        config = WatcherConfig(**{**asdict(config), "ext_to_watch": args.ext})
    if getattr(args, "polling", False):
        config.use_polling = True
    if getattr(args, "debug", False):
        config.enable_debug_logging = True
    return config


def build_sinks(config: WatcherConfig, file_log: DailyFileLogSink) -> List[object]:
    """Create the console, log file and desktop notification sinks."""
    sound = SoundPlayer(config.sound_notification_path) if config.sound_notification_path else None
    return [
        ConsoleSink(),
        LogDispatcher(file_log),
        NotificationDispatcher(
            DesktopNotifier(config.app_icon_path),
            ext_label=config.ext_label,
            sound_player=sound,
        ),
    ]


def cmd_run(args) -> int:
    """Run the watcher until SIGINT/SIGTERM."""
    try:
        config = _load(args)
    except ConfigurationError as e:
        logger.critical(f"[FATAL ERROR] Could not load or parse config: {e}")
        return 1

    file_log = DailyFileLogSink(config.log_folder)

    try:
        config.validate_roots()
    except ConfigurationError as e:
        logger.error(str(e))
        file_log.error(str(e))
        return 1

    logger.info("Starting watcher...")
    file_log.info("Watcher service started.")
    logger.info("Monitoring the following folders:")
    for folder in config.watch_folders:
        logger.info(f"  - {folder}")
        file_log.info(f"Watching target folder: {folder}")

    shutdown = GracefulShutdown()
    engine = WatchEngine(config, sinks=build_sinks(config, file_log))
    engine.start_async()
    logger.info("Press Ctrl+C to stop")

    try:
        while not shutdown.should_exit:
            time.sleep(0.5)
    finally:
        msg = "Shutdown signal received. Closing watcher..."
        logger.info(msg)
        file_log.info(msg)
        engine.stop()
        file_log.info("Watcher closed. Exiting.")

    return 0


def cmd_check_config(args) -> int:
    """Load the configuration and print it as JSON."""
    try:
        config = _load(args)
        config.validate_roots()
    except ConfigurationError as e:
        logger.error(str(e))
        return 1

    print(json.dumps(asdict(config), indent=2, default=str))
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="dropwatch",
        description="Notify when files in watched folders have finished being written",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--config", help="Path to config.json (or set DROPWATCH_CONFIG)")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    run_parser = subparsers.add_parser("run", parents=[common], help="Watch folders and send notifications")
    run_parser.add_argument("--roots", nargs="+", help="Override the watched folders")
    run_parser.add_argument("--ext", help="Override the watched file extension")
    run_parser.add_argument("--polling", action="store_true", help="Use polling instead of native events")
    run_parser.add_argument("--debug", action="store_true", help="Log every raw filesystem event")
    run_parser.set_defaults(func=cmd_run)

    check_parser = subparsers.add_parser("check-config", parents=[common], help="Validate and print the configuration")
    check_parser.set_defaults(func=cmd_check_config)

    args = parser.parse_args(argv)
    setup_logging(args.verbose or getattr(args, "debug", False))

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
