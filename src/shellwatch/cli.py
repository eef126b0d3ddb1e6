"""
CLI for running the shellwatch daemon.

Usage:
    shellwatch                                # config from ~/.config or /etc
    shellwatch --config-root ./conf --tick-ms 200
    shellwatch --check                        # validate config files and exit
    shellwatch --backend watchdog             # portable backend instead of inotify
    python -m shellwatch

Send SIGUSR1 to reload the configuration, SIGINT/SIGTERM to stop.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

from . import __version__
from .config import BACKENDS, DaemonConfig
from .daemon import DaemonLoop, SignalFlags
from .exceptions import ConfigError, StartupError
from .loader import find_config_files, parse_config_file
from .watch_table import open_watch_table

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

logger = logging.getLogger("shellwatch")


def setup_logging(level: str = "INFO", log_file: Optional[Path] = None) -> None:
    """Configure console logging, plus a file handler when requested."""
    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shellwatch",
        description="Run shell commands when files change in watched directories",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config-root",
        type=Path,
        help="Directory holding shellwatch.json and shellwatch/*.json",
    )
    parser.add_argument(
        "--tick-ms",
        type=int,
        help="Event poll interval in milliseconds (default: 100)",
    )
    parser.add_argument("--shell", help="Shell used to run commands (default: bash)")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--log-file", type=Path, help="Also write the log to this file")
    parser.add_argument(
        "--backend",
        choices=BACKENDS,
        help="Watch table backend (default: auto, inotify on Linux)",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate the config files and exit",
    )
    return parser


def build_config(args: argparse.Namespace) -> DaemonConfig:
    """Environment settings overridden by command line flags."""
    config = DaemonConfig.from_env()

    if args.config_root is not None:
        config.config_root = args.config_root
    if args.tick_ms is not None:
        if args.tick_ms <= 0:
            raise ValueError(f"--tick-ms must be positive: {args.tick_ms}")
        config.tick_ms = args.tick_ms
    if args.shell:
        config.shell = args.shell
    if args.log_level:
        config.log_level = args.log_level
    if args.log_file is not None:
        config.log_file = args.log_file
    if args.backend:
        config.backend = args.backend

    return config


def cmd_check(config: DaemonConfig) -> int:
    """
    Validate every config file.

    Returns:
        0 if every file and entry is valid, 1 otherwise
    """
    ok = True
    count = 0

    for path in find_config_files(config):
        try:
            specs, rejections = parse_config_file(path)
        except ConfigError as e:
            logger.error(str(e))
            ok = False
            continue

        if rejections:
            ok = False

        for spec in specs:
            count += 1
            print(
                f"{path}: {spec.path} [{', '.join(spec.event_names)}] "
                f"-> {spec.command_template}"
            )

    print(f"{count} valid watch(es)")
    return 0 if ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = build_config(args)
    except ValueError as e:
        print(f"shellwatch: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level, config.log_file)

    if args.check:
        return cmd_check(config)

    logger.info(f"Starting shellwatch {__version__}")
    logger.info(f"Config root: {config.config_root}")

    try:
        watch_table = open_watch_table(config.backend)
    except StartupError as e:
        logger.error(str(e))
        return 1

    flags = SignalFlags()
    flags.install()

    DaemonLoop.from_config(config, watch_table, flags).run()

    logger.info("shellwatch stopped")
    return 0
