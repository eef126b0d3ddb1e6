"""Loading and validation of watch config files."""

import json
import logging
import os
from pathlib import Path
from typing import Any, Callable, Iterator, List, Tuple, Union

from .config import DaemonConfig
from .exceptions import ConfigError
from .models import EventMask, Rejection, WatchSpec

logger = logging.getLogger(__name__)


def find_config_files(config: DaemonConfig) -> List[Path]:
    """
    List the config files to read, in reading order.

    The main config file comes first when it exists, followed by every
    ``*.json`` file of the config directory in name order.
    """
    files = []

    logger.info(f"Checking config file {config.main_config_file}")
    if config.main_config_file.is_file():
        files.append(config.main_config_file)

    logger.info(f"Scanning config files {config.config_dir / '*.json'}")
    if config.config_dir.is_dir():
        try:
            candidates = sorted(config.config_dir.glob("*.json"))
        except OSError as e:
            logger.error(f"Error while scanning {config.config_dir}: {e}")
            candidates = []

        for path in candidates:
            if path.is_file():
                logger.info(f"Config file found: {path}")
                files.append(path)

    return files


def read_config_file(path: Path) -> List[Any]:
    """
    Read the list of watch entries stored in a config file.

    Args:
        path: Path to the JSON config file

    Returns:
        The deserialized entries

    Raises:
        ConfigError: If the file cannot be read, is not valid JSON, or does
            not hold a JSON array
    """
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"Error while reading config file {path}: {e}") from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"Error while deserializing JSON in {path}: {e}") from e

    if not isinstance(data, list):
        raise ConfigError(f"Config JSON must be an array: {path}")

    return data


def _parse_events(events: list) -> int:
    """Combine event names into a mask, skipping bad names with a diagnostic."""
    mask = 0
    for event in events:
        if not isinstance(event, str):
            logger.warning(f"One event is not a string: {event!r}")
            continue

        kind = EventMask.from_name(event)
        if kind is None:
            logger.warning(f"Unknown event name: {event}")
            continue

        mask |= kind
    return mask


def parse_watch_entry(
    value: Any,
    path_exists: Callable[[str], bool] = os.path.exists,
) -> Union[WatchSpec, Rejection]:
    """
    Convert one deserialized config entry into a WatchSpec.

    Args:
        value: The entry as loaded from JSON
        path_exists: Predicate used to check the watched path

    Returns:
        A WatchSpec, or a Rejection explaining why the entry is unusable
    """
    if not isinstance(value, dict):
        return Rejection(f"One item is not an object: {value!r}", value)

    path = value.get("path")
    if path is None and "dir" in value:
        path = value.get("dir")
        logger.warning(
            "'dir' key used instead of 'path', this is deprecated and will be "
            "removed in a future version"
        )

    events = value.get("events")
    command = value.get("command")

    if path is None or events is None or command is None:
        return Rejection(
            'One parameter is missing between "path", "events" and "command"', value
        )

    if not isinstance(path, str):
        return Rejection('"path" must be a string', value)
    if not isinstance(events, list):
        return Rejection('"events" must be an array', value)
    if not isinstance(command, str):
        return Rejection('"command" must be a string', value)
    if not command.strip():
        return Rejection('"command" must not be empty', value)

    file_match = value.get("file_match", "")
    if file_match is None:
        file_match = ""
    if not isinstance(file_match, str):
        return Rejection('"file_match" must be a string', value)

    check_interval = value.get("check_interval", 0)
    if check_interval is None:
        check_interval = 0
    if isinstance(check_interval, bool) or not isinstance(check_interval, int):
        return Rejection('"check_interval" must be an integer', value)
    if check_interval < 0:
        return Rejection('"check_interval" must not be negative', value)

    if not path_exists(path):
        return Rejection(f'"{path}" does not exist', value)

    mask = _parse_events(events)
    if not mask:
        return Rejection(f"No events found for {path}", value)

    return WatchSpec(
        path=os.path.abspath(path),
        event_mask=EventMask(mask),
        command_template=command,
        file_match=file_match,
        stabilization_interval=check_interval,
    )


def parse_config_file(
    path: Path,
    path_exists: Callable[[str], bool] = os.path.exists,
) -> Tuple[List[WatchSpec], List[Rejection]]:
    """
    Parse every entry of a config file.

    Returns:
        (specs, rejections) - bad entries never stop the others from loading

    Raises:
        ConfigError: If the file itself cannot be used
    """
    specs = []
    rejections = []

    for entry in read_config_file(path):
        result = parse_watch_entry(entry, path_exists)
        if isinstance(result, Rejection):
            logger.error(f"Error during parsing of {path}: {result}")
            rejections.append(result)
        else:
            specs.append(result)

    return specs, rejections


def load_watch_specs(config: DaemonConfig) -> Iterator[WatchSpec]:
    """
    Yield the WatchSpecs of every config file.

    File-level and entry-level problems are logged and skipped.
    """
    for path in find_config_files(config):
        try:
            specs, _ = parse_config_file(path)
        except ConfigError as e:
            logger.error(str(e))
            continue

        yield from specs
