"""Data models for the shellwatch package."""

import enum
import logging
import os
import subprocess
import time
from dataclasses import dataclass, field
from typing import Any, Optional

logger = logging.getLogger(__name__)


class EventMask(enum.IntFlag):
    """Filesystem event kinds a watch can subscribe to (inotify bit values)."""
    MODIFY = 0x00000002
    ATTRIB = 0x00000004
    CLOSE_WRITE = 0x00000008
    CLOSE_NOWRITE = 0x00000010
    OPEN = 0x00000020
    MOVED_FROM = 0x00000040
    MOVED_TO = 0x00000080
    CREATE = 0x00000100
    DELETE = 0x00000200
    DELETE_SELF = 0x00000400
    MOVE_SELF = 0x00000800

    CLOSE = CLOSE_WRITE | CLOSE_NOWRITE
    MOVE = MOVED_FROM | MOVED_TO
    ALL_EVENTS = (
        MODIFY | ATTRIB | CLOSE_WRITE | CLOSE_NOWRITE | OPEN | MOVED_FROM
        | MOVED_TO | CREATE | DELETE | DELETE_SELF | MOVE_SELF
    )

    @classmethod
    def from_name(cls, name: str) -> Optional["EventMask"]:
        """
        Convert an event name to a mask.

        Both ``EVENT`` and ``IN_EVENT`` spellings are accepted.

        Args:
            name: Event name from a config entry

        Returns:
            The matching mask, or None if the name is unknown
        """
        if name.startswith("IN_"):
            name = name[3:]
        return cls.__members__.get(name)


class CheckState(enum.Enum):
    """States of a pending stabilization check."""
    WAITING = "waiting"
    DUE = "due"
    STABLE = "stable"
    UNSTABLE = "unstable"


@dataclass(frozen=True)
class WatchSpec:
    """
    A validated watch descriptor.

    Equality is structural: two specs with the same fields describe the
    same watch, which is how unchanged watches are recognized on reload.

    Attributes:
        path: Absolute path of the watched directory
        event_mask: Event kinds to subscribe to
        command_template: Command with ``$@``, ``$#`` and ``$$`` placeholders
        file_match: Glob the event filename must match (empty matches all)
        stabilization_interval: Seconds between size checks, 0 runs immediately
    """
    path: str
    event_mask: EventMask
    command_template: str
    file_match: str = ""
    stabilization_interval: int = 0

    def __post_init__(self):
        if not os.path.isabs(self.path):
            raise ValueError(f"path must be absolute: {self.path}")
        if self.stabilization_interval < 0:
            raise ValueError(
                f"stabilization_interval must be >= 0: {self.stabilization_interval}"
            )

    @property
    def event_names(self) -> list:
        """Names of the single event kinds in the mask."""
        return [
            kind.name for kind in EventMask
            if kind.name not in ("CLOSE", "MOVE", "ALL_EVENTS") and kind & self.event_mask
        ]


@dataclass(frozen=True)
class Rejection:
    """
    Reason a config entry could not become a WatchSpec.

    Attributes:
        reason: Human readable diagnostic
        entry: The offending config value
    """
    reason: str
    entry: Any = None

    def __str__(self) -> str:
        return self.reason


@dataclass
class RawEvent:
    """
    Raw change notification read from the watch table.

    Attributes:
        handle: Handle of the watch that produced the event
        kind: The single event kind that occurred
        filename: Name of the affected entry inside the watched directory,
            None for events on the directory itself
        timestamp: Unix timestamp when the event was observed
    """
    handle: int
    kind: EventMask
    filename: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


def file_size(path: str) -> int:
    """
    Return the byte length of a file.

    Missing files and unreadable metadata count as length 0.
    """
    try:
        return os.stat(path).st_size
    except OSError as e:
        logger.warning(f"Error while reading metadata of {path}: {e}")
        return 0


@dataclass
class PendingCheck:
    """
    A file waiting for its size to stop changing.

    Attributes:
        path: Full path of the file to measure
        command: Rendered command to run once the file is stable
        interval_ms: Countdown restored after every size change
        size: Last observed byte length
        next_check_ms: Remaining countdown before the next measurement
    """
    path: str
    command: str
    interval_ms: int
    size: int = 0
    next_check_ms: Optional[int] = None

    def __post_init__(self):
        if self.next_check_ms is None:
            self.next_check_ms = self.interval_ms

    def is_due(self) -> bool:
        return self.next_check_ms <= 0

    @property
    def state(self) -> CheckState:
        """WAITING while the countdown runs, DUE once it has expired."""
        return CheckState.DUE if self.is_due() else CheckState.WAITING

    def tick(self, elapsed_ms: int) -> None:
        """Subtract elapsed time from the countdown."""
        self.next_check_ms -= elapsed_ms

    def evaluate(self) -> CheckState:
        """
        Measure the file if the countdown has expired.

        Returns:
            WAITING if not due yet, STABLE if the size did not change since
            the last measurement, UNSTABLE if it did (the new size is recorded
            and the countdown restarts from the full interval)
        """
        if self.state is CheckState.WAITING:
            return CheckState.WAITING

        new_size = file_size(self.path)
        logger.info(f"File {self.path} checked, was {self.size} bytes long, now {new_size}")

        if new_size == self.size:
            return CheckState.STABLE

        self.size = new_size
        self.next_check_ms = self.interval_ms
        return CheckState.UNSTABLE


@dataclass
class SupervisedChild:
    """
    A spawned command that has not been reaped yet.

    Attributes:
        process: The process handle
        pid: OS process id
        command: The command line passed to the shell
        started_at: Unix timestamp of the spawn
    """
    process: subprocess.Popen
    pid: int
    command: str = ""
    started_at: float = field(default_factory=time.time)
