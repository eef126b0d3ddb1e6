"""Routing of raw filesystem events to command execution."""

import enum
import fnmatch
import logging
import os
import shlex

from .models import PendingCheck, RawEvent
from .stability import StabilityTracker
from .supervisor import ProcessSupervisor
from .watch_manager import WatchManager

logger = logging.getLogger(__name__)


class Dispatch(enum.Enum):
    """Outcome of dispatching one event."""
    IGNORED = "ignored"
    FILTERED = "filtered"
    EXECUTED = "executed"
    DEFERRED = "deferred"


def render_command(template: str, path: str, filename: str) -> str:
    """
    Fill in a command template.

    ``$@`` becomes the watched path, ``$#`` the event filename and ``$$`` a
    literal dollar sign. Substitutions run in that order over the whole
    string, so a ``$$`` inside the path or filename is collapsed as well.

    Args:
        template: The configured command
        path: Shell-escaped watched path
        filename: Shell-escaped event filename

    Returns:
        The command line to run
    """
    return (
        template
        .replace("$@", path)
        .replace("$#", filename)
        .replace("$$", "$")
    )


class EventDispatcher:
    """
    Turns raw events into commands.

    Matching events either run right away or, for watches with a
    stabilization interval, wait in the StabilityTracker until the file
    stops growing.
    """

    def __init__(
        self,
        manager: WatchManager,
        tracker: StabilityTracker,
        supervisor: ProcessSupervisor,
    ):
        self.manager = manager
        self.tracker = tracker
        self.supervisor = supervisor

    def dispatch(self, event: RawEvent) -> Dispatch:
        """
        Process one raw event.

        Args:
            event: Event read from the watch table

        Returns:
            What happened to the event
        """
        spec = self.manager.resolve(event.handle)
        if spec is None:
            logger.debug(f"Event for unknown watch {event.handle} ignored")
            return Dispatch.IGNORED

        filename = event.filename or ""
        escaped_path = shlex.quote(spec.path)
        escaped_file = shlex.quote(filename)

        logger.info(f"Event {event.kind.name or int(event.kind)} found for {escaped_path} ({escaped_file})")

        if spec.file_match and not fnmatch.fnmatchcase(escaped_file, spec.file_match):
            logger.info(f"File {escaped_file} does not match {spec.file_match}, event discarded")
            return Dispatch.FILTERED

        command = render_command(spec.command_template, escaped_path, escaped_file)

        if spec.stabilization_interval == 0:
            self.supervisor.spawn(command)
            return Dispatch.EXECUTED

        self.tracker.add(PendingCheck(
            path=os.path.join(spec.path, filename),
            command=command,
            interval_ms=spec.stabilization_interval * 1000,
        ))
        return Dispatch.DEFERRED
