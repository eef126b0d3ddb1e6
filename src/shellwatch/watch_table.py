"""OS watch tables: the common interface and the portable watchdog backend."""

import itertools
import logging
import os
import queue
import sys
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from .exceptions import StartupError, WatchAddError, WatchRemoveError
from .models import EventMask, RawEvent, WatchSpec

logger = logging.getLogger(__name__)

# watchdog reports IN_MODIFY and IN_ATTRIB alike as "modified"
_EVENT_KINDS = {
    "created": EventMask.CREATE,
    "deleted": EventMask.DELETE,
    "modified": EventMask.MODIFY | EventMask.ATTRIB,
    "closed": EventMask.CLOSE_WRITE,
    "closed_no_write": EventMask.CLOSE_NOWRITE,
    "opened": EventMask.OPEN,
}

class WatchTable(ABC):
    """Table of OS-level watches, each identified by an opaque handle."""

    @abstractmethod
    def add(self, spec: WatchSpec) -> int:
        """
        Install a watch for a spec.

        Returns:
            The handle of the new watch

        Raises:
            WatchAddError: If the watch cannot be installed
        """
        pass

    @abstractmethod
    def remove(self, handle: int) -> None:
        """
        Remove a watch.

        Raises:
            WatchRemoveError: If the watch cannot be removed
        """
        pass

    @abstractmethod
    def read_events(self, timeout: float) -> List[RawEvent]:
        """Return the events observed during the next ``timeout`` seconds."""
        pass

    def close(self) -> None:
        """Release the OS resources held by the table."""
        pass

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

class WatchEventHandler(FileSystemEventHandler):
    """Handler that converts watchdog events of one watch to RawEvents."""

    def __init__(
        self,
        handle: int,
        spec: WatchSpec,
        callback: Callable[[RawEvent], None],
    ):
        super().__init__()
        self.handle = handle
        self.mask = spec.event_mask
        self.root = os.path.normpath(spec.path)
        self.callback = callback

    def _child_name(self, path: str) -> Optional[str]:
        """Name of ``path`` if it sits directly inside the watched directory."""
        if os.path.dirname(path) == self.root:
            return os.path.basename(path)
        return None

    def classify(self, event: FileSystemEvent) -> List[Tuple[EventMask, Optional[str]]]:
        """
        Map a watchdog event to (kind, filename) pairs before mask filtering.

        Events on the watched directory itself have no filename.
        """
        src_path = os.path.normpath(os.fsdecode(event.src_path))

        if event.event_type == "moved":
            if src_path == self.root:
                return [(EventMask.MOVE_SELF, None)]

            kinds = []
            src_name = self._child_name(src_path)
            if src_name is not None:
                kinds.append((EventMask.MOVED_FROM, src_name))
            dest_name = self._child_name(os.path.normpath(os.fsdecode(event.dest_path)))
            if dest_name is not None:
                kinds.append((EventMask.MOVED_TO, dest_name))
            return kinds

        if src_path == self.root:
            # Other notifications on the root are synthesized by watchdog
            # for changes of its children
            if event.event_type == "deleted":
                return [(EventMask.DELETE_SELF, None)]
            return []

        name = self._child_name(src_path)
        kind = _EVENT_KINDS.get(event.event_type)
        if name is None or kind is None:
            return []
        return [(kind, name)]

    def on_any_event(self, event: FileSystemEvent):
        for kind, name in self.classify(event):
            matched = kind & self.mask
            if matched:
                self.callback(RawEvent(handle=self.handle, kind=matched, filename=name))

class WatchdogWatchTable(WatchTable):
    """
    Watch table scheduling every installed watch on one shared watchdog
    observer.

    Used where inotify is not available. watchdog only reports high level
    events: a file moved in from or out to another directory arrives as
    created or deleted, and MODIFY cannot be told apart from ATTRIB.

    The observer thread only enqueues events; the table itself is meant to
    be used from a single thread.
    """

    def __init__(self, observer_factory: Callable[[], Observer] = Observer):
        """
        Start the observer.

        Args:
            observer_factory: Callable building the watchdog observer

        Raises:
            StartupError: If the observer cannot be started
        """
        self._events: "queue.Queue[RawEvent]" = queue.Queue()
        self._watches: Dict[int, Tuple[ObservedWatch, WatchEventHandler]] = {}
        self._handles = itertools.count(1)

        try:
            self._observer = observer_factory()
            self._observer.start()
        except (OSError, RuntimeError) as e:
            raise StartupError(f"Unable to start the filesystem observer: {e}") from e

    def add(self, spec: WatchSpec) -> int:
        if not os.path.exists(spec.path):
            raise WatchAddError(f"{spec.path} does not exist")

        handle = next(self._handles)
        handler = WatchEventHandler(handle, spec, self._events.put)

        try:
            watch = self._observer.schedule(handler, spec.path, recursive=False)
        except OSError as e:
            raise WatchAddError(f"Unable to watch {spec.path}: {e}") from e

        self._watches[handle] = (watch, handler)
        return handle

    def remove(self, handle: int) -> None:
        try:
            watch, handler = self._watches.pop(handle)
        except KeyError:
            raise WatchRemoveError(f"Unknown watch handle: {handle}")

        # Watches on the same directory share one emitter
        shared = any(other == watch for other, _ in self._watches.values())

        try:
            if shared:
                self._observer.remove_handler_for_watch(handler, watch)
            else:
                self._observer.unschedule(watch)
        except (KeyError, OSError) as e:
            raise WatchRemoveError(f"Unable to remove watch {handle}: {e}") from e

    def read_events(self, timeout: float) -> List[RawEvent]:
        """
        Collect events until ``timeout`` seconds have passed.

        The call always lasts the whole timeout so that callers can count
        it as elapsed time.
        """
        events = []
        deadline = time.monotonic() + timeout

        while True:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                events.append(self._events.get(timeout=remaining))
            except queue.Empty:
                break

        while True:
            try:
                events.append(self._events.get_nowait())
            except queue.Empty:
                break

        return events

    def close(self) -> None:
        self._watches.clear()
        self._observer.stop()
        self._observer.join(timeout=5.0)

    def __len__(self) -> int:
        return len(self._watches)

    def __contains__(self, handle: int) -> bool:
        return handle in self._watches


def open_watch_table(backend: str = "auto") -> WatchTable:
    """
    Create the watch table of a backend.

    Args:
        backend: ``inotify``, ``watchdog`` or ``auto`` (inotify on Linux,
            watchdog elsewhere)

    Returns:
        The started watch table

    Raises:
        StartupError: If the backend cannot be initialized
        ValueError: For an unknown backend name
    """
    if backend == "auto":
        backend = "inotify" if sys.platform.startswith("linux") else "watchdog"

    if backend == "inotify":
        from .inotify_table import InotifyWatchTable
        return InotifyWatchTable()
    if backend == "watchdog":
        return WatchdogWatchTable()

    raise ValueError(f"Unknown watch table backend: {backend}")
