"""OS watch table reading raw inotify events (Linux)."""

import itertools
import logging
import math
import time
from typing import Callable, Dict, List, Set

from inotify_simple import INotify, flags

from .exceptions import StartupError, WatchAddError, WatchRemoveError
from .models import EventMask, RawEvent, WatchSpec
from .watch_table import WatchTable

logger = logging.getLogger(__name__)


class InotifyWatchTable(WatchTable):
    """
    Watch table backed by a single inotify descriptor.

    Events carry the exact kernel bits, so a file renamed into a watched
    directory from elsewhere is reported as MOVED_TO and a ``chmod`` as
    ATTRIB only.

    The kernel keeps one watch descriptor per inode. Specs on the same
    directory share it, its mask being the union of theirs, and every
    event is handed to each handle whose own mask includes it.
    """

    def __init__(self, inotify_factory: Callable[[], INotify] = INotify):
        """
        Open the inotify descriptor.

        Args:
            inotify_factory: Callable building the inotify object

        Raises:
            StartupError: If inotify cannot be initialized
        """
        try:
            self._inotify = inotify_factory()
        except OSError as e:
            raise StartupError(f"Unable to initialize inotify: {e}") from e

        self._handles = itertools.count(1)
        self._specs: Dict[int, WatchSpec] = {}
        self._wd_of: Dict[int, int] = {}
        # Descriptors the kernel dropped (watched directory deleted or unmounted)
        self._dead_wds: Set[int] = set()

    def _handles_on(self, wd: int) -> List[int]:
        return [handle for handle, other in self._wd_of.items() if other == wd]

    def add(self, spec: WatchSpec) -> int:
        try:
            wd = self._inotify.add_watch(spec.path, int(spec.event_mask) | flags.MASK_ADD)
        except OSError as e:
            raise WatchAddError(f"Unable to watch {spec.path}: {e}") from e

        self._dead_wds.discard(wd)
        handle = next(self._handles)
        self._specs[handle] = spec
        self._wd_of[handle] = wd
        logger.debug(f"Watch {handle} on {spec.path} uses descriptor {wd}")
        return handle

    def remove(self, handle: int) -> None:
        try:
            spec = self._specs.pop(handle)
        except KeyError:
            raise WatchRemoveError(f"Unknown watch handle: {handle}")
        wd = self._wd_of.pop(handle)

        # The shared descriptor keeps its wider mask; extra bits are
        # filtered out per handle
        if self._handles_on(wd):
            return

        if wd in self._dead_wds:
            self._dead_wds.discard(wd)
            return

        try:
            self._inotify.rm_watch(wd)
        except OSError as e:
            raise WatchRemoveError(f"Unable to remove watch for {spec.path}: {e}") from e

    def _convert(self, event) -> List[RawEvent]:
        """Fan one inotify event out to the handles subscribed to it."""
        if event.wd == -1 or event.mask & flags.Q_OVERFLOW:
            logger.warning("inotify event queue overflowed, some events were lost")
            return []

        handles = self._handles_on(event.wd)

        if event.mask & flags.IGNORED:
            if handles:
                self._dead_wds.add(event.wd)
            return []

        kind = EventMask(event.mask & EventMask.ALL_EVENTS)
        if not kind:
            return []

        filename = event.name or None
        raw_events = []
        for handle in handles:
            matched = kind & self._specs[handle].event_mask
            if matched:
                raw_events.append(RawEvent(handle=handle, kind=matched, filename=filename))
        return raw_events

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
            for event in self._inotify.read(timeout=math.ceil(remaining * 1000)):
                events.extend(self._convert(event))

        return events

    def close(self) -> None:
        self._specs.clear()
        self._wd_of.clear()
        self._dead_wds.clear()
        self._inotify.close()

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, handle: int) -> bool:
        return handle in self._specs
