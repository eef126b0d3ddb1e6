"""Reconciliation of configured watches with the OS watch table."""

import logging
from typing import Dict, List, Optional

from .exceptions import WatchTableError
from .models import WatchSpec
from .watch_table import WatchTable

logger = logging.getLogger(__name__)


class WatchManager:
    """
    Owns the mapping from watch handles to WatchSpecs.

    A reload is a two-phase operation: ``begin_reload`` followed by one
    ``stage`` per configured spec, then ``commit_reload``. Specs that did not
    change keep their OS watch; only the difference touches the watch table.
    """

    def __init__(self):
        self._current: Dict[int, WatchSpec] = {}
        self._previous: Dict[int, WatchSpec] = {}
        self._staged: List[WatchSpec] = []

    def begin_reload(self) -> None:
        """Back up the active watches and start collecting the new set."""
        self._previous = self._current
        self._current = {}
        self._staged = []

    def stage(self, spec: WatchSpec) -> None:
        """
        Register a spec found while re-reading the configuration.

        If a structurally equal spec was active before the reload, its watch
        is carried over as is. Otherwise the spec is installed at commit.

        Args:
            spec: The configured watch
        """
        for handle, previous in self._previous.items():
            if previous == spec:
                logger.info(f"Already existing watch: {spec.path}")
                del self._previous[handle]
                self._current[handle] = previous
                return

        if spec in self._current.values() or spec in self._staged:
            logger.warning(f"Duplicate watch ignored: {spec.path}")
            return

        logger.info(f"Watch added for {spec.path}")
        self._staged.append(spec)

    def commit_reload(self, watch_table: WatchTable) -> None:
        """
        Apply the staged changes to the watch table.

        Stale watches are all removed before any new one is added. Failures
        are logged and skipped; an affected spec stays inactive until the
        next reload.

        Args:
            watch_table: The OS watch table
        """
        for handle, spec in self._previous.items():
            try:
                watch_table.remove(handle)
                logger.info(f"Watch removed for {spec.path}")
            except WatchTableError as e:
                logger.warning(f"Error while removing watch for {spec.path}: {e}")
        self._previous = {}

        for spec in self._staged:
            try:
                handle = watch_table.add(spec)
            except WatchTableError as e:
                logger.warning(f"Error while adding watch for {spec.path}: {e}")
                continue
            self._current[handle] = spec
        self._staged = []

    def abort_reload(self) -> None:
        """
        Drop the staged changes and restore the watches active before
        ``begin_reload``. The watch table is not touched.
        """
        self._current.update(self._previous)
        self._previous = {}
        self._staged = []

    def resolve(self, handle: int) -> Optional[WatchSpec]:
        """
        Find the spec of an active watch.

        Returns:
            The spec, or None for unknown handles (e.g. a stale event from a
            watch removed moments earlier)
        """
        return self._current.get(handle)

    def active_specs(self) -> List[WatchSpec]:
        """Specs of all active watches."""
        return list(self._current.values())

    def remove_all(self, watch_table: WatchTable) -> int:
        """
        Remove every active watch.

        Returns:
            Number of watches that were active
        """
        self.begin_reload()
        count = len(self._previous)
        self.commit_reload(watch_table)
        return count

    def __len__(self) -> int:
        return len(self._current)

    def __contains__(self, handle: int) -> bool:
        return handle in self._current
