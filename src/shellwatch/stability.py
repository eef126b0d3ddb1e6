"""Deferred execution of commands until their file stops changing."""

import logging
from typing import List

from .models import CheckState, PendingCheck

logger = logging.getLogger(__name__)


class StabilityTracker:
    """
    Holds files pending a "has this upload finished" check.

    Every daemon tick advances all countdowns once. A check whose countdown
    has expired measures its file: an unchanged size promotes the command,
    a changed size restarts the full countdown.

    This is a fixed-window size debounce. A write that pauses for a whole
    interval without changing the file length is reported as stable.
    """

    def __init__(self):
        self._checks: List[PendingCheck] = []

    def add(self, check: PendingCheck) -> None:
        """Start tracking a file."""
        logger.info(f"File {check.path} will be checked every {check.interval_ms} ms")
        self._checks.append(check)

    def tick(self, elapsed_ms: int) -> None:
        """
        Advance every countdown.

        Args:
            elapsed_ms: Time spent since the previous tick
        """
        for check in self._checks:
            check.tick(elapsed_ms)

    def evaluate_due(self) -> List[str]:
        """
        Measure every due file.

        Returns:
            Commands of the files found stable, in tracking order. Those
            checks are no longer tracked.
        """
        ready = []
        remaining = []

        for check in self._checks:
            if check.evaluate() is CheckState.STABLE:
                logger.info(f"File {check.path} is now ready for execution")
                ready.append(check.command)
            else:
                remaining.append(check)

        self._checks = remaining
        return ready

    def pending(self) -> List[PendingCheck]:
        """Checks still being tracked."""
        return list(self._checks)

    def clear(self) -> None:
        self._checks.clear()

    def __len__(self) -> int:
        return len(self._checks)
