"""The daemon control loop."""

import enum
import logging
import signal
from typing import Callable, Iterable, Optional

from .config import DaemonConfig
from .dispatcher import EventDispatcher
from .loader import load_watch_specs
from .models import WatchSpec
from .stability import StabilityTracker
from .supervisor import ProcessSupervisor
from .watch_manager import WatchManager
from .watch_table import WatchTable

logger = logging.getLogger(__name__)


class LoopState(enum.Enum):
    """States of the daemon loop."""
    RUNNING = "running"
    RELOADING = "reloading"
    STOPPED = "stopped"


class SignalFlags:
    """
    Stop and reload requests set asynchronously by signal handlers.

    Handlers run on the main thread between two bytecodes of the loop and
    only assign plain attributes; they take no lock. Only the loop clears
    the requests.
    """

    def __init__(self):
        self._stop = False
        self._reload = False

    def request_stop(self) -> None:
        self._stop = True

    def request_reload(self) -> None:
        self._reload = True

    @property
    def stop_requested(self) -> bool:
        return self._stop

    @property
    def reload_requested(self) -> bool:
        return self._reload

    def consume_reload(self) -> bool:
        """Clear the reload request, returning whether one was pending."""
        if not self._reload:
            return False
        self._reload = False
        return True

    def _on_stop(self, signum, frame):
        logger.info(f"Received signal {signum}, stopping...")
        self.request_stop()

    def _on_reload(self, signum, frame):
        logger.info(f"Received signal {signum}, reloading...")
        self.request_reload()

    def install(self) -> None:
        """
        Hook the flags to SIGINT/SIGTERM (stop) and SIGUSR1 (reload).

        A signal that cannot be hooked only produces a warning.
        """
        for name in ("SIGINT", "SIGTERM"):
            try:
                signal.signal(getattr(signal, name), self._on_stop)
            except (AttributeError, OSError, ValueError) as e:
                logger.warning(
                    f"Unable to catch {name} signal ({e}). Program will continue "
                    "running but might not exit properly"
                )

        try:
            signal.signal(getattr(signal, "SIGUSR1"), self._on_reload)
        except (AttributeError, OSError, ValueError) as e:
            logger.warning(
                f"Unable to catch SIGUSR1 signal ({e}). Program will continue "
                "running but you may not be able to reload configs"
            )


class DaemonLoop:
    """
    Single control loop sequencing reload, reaping, event dispatch and
    stabilization checks.

    All mutable state is owned by the thread calling ``tick``/``run``.
    """

    def __init__(
        self,
        watch_table: WatchTable,
        spec_source: Callable[[], Iterable[WatchSpec]],
        supervisor: Optional[ProcessSupervisor] = None,
        flags: Optional[SignalFlags] = None,
        tick_ms: int = 100,
    ):
        """
        Initialize the loop.

        Args:
            watch_table: The OS watch table
            spec_source: Callable returning the configured specs, called on
                every reload
            supervisor: Process supervisor for spawned commands
            flags: Stop/reload requests
            tick_ms: Poll timeout, also the countdown decrement per tick
        """
        self.watch_table = watch_table
        self.spec_source = spec_source
        self.supervisor = supervisor or ProcessSupervisor()
        self.flags = flags or SignalFlags()
        self.tick_ms = tick_ms

        self.manager = WatchManager()
        self.tracker = StabilityTracker()
        self.dispatcher = EventDispatcher(self.manager, self.tracker, self.supervisor)
        self.state = LoopState.RUNNING

    @classmethod
    def from_config(
        cls,
        config: DaemonConfig,
        watch_table: WatchTable,
        flags: Optional[SignalFlags] = None,
    ) -> "DaemonLoop":
        """Build a loop reading its watches from the config files."""
        return cls(
            watch_table,
            lambda: load_watch_specs(config),
            supervisor=ProcessSupervisor(config.shell),
            flags=flags,
            tick_ms=config.tick_ms,
        )

    def shutdown_requested(self) -> bool:
        return self.flags.stop_requested

    def reload(self) -> None:
        """
        Re-read the configuration and reconcile the watch table.

        If the configuration cannot be read to the end, the watches active
        before the reload are kept and nothing is applied.
        """
        self.state = LoopState.RELOADING
        self.manager.begin_reload()
        try:
            for spec in self.spec_source():
                self.manager.stage(spec)
        except Exception as e:
            logger.error(f"Error while reading configuration, keeping current watches: {e}")
            self.manager.abort_reload()
        else:
            self.manager.commit_reload(self.watch_table)
        finally:
            self.state = LoopState.RUNNING
        logger.info(f"{len(self.manager)} watch(es) active")

    def tick(self) -> bool:
        """
        Run one loop iteration.

        Returns:
            False once the loop has stopped
        """
        if self.state is LoopState.STOPPED:
            return False

        if self.shutdown_requested():
            logger.info("Exiting shellwatch")
            self.state = LoopState.STOPPED
            return False

        if self.flags.consume_reload():
            logger.info("Reloading shellwatch")
            self.reload()
            return True

        self.supervisor.reap()
        self.tracker.tick(self.tick_ms)

        for event in self.watch_table.read_events(self.tick_ms / 1000.0):
            self.dispatcher.dispatch(event)

        for command in self.tracker.evaluate_due():
            self.supervisor.spawn(command)

        return True

    def run(self) -> None:
        """Load the configuration and loop until a stop is requested."""
        self.reload()
        try:
            while self.tick():
                pass
        finally:
            self.shutdown()

    def shutdown(self) -> None:
        """
        Stop watching for events.

        Children still running are left alone.
        """
        self.state = LoopState.STOPPED
        self.manager.remove_all(self.watch_table)
        self.watch_table.close()

        if len(self.supervisor):
            logger.info(f"{len(self.supervisor)} child process(es) left running")
