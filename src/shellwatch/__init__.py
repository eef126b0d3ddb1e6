"""
shellwatch

A daemon that watches directories for filesystem events and runs a shell
command template when a matching event occurs.

Features:
- Declarative JSON watch lists, reloaded on SIGUSR1 without touching
  unchanged watches
- Filename glob filters and ``$@``/``$#``/``$$`` command templates
- Deferred execution until a file stops growing (uploads, copies)
- Detached, fire-and-forget commands reaped without blocking
"""

__version__ = "0.3.1"

from .models import (
    EventMask,
    CheckState,
    WatchSpec,
    Rejection,
    RawEvent,
    PendingCheck,
    SupervisedChild,
)

from .config import DaemonConfig, get_config_root

from .exceptions import (
    ShellWatchError,
    ConfigError,
    WatchTableError,
    WatchAddError,
    WatchRemoveError,
    StartupError,
)

from .loader import parse_watch_entry, load_watch_specs
from .watch_table import WatchTable, WatchdogWatchTable, open_watch_table
from .watch_manager import WatchManager
from .stability import StabilityTracker
from .supervisor import ProcessSupervisor
from .dispatcher import Dispatch, EventDispatcher, render_command
from .daemon import DaemonLoop, LoopState, SignalFlags


__all__ = [
    # Models
    "EventMask",
    "CheckState",
    "WatchSpec",
    "Rejection",
    "RawEvent",
    "PendingCheck",
    "SupervisedChild",
    # Config
    "DaemonConfig",
    "get_config_root",
    "parse_watch_entry",
    "load_watch_specs",
    # Exceptions
    "ShellWatchError",
    "ConfigError",
    "WatchTableError",
    "WatchAddError",
    "WatchRemoveError",
    "StartupError",
    # Components
    "WatchTable",
    "WatchdogWatchTable",
    "open_watch_table",
    "WatchManager",
    "StabilityTracker",
    "ProcessSupervisor",
    "Dispatch",
    "EventDispatcher",
    "render_command",
    # Main loop
    "DaemonLoop",
    "LoopState",
    "SignalFlags",
]
