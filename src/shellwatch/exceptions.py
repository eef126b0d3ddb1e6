"""Custom exceptions for the shellwatch package."""


class ShellWatchError(Exception):
    """Base exception for all shellwatch errors."""
    pass


class ConfigError(ShellWatchError):
    """A config file could not be read or is not a list of watch entries."""
    pass


class WatchTableError(ShellWatchError):
    """Error related to the OS watch table."""
    pass


class WatchAddError(WatchTableError):
    """A watch could not be installed."""
    pass


class WatchRemoveError(WatchTableError):
    """A watch could not be removed."""
    pass


class StartupError(ShellWatchError):
    """The filesystem watch subsystem could not be initialized."""
    pass
