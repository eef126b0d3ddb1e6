"""Configuration for the shellwatch daemon."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

MAIN_CONFIG_NAME = "shellwatch.json"
CONFIG_DIR_NAME = "shellwatch"
BACKENDS = ("auto", "inotify", "watchdog")


def get_config_root(home: Optional[Path] = None) -> Path:
    """
    Return the directory holding shellwatch config files.

    Regular users keep their config in ``~/.config``; root, or a user
    without a resolvable home directory, uses ``/etc``.

    Args:
        home: Home directory to use instead of the current user's

    Returns:
        The config root directory
    """
    if home is None:
        try:
            home = Path.home()
        except (KeyError, RuntimeError):
            return Path("/etc")

    if str(home) in ("", "/root"):
        return Path("/etc")

    return home / ".config"


@dataclass
class DaemonConfig:
    """
    Configuration options for the daemon.

    Attributes:
        config_root: Directory searched for watch config files
        tick_ms: Event poll timeout, also the countdown decrement per tick
        shell: Command interpreter used to run rendered commands
        log_level: Logging level name
        log_file: Optional file receiving a copy of the log
        backend: Watch table backend, one of BACKENDS
    """
    config_root: Path = field(default_factory=get_config_root)
    tick_ms: int = 100
    shell: str = "bash"
    log_level: str = "INFO"
    log_file: Optional[Path] = None
    backend: str = "auto"

    def __post_init__(self):
        if self.tick_ms <= 0:
            raise ValueError(f"tick_ms must be positive: {self.tick_ms}")
        if self.backend not in BACKENDS:
            raise ValueError(f"backend must be one of {', '.join(BACKENDS)}: {self.backend}")

    @property
    def main_config_file(self) -> Path:
        """The single-file config location."""
        return self.config_root / MAIN_CONFIG_NAME

    @property
    def config_dir(self) -> Path:
        """Directory holding additional ``*.json`` config files."""
        return self.config_root / CONFIG_DIR_NAME

    @property
    def tick_seconds(self) -> float:
        return self.tick_ms / 1000.0

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "DaemonConfig":
        """
        Build a config from ``SHELLWATCH_*`` environment variables.

        A ``.env`` file is loaded first; variables already set in the
        environment take precedence over it.

        Args:
            env_file: Explicit .env file, defaults to searching from the cwd

        Returns:
            The resulting config
        """
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv(find_dotenv(usecwd=True))

        config = cls()

        config_root = os.environ.get("SHELLWATCH_CONFIG_ROOT")
        if config_root:
            config.config_root = Path(config_root)

        tick_ms = os.environ.get("SHELLWATCH_TICK_MS")
        if tick_ms:
            try:
                config.tick_ms = int(tick_ms)
            except ValueError:
                raise ValueError(f"SHELLWATCH_TICK_MS must be an integer: {tick_ms!r}")
            if config.tick_ms <= 0:
                raise ValueError(f"SHELLWATCH_TICK_MS must be positive: {tick_ms!r}")

        shell = os.environ.get("SHELLWATCH_SHELL")
        if shell:
            config.shell = shell

        log_level = os.environ.get("SHELLWATCH_LOG_LEVEL")
        if log_level:
            config.log_level = log_level.upper()

        log_file = os.environ.get("SHELLWATCH_LOG_FILE")
        if log_file:
            config.log_file = Path(log_file)

        backend = os.environ.get("SHELLWATCH_BACKEND")
        if backend:
            backend = backend.lower()
            if backend not in BACKENDS:
                raise ValueError(f"SHELLWATCH_BACKEND must be one of {', '.join(BACKENDS)}: {backend!r}")
            config.backend = backend

        return config
