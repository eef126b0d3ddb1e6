"""Spawning and reaping of detached command processes."""

import logging
import subprocess
from typing import Callable, List, Optional

from .models import SupervisedChild

logger = logging.getLogger(__name__)


class ProcessSupervisor:
    """
    Runs commands through a shell and collects their exit status.

    Children are never waited on synchronously and never terminated by
    the supervisor; they outlive the daemon if it stops first.
    """

    def __init__(
        self,
        shell: str = "bash",
        popen: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        """
        Initialize the supervisor.

        Args:
            shell: Command interpreter, invoked as ``shell -c command``
            popen: Process factory
        """
        self.shell = shell
        self._popen = popen
        self._children: List[SupervisedChild] = []

    def spawn(self, command: str) -> Optional[SupervisedChild]:
        """
        Launch a command with no inherited standard streams.

        Args:
            command: Command line handed to the shell as a single argument

        Returns:
            The registered child, or None if the launch failed
        """
        logger.info(f"CMD => {command}")

        try:
            process = self._popen(
                [self.shell, "-c", command],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except (OSError, ValueError) as e:
            logger.error(f"Unable to launch command: {e}")
            return None

        child = SupervisedChild(process=process, pid=process.pid, command=command)
        self._children.append(child)
        logger.info(f"Child {child.pid} spawned")
        return child

    def reap(self) -> List[SupervisedChild]:
        """
        Poll every child without blocking.

        Exited children and children whose status cannot be read are
        dropped; running ones are left untouched.

        Returns:
            The children that were dropped
        """
        finished = set()

        for index, child in enumerate(self._children):
            try:
                returncode = child.process.poll()
            except OSError as e:
                logger.error(f"Error while checking child {child.pid}: {e}")
                finished.add(index)
                continue

            if returncode is not None:
                logger.info(f"Child {child.pid} exited with {returncode}")
                finished.add(index)

        if not finished:
            return []

        reaped = [child for index, child in enumerate(self._children) if index in finished]
        self._children = [
            child for index, child in enumerate(self._children) if index not in finished
        ]
        return reaped

    def children(self) -> List[SupervisedChild]:
        """Children that have not been reaped yet."""
        return list(self._children)

    def __len__(self) -> int:
        return len(self._children)
