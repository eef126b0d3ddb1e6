"""Shared fakes for shellwatch tests."""

import itertools
from typing import List, Optional

import pytest

from shellwatch.exceptions import WatchAddError, WatchRemoveError
from shellwatch.models import EventMask, RawEvent, WatchSpec
from shellwatch.supervisor import ProcessSupervisor
from shellwatch.watch_table import WatchTable


class RecordingWatchTable(WatchTable):
    """In-memory watch table recording every add/remove call in order."""

    def __init__(self):
        self.calls: List[tuple] = []
        self.installed = {}
        self.pending_events: List[RawEvent] = []
        self.read_timeouts: List[float] = []
        self.fail_add_paths = set()
        self.fail_remove_handles = set()
        self.closed = False
        self._handles = itertools.count(1)

    def add(self, spec: WatchSpec) -> int:
        if spec.path in self.fail_add_paths:
            self.calls.append(("add", spec, None))
            raise WatchAddError(f"cannot watch {spec.path}")
        handle = next(self._handles)
        self.calls.append(("add", spec, handle))
        self.installed[handle] = spec
        return handle

    def remove(self, handle: int) -> None:
        self.calls.append(("remove", handle))
        if handle in self.fail_remove_handles:
            raise WatchRemoveError(f"cannot remove {handle}")
        self.installed.pop(handle)

    def read_events(self, timeout: float) -> List[RawEvent]:
        self.read_timeouts.append(timeout)
        events, self.pending_events = self.pending_events, []
        return events

    def close(self) -> None:
        self.closed = True

    def handle_of(self, spec: WatchSpec) -> Optional[int]:
        for handle, installed in self.installed.items():
            if installed == spec:
                return handle
        return None


class FakeProcess:
    """Stand-in for subprocess.Popen with a scripted status."""

    def __init__(self, pid: int):
        self.pid = pid
        self.returncode = None
        self.poll_error = None
        self.poll_count = 0
        self.killed = False

    def poll(self):
        self.poll_count += 1
        if self.poll_error is not None:
            raise self.poll_error
        return self.returncode

    def kill(self):
        self.killed = True


class FakePopen:
    """Process factory recording how commands are launched."""

    def __init__(self):
        self.launches: List[tuple] = []
        self.processes: List[FakeProcess] = []
        self.error: Optional[Exception] = None
        self._pids = itertools.count(1000)

    def __call__(self, args, **kwargs):
        if self.error is not None:
            raise self.error
        self.launches.append((args, kwargs))
        process = FakeProcess(next(self._pids))
        self.processes.append(process)
        return process

    @property
    def commands(self) -> List[str]:
        return [args[-1] for args, _ in self.launches]


@pytest.fixture
def watch_table():
    return RecordingWatchTable()


@pytest.fixture
def fake_popen():
    return FakePopen()


@pytest.fixture
def supervisor(fake_popen):
    return ProcessSupervisor(shell="bash", popen=fake_popen)


@pytest.fixture
def make_spec():
    def _make_spec(
        path: str = "/tmp/in",
        mask: EventMask = EventMask.CLOSE_WRITE,
        command: str = "echo $@/$#",
        file_match: str = "",
        interval: int = 0,
    ) -> WatchSpec:
        return WatchSpec(
            path=path,
            event_mask=mask,
            command_template=command,
            file_match=file_match,
            stabilization_interval=interval,
        )
    return _make_spec
