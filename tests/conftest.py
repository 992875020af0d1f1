"""Shared fakes: a scriptable transport and a surface that records calls."""

import asyncio

import pytest

from nowsync.engine import SyncEngine
from nowsync.errors import UnsupportedCommand
from nowsync.lib.config import SyncSettings
from nowsync.lib.timers import ManualClock
from nowsync.lib.transport import AudioTransport, Seeked


def run(coro):
    """Run an async scenario from a sync test function."""
    return asyncio.run(coro)


class FakeTransport(AudioTransport):
    """In-memory transport.

    auto_seek: emit Seeked synchronously from set_position (the common case
    for engines that confirm seeks immediately).
    hold_play: play() blocks until release_play()/fail_play() is called.
    """

    def __init__(self, auto_seek=True, hold_play=False):
        super().__init__()
        self.auto_seek = auto_seek
        self.hold_play = hold_play
        self.play_error: Exception | None = None
        self.calls: list[tuple] = []
        self.position: float | None = None
        self.duration: float | None = None
        self.rate = 1.0
        self._play_waiters: list[asyncio.Future] = []

    def load(self, url):
        self.calls.append(("load", url))

    async def play(self):
        self.calls.append(("play",))
        if self.hold_play:
            waiter = asyncio.get_running_loop().create_future()
            self._play_waiters.append(waiter)
            await waiter
        if self.play_error is not None:
            raise self.play_error

    def release_play(self, index=0, error: Exception | None = None):
        waiter = self._play_waiters[index]
        if error is not None:
            waiter.set_exception(error)
        else:
            waiter.set_result(None)

    @property
    def waiting_plays(self) -> int:
        return sum(1 for w in self._play_waiters if not w.done())

    def pause(self):
        self.calls.append(("pause",))

    def get_position(self):
        return self.position

    def get_duration(self):
        return self.duration

    def set_position(self, seconds):
        self.calls.append(("set_position", seconds))
        self.position = seconds
        if self.auto_seek:
            self.emit(Seeked(seconds))

    def get_rate(self):
        return self.rate

    def set_rate(self, rate):
        self.calls.append(("set_rate", rate))
        self.rate = rate

    def seeks(self) -> list[float]:
        return [c[1] for c in self.calls if c[0] == "set_position"]


class RecordingSurface:
    """Now-playing surface that remembers everything pushed to it."""

    def __init__(self, unsupported=(), failing=()):
        self.unsupported = set(unsupported)
        self.failing = set(failing)
        self.calls: list[tuple] = []
        self.handlers: dict = {}

    def _record(self, method, *payload):
        if method in self.failing:
            raise RuntimeError(f"{method} blew up")
        self.calls.append((method, *payload))

    def set_metadata(self, metadata):
        self._record("set_metadata", metadata)

    def set_playback_state(self, state):
        self._record("set_playback_state", state)

    def set_position_state(self, *, duration, position, rate):
        self._record("set_position_state",
                     {"duration": duration, "position": position, "rate": rate})

    def on_command(self, name, handler):
        if name in self.unsupported:
            raise UnsupportedCommand(name)
        self.handlers[name] = handler

    @property
    def states(self) -> list[str]:
        return [c[1] for c in self.calls if c[0] == "set_playback_state"]

    @property
    def positions(self) -> list[dict]:
        return [c[1] for c in self.calls if c[0] == "set_position_state"]

    def clear(self):
        self.calls.clear()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def settings():
    return SyncSettings(min_interval_ms=1000, settle_window_ms=15)


@pytest.fixture
def engine(transport, surface, clock, settings):
    progress = []
    eng = SyncEngine(transport, surface, clock=clock, settings=settings,
                     on_progress=lambda *args: progress.append(args))
    eng.progress_calls = progress
    eng.start()
    return eng
