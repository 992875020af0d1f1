"""
Transport abstraction between the sync engine and the native playback engine.

The engine never touches decoding or output devices.  It drives playback
through this small interface and listens to the lifecycle events the
concrete transport emits.

Usage:
    transport = MpvTransport()
    transport.set_event_handler(engine.handle_event)
    await transport.start()
    transport.load("https://example.com/episode.mp3")
    await transport.play()
    await transport.stop()
"""

import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransportEvent:
    """Base type for transport-originated events."""


@dataclass(frozen=True)
class PositionUpdated(TransportEvent):
    """Raw position sample, seconds.  Either value may be None/NaN."""

    position: float | None
    duration: float | None = None


@dataclass(frozen=True)
class Started(TransportEvent):
    pass


@dataclass(frozen=True)
class Paused(TransportEvent):
    pass


@dataclass(frozen=True)
class Seeked(TransportEvent):
    """A seek finished; *position* is where the engine actually landed."""

    position: float | None


@dataclass(frozen=True)
class RateChanged(TransportEvent):
    rate: float


@dataclass(frozen=True)
class DurationResolved(TransportEvent):
    duration: float | None


@dataclass(frozen=True)
class Ended(TransportEvent):
    pass


class AudioTransport:
    """Thin wrapper around a native playback engine.

    Subclass contract:

        class MyTransport(AudioTransport):
            def load(self, url): ...
            async def play(self): ...       # raise on failure
            def pause(self): ...
            def get_position(self) -> float | None: ...
            def get_duration(self) -> float | None: ...
            def set_position(self, seconds): ...
            def get_rate(self) -> float: ...
            def set_rate(self, rate): ...

    Subclasses report lifecycle changes by calling ``self.emit(event)``.
    """

    def __init__(self):
        self._event_handler = None

    def set_event_handler(self, callback):
        """Register the callback for transport events.

        Callback signature: def handler(event: TransportEvent) -> None
        """
        self._event_handler = callback

    def emit(self, event: TransportEvent):
        """Deliver *event* to the registered handler.

        Handler failures are logged and swallowed so a bug on the engine side
        never tears down the transport's reader loop.
        """
        if self._event_handler is None:
            logger.debug("No event handler, dropping %s", event)
            return
        try:
            self._event_handler(event)
        except Exception:
            logger.exception("Transport event handler failed for %s", event)

    # ── Lifecycle ──

    async def start(self):
        """Bring up the underlying engine."""

    async def stop(self):
        """Tear down the underlying engine."""

    # ── Playback operations ──

    def load(self, url: str):
        raise NotImplementedError

    async def play(self):
        raise NotImplementedError

    def pause(self):
        raise NotImplementedError

    def get_position(self) -> float | None:
        raise NotImplementedError

    def get_duration(self) -> float | None:
        raise NotImplementedError

    def set_position(self, seconds: float):
        raise NotImplementedError

    def get_rate(self) -> float:
        raise NotImplementedError

    def set_rate(self, rate: float):
        raise NotImplementedError
