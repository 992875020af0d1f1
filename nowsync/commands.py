# nowsync
# SPDX-License-Identifier: GPL-3.0-or-later

"""
RemoteCommandRouter — now-playing surface commands → transport operations.

Surface command names and their details:

    play                        resume / start the loaded source
    pause                       pause
    seekto        {seek_time}   absolute seek, seconds
    seekbackward  {seek_offset} relative seek back (default skip_seconds)
    seekforward   {seek_offset} relative seek forward (default skip_seconds)
    stop                        pause and return to the start

play/pause only poke the transport.  The transport's own started/paused
events drive the state change and the surface push, so a command and its
event can never both push.  Seeks are tagged on the shadow clock first so
the engine can tell a requested seek-to-0 from a spurious reset.
"""

import logging

from .errors import PlaybackError
from .lib.transport import AudioTransport
from .scheduler import SyncScheduler
from .session import PlaybackSession, PlaybackState, finite
from .shadow_clock import ShadowClock

log = logging.getLogger(__name__)

SKIP_SECONDS = 15.0


class RemoteCommandRouter:

    def __init__(self, session: PlaybackSession, shadow: ShadowClock,
                 transport: AudioTransport, scheduler: SyncScheduler, *,
                 skip_seconds: float = SKIP_SECONDS):
        self.session = session
        self.shadow = shadow
        self.transport = transport
        self.scheduler = scheduler
        self.skip_seconds = skip_seconds

    # ── Commands ──

    async def play(self) -> bool:
        """Start or resume playback.

        Returns False when there is nothing to play or when the result
        belongs to a source that has since been replaced.  Raises
        PlaybackError when the transport refuses; nothing is retried.
        """
        session = self.session
        if not session.active:
            log.info("Play ignored — no active source")
            return False

        generation, source_id = session.generation, session.source_id
        try:
            await self.transport.play()
        except Exception as e:
            if not session.is_current(generation, source_id):
                log.debug("Ignoring play failure for superseded source %s", source_id)
                return False
            if session.state is PlaybackState.PLAYING:
                session.state = PlaybackState.PAUSED
                self.scheduler.transition("paused")
            log.warning("Playback failed for %s: %s", source_id, e)
            raise PlaybackError(f"Playback failed: {e}", source_id) from e

        if not session.is_current(generation, source_id):
            log.debug("Play resolved for superseded source %s", source_id)
            return False
        log.info("Playing %s", source_id)
        return True

    def pause(self) -> bool:
        if not self.session.active:
            log.info("Pause ignored — no active source")
            return False
        try:
            self.transport.pause()
        except Exception as e:
            log.error("Pause failed: %s", e)
            return False
        log.info("Paused")
        return True

    def seek_absolute(self, target) -> float | None:
        """Seek to *target* seconds (clamped). Returns the effective target."""
        target = finite(target)
        if target is None:
            log.warning("Seek ignored — invalid target")
            return None
        if not self.session.active:
            log.info("Seek ignored — no active source")
            return None

        target = self.session.clamp(target)
        self.shadow.record_seek(target)
        self.scheduler.seek_requested()
        try:
            self.transport.set_position(target)
        except Exception as e:
            log.error("Seek to %.3fs failed: %s", target, e)
            self.shadow.abandon_seek()
            return None
        log.info("Seek to %.3fs", target)
        return target

    def seek_relative(self, delta) -> float | None:
        """Seek by *delta* seconds from the authoritative position.

        While a seek is in flight its target is the base, so repeated
        skip presses accumulate instead of compounding a stale sample.
        """
        delta = finite(delta)
        if delta is None:
            log.warning("Relative seek ignored — invalid offset")
            return None
        session = self.session
        base = session.pending_seek if session.pending_seek is not None else session.position
        return self.seek_absolute(base + delta)

    def stop(self) -> bool:
        """Pause and rewind. The rewind is an explicit seek to 0."""
        if not self.pause():
            return False
        return self.seek_absolute(0.0) is not None

    # ── Surface registration ──

    def handlers(self) -> dict:
        """Surface command name → async handler(details)."""
        return {
            "play": self._handle_play,
            "pause": self._handle_pause,
            "seekto": self._handle_seekto,
            "seekbackward": self._handle_seekbackward,
            "seekforward": self._handle_seekforward,
            "stop": self._handle_stop,
        }

    def register(self, surface) -> list[str]:
        """Register every command with *surface*. Returns the ones accepted.

        A host that lacks a capability raises on registration; that command
        is skipped with a warning and the rest still register.
        """
        registered = []
        for name, handler in self.handlers().items():
            try:
                surface.on_command(name, handler)
            except Exception as e:
                log.warning("Could not register command %s: %s", name, e)
                continue
            registered.append(name)
        log.info("Registered surface commands: %s", ", ".join(registered) or "none")
        return registered

    # ── Handlers ──

    async def _handle_play(self, details: dict) -> bool:
        try:
            return await self.play()
        except PlaybackError as e:
            log.warning("Remote play failed: %s", e)
            return False

    async def _handle_pause(self, details: dict) -> bool:
        return self.pause()

    async def _handle_seekto(self, details: dict) -> bool:
        target = details.get("seek_time", details.get("seekTime"))
        return self.seek_absolute(target) is not None

    async def _handle_seekbackward(self, details: dict) -> bool:
        offset = self._offset(details)
        return offset is not None and self.seek_relative(-offset) is not None

    async def _handle_seekforward(self, details: dict) -> bool:
        offset = self._offset(details)
        return offset is not None and self.seek_relative(offset) is not None

    async def _handle_stop(self, details: dict) -> bool:
        return self.stop()

    def _offset(self, details: dict) -> float | None:
        raw = details.get("seek_offset", details.get("seekOffset"))
        if raw is None:
            return self.skip_seconds
        offset = finite(raw)
        if offset is None or offset < 0:
            log.warning("Ignoring invalid seek offset %r", raw)
            return None
        return offset
