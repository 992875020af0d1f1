# nowsync
# SPDX-License-Identifier: GPL-3.0-or-later

"""
SyncEngine — keeps a now-playing surface in step with one audio stream.

Wiring:

    transport events ─► ShadowClock ─► SyncScheduler ─► surface
                             │
                             └─► ProgressEmitter ─► UI
    surface commands ─► RemoteCommandRouter ─► transport

Usage:
    engine = SyncEngine(transport, surface, on_progress=ui.update)
    engine.start()                                  # registers commands
    await engine.open(url, TrackMetadata.from_episode(title, show, cover))

The engine owns exactly one PlaybackSession.  Loading a new source resets
it in place and bumps its generation, so anything still in flight for the
previous source (a play() awaiting the transport, a scheduler timer) can
tell it has been superseded.
"""

import logging

from .commands import RemoteCommandRouter
from .lib.artwork import TrackMetadata
from .lib.config import SyncSettings
from .lib.timers import Clock, LoopClock
from .lib.transport import (
    AudioTransport,
    DurationResolved,
    Ended,
    Paused,
    PositionUpdated,
    RateChanged,
    Seeked,
    Started,
    TransportEvent,
)
from .progress import ProgressEmitter
from .scheduler import SyncScheduler
from .session import PlaybackSession, PlaybackState, finite, known_duration
from .shadow_clock import ShadowClock

log = logging.getLogger(__name__)


class SyncEngine:

    def __init__(self, transport: AudioTransport, surface, *,
                 clock: Clock | None = None,
                 settings: SyncSettings | None = None,
                 on_progress=None,
                 on_ended=None):
        settings = settings or SyncSettings()
        self.transport = transport
        self.surface = surface
        self.session = PlaybackSession()
        self.shadow = ShadowClock(
            self.session,
            epsilon=settings.spurious_epsilon,
            seek_tolerance=settings.seek_tolerance,
        )
        self.scheduler = SyncScheduler(
            self.session, surface, clock or LoopClock(),
            min_interval_ms=settings.min_interval_ms,
            settle_window_ms=settings.settle_window_ms,
            force_on_transition=settings.force_on_transition,
        )
        self.router = RemoteCommandRouter(
            self.session, self.shadow, transport, self.scheduler,
            skip_seconds=settings.skip_seconds,
        )
        self.progress = ProgressEmitter(on_progress)
        self.on_ended = on_ended
        transport.set_event_handler(self.handle_event)

    def start(self) -> list[str]:
        """Register remote commands with the surface. Never fails."""
        return self.router.register(self.surface)

    # ── Source lifecycle ──

    def load(self, url: str, metadata: TrackMetadata | None = None):
        """Make *url* the current source. Resets the session from any state."""
        if self.session.source_id is not None:
            log.info("Replacing %s (%s)", self.session.source_id,
                     self.session.state.value)
        self.scheduler.cancel()
        self.shadow.reset()
        self.session.reset(url, metadata)
        # Engines keep their speed across files
        rate = finite(self.transport.get_rate())
        if rate is not None and rate > 0:
            self.session.rate = rate

        if metadata is not None:
            try:
                self.surface.set_metadata(metadata)
            except Exception as e:
                log.warning("Surface set_metadata failed: %s", e)

        log.info("Loading %s", url)
        self.transport.load(url)

    async def play(self) -> bool:
        """Start playback of the loaded source (see RemoteCommandRouter.play)."""
        return await self.router.play()

    async def open(self, url: str, metadata: TrackMetadata | None = None) -> bool:
        self.load(url, metadata)
        return await self.play()

    async def toggle(self) -> bool:
        """Play if not playing, otherwise pause. Returns True when playback was requested."""
        if self.session.state is PlaybackState.PLAYING:
            self.router.pause()
            return False
        return await self.play()

    def seek_percent(self, pct) -> float | None:
        """Seek to *pct* percent of the track (progress bar drag).

        Ignored while the duration is unknown.
        """
        duration = self.session.duration
        pct = finite(pct)
        if duration is None or pct is None:
            log.debug("Percent seek ignored (duration=%s, pct=%r)", duration, pct)
            return None
        return self.router.seek_absolute(pct / 100.0 * duration)

    def close(self):
        """Drop the current source and every pending timer."""
        self.scheduler.cancel()
        self.shadow.reset()
        self.session.reset(None)

    # ── Transport events ──

    def handle_event(self, event: TransportEvent):
        session = self.session
        if not session.active:
            log.debug("Ignoring %s — session is %s", event, session.state.value)
            return

        if isinstance(event, PositionUpdated):
            self._on_position(event)
        elif isinstance(event, Started):
            self._set_state(PlaybackState.PLAYING, "started")
        elif isinstance(event, Paused):
            if session.state is PlaybackState.LOADING:
                # Engines that load paused report it before play() resolves
                return
            self._set_state(PlaybackState.PAUSED, "paused")
        elif isinstance(event, Seeked):
            self._on_seeked(event)
        elif isinstance(event, RateChanged):
            self._on_rate(event)
        elif isinstance(event, DurationResolved):
            self._on_duration(event.duration)
        elif isinstance(event, Ended):
            self._on_ended()
        else:
            log.debug("Unhandled transport event %s", event)

    def _set_state(self, state: PlaybackState, reason: str):
        if self.session.state is state:
            return
        log.info("State %s -> %s", self.session.state.value, state.value)
        self.session.state = state
        self.scheduler.transition(reason)

    def _on_position(self, event: PositionUpdated):
        session = self.session
        had_duration = session.duration is not None
        shadow = self.shadow
        shadow.observe(event.position, event.duration,
                       session.state is PlaybackState.PLAYING)
        # Re-arming can complete synchronously and overwrite the outcome
        accepted, confirmed, rearm = (shadow.accepted, shadow.seek_confirmed,
                                      shadow.rearm_target)

        if rearm is not None:
            self._rearm(rearm)
        if accepted:
            self.progress.emit(session.position, session.duration)

        if not had_duration and session.duration is not None:
            log.info("Duration resolved: %.3fs", session.duration)
            self.scheduler.transition("duration")
        elif confirmed:
            self.scheduler.seek_confirmed()
        elif accepted:
            self.scheduler.sample()

    def _on_seeked(self, event: Seeked):
        if not self.shadow.confirm_seek(event.position):
            return
        self.progress.emit(self.session.position, self.session.duration)
        if self.shadow.seek_confirmed:
            self.scheduler.seek_confirmed()

    def _on_rate(self, event: RateChanged):
        rate = finite(event.rate)
        if rate is None or rate <= 0:
            log.debug("Ignoring rate %r", event.rate)
            return
        self.session.rate = rate
        # Position is left alone; the push reuses the authoritative value
        self.scheduler.transition("rate")

    def _on_duration(self, raw):
        duration = known_duration(raw)
        if duration is None:
            log.debug("Duration still unknown (%r)", raw)
            return
        first = self.session.duration is None
        self.session.duration = duration
        self.session.position = self.session.clamp(self.session.position)
        if first:
            log.info("Duration resolved: %.3fs", duration)
            self.scheduler.transition("duration")

    def _on_ended(self):
        session = self.session
        if session.duration is not None:
            session.position = session.duration
        session.pending_seek = None
        self.scheduler.cancel()
        log.info("Ended %s", session.source_id)
        session.state = PlaybackState.ENDED
        self.scheduler.transition("ended")
        if self.on_ended is not None:
            try:
                self.on_ended()
            except Exception:
                log.exception("Ended callback failed")

    def _rearm(self, position: float):
        """Put a transport that spuriously jumped to 0 back where it was."""
        log.info("Spurious reset — re-arming transport at %.3fs", position)
        self.shadow.record_rearm()
        try:
            self.transport.set_position(position)
        except Exception as e:
            log.warning("Re-arm failed: %s", e)
            self.shadow.abandon_seek()

    def status(self) -> dict:
        status = self.session.as_dict()
        status["pushes"] = self.scheduler.push_count
        return status
