"""
SyncScheduler — decides when the now-playing surface hears about the session.

Hosts build their own position prediction from (position, rate, timestamp)
and react badly to being updated too often, so steady-state samples are
throttled.  Discrete changes (play, pause, seek, rate, duration resolved)
are pushed immediately.  Seeks are debounced: a burst of seek requests
produces one push once the final target has been confirmed and has settled.

Timers:
    throttle window  — armed after every push; periodic samples that arrive
                       while it is armed are dropped (never queued)
    settle window    — armed when the transport confirms a seek; a newer seek
                       request cancels it

Both are cancelled by cancel(), which the engine calls on every source reset.
"""

import logging

from .lib.timers import Clock
from .session import PlaybackSession

log = logging.getLogger(__name__)


class SyncScheduler:

    def __init__(self, session: PlaybackSession, surface, clock: Clock, *,
                 min_interval_ms: float = 1000.0,
                 settle_window_ms: float = 15.0,
                 force_on_transition: bool = True,
                 tolerance: float = 1e-3):
        self.session = session
        self.surface = surface
        self.clock = clock
        self.min_interval = min_interval_ms / 1000.0
        self.settle_window = settle_window_ms / 1000.0
        self.force_on_transition = force_on_transition
        self.tolerance = tolerance
        self.push_count = 0
        self._window = None   # throttle window timer
        self._settle = None   # post-seek debounce timer

    # ── State ──

    @property
    def throttled(self) -> bool:
        return self._window is not None

    @property
    def settling(self) -> bool:
        return self._settle is not None

    # ── Push triggers ──

    def transition(self, reason: str) -> bool:
        """Discrete state change: push now, bypassing the throttle."""
        if not self.force_on_transition and self.throttled:
            log.debug("Transition %s throttled", reason)
            return False
        return self._push(reason)

    def sample(self) -> bool:
        """Ordinary position update during steady playback."""
        if self.session.pending_seek is not None or self.settling:
            return False
        if self.throttled:
            return False
        return self._push("sample")

    def seek_requested(self):
        """A new seek was issued; any scheduled post-seek push is stale."""
        if self._settle is not None:
            self._settle.cancel()
            self._settle = None

    def seek_confirmed(self):
        """The transport landed; push once nothing else arrives for a moment."""
        self.seek_requested()
        self._settle = self.clock.call_later(self.settle_window, self._on_settled)

    def cancel(self):
        """Drop every pending timer (source reset / shutdown)."""
        self.seek_requested()
        if self._window is not None:
            self._window.cancel()
            self._window = None

    # ── Timer callbacks ──

    def _on_settled(self):
        self._settle = None
        if self.session.pending_seek is not None:
            # A newer seek is in flight; its confirmation reschedules
            return
        self.transition("seeked")

    def _on_window_closed(self):
        self._window = None

    def _arm_window(self):
        if self._window is not None:
            self._window.cancel()
        self._window = self.clock.call_later(self.min_interval, self._on_window_closed)

    # ── Surface push ──

    def _push(self, reason: str) -> bool:
        snapshot = self.session.snapshot()
        if snapshot.matches(self.session.last_pushed, self.tolerance):
            log.debug("Push (%s) skipped — surface already up to date", reason)
            return False

        self._call("set_playback_state", snapshot.state)
        if snapshot.duration is not None:
            self._call("set_position_state",
                       duration=snapshot.duration,
                       position=snapshot.position,
                       rate=snapshot.rate)

        self.session.last_pushed = snapshot
        self.push_count += 1
        self._arm_window()
        log.debug("Pushed (%s): state=%s position=%s duration=%s rate=%s",
                  reason, snapshot.state, snapshot.position,
                  snapshot.duration, snapshot.rate)
        return True

    def _call(self, method: str, *args, **kwargs):
        """Invoke a surface method; a failing host never affects playback."""
        try:
            getattr(self.surface, method)(*args, **kwargs)
        except Exception as e:
            log.warning("Surface %s failed: %s", method, e)
