"""
ShadowClock — authoritative playback position tracker.

Transport position reports are noisy: some engines (and the hosts that
predict position from them) occasionally report 0 mid-track, or jitter
backwards.  The shadow clock keeps the engine's own trusted estimate and
decides, per sample, whether the transport is telling the truth.

The one rule that matters: a raw 0 is only believed if somebody asked for
it.  Seeks are intent-tagged with record_seek(); a 0 that arrives while a
seek-to-0 is pending is genuine, any other 0 during playback is spurious.

After each observe() call the outcome is available on the instance:
    accepted        — sample adopted as the new authoritative position
    rearm_target    — transport should be set back to this position (or None)
    seek_confirmed  — this sample completed a pending seek
"""

import logging

from .session import PlaybackSession, finite, known_duration

log = logging.getLogger(__name__)

SPURIOUS_EPSILON = 0.5  # seconds
SEEK_TOLERANCE = 0.5    # seconds


class ShadowClock:

    def __init__(self, session: PlaybackSession, *,
                 epsilon: float = SPURIOUS_EPSILON,
                 seek_tolerance: float = SEEK_TOLERANCE):
        self.session = session
        self.epsilon = epsilon
        self.seek_tolerance = seek_tolerance
        self._clear_outcome()

    def _clear_outcome(self):
        self.accepted = False
        self.rearm_target: float | None = None
        self.seek_confirmed = False

    @property
    def position(self) -> float:
        return self.session.position

    @property
    def seek_pending(self) -> bool:
        return self.session.pending_seek is not None

    def observe(self, raw_position, raw_duration=None, is_playing: bool = False) -> float:
        """Feed one transport sample, return the corrected position."""
        self._clear_outcome()
        session = self.session

        duration = known_duration(raw_duration)
        if duration is not None:
            session.duration = duration

        raw = finite(raw_position)
        if raw is None or raw < 0:
            log.debug("Ignoring invalid position sample %r", raw_position)
            return session.position

        if session.pending_seek is not None:
            # Far from the target means the transport is still reporting
            # where it was before the seek
            if abs(raw - session.pending_seek) <= self.seek_tolerance:
                self._adopt_seek(raw)
            return session.position

        if raw == 0 and session.position > self.epsilon and is_playing:
            log.debug("Spurious reset to 0 at %.3fs — holding position", session.position)
            self.rearm_target = session.position
            return session.position

        if is_playing and raw < session.position:
            return session.position

        session.position = session.clamp(raw)
        self.accepted = True
        return session.position

    def record_seek(self, target: float):
        """Tag an intended seek. The latest target wins."""
        self.session.pending_seek = target
        self.session.seeks_in_flight += 1

    def record_rearm(self):
        """The engine is putting the transport back after a spurious reset.

        The resulting seek completion is expected and must not count as a
        user seek.
        """
        self.session.seeks_in_flight += 1

    def abandon_seek(self):
        """The transport rejected the last seek request."""
        self.session.seeks_in_flight = max(0, self.session.seeks_in_flight - 1)
        if self.session.seeks_in_flight == 0:
            self.session.pending_seek = None

    def confirm_seek(self, raw_position) -> bool:
        """The transport reports a finished seek. Returns True if adopted.

        Completions for targets that were superseded by a later request are
        ignored unless they belong to the last outstanding request.  A seek
        nobody asked for (e.g. made on the engine's own UI) is adopted as is.

        Transports complete seeks in order and may merge a queued burst into
        one completion, so landing on the latest target settles every
        outstanding request.
        """
        self._clear_outcome()
        session = self.session
        own = session.seeks_in_flight > 0
        if own:
            session.seeks_in_flight -= 1

        raw = finite(raw_position)
        if raw is None or raw < 0:
            log.debug("Ignoring invalid seek completion %r", raw_position)
            return False

        if session.pending_seek is None:
            if not own:
                session.position = session.clamp(raw)
                self.accepted = True
                self.seek_confirmed = True
                return True
            if abs(raw - session.position) <= self.seek_tolerance:
                # Late completion of a target a sample already confirmed
                session.seeks_in_flight = 0
                session.position = session.clamp(raw)
                self.accepted = True
                return True
            if session.seeks_in_flight > 0:
                log.debug("Stale seek completion at %.3fs", raw)
                return False
            session.position = session.clamp(raw)
            self.accepted = True
            self.seek_confirmed = True
            return True

        if (abs(raw - session.pending_seek) <= self.seek_tolerance
                or session.seeks_in_flight == 0):
            session.seeks_in_flight = 0
            self._adopt_seek(raw)
            return True
        log.debug("Stale seek completion at %.3fs (pending %.3fs)",
                  raw, session.pending_seek)
        return False

    def _adopt_seek(self, raw: float):
        session = self.session
        session.position = session.clamp(raw)
        session.pending_seek = None
        self.accepted = True
        self.seek_confirmed = True

    def reset(self):
        """Forget everything; the session is starting over."""
        self.session.position = 0.0
        self.session.pending_seek = None
        self.session.seeks_in_flight = 0
        self._clear_outcome()
