"""PlaybackSession — the single mutable playback state owned by the engine."""

import enum
import math
from dataclasses import dataclass

from .lib.artwork import TrackMetadata


class PlaybackState(enum.Enum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    ENDED = "ended"

    @property
    def surface_state(self) -> str:
        """State as reported to the now-playing surface."""
        return "playing" if self is PlaybackState.PLAYING else "paused"


def finite(value) -> float | None:
    """Return *value* as a float if it is a finite number, else None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        value = float(value)
    except (TypeError, ValueError):
        return None
    return value if math.isfinite(value) else None


def known_duration(value) -> float | None:
    """Positive finite duration, or None for unknown/live/garbage values."""
    value = finite(value)
    if value is None or value <= 0:
        return None
    return value


@dataclass(frozen=True)
class PushedState:
    """Snapshot of what was last sent to the surface."""

    position: float | None
    duration: float | None
    rate: float
    state: str

    def matches(self, other: "PushedState | None", tolerance: float = 1e-3) -> bool:
        if other is None or self.state != other.state:
            return False
        return (_close(self.position, other.position, tolerance)
                and _close(self.duration, other.duration, tolerance)
                and _close(self.rate, other.rate, tolerance))


def _close(a, b, tolerance):
    if a is None or b is None:
        return a is b
    return abs(a - b) <= tolerance


@dataclass
class PlaybackSession:
    source_id: str | None = None
    duration: float | None = None
    position: float = 0.0
    rate: float = 1.0
    state: PlaybackState = PlaybackState.IDLE
    pending_seek: float | None = None
    seeks_in_flight: int = 0
    last_pushed: PushedState | None = None
    metadata: TrackMetadata | None = None
    generation: int = 0

    def reset(self, source_id: str | None = None, metadata: TrackMetadata | None = None):
        """Start over for a new source. Bumps the generation counter."""
        self.source_id = source_id
        self.duration = None
        self.position = 0.0
        self.rate = 1.0
        self.state = PlaybackState.LOADING if source_id else PlaybackState.IDLE
        self.pending_seek = None
        self.seeks_in_flight = 0
        self.last_pushed = None
        self.metadata = metadata
        self.generation += 1

    @property
    def active(self) -> bool:
        """True while a source is loaded and not finished."""
        return self.state not in (PlaybackState.IDLE, PlaybackState.ENDED)

    @property
    def reported_rate(self) -> float:
        """Rate for the surface: never zero or negative."""
        return self.rate if self.rate > 0 else 1.0

    def clamp(self, seconds: float) -> float:
        """Clamp *seconds* to [0, duration] (or >= 0 when duration is unknown)."""
        seconds = max(0.0, seconds)
        if self.duration is not None:
            seconds = min(seconds, self.duration)
        return seconds

    def is_current(self, generation: int, source_id: str | None) -> bool:
        """True if an async result started under (generation, source_id) still applies."""
        return generation == self.generation and source_id == self.source_id

    def snapshot(self) -> PushedState:
        return PushedState(
            position=self.position if self.duration is not None else None,
            duration=self.duration,
            rate=self.reported_rate,
            state=self.state.surface_state,
        )

    def as_dict(self) -> dict:
        return {
            "source": self.source_id,
            "state": self.state.value,
            "position": round(self.position, 3),
            "duration": self.duration,
            "rate": self.rate,
            "pending_seek": self.pending_seek,
        }
