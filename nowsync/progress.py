"""ProgressEmitter — percent and time labels for the UI progress bar."""

import logging
import math

log = logging.getLogger(__name__)

UNKNOWN_CURRENT = "0:00"
UNKNOWN_DURATION = "--:--"


def _finite(value) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)


def format_time(seconds, total=None) -> str:
    """Format *seconds* as M:SS, or H:MM:SS when the track is an hour or longer.

    The layout is picked from *total* so current and duration labels of one
    track line up.
    """
    if not _finite(seconds) or seconds < 0:
        return UNKNOWN_CURRENT
    secs = int(seconds)
    reference = total if _finite(total) else seconds
    if reference >= 3600:
        h = secs // 3600
        m = (secs % 3600) // 60
        s = secs % 60
        return f"{h}:{m:02d}:{s:02d}"
    return f"{secs // 60}:{secs % 60:02d}"


def percent(position, duration) -> float:
    if not (_finite(position) and _finite(duration)) or duration <= 0:
        return 0.0
    return max(0.0, min(100.0, position / duration * 100.0))


class ProgressEmitter:
    """Calls ``on_progress(percent, current_label, duration_label)``.

    Invoked for every accepted transport sample; it is not throttled.
    """

    def __init__(self, on_progress=None):
        self.on_progress = on_progress

    def emit(self, position, duration):
        if self.on_progress is None:
            return
        if _finite(duration) and duration > 0:
            duration_label = format_time(duration, duration)
        else:
            duration_label = UNKNOWN_DURATION
        try:
            self.on_progress(percent(position, duration),
                             format_time(position, duration),
                             duration_label)
        except Exception:
            log.exception("Progress callback failed")
