"""nowsync — keeps a now-playing surface truthfully in step with one audio stream."""

from .engine import SyncEngine
from .errors import NowSyncError, PlaybackError, TransportError, UnsupportedCommand
from .lib.artwork import TrackMetadata
from .lib.config import SyncSettings
from .session import PlaybackSession, PlaybackState

__version__ = "0.1.0"

__all__ = [
    "NowSyncError",
    "PlaybackError",
    "PlaybackSession",
    "PlaybackState",
    "SyncEngine",
    "SyncSettings",
    "TrackMetadata",
    "TransportError",
    "UnsupportedCommand",
]
