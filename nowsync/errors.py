"""Exceptions raised by the sync engine and its collaborators."""


class NowSyncError(Exception):
    """Base class for nowsync errors."""


class PlaybackError(NowSyncError):
    """The transport refused or failed to start playback.

    Non-fatal: the session stays in a recoverable (non-playing) state and
    nothing is retried automatically.
    """

    def __init__(self, message: str, source_id: str | None = None):
        super().__init__(message)
        self.source_id = source_id


class TransportError(NowSyncError):
    """The playback engine could not execute a command."""


class UnsupportedCommand(NowSyncError):
    """The now-playing surface cannot handle a remote command."""
