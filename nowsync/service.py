#!/usr/bin/env python3
"""
nowsync service — play one stream through mpv and serve a now-playing surface.

    python -m nowsync https://example.com/episode.mp3 \\
        --title "Episode 12" --artist "Some Show" --artwork https://.../cover.jpg

The surface listens on port 8766 (surface.port in config):
  GET  /ws                  — media_update push feed
  POST /player/play|pause|seekto|seekbackward|seekforward|stop
  GET  /player/state        — current media data
  GET  /status              — engine/session status
"""

import argparse
import asyncio
import logging
import os
import signal

from aiohttp import web

from .engine import SyncEngine
from .errors import NowSyncError, PlaybackError
from .lib.artwork import TrackMetadata
from .lib.config import KNOWN_COMMANDS, SyncSettings, cfg, reload_config
from .players.mpv import MpvTransport
from .surface import WebSocketSurface

logger = logging.getLogger("nowsync")


class StatusSurface(WebSocketSurface):
    """WebSocketSurface plus a /status route reporting engine state."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.engine: SyncEngine | None = None

    def make_app(self) -> web.Application:
        app = super().make_app()
        app.router.add_get("/status", self._handle_status)
        return app

    async def _handle_status(self, request: web.Request) -> web.Response:
        status = self.engine.status() if self.engine else {}
        return web.json_response(status, headers=self._cors_headers())


class NowSyncService:
    """Owns transport, surface and engine for one process."""

    def __init__(self, port: int | None = None, mpv_path: str | None = None):
        self.transport = MpvTransport(
            mpv_path=mpv_path or cfg("mpv", "path", default="mpv"),
            socket_path=cfg("mpv", "socket"),
        )
        self.surface = StatusSurface(
            port or int(cfg("surface", "port", default=8766)),
            commands=cfg("surface", "commands", default=KNOWN_COMMANDS),
            inline_artwork=bool(cfg("surface", "inline_artwork", default=False)),
        )
        self.engine = SyncEngine(
            self.transport, self.surface,
            settings=SyncSettings.from_config(),
            on_progress=self._log_progress,
        )
        self.surface.engine = self.engine

    @staticmethod
    def _log_progress(pct, current, duration):
        logger.debug("Progress %5.1f%% %s / %s", pct, current, duration)

    async def start(self):
        await self.transport.start()
        await self.surface.start()
        self.engine.start()

    async def shutdown(self):
        self.engine.close()
        await self.surface.shutdown()
        await self.transport.stop()

    async def run(self, url: str, metadata: TrackMetadata):
        """Convenience entry-point: start + play + wait for signal or end + stop."""
        await self.start()
        stop_event = asyncio.Event()
        self.engine.on_ended = stop_event.set
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            try:
                await self.engine.open(url, metadata)
            except PlaybackError as e:
                logger.error("%s — use the surface's play command to retry", e)
            await stop_event.wait()
        finally:
            await self.shutdown()


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="nowsync",
        description="Play a remote audio stream and keep a now-playing surface in sync.")
    parser.add_argument("url", help="Stream URL to play")
    parser.add_argument("--title", default="", help="Track / episode title")
    parser.add_argument("--artist", default="", help="Artist / show name")
    parser.add_argument("--artwork", default=None, help="Cover image URL")
    parser.add_argument("--port", type=int, default=None, help="Surface HTTP port")
    parser.add_argument("--config", default=None, help="Path to config.json")
    parser.add_argument("--mpv", default=None, help="mpv executable")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    if args.config:
        os.environ["NOWSYNC_CONFIG"] = args.config
        reload_config()

    service = NowSyncService(port=args.port, mpv_path=args.mpv)
    metadata = TrackMetadata.from_episode(args.title, args.artist, args.artwork)
    try:
        asyncio.run(service.run(args.url, metadata))
    except NowSyncError as e:
        logger.error("%s", e)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
