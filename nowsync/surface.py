# nowsync
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Now-playing surfaces.

A surface is whatever the host shows as "now playing" (lock screen tile,
desktop media widget, a remote UI).  The engine pushes metadata, playback
state and position state to it, and the surface calls back with user
commands.

Surface contract:

    class MySurface(NowPlayingSurface):
        def set_metadata(self, metadata): ...
        def set_playback_state(self, state): ...          # "playing" | "paused"
        def set_position_state(self, *, duration, position, rate): ...
        def on_command(self, name, handler): ...          # raise if unsupported

Any of these may raise; the engine logs and carries on.

WebSocketSurface is the built-in implementation: an aiohttp server that
pushes media_update messages over a WebSocket feed and accepts commands as
HTTP POSTs:

    GET  /ws                    — media_update push feed
    POST /player/{command}      — play, pause, seekto, seekbackward, ...
    GET  /player/state          — current media data
"""

import asyncio
import logging
import math
import time

import aiohttp
from aiohttp import web

from .errors import UnsupportedCommand
from .lib.artwork import ArtworkCache, TrackMetadata, fetch_artwork
from .lib.config import KNOWN_COMMANDS

log = logging.getLogger(__name__)

PLAYBACK_STATES = ("none", "playing", "paused")


class NowPlayingSurface:
    """Base class; every operation is unsupported until overridden."""

    def set_metadata(self, metadata: TrackMetadata):
        raise NotImplementedError

    def set_playback_state(self, state: str):
        raise NotImplementedError

    def set_position_state(self, *, duration: float, position: float, rate: float):
        raise NotImplementedError

    def on_command(self, name: str, handler):
        raise UnsupportedCommand(name)


def _check_position_state(duration, position, rate):
    if not (isinstance(duration, (int, float)) and math.isfinite(duration) and duration > 0):
        raise ValueError(f"invalid duration {duration!r}")
    if not (isinstance(position, (int, float)) and 0 <= position <= duration):
        raise ValueError(f"position {position!r} outside [0, {duration}]")
    if not (isinstance(rate, (int, float)) and math.isfinite(rate) and rate != 0):
        raise ValueError(f"invalid rate {rate!r}")


class WebSocketSurface(NowPlayingSurface):
    """Now-playing surface served over aiohttp (WebSocket push + HTTP commands)."""

    def __init__(self, port: int = 8766, *, host: str = "0.0.0.0",
                 commands=KNOWN_COMMANDS, inline_artwork: bool = False):
        self.host = host
        self.port = port
        self.commands = tuple(commands)
        self.inline_artwork = inline_artwork
        self._handlers: dict = {}
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._tasks: set[asyncio.Task] = set()
        self._runner: web.AppRunner | None = None
        self._http_session: aiohttp.ClientSession | None = None
        self._artwork_cache = ArtworkCache()
        self._media: dict = {
            "metadata": None,
            "artwork": None,
            "playback_state": "none",
            "position_state": None,
        }

    @property
    def media(self) -> dict:
        return self._media

    # ── NowPlayingSurface ──

    def set_metadata(self, metadata: TrackMetadata):
        self._media["metadata"] = metadata.to_dict()
        self._media["artwork"] = None
        self._media["position_state"] = None
        self._publish("metadata")

        url = metadata.artwork_url
        if self.inline_artwork and url and self._http_session is not None:
            self._spawn(self._inline_artwork(url))

    def set_playback_state(self, state: str):
        if state not in PLAYBACK_STATES:
            raise ValueError(f"invalid playback state {state!r}")
        self._media["playback_state"] = state
        self._publish("playback_state")

    def set_position_state(self, *, duration: float, position: float, rate: float):
        _check_position_state(duration, position, rate)
        self._media["position_state"] = {
            "duration": duration,
            "position": position,
            "rate": rate,
            # Clients extrapolate from here
            "updated_at": time.time(),
        }
        self._publish("position_state")

    def on_command(self, name: str, handler):
        if name not in self.commands:
            raise UnsupportedCommand(f"{name} is not enabled on this surface")
        self._handlers[name] = handler

    # ── Broadcasting ──

    def _publish(self, reason: str):
        if not self._ws_clients:
            return
        self._spawn(self.broadcast_media_update(reason))

    def _spawn(self, coro):
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def broadcast_media_update(self, reason: str = "update"):
        """Push a media_update to all connected WebSocket clients."""
        if not self._ws_clients:
            return

        message = {"type": "media_update", "reason": reason, "data": self._media}
        disconnected = set()
        for ws in self._ws_clients:
            try:
                await ws.send_json(message)
            except Exception:
                disconnected.add(ws)

        self._ws_clients -= disconnected
        log.debug("Broadcast media update to %d clients: %s",
                  len(self._ws_clients), reason)

    async def _inline_artwork(self, url: str):
        result = await fetch_artwork(self._http_session, url, self._artwork_cache)
        metadata = self._media.get("metadata") or {}
        artwork = metadata.get("artwork") or []
        if not result or not artwork or artwork[-1]["src"] != url:
            return
        self._media["artwork"] = f"data:image/jpeg;base64,{result['base64']}"
        await self.broadcast_media_update("artwork")

    # ── HTTP + WebSocket server ──

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/ws", self._handle_ws)
        app.router.add_post("/player/{command}", self._handle_command)
        app.router.add_options("/player/{command}", self._handle_cors)
        app.router.add_get("/player/state", self._handle_state)
        return app

    async def start(self):
        """Start listening on host:port."""
        self._http_session = aiohttp.ClientSession()
        self._runner = web.AppRunner(self.make_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        log.info("Now-playing surface: HTTP + WebSocket on port %d", self.port)

    async def shutdown(self):
        """Clean up resources."""
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        if self._http_session:
            await self._http_session.close()
            self._http_session = None

        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    # ── Route handlers ──

    def _cors_headers(self):
        return {
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        }

    async def _handle_cors(self, request: web.Request) -> web.Response:
        return web.Response(headers=self._cors_headers())

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)

        self._ws_clients.add(ws)
        log.info("WebSocket client connected (%d total)", len(self._ws_clients))

        try:
            await ws.send_json({
                "type": "media_update",
                "reason": "client_connect",
                "data": self._media,
            })
            # Push-only feed — incoming messages are ignored
            async for msg in ws:
                pass
        finally:
            self._ws_clients.discard(ws)
            log.info("WebSocket client disconnected (%d remaining)",
                     len(self._ws_clients))

        return ws

    async def _handle_command(self, request: web.Request) -> web.Response:
        name = request.match_info["command"]
        handler = self._handlers.get(name)
        if handler is None:
            return web.json_response(
                {"status": "error", "message": f"Unsupported command: {name}"},
                status=404,
                headers=self._cors_headers(),
            )
        try:
            details = await request.json()
        except Exception:
            details = {}
        if not isinstance(details, dict):
            details = {}

        try:
            ok = await handler(details)
        except Exception as e:
            log.exception("Command %s failed", name)
            return web.json_response(
                {"status": "error", "message": str(e)},
                status=500,
                headers=self._cors_headers(),
            )
        return web.json_response(
            {"status": "ok" if ok else "error", "command": name},
            headers=self._cors_headers())

    async def _handle_state(self, request: web.Request) -> web.Response:
        return web.json_response(self._media, headers=self._cors_headers())
