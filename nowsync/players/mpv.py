"""
mpv-backed AudioTransport (JSON IPC).

Runs one long-lived ``mpv --idle`` process and talks to it over its
``--input-ipc-server`` socket.  Commands are newline-delimited JSON with a
request_id; replies and events arrive on the same stream.

mpv → transport events:
  property time-pos     — PositionUpdated
  property duration     — DurationResolved
  property pause        — Started / Paused (only once a file is loaded)
  property speed        — RateChanged
  seek + playback-restart — Seeked
  end-file reason=eof   — Ended
"""

import asyncio
import json
import logging
import os
import tempfile

from ..errors import TransportError
from ..lib.transport import (
    AudioTransport,
    DurationResolved,
    Ended,
    Paused,
    PositionUpdated,
    RateChanged,
    Seeked,
    Started,
)

logger = logging.getLogger(__name__)

OBSERVED_PROPERTIES = ("time-pos", "duration", "pause", "speed")
CONNECT_TIMEOUT = 5.0   # seconds to wait for the IPC socket to appear
COMMAND_TIMEOUT = 10.0  # seconds to wait for a command reply


class MpvTransport(AudioTransport):
    """Drives an mpv subprocess as the native playback engine."""

    def __init__(self, mpv_path: str = "mpv", socket_path: str | None = None,
                 extra_args=()):
        super().__init__()
        self.mpv_path = mpv_path
        self.socket_path = socket_path or os.path.join(
            tempfile.gettempdir(), f"nowsync-mpv-{os.getpid()}.sock")
        self.extra_args = list(extra_args)

        self._process: asyncio.subprocess.Process | None = None
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None
        self._reader_task: asyncio.Task | None = None
        self._pending: dict[int, asyncio.Future] = {}
        self._request_id = 0

        # Mirrored mpv state
        self._file_loaded = False
        self._seeking = False
        self._time_pos: float | None = None
        self._duration: float | None = None
        self._paused = True
        self._speed = 1.0

    # ── Lifecycle ──

    async def start(self):
        if os.path.exists(self.socket_path):
            os.remove(self.socket_path)

        command = [
            self.mpv_path,
            "--idle=yes",
            "--no-video",
            "--no-terminal",
            "--pause",
            f"--input-ipc-server={self.socket_path}",
            *self.extra_args,
        ]
        logger.info("Launching mpv: %s", " ".join(command))
        try:
            self._process = await asyncio.create_subprocess_exec(*command)
        except OSError as e:
            raise TransportError(f"Could not launch {self.mpv_path}: {e}") from e

        self._reader, self._writer = await self._connect_ipc(CONNECT_TIMEOUT)
        self._reader_task = asyncio.create_task(self._read_loop())
        for prop_id, name in enumerate(OBSERVED_PROPERTIES, start=1):
            self._send(["observe_property", prop_id, name])
        logger.info("mpv IPC connected on %s", self.socket_path)

    async def stop(self):
        """Quit mpv and release the socket."""
        if self._writer is not None:
            try:
                self._send(["quit"])
                await self._writer.drain()
            except (ConnectionError, TransportError):
                pass
            self._writer.close()
            self._writer = None

        if self._reader_task:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None

        if self._process and self._process.returncode is None:
            try:
                await asyncio.wait_for(self._process.wait(), timeout=3)
            except asyncio.TimeoutError:
                logger.warning("mpv did not exit, terminating")
                self._process.terminate()
                await self._process.wait()
        self._process = None

        if os.path.exists(self.socket_path):
            os.remove(self.socket_path)
        logger.info("mpv transport stopped")

    async def _connect_ipc(self, timeout: float):
        """Connect to the IPC socket, retrying until mpv has created it."""
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline:
            if self._process is not None and self._process.returncode is not None:
                raise TransportError(f"mpv exited with code {self._process.returncode}")
            try:
                return await asyncio.open_unix_connection(self.socket_path)
            except (FileNotFoundError, ConnectionRefusedError):
                await asyncio.sleep(0.1)
        raise TransportError(f"IPC connection timed out after {timeout} seconds")

    # ── IPC ──

    def _send(self, command: list) -> asyncio.Future:
        if self._writer is None:
            raise TransportError("mpv is not running")
        self._request_id += 1
        request_id = self._request_id
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future
        line = json.dumps({"command": command, "request_id": request_id})
        self._writer.write(line.encode() + b"\n")
        logger.debug("mpv <- %s", line)
        return future

    async def command(self, *args, timeout: float = COMMAND_TIMEOUT):
        """Send a command and wait for mpv's reply. Returns reply data."""
        future = self._send(list(args))
        try:
            reply = await asyncio.wait_for(future, timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"mpv did not answer {args[0]}") from e
        if reply.get("error") != "success":
            raise TransportError(f"mpv {args[0]} failed: {reply.get('error')}")
        return reply.get("data")

    async def _read_loop(self):
        try:
            while True:
                line = await self._reader.readline()
                if not line:
                    break
                try:
                    message = json.loads(line)
                except json.JSONDecodeError:
                    logger.warning("mpv sent invalid JSON: %r", line)
                    continue
                self._dispatch(message)
        finally:
            logger.info("mpv IPC stream closed")
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(TransportError("mpv IPC closed"))
            self._pending.clear()

    def _dispatch(self, message: dict):
        event = message.get("event")
        if event is None:
            future = self._pending.pop(message.get("request_id"), None)
            if future is not None and not future.done():
                future.set_result(message)
            return

        if event == "property-change":
            self._on_property(message.get("name"), message.get("data"))
        elif event == "file-loaded":
            self._file_loaded = True
            if not self._paused:
                self.emit(Started())
        elif event == "seek":
            self._seeking = True
        elif event == "playback-restart":
            if self._seeking:
                self._seeking = False
                self.emit(Seeked(self._time_pos))
        elif event == "end-file":
            self._file_loaded = False
            reason = message.get("reason")
            if reason == "eof":
                self.emit(Ended())
            elif reason == "error":
                logger.warning("mpv could not play file: %s",
                               message.get("file_error", "unknown error"))

    def _on_property(self, name: str, data):
        if name == "time-pos":
            self._time_pos = data
            if self._file_loaded:
                self.emit(PositionUpdated(data, self._duration))
        elif name == "duration":
            self._duration = data
            if data is not None:
                self.emit(DurationResolved(data))
        elif name == "pause":
            self._paused = bool(data)
            if self._file_loaded:
                self.emit(Paused() if self._paused else Started())
        elif name == "speed":
            if data:
                self._speed = float(data)
                self.emit(RateChanged(self._speed))

    # ── AudioTransport ──

    def load(self, url: str):
        self._file_loaded = False
        self._seeking = False
        self._time_pos = None
        self._duration = None
        self._send(["set_property", "pause", True])
        self._send(["loadfile", url, "replace"])

    async def play(self):
        await self.command("set_property", "pause", False)

    def pause(self):
        self._send(["set_property", "pause", True])

    def get_position(self) -> float | None:
        return self._time_pos

    def get_duration(self) -> float | None:
        return self._duration

    def set_position(self, seconds: float):
        self._send(["seek", seconds, "absolute+exact"])

    def get_rate(self) -> float:
        return self._speed

    def set_rate(self, rate: float):
        self._send(["set_property", "speed", rate])
