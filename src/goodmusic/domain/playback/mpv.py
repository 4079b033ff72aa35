"""
mpv audio backend over JSON IPC.

Starts an idle mpv process with an IPC socket, sends commands through it and
polls playback properties to produce PlaybackStatus events for the engine.
Blocking socket calls run in worker threads.
"""

import asyncio
import json
import os
import socket
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Any, Callable, Optional

from loguru import logger

from goodmusic.core.config import PlaybackConfig

from .backend import PlaybackStatus, StatusListener

SOCKET_TIMEOUT = 2.0
STARTUP_TIMEOUT = 5.0
DEFAULT_POLL_INTERVAL = 0.5

# Minimum playback time before a track may count as finished (seconds)
MIN_PLAYBACK_TIME = 3.0
# How close to the end an eof-reached report must be (seconds)
EOF_TOLERANCE = 1.0


class MpvError(RuntimeError):
    """An mpv command was rejected or mpv is not reachable."""


def check_mpv_available() -> bool:
    """Check if mpv is available on the system."""
    try:
        result = subprocess.run(
            ["mpv", "--version"], capture_output=True, text=True, timeout=5
        )
        return result.returncode == 0
    except (subprocess.SubprocessError, FileNotFoundError, OSError):
        return False


def mpv_request(socket_path: Optional[str], command: list[Any]) -> Optional[dict]:
    """Send one JSON IPC command and return mpv's reply, or None if unreachable."""
    if not socket_path or not os.path.exists(socket_path):
        return None

    try:
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(SOCKET_TIMEOUT)
            sock.connect(socket_path)
            sock.sendall((json.dumps({"command": command}) + "\n").encode("utf-8"))
            response = sock.recv(4096).decode("utf-8")
    except OSError as e:
        logger.debug(f"mpv IPC failed for {command[0]}: {e}")
        return None

    # mpv may interleave event lines with the reply; the reply carries "error"
    for line in response.splitlines():
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            continue
        if "error" in message:
            return message
    return None


def send_mpv_command(socket_path: Optional[str], command: list[Any]) -> bool:
    reply = mpv_request(socket_path, command)
    return reply is not None and reply.get("error") == "success"


def get_mpv_property(socket_path: Optional[str], property_name: str) -> Any:
    reply = mpv_request(socket_path, ["get_property", property_name])
    if reply is None or reply.get("error") != "success":
        return None
    return reply.get("data")


def build_status(
    position: Optional[float],
    duration: Optional[float],
    paused: Optional[bool],
    eof_reached: Optional[bool],
) -> PlaybackStatus:
    """Translate raw mpv properties into a PlaybackStatus."""
    position = position or 0.0
    duration = duration or 0.0

    finished = bool(eof_reached) and duration > 0 and position >= duration - EOF_TOLERANCE
    playing = paused is False and not finished

    return PlaybackStatus(
        current_time=position,
        duration=duration,
        playing=playing,
        did_just_finish=finished,
    )


class MpvBackend:
    """AudioBackend implementation driving an mpv subprocess."""

    def __init__(
        self,
        config: Optional[PlaybackConfig] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
    ):
        config = config or PlaybackConfig()
        self.socket_path = config.mpv_socket_path or str(
            Path(tempfile.gettempdir()) / f"goodmusic-mpv-{os.getpid()}"
        )
        self.volume = config.volume
        self.poll_interval = poll_interval
        self.process: Optional[subprocess.Popen] = None

        self._listeners: list[StatusListener] = []
        self._poll_task: Optional[asyncio.Task] = None
        self._loaded_at: Optional[float] = None
        self._finish_reported = False

    # -- process lifecycle ------------------------------------------------

    def _launch(self) -> bool:
        if os.path.exists(self.socket_path):
            logger.debug(f"Removing existing socket: {self.socket_path}")
            os.unlink(self.socket_path)

        cmd = [
            "mpv",
            "--idle=yes",
            "--no-video",
            "--no-terminal",
            f"--input-ipc-server={self.socket_path}",
            f"--volume={self.volume}",
            "--keep-open=yes",
            "--load-scripts=no",
        ]
        self.process = subprocess.Popen(
            cmd,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
            stdin=subprocess.DEVNULL,
        )

        deadline = time.monotonic() + STARTUP_TIMEOUT
        while not os.path.exists(self.socket_path):
            if time.monotonic() > deadline:
                logger.error(f"mpv socket creation timeout after {STARTUP_TIMEOUT}s")
                self.process.kill()
                return False
            time.sleep(0.1)

        if get_mpv_property(self.socket_path, "idle-active") is None:
            logger.error("mpv socket connection test failed")
            self.process.kill()
            return False
        return True

    async def start(self) -> None:
        """Launch mpv and begin polling status.

        Raises:
            MpvError: if mpv cannot be started
        """
        logger.info(f"Starting mpv with socket: {self.socket_path}")
        try:
            started = await asyncio.to_thread(self._launch)
        except (subprocess.SubprocessError, OSError) as e:
            raise MpvError(f"Failed to start mpv: {e}") from e
        if not started:
            raise MpvError("mpv did not become ready")

        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info("mpv started successfully")

    async def stop(self) -> None:
        if self._poll_task is not None:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        if self.process is not None:
            self.process.kill()
            try:
                await asyncio.to_thread(self.process.wait, 2.0)
            except subprocess.TimeoutExpired:
                logger.warning("mpv did not exit after kill")
            self.process = None

        if os.path.exists(self.socket_path):
            try:
                os.unlink(self.socket_path)
            except OSError as e:
                logger.debug(f"Could not remove socket {self.socket_path}: {e}")

    def is_running(self) -> bool:
        return (
            self.process is not None
            and self.process.poll() is None
            and os.path.exists(self.socket_path)
        )

    # -- AudioBackend -----------------------------------------------------

    async def _command(self, *command: Any) -> None:
        if not await asyncio.to_thread(send_mpv_command, self.socket_path, list(command)):
            raise MpvError(f"mpv rejected command: {command[0]}")

    async def load(self, uri: str) -> None:
        await self._command("loadfile", uri, "replace")
        self._loaded_at = time.monotonic()
        self._finish_reported = False

    async def play(self) -> None:
        await self._command("set_property", "pause", False)

    async def pause(self) -> None:
        await self._command("set_property", "pause", True)

    async def seek(self, seconds: float) -> None:
        await self._command("seek", seconds, "absolute")
        if seconds == 0:
            self._finish_reported = False

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # -- status polling ---------------------------------------------------

    def _read_properties(self) -> tuple:
        return tuple(
            get_mpv_property(self.socket_path, name)
            for name in ("time-pos", "duration", "pause", "eof-reached")
        )

    async def poll_status(self) -> PlaybackStatus:
        """Read mpv properties once. did_just_finish fires once per loaded track."""
        status = build_status(*await asyncio.to_thread(self._read_properties))

        if status.did_just_finish:
            too_early = (
                self._loaded_at is not None
                and time.monotonic() - self._loaded_at < MIN_PLAYBACK_TIME
            )
            if too_early or self._finish_reported:
                status = status._replace(did_just_finish=False)
            else:
                self._finish_reported = True

        return status

    async def _poll_loop(self) -> None:
        while True:
            if self.is_running() and self._loaded_at is not None:
                status = await self.poll_status()
                for listener in list(self._listeners):
                    try:
                        await listener(status)
                    except Exception:
                        logger.exception("Status listener failed")
            await asyncio.sleep(self.poll_interval)
