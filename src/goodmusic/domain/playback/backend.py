"""
Audio backend boundary.

The playback engine only talks to an object with this shape; decoding and
output happen elsewhere (mpv in production, a scripted fake in tests).
"""

from typing import Awaitable, Callable, NamedTuple, Protocol


class PlaybackStatus(NamedTuple):
    """Status event emitted by a backend. Times are in seconds."""

    current_time: float = 0.0
    duration: float = 0.0
    playing: bool = False
    did_just_finish: bool = False


StatusListener = Callable[[PlaybackStatus], Awaitable[None]]


class AudioBackend(Protocol):
    async def load(self, uri: str) -> None: ...

    async def play(self) -> None: ...

    async def pause(self) -> None: ...

    async def seek(self, seconds: float) -> None: ...

    def subscribe(self, listener: StatusListener) -> Callable[[], None]:
        """Register a status listener; returns a callable that unsubscribes it."""
        ...
