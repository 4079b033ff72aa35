"""
Playback queue and state engine.

Holds the current track, the queue (possibly shuffled) and the canonical
pre-shuffle order, and drives an AudioBackend. Position and play state are
taken from backend status events; the engine never sets position itself.

Backend failures are logged and leave the engine paused with the queue and
selection intact, so the user can retry or skip.
"""

import asyncio
import random
from typing import TYPE_CHECKING, Callable, NamedTuple, Optional, Sequence

from loguru import logger

from goodmusic.core.config import PlaybackConfig
from goodmusic.domain.library.models import Track

from .backend import AudioBackend, PlaybackStatus
from .origin import PlaybackOrigin
from .state import PlaybackPreferences, RepeatMode

if TYPE_CHECKING:
    from goodmusic.domain.library.store import LibraryStore

DEFAULT_QUEUE_TITLE = "All Songs"


class PlaybackSnapshot(NamedTuple):
    """Immutable view of the engine state handed to listeners."""

    current_track: Optional[Track]
    queue: tuple[Track, ...]
    original_queue: tuple[Track, ...]
    queue_title: str
    origin: Optional[PlaybackOrigin]
    position_millis: int
    duration_millis: int
    is_playing: bool
    is_shuffle: bool
    repeat_mode: RepeatMode
    favorites: frozenset[str]
    show_lyrics: bool


SnapshotListener = Callable[[PlaybackSnapshot], None]


def shuffle_tracks(tracks: Sequence[Track], rng: random.Random) -> list[Track]:
    """Uniform random permutation (Fisher-Yates via Random.shuffle)."""
    shuffled = list(tracks)
    rng.shuffle(shuffled)
    return shuffled


def shuffle_with_pinned(
    current: Track, tracks: Sequence[Track], rng: random.Random
) -> list[Track]:
    """Current track first, every other track in random order."""
    others = [track for track in tracks if track.id != current.id]
    return [current] + shuffle_tracks(others, rng)


class PlaybackEngine:
    def __init__(
        self,
        backend: AudioBackend,
        store: Optional["LibraryStore"] = None,
        config: Optional[PlaybackConfig] = None,
        rng: Optional[random.Random] = None,
    ):
        self.backend = backend
        self.store = store
        self.config = config or PlaybackConfig()
        self._rng = rng or random.Random()

        self.current_track: Optional[Track] = None
        self.queue: list[Track] = []
        self.original_queue: list[Track] = []
        self.queue_title = DEFAULT_QUEUE_TITLE
        self.origin: Optional[PlaybackOrigin] = None
        self.position_millis = 0
        self.duration_millis = 0
        self.is_playing = False
        self.is_shuffle = False
        self.repeat_mode = RepeatMode.NONE
        self.favorites: set[str] = set()
        self.show_lyrics = False

        self._listeners: list[SnapshotListener] = []
        self._unsubscribe_backend = backend.subscribe(self.handle_status)

    def close(self) -> None:
        """Detach from the backend's status events."""
        self._unsubscribe_backend()

    # -- observation ------------------------------------------------------

    def snapshot(self) -> PlaybackSnapshot:
        return PlaybackSnapshot(
            current_track=self.current_track,
            queue=tuple(self.queue),
            original_queue=tuple(self.original_queue),
            queue_title=self.queue_title,
            origin=self.origin,
            position_millis=self.position_millis,
            duration_millis=self.duration_millis,
            is_playing=self.is_playing,
            is_shuffle=self.is_shuffle,
            repeat_mode=self.repeat_mode,
            favorites=frozenset(self.favorites),
            show_lyrics=self.show_lyrics,
        )

    def add_listener(self, listener: SnapshotListener) -> Callable[[], None]:
        """Call listener with a snapshot after every state change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Playback listener failed")

    # -- persistence ------------------------------------------------------

    async def load_preferences(self) -> None:
        """Restore shuffle, repeat, lyrics and favorites from the store."""
        if self.store is None:
            return

        preferences = await self.store.get_playback_preferences()
        self.is_shuffle = preferences.shuffle
        self.repeat_mode = preferences.repeat_mode
        self.show_lyrics = preferences.show_lyrics
        self.favorites = await self.store.get_favorites()
        self._notify()

    async def _save_preferences(self) -> None:
        if self.store is None:
            return
        try:
            await self.store.save_playback_preferences(
                PlaybackPreferences(
                    shuffle=self.is_shuffle,
                    repeat_mode=self.repeat_mode,
                    show_lyrics=self.show_lyrics,
                )
            )
        except Exception as e:
            logger.warning(f"Could not save playback preferences: {e}")

    async def _record_history(self, track: Track) -> None:
        if self.store is None:
            return
        try:
            await self.store.record_history(track.id)
        except Exception as e:
            logger.warning(f"Could not record history for {track.id}: {e}")

    # -- queue ------------------------------------------------------------

    def _current_index(self) -> int:
        if self.current_track is None:
            return -1
        for index, track in enumerate(self.queue):
            if track.id == self.current_track.id:
                return index
        return -1

    def set_queue(
        self,
        tracks: Sequence[Track],
        title: Optional[str] = None,
        origin: Optional[PlaybackOrigin] = None,
    ) -> None:
        """Replace the queue without starting playback."""
        self.original_queue = list(tracks)
        if title is not None:
            self.queue_title = title
        if origin is not None:
            self.origin = origin

        if not self.is_shuffle:
            self.queue = list(self.original_queue)
        elif self.current_track is not None and any(
            track.id == self.current_track.id for track in self.original_queue
        ):
            self.queue = shuffle_with_pinned(
                self.current_track, self.original_queue, self._rng
            )
        else:
            self.queue = shuffle_tracks(self.original_queue, self._rng)

        self._notify()

    # -- transport --------------------------------------------------------

    async def play(
        self,
        track: Track,
        new_queue: Optional[Sequence[Track]] = None,
        title: Optional[str] = None,
        origin: Optional[PlaybackOrigin] = None,
    ) -> bool:
        """Play a track, optionally replacing the queue it belongs to.

        Returns:
            True if the backend accepted the track
        """
        if new_queue is not None:
            self.original_queue = list(new_queue)
            self.queue_title = title or DEFAULT_QUEUE_TITLE
            self.origin = origin
            if self.is_shuffle:
                self.queue = shuffle_with_pinned(track, self.original_queue, self._rng)
            else:
                self.queue = list(self.original_queue)

        return await self._start(track)

    async def _start(self, track: Track) -> bool:
        self.current_track = track
        self.position_millis = 0
        self.is_playing = True
        self._notify()

        try:
            await self.backend.pause()
            await self.backend.load(track.uri)
            # Give the backend a moment to swap sources before play
            await asyncio.sleep(self.config.settle_delay_ms / 1000)
            await self.backend.play()
        except Exception:
            logger.exception(f"Error playing track: {track.uri}")
            self.is_playing = False
            self._notify()
            return False

        logger.info(f"Playing: {track.artist} - {track.title}")
        await self._record_history(track)
        return True

    async def _stop(self) -> None:
        """End of queue: pause, keep the track and position."""
        try:
            await self.backend.pause()
        except Exception:
            logger.exception("Error pausing playback")
        self.is_playing = False
        self._notify()

    async def toggle_play_pause(self) -> None:
        if self.current_track is None:
            return

        try:
            if self.is_playing:
                await self.backend.pause()
                self.is_playing = False
            else:
                await self.backend.play()
                self.is_playing = True
        except Exception:
            logger.exception("Error toggling playback")
            self.is_playing = False
        self._notify()

    async def seek_to(self, millis: int) -> None:
        """Ask the backend to seek; position follows from its next status event."""
        try:
            await self.backend.seek(millis / 1000)
        except Exception:
            logger.exception(f"Error seeking to {millis}ms")

    async def play_next(self) -> None:
        if self.current_track is None or not self.queue:
            return

        next_index = self._current_index() + 1
        if next_index >= len(self.queue):
            if self.repeat_mode != RepeatMode.ALL:
                await self._stop()
                return
            next_index = 0

        await self.play(self.queue[next_index])

    async def play_prev(self) -> None:
        if self.current_track is None or not self.queue:
            return

        if self.position_millis > self.config.restart_threshold_ms:
            await self.seek_to(0)
            return

        prev_index = self._current_index() - 1
        if prev_index < 0:
            prev_index = len(self.queue) - 1 if self.repeat_mode == RepeatMode.ALL else 0

        await self.play(self.queue[prev_index])

    async def on_track_end(self) -> None:
        """Natural end of the current track, reported by the backend."""
        if self.repeat_mode == RepeatMode.ONE:
            if self.current_track is None:
                return
            try:
                await self.backend.seek(0)
                await self.backend.play()
                self.is_playing = True
            except Exception:
                logger.exception("Error restarting track")
                self.is_playing = False
            self._notify()
            return

        if self.current_track is None or not self.queue:
            return

        next_index = (self._current_index() + 1) % len(self.queue)
        if next_index == 0 and self.repeat_mode != RepeatMode.ALL:
            self.is_playing = False
            self._notify()
            return

        await self.play(self.queue[next_index])

    async def handle_status(self, status: PlaybackStatus) -> None:
        """Backend status callback."""
        self.position_millis = int(status.current_time * 1000)
        self.duration_millis = int(status.duration * 1000)
        self.is_playing = status.playing
        self._notify()

        if status.did_just_finish:
            await self.on_track_end()

    # -- toggles ----------------------------------------------------------

    async def toggle_shuffle(self) -> None:
        self.is_shuffle = not self.is_shuffle

        if self.is_shuffle:
            if self.current_track is not None:
                self.queue = shuffle_with_pinned(
                    self.current_track, self.original_queue, self._rng
                )
            else:
                self.queue = shuffle_tracks(self.original_queue, self._rng)
        else:
            self.queue = list(self.original_queue)

        self._notify()
        await self._save_preferences()

    async def toggle_repeat_mode(self) -> RepeatMode:
        self.repeat_mode = self.repeat_mode.next()
        self._notify()
        await self._save_preferences()
        return self.repeat_mode

    async def toggle_favorite(self, track_id: str) -> bool:
        """Returns True if the track is now a favorite."""
        enabled = track_id not in self.favorites
        if enabled:
            self.favorites.add(track_id)
        else:
            self.favorites.discard(track_id)
        self._notify()

        if self.store is not None:
            try:
                await self.store.set_favorite(track_id, enabled)
            except Exception as e:
                logger.warning(f"Could not save favorite {track_id}: {e}")
        return enabled

    async def toggle_lyrics_view(self) -> bool:
        self.show_lyrics = not self.show_lyrics
        self._notify()
        await self._save_preferences()
        return self.show_lyrics

    async def remove_track(self, track_id: str, delete_file: bool = True) -> None:
        """Delete a track from the library (and disk) and drop it from the queues."""
        if self.store is not None:
            await self.store.delete_track(track_id, remove_file=delete_file)

        self.queue = [track for track in self.queue if track.id != track_id]
        self.original_queue = [t for t in self.original_queue if t.id != track_id]
        self.favorites.discard(track_id)

        if self.current_track is not None and self.current_track.id == track_id:
            await self._stop()
            self.current_track = None
            self.position_millis = 0
            self.duration_millis = 0

        self._notify()
