"""Tests for the playback queue engine against a scripted backend."""

import random

import pytest

from conftest import FakeBackend, make_track
from goodmusic.core.config import PlaybackConfig
from goodmusic.domain.playback.backend import PlaybackStatus
from goodmusic.domain.playback.engine import (
    PlaybackEngine,
    shuffle_tracks,
    shuffle_with_pinned,
)
from goodmusic.domain.playback.origin import AlbumOrigin, SearchOrigin
from goodmusic.domain.playback.state import PlaybackPreferences, RepeatMode

pytestmark = pytest.mark.anyio

TRACKS = [make_track(f"/music/{name}.mp3") for name in "abcde"]


def _engine(backend, store=None):
    return PlaybackEngine(
        backend, store, PlaybackConfig(settle_delay_ms=0), rng=random.Random(7)
    )


class TestShuffleHelpers:
    def test_shuffle_is_permutation(self):
        shuffled = shuffle_tracks(TRACKS, random.Random(1))
        assert sorted(t.id for t in shuffled) == sorted(t.id for t in TRACKS)

    @pytest.mark.parametrize("seed", range(10))
    def test_pinned_track_first(self, seed):
        current = TRACKS[3]
        shuffled = shuffle_with_pinned(current, TRACKS, random.Random(seed))

        assert shuffled[0] == current
        assert sorted(t.id for t in shuffled) == sorted(t.id for t in TRACKS)

    def test_pinned_single_track(self):
        assert shuffle_with_pinned(TRACKS[0], [TRACKS[0]], random.Random(0)) == [TRACKS[0]]


class TestPlay:
    async def test_play_sets_queue_and_drives_backend(self, backend):
        engine = _engine(backend)

        assert await engine.play(TRACKS[1], TRACKS, "Album", AlbumOrigin("Album"))

        assert engine.current_track == TRACKS[1]
        assert engine.queue == TRACKS
        assert engine.original_queue == TRACKS
        assert engine.queue_title == "Album"
        assert engine.origin == AlbumOrigin("Album")
        assert engine.is_playing
        assert backend.calls == [("pause",), ("load", TRACKS[1].uri), ("play",)]

    async def test_backend_failure_keeps_queue(self):
        backend = FakeBackend(fail_on_load=True)
        engine = _engine(backend)

        assert not await engine.play(TRACKS[0], TRACKS)

        assert not engine.is_playing
        assert engine.current_track == TRACKS[0]
        assert engine.queue == TRACKS

    async def test_play_with_shuffle_pins_selected_track(self, backend):
        engine = _engine(backend)
        await engine.toggle_shuffle()

        await engine.play(TRACKS[2], TRACKS, "Search", SearchOrigin("x"))

        assert engine.queue[0] == TRACKS[2]
        assert sorted(t.id for t in engine.queue) == sorted(t.id for t in TRACKS)
        assert engine.original_queue == TRACKS

    async def test_play_records_history(self, backend, store, music_dir):
        track = make_track(str(music_dir / "a.mp3"))
        await store.upsert_tracks([track])
        engine = _engine(backend, store)

        await engine.play(track, [track])

        assert [t.id for t in await store.get_recently_played()] == [track.id]

    async def test_listeners_receive_snapshots(self, backend):
        engine = _engine(backend)
        snapshots = []
        unsubscribe = engine.add_listener(snapshots.append)

        await engine.play(TRACKS[0], TRACKS)
        unsubscribe()
        await engine.play(TRACKS[1])

        assert snapshots
        assert all(s.current_track == TRACKS[0] for s in snapshots)


class TestNextPrev:
    async def test_next_advances(self, backend):
        engine = _engine(backend)
        await engine.play(TRACKS[0], TRACKS)

        await engine.play_next()

        assert engine.current_track == TRACKS[1]

    async def test_next_at_end_stops_without_repeat(self, backend):
        engine = _engine(backend)
        await engine.play(TRACKS[-1], TRACKS)

        await engine.play_next()

        assert engine.current_track == TRACKS[-1]
        assert not engine.is_playing
        assert backend.calls[-1] == ("pause",)

    async def test_next_wraps_with_repeat_all(self, backend):
        engine = _engine(backend)
        await engine.toggle_repeat_mode()
        assert engine.repeat_mode == RepeatMode.ALL
        await engine.play(TRACKS[-1], TRACKS)

        await engine.play_next()

        assert engine.current_track == TRACKS[0]
        assert engine.is_playing

    async def test_prev_restarts_after_threshold(self, backend):
        engine = _engine(backend)
        await engine.play(TRACKS[2], TRACKS)
        await backend.emit(PlaybackStatus(current_time=12.0, duration=200.0, playing=True))

        await engine.play_prev()

        assert engine.current_track == TRACKS[2]
        assert backend.calls[-1] == ("seek", 0.0)

    async def test_prev_goes_back_early_in_track(self, backend):
        engine = _engine(backend)
        await engine.play(TRACKS[2], TRACKS)
        await backend.emit(PlaybackStatus(current_time=1.0, duration=200.0, playing=True))

        await engine.play_prev()

        assert engine.current_track == TRACKS[1]

    async def test_prev_at_start_clamps(self, backend):
        engine = _engine(backend)
        await engine.play(TRACKS[0], TRACKS)

        await engine.play_prev()

        assert engine.current_track == TRACKS[0]
        assert backend.loaded == [TRACKS[0].uri, TRACKS[0].uri]

    async def test_prev_at_start_wraps_with_repeat_all(self, backend):
        engine = _engine(backend)
        await engine.toggle_repeat_mode()
        await engine.play(TRACKS[0], TRACKS)

        await engine.play_prev()

        assert engine.current_track == TRACKS[-1]

    async def test_next_without_current_track_is_noop(self, backend):
        engine = _engine(backend)
        await engine.play_next()
        await engine.play_prev()
        assert backend.calls == []


class TestTrackEnd:
    async def test_finish_event_advances(self, backend):
        engine = _engine(backend)
        await engine.play(TRACKS[0], TRACKS)

        await backend.emit(
            PlaybackStatus(current_time=200.0, duration=200.0, playing=False, did_just_finish=True)
        )

        assert engine.current_track == TRACKS[1]
        assert engine.is_playing

    async def test_end_of_queue_stops(self, backend):
        engine = _engine(backend)
        await engine.play(TRACKS[-1], TRACKS)
        loads = len(backend.loaded)

        await engine.on_track_end()

        assert not engine.is_playing
        assert engine.current_track == TRACKS[-1]
        assert len(backend.loaded) == loads

    async def test_end_of_queue_wraps_with_repeat_all(self, backend):
        engine = _engine(backend)
        await engine.toggle_repeat_mode()
        await engine.play(TRACKS[-1], TRACKS)

        await engine.on_track_end()

        assert engine.current_track == TRACKS[0]

    async def test_repeat_one_restarts_same_track(self, backend):
        engine = _engine(backend)
        await engine.toggle_repeat_mode()
        await engine.toggle_repeat_mode()
        assert engine.repeat_mode == RepeatMode.ONE
        await engine.play(TRACKS[1], TRACKS)

        await engine.on_track_end()

        assert engine.current_track == TRACKS[1]
        assert backend.calls[-2:] == [("seek", 0), ("play",)]
        assert engine.is_playing

    async def test_status_updates_position(self, backend):
        engine = _engine(backend)
        await engine.play(TRACKS[0], TRACKS)

        await backend.emit(PlaybackStatus(current_time=3.5, duration=180.25, playing=True))

        assert engine.position_millis == 3500
        assert engine.duration_millis == 180250


class TestToggles:
    async def test_shuffle_off_restores_original_order(self, backend):
        engine = _engine(backend)
        await engine.play(TRACKS[3], TRACKS)

        await engine.toggle_shuffle()
        assert engine.queue[0] == TRACKS[3]

        await engine.toggle_shuffle()
        assert engine.queue == TRACKS

    async def test_repeat_mode_cycles(self, backend):
        engine = _engine(backend)
        modes = [await engine.toggle_repeat_mode() for _ in range(3)]
        assert modes == [RepeatMode.ALL, RepeatMode.ONE, RepeatMode.NONE]

    async def test_toggles_are_persisted(self, backend, store):
        engine = _engine(backend, store)

        await engine.toggle_shuffle()
        await engine.toggle_repeat_mode()
        await engine.toggle_lyrics_view()
        assert await engine.toggle_favorite("/music/a.mp3")

        restored = _engine(FakeBackend(), store)
        await restored.load_preferences()

        assert await store.get_playback_preferences() == PlaybackPreferences(
            shuffle=True, repeat_mode=RepeatMode.ALL, show_lyrics=True
        )
        assert restored.is_shuffle
        assert restored.repeat_mode == RepeatMode.ALL
        assert restored.show_lyrics
        assert restored.favorites == {"/music/a.mp3"}

    async def test_favorite_toggle_off(self, backend):
        engine = _engine(backend)
        assert await engine.toggle_favorite("/music/a.mp3")
        assert not await engine.toggle_favorite("/music/a.mp3")
        assert engine.favorites == set()

    async def test_set_queue_keeps_current_pinned_when_shuffled(self, backend):
        engine = _engine(backend)
        await engine.play(TRACKS[2], TRACKS)
        await engine.toggle_shuffle()

        engine.set_queue(list(reversed(TRACKS)), title="Reversed")

        assert engine.queue[0] == TRACKS[2]
        assert engine.queue_title == "Reversed"


class TestRemoveTrack:
    async def test_removing_current_track_stops(self, backend, store, music_dir):
        tracks = [make_track(str(music_dir / f"{n}.mp3")) for n in "xyz"]
        for track in tracks:
            (music_dir / f"{track.title}.mp3").write_bytes(b"data")
        await store.upsert_tracks(tracks)
        engine = _engine(backend, store)
        await engine.play(tracks[1], tracks)

        await engine.remove_track(tracks[1].id)

        assert engine.current_track is None
        assert not engine.is_playing
        assert [t.id for t in engine.queue] == [tracks[0].id, tracks[2].id]
        assert not (music_dir / "y.mp3").exists()
        assert await store.get_track_by_id(tracks[1].id) is None
