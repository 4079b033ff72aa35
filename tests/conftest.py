"""Shared fixtures: temporary library roots, a store, and a scripted audio backend."""

from pathlib import Path
from typing import Optional

import pytest
from mutagen.id3 import APIC, ID3, TALB, TIT2, TLEN, TPE1, TRCK

from goodmusic.core.config import Config, PathsConfig
from goodmusic.core.paths import PathCodec
from goodmusic.domain.library.models import Track
from goodmusic.domain.library.store import LibraryStore
from goodmusic.domain.playback.backend import PlaybackStatus

JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64
PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def config(tmp_path):
    """Config whose storage roots live under tmp_path, with no sync delays."""
    config = Config()
    config.paths = PathsConfig(
        document_dir=str(tmp_path / "documents"),
        cache_dir=str(tmp_path / "cache"),
    )
    config.sync.yield_delay_ms = 0
    config.playback.settle_delay_ms = 0
    return config


@pytest.fixture
def music_dir(config):
    path = config.paths.music_dir
    path.mkdir(parents=True, exist_ok=True)
    return path


@pytest.fixture
def codec(config):
    return PathCodec(config.paths.document_dir, config.paths.cache_dir)


@pytest.fixture
async def store(config, codec):
    store = LibraryStore(config.paths.database_path, codec)
    await store.open()
    return store


def make_track(track_id: str, title: Optional[str] = None, **fields) -> Track:
    """Track whose uri equals its id."""
    return Track(id=track_id, title=title or Path(track_id).stem, uri=track_id, **fields)


def write_mp3(
    path: Path,
    title: Optional[str] = None,
    artist: Optional[str] = None,
    album: Optional[str] = None,
    track_number: Optional[str] = None,
    length_ms: Optional[int] = None,
    picture: Optional[bytes] = None,
    audio: bytes = b"\x00" * 2048,
) -> Path:
    """Write an ID3-tagged file followed by placeholder audio bytes."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(audio)

    tags = ID3()
    if title is not None:
        tags.add(TIT2(encoding=3, text=title))
    if artist is not None:
        tags.add(TPE1(encoding=3, text=artist))
    if album is not None:
        tags.add(TALB(encoding=3, text=album))
    if track_number is not None:
        tags.add(TRCK(encoding=3, text=track_number))
    if length_ms is not None:
        tags.add(TLEN(encoding=3, text=str(length_ms)))
    if picture is not None:
        mime = "image/png" if picture.startswith(b"\x89PNG") else "image/jpeg"
        tags.add(APIC(encoding=3, mime=mime, type=3, desc="Cover", data=picture))
    tags.save(str(path))
    return path


class FakeBackend:
    """AudioBackend that records calls and lets tests push status events."""

    def __init__(self, fail_on_load: bool = False):
        self.fail_on_load = fail_on_load
        self.calls: list[tuple] = []
        self.listeners = []

    async def load(self, uri: str) -> None:
        self.calls.append(("load", uri))
        if self.fail_on_load:
            raise RuntimeError(f"cannot decode {uri}")

    async def play(self) -> None:
        self.calls.append(("play",))

    async def pause(self) -> None:
        self.calls.append(("pause",))

    async def seek(self, seconds: float) -> None:
        self.calls.append(("seek", seconds))

    def subscribe(self, listener):
        self.listeners.append(listener)
        return lambda: self.listeners.remove(listener)

    async def emit(self, status: PlaybackStatus) -> None:
        for listener in list(self.listeners):
            await listener(status)

    @property
    def loaded(self) -> list[str]:
        return [call[1] for call in self.calls if call[0] == "load"]


@pytest.fixture
def backend():
    return FakeBackend()
