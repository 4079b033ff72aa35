"""Tests for audio file discovery."""

import os

import pytest

from goodmusic.domain.library.scanner import (
    discover_audio_files,
    discover_audio_files_async,
    is_supported_format,
)


@pytest.fixture
def tree(tmp_path):
    (tmp_path / "b_album").mkdir()
    (tmp_path / "a_album" / "disc2").mkdir(parents=True)
    for relative in [
        "z.mp3",
        "cover.jpg",
        "notes.txt",
        "b_album/02.FLAC",
        "b_album/01.m4a",
        "a_album/track.ogg",
        "a_album/disc2/track.wav",
    ]:
        (tmp_path / relative).write_bytes(b"data")
    return tmp_path


def test_is_supported_format_is_case_insensitive():
    assert is_supported_format("song.MP3", [".mp3"])
    assert is_supported_format("/a/b/song.flac", [".FLAC"])
    assert not is_supported_format("cover.jpg", [".mp3", ".flac"])


def test_finds_audio_recursively_in_sorted_order(tree):
    found = discover_audio_files(tree)

    assert found == [
        os.path.join(tree, "z.mp3"),
        os.path.join(tree, "a_album", "track.ogg"),
        os.path.join(tree, "a_album", "disc2", "track.wav"),
        os.path.join(tree, "b_album", "01.m4a"),
        os.path.join(tree, "b_album", "02.FLAC"),
    ]


def test_custom_formats(tree):
    found = discover_audio_files(tree, [".mp3"])
    assert found == [os.path.join(tree, "z.mp3")]


def test_missing_root_is_empty(tmp_path):
    assert discover_audio_files(tmp_path / "nope") == []


def test_broken_symlink_is_skipped(tmp_path):
    (tmp_path / "dangling.mp3").symlink_to(tmp_path / "deleted.mp3")
    (tmp_path / "real.mp3").write_bytes(b"data")

    assert discover_audio_files(tmp_path) == [os.path.join(tmp_path, "real.mp3")]


def test_stable_across_runs(tree):
    assert discover_audio_files(tree) == discover_audio_files(tree)


@pytest.mark.anyio
async def test_async_variant(tree):
    assert await discover_audio_files_async(tree) == discover_audio_files(tree)
