"""Tests for stable path identifiers."""

from pathlib import Path

import pytest

from goodmusic.core.paths import PathCodec, is_path_within_root


@pytest.fixture
def codec():
    return PathCodec("/data/app/Documents", "/data/app/Library/Caches")


class TestToStableId:
    def test_document_path(self, codec):
        assert codec.to_stable_id("/data/app/Documents/music/a.mp3") == "doc://music/a.mp3"

    def test_cache_path(self, codec):
        assert (
            codec.to_stable_id("/data/app/Library/Caches/artworks/art_x.jpg")
            == "cache://artworks/art_x.jpg"
        )

    def test_file_uri_is_decoded(self, codec):
        uri = "file:///data/app/Documents/music/My%20Song.mp3"
        assert codec.to_stable_id(uri) == "doc://music/My Song.mp3"

    def test_already_stable_is_unchanged(self, codec):
        assert codec.to_stable_id("doc://music/a.mp3") == "doc://music/a.mp3"
        assert codec.to_stable_id("cache://artworks/b.png") == "cache://artworks/b.png"

    def test_outside_roots_is_unchanged(self, codec):
        assert codec.to_stable_id("/elsewhere/a.mp3") == "/elsewhere/a.mp3"

    def test_empty(self, codec):
        assert codec.to_stable_id("") == ""
        assert codec.to_stable_id(None) == ""

    def test_legacy_container_path(self, codec):
        """Paths under an old sandbox container map onto the current roots."""
        old = "/var/mobile/Containers/Data/Application/OLD-UUID/Documents/music/a.mp3"
        assert codec.to_stable_id(old) == "doc://music/a.mp3"

        old_cache = "/var/mobile/Containers/Data/Application/OLD-UUID/Library/Caches/artworks/c.jpg"
        assert codec.to_stable_id(old_cache) == "cache://artworks/c.jpg"

    def test_accepts_path_objects(self, codec):
        assert codec.to_stable_id(Path("/data/app/Documents/music/a.mp3")) == "doc://music/a.mp3"


class TestToAbsolute:
    def test_document_id(self, codec):
        assert codec.to_absolute("doc://music/a.mp3") == "/data/app/Documents/music/a.mp3"

    def test_cache_id(self, codec):
        assert (
            codec.to_absolute("cache://artworks/x.jpg")
            == "/data/app/Library/Caches/artworks/x.jpg"
        )

    def test_file_uri_under_old_root_resolves_to_new_root(self, codec):
        old = "file:///var/mobile/Containers/Data/Application/OLD/Documents/music/a.mp3"
        assert codec.to_absolute(old) == "/data/app/Documents/music/a.mp3"

    def test_file_uri_outside_roots_is_stripped(self, codec):
        assert codec.to_absolute("file:///elsewhere/a%20b.mp3") == "/elsewhere/a b.mp3"

    def test_plain_path_passthrough(self, codec):
        assert codec.to_absolute("/elsewhere/a.mp3") == "/elsewhere/a.mp3"

    def test_empty(self, codec):
        assert codec.to_absolute("") == ""
        assert codec.to_absolute(None) == ""


class TestRootIndependence:
    """Identity survives a change of storage roots."""

    @pytest.mark.parametrize(
        "relative",
        ["music/a.mp3", "music/Artist/Album/01 Track.flac", "music/ünïcødé.m4a"],
    )
    def test_same_id_under_different_roots(self, relative):
        before = PathCodec("/old/Documents", "/old/Caches")
        after = PathCodec("/new/home/Documents", "/new/home/Caches")

        stable_before = before.to_stable_id(f"/old/Documents/{relative}")
        stable_after = after.to_stable_id(f"/new/home/Documents/{relative}")

        assert stable_before == stable_after
        assert after.to_absolute(stable_before) == f"/new/home/Documents/{relative}"

    def test_round_trip_inside_roots(self, codec):
        path = "/data/app/Documents/music/sub/b.mp3"
        assert codec.to_absolute(codec.to_stable_id(path)) == path

    def test_root_with_trailing_slash(self):
        codec = PathCodec("/data/Documents/", "/data/Caches/")
        assert codec.to_stable_id("/data/Documents/music/a.mp3") == "doc://music/a.mp3"

    def test_sibling_prefix_is_not_inside_root(self):
        codec = PathCodec("/data/Documents", "/data/Caches")
        assert codec.to_stable_id("/data/DocumentsOld/a.mp3") == "/data/DocumentsOld/a.mp3"


class TestIsPathWithinRoot:
    def test_inside(self, tmp_path):
        assert is_path_within_root(tmp_path / "music" / "a.mp3", [tmp_path])

    def test_dotdot_escape(self, tmp_path):
        root = tmp_path / "music"
        root.mkdir()
        assert not is_path_within_root(root / ".." / "outside.mp3", [root])

    def test_symlink_escape(self, tmp_path):
        root = tmp_path / "music"
        root.mkdir()
        outside = tmp_path / "outside"
        outside.mkdir()
        (root / "link").symlink_to(outside)

        assert not is_path_within_root(root / "link" / "a.mp3", [root])

    def test_any_root_matches(self, tmp_path):
        first = tmp_path / "a"
        second = tmp_path / "b"
        assert is_path_within_root(second / "x.mp3", [first, second])
