"""Tests for configuration loading."""

import os
from pathlib import Path

import pytest

from goodmusic.core.config import Config, create_default_config, load_config


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg-config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "xdg-data"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "xdg-cache"))
    monkeypatch.delenv("GOODMUSIC_DOCUMENT_DIR", raising=False)
    monkeypatch.delenv("GOODMUSIC_CACHE_DIR", raising=False)


def test_defaults_follow_xdg_dirs(tmp_path):
    config = Config()

    assert Path(config.paths.document_dir) == tmp_path / "xdg-data" / "goodmusic" / "documents"
    assert Path(config.paths.cache_dir) == tmp_path / "xdg-cache" / "goodmusic"
    assert config.paths.music_dir == Path(config.paths.document_dir) / "music"
    assert config.paths.artwork_dir == Path(config.paths.cache_dir) / "artworks"
    assert config.sync.chunk_size == 10
    assert config.sync.batch_size == 30
    assert config.playback.history_limit == 200


def test_missing_file_creates_default(tmp_path):
    config_path = tmp_path / "conf" / "config.toml"

    config = load_config(config_path)

    assert config_path.exists()
    assert config_path.read_text(encoding="utf-8") == create_default_config()
    assert config.sync.batch_size == 30


def test_default_file_parses_back(tmp_path):
    config_path = tmp_path / "config.toml"
    config_path.write_text(create_default_config(), encoding="utf-8")

    config = load_config(config_path)

    assert config.metadata.fallback_read_bytes == 512 * 1024
    assert config.metadata.mp4_fallback_read_bytes == 3 * 1024 * 1024
    assert ".flac" in config.library.supported_formats


def test_sections_override_defaults(tmp_path):
    config_path = tmp_path / "config.toml"
    config_path.write_text(
        """
[paths]
document_dir = "/srv/music-docs"
cache_dir = "/srv/music-cache"

[library]
supported_formats = [".MP3", ".flac"]

[sync]
batch_size = 5

[playback]
history_limit = 50
mpv_socket_path = "/tmp/test-mpv.sock"

[logging]
level = "DEBUG"
""",
        encoding="utf-8",
    )

    config = load_config(config_path)

    assert config.paths.document_dir == "/srv/music-docs"
    assert config.paths.database_path == Path("/srv/music-docs/music_library.db")
    assert config.library.supported_formats == [".mp3", ".flac"]
    assert config.sync.batch_size == 5
    assert config.sync.chunk_size == 10
    assert config.playback.history_limit == 50
    assert config.playback.mpv_socket_path == "/tmp/test-mpv.sock"
    assert config.logging.level == "DEBUG"


def test_environment_overrides_paths(tmp_path, monkeypatch):
    config_path = tmp_path / "config.toml"
    config_path.write_text('[paths]\ndocument_dir = "/from/toml"\n', encoding="utf-8")
    monkeypatch.setenv("GOODMUSIC_DOCUMENT_DIR", str(tmp_path / "from-env"))

    config = load_config(config_path)

    assert config.paths.document_dir == str(tmp_path / "from-env")


def test_dotenv_in_config_dir_is_loaded(tmp_path):
    env_dir = tmp_path / "xdg-config" / "goodmusic"
    env_dir.mkdir(parents=True)
    (env_dir / ".env").write_text(
        f"GOODMUSIC_CACHE_DIR={tmp_path / 'dotenv-cache'}\n", encoding="utf-8"
    )
    config_path = tmp_path / "config.toml"
    config_path.write_text("", encoding="utf-8")

    try:
        config = load_config(config_path)
    finally:
        # load_dotenv writes straight into os.environ
        os.environ.pop("GOODMUSIC_CACHE_DIR", None)

    assert config.paths.cache_dir == str(tmp_path / "dotenv-cache")


def test_invalid_toml_falls_back_to_defaults(tmp_path):
    config_path = tmp_path / "config.toml"
    config_path.write_text("[sync\nbatch_size = ", encoding="utf-8")

    config = load_config(config_path)

    assert config.sync.batch_size == 30
