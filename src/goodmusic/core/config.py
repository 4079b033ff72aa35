"""
Configuration management for goodmusic
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

DEFAULT_AUDIO_EXTENSIONS = [".mp3", ".m4a", ".wav", ".flac", ".aac", ".ogg"]


@dataclass
class PathsConfig:
    """Storage roots and well-known locations beneath them."""

    document_dir: str = field(default_factory=lambda: str(get_data_dir() / "documents"))
    cache_dir: str = field(default_factory=lambda: str(get_cache_dir()))
    music_subdir: str = "music"
    artwork_subdir: str = "artworks"
    database_name: str = "music_library.db"

    @property
    def music_dir(self) -> Path:
        return Path(self.document_dir) / self.music_subdir

    @property
    def artwork_dir(self) -> Path:
        return Path(self.cache_dir) / self.artwork_subdir

    @property
    def database_path(self) -> Path:
        return Path(self.document_dir) / self.database_name


@dataclass
class LibraryConfig:
    """Configuration for music library settings."""

    supported_formats: List[str] = field(
        default_factory=lambda: list(DEFAULT_AUDIO_EXTENSIONS)
    )


@dataclass
class MetadataConfig:
    """Read sizes used when extracting tags from the head of a file."""

    header_bytes: int = 16
    fallback_read_bytes: int = 512 * 1024
    mp4_fallback_read_bytes: int = 3 * 1024 * 1024
    max_tag_bytes: int = 10 * 1024 * 1024


@dataclass
class SyncConfig:
    """Configuration for library synchronization."""

    chunk_size: int = 10  # Files processed concurrently
    batch_size: int = 30  # New tracks buffered before a store flush
    yield_every_chunks: int = 2
    yield_delay_ms: int = 10


@dataclass
class PlaybackConfig:
    """Configuration for the playback engine and mpv backend."""

    history_limit: int = 200
    restart_threshold_ms: int = 3000  # playPrev restarts the track past this point
    settle_delay_ms: int = 50
    mpv_socket_path: Optional[str] = None
    volume: int = 50


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = "INFO"  # DEBUG, INFO, WARNING, ERROR, CRITICAL
    log_file: Optional[str] = None  # Default: ~/.local/share/goodmusic/goodmusic.log
    console_output: bool = False


@dataclass
class Config:
    """Main configuration object."""

    paths: PathsConfig = field(default_factory=PathsConfig)
    library: LibraryConfig = field(default_factory=LibraryConfig)
    metadata: MetadataConfig = field(default_factory=MetadataConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def get_config_dir() -> Path:
    """Get the configuration directory path."""
    config_home = os.environ.get("XDG_CONFIG_HOME")
    if config_home:
        return Path(config_home) / "goodmusic"
    return Path.home() / ".config" / "goodmusic"


def get_data_dir() -> Path:
    """Get the data directory path."""
    data_home = os.environ.get("XDG_DATA_HOME")
    if data_home:
        return Path(data_home) / "goodmusic"
    return Path.home() / ".local" / "share" / "goodmusic"


def get_cache_dir() -> Path:
    """Get the cache directory path."""
    cache_home = os.environ.get("XDG_CACHE_HOME")
    if cache_home:
        return Path(cache_home) / "goodmusic"
    return Path.home() / ".cache" / "goodmusic"


def _find_project_config() -> Optional[Path]:
    """Find config.toml in the project root by looking for pyproject.toml.

    Returns:
        Path to config.toml in project root, or None if not found
    """
    current = Path(__file__).resolve().parent
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            config_path = parent / "config.toml"
            return config_path if config_path.exists() else None
    return None


def get_config_path() -> Path:
    """Get the main configuration file path.

    Checks for config.toml in the following order:
    1. Project root (detected via pyproject.toml) - for development
    2. Current working directory
    3. XDG_CONFIG_HOME/goodmusic (or ~/.config/goodmusic)
    """
    project_config = _find_project_config()
    if project_config:
        return project_config

    local_config = Path.cwd() / "config.toml"
    if local_config.exists():
        return local_config

    return get_config_dir() / "config.toml"


def create_default_config() -> str:
    """Create a default configuration TOML content."""
    return """
# goodmusic configuration

[paths]
# Managed storage roots. Track identities are stored relative to these.
# document_dir = "~/.local/share/goodmusic/documents"
# cache_dir = "~/.cache/goodmusic"
music_subdir = "music"
artwork_subdir = "artworks"
database_name = "music_library.db"

[library]
supported_formats = [".mp3", ".m4a", ".wav", ".flac", ".aac", ".ogg"]

[metadata]
header_bytes = 16
fallback_read_bytes = 524288
mp4_fallback_read_bytes = 3145728
max_tag_bytes = 10485760

[sync]
chunk_size = 10
batch_size = 30
yield_every_chunks = 2
yield_delay_ms = 10

[playback]
history_limit = 200
restart_threshold_ms = 3000
settle_delay_ms = 50
volume = 50

[logging]
level = "INFO"
console_output = false
""".strip()


def _apply_env_overrides(config: Config) -> None:
    document_dir = os.environ.get("GOODMUSIC_DOCUMENT_DIR")
    cache_dir = os.environ.get("GOODMUSIC_CACHE_DIR")

    if document_dir:
        config.paths.document_dir = str(Path(document_dir).expanduser())
    if cache_dir:
        config.paths.cache_dir = str(Path(cache_dir).expanduser())


def load_config(config_path: Optional[Path] = None) -> Config:
    """Load configuration from file or create default.

    Environment variables override TOML values:
    - GOODMUSIC_DOCUMENT_DIR
    - GOODMUSIC_CACHE_DIR
    """
    from dotenv import load_dotenv

    env_path = get_config_dir() / ".env"
    if env_path.exists():
        load_dotenv(env_path)

    config_path = config_path or get_config_path()

    if not config_path.exists():
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w", encoding="utf-8") as f:
            f.write(create_default_config())
        print(f"Created default configuration at: {config_path}")
        config = Config()
        _apply_env_overrides(config)
        return config

    try:
        with open(config_path, "rb") as f:
            toml_data = tomllib.load(f)

        config = Config()

        if "paths" in toml_data:
            paths_data = toml_data["paths"]
            config.paths = PathsConfig(
                document_dir=str(
                    Path(
                        paths_data.get("document_dir", config.paths.document_dir)
                    ).expanduser()
                ),
                cache_dir=str(
                    Path(paths_data.get("cache_dir", config.paths.cache_dir)).expanduser()
                ),
                music_subdir=paths_data.get("music_subdir", config.paths.music_subdir),
                artwork_subdir=paths_data.get(
                    "artwork_subdir", config.paths.artwork_subdir
                ),
                database_name=paths_data.get(
                    "database_name", config.paths.database_name
                ),
            )

        if "library" in toml_data:
            library_data = toml_data["library"]
            config.library = LibraryConfig(
                supported_formats=[
                    ext.lower()
                    for ext in library_data.get(
                        "supported_formats", config.library.supported_formats
                    )
                ],
            )

        if "metadata" in toml_data:
            metadata_data = toml_data["metadata"]
            config.metadata = MetadataConfig(
                header_bytes=metadata_data.get(
                    "header_bytes", config.metadata.header_bytes
                ),
                fallback_read_bytes=metadata_data.get(
                    "fallback_read_bytes", config.metadata.fallback_read_bytes
                ),
                mp4_fallback_read_bytes=metadata_data.get(
                    "mp4_fallback_read_bytes", config.metadata.mp4_fallback_read_bytes
                ),
                max_tag_bytes=metadata_data.get(
                    "max_tag_bytes", config.metadata.max_tag_bytes
                ),
            )

        if "sync" in toml_data:
            sync_data = toml_data["sync"]
            config.sync = SyncConfig(
                chunk_size=sync_data.get("chunk_size", config.sync.chunk_size),
                batch_size=sync_data.get("batch_size", config.sync.batch_size),
                yield_every_chunks=sync_data.get(
                    "yield_every_chunks", config.sync.yield_every_chunks
                ),
                yield_delay_ms=sync_data.get(
                    "yield_delay_ms", config.sync.yield_delay_ms
                ),
            )

        if "playback" in toml_data:
            playback_data = toml_data["playback"]
            config.playback = PlaybackConfig(
                history_limit=playback_data.get(
                    "history_limit", config.playback.history_limit
                ),
                restart_threshold_ms=playback_data.get(
                    "restart_threshold_ms", config.playback.restart_threshold_ms
                ),
                settle_delay_ms=playback_data.get(
                    "settle_delay_ms", config.playback.settle_delay_ms
                ),
                mpv_socket_path=playback_data.get("mpv_socket_path"),
                volume=playback_data.get("volume", config.playback.volume),
            )

        if "logging" in toml_data:
            logging_data = toml_data["logging"]
            config.logging = LoggingConfig(
                level=logging_data.get("level", config.logging.level),
                log_file=logging_data.get("log_file"),
                console_output=logging_data.get(
                    "console_output", config.logging.console_output
                ),
            )

        _apply_env_overrides(config)
        return config

    except (OSError, tomllib.TOMLDecodeError, TypeError, ValueError) as e:
        print(f"Error loading configuration from {config_path}: {e}")
        print("Using default configuration.")
        config = Config()
        _apply_env_overrides(config)
        return config


def ensure_directories(config: Config) -> None:
    """Ensure all necessary directories exist."""
    get_data_dir().mkdir(parents=True, exist_ok=True)
    Path(config.paths.document_dir).mkdir(parents=True, exist_ok=True)
    config.paths.artwork_dir.mkdir(parents=True, exist_ok=True)
