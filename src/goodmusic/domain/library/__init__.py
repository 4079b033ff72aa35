"""Library domain - discovery, metadata and persistence.

This domain handles:
- Track, playlist and history models
- Audio file discovery under the music root
- Metadata extraction from partial file reads
- The SQLite-backed library store
- Search, sorting and file import
"""

# Models
from .models import (
    UNKNOWN_ALBUM,
    UNKNOWN_ARTIST,
    HistoryEntry,
    Playlist,
    Track,
    TrackMetadata,
    WatchedFolder,
)

# Metadata extraction
from .metadata import (
    create_album_art_cache,
    compute_read_length,
    extract_metadata,
    metadata_from_filename,
    read_lrc_file,
)

# Discovery
from .scanner import discover_audio_files, discover_audio_files_async, is_supported_format

# Search and sorting
from .search import normalize_for_search, search_tracks, sort_by_track_number, sort_tracks

# Store
from .store import LibraryStore

# Import
from .import_files import import_files, import_folder

__all__ = [
    # Models
    "UNKNOWN_ALBUM",
    "UNKNOWN_ARTIST",
    "HistoryEntry",
    "Playlist",
    "Track",
    "TrackMetadata",
    "WatchedFolder",
    # Metadata
    "create_album_art_cache",
    "compute_read_length",
    "extract_metadata",
    "metadata_from_filename",
    "read_lrc_file",
    # Discovery
    "discover_audio_files",
    "discover_audio_files_async",
    "is_supported_format",
    # Search
    "normalize_for_search",
    "search_tracks",
    "sort_by_track_number",
    "sort_tracks",
    # Store
    "LibraryStore",
    # Import
    "import_files",
    "import_folder",
]
