"""Playback domain - queue engine, preferences and mpv integration.

This domain handles:
- Queue, shuffle and repeat semantics
- Persisted playback preferences and favorites
- The audio backend boundary and its mpv implementation
"""

# State management
from .state import PlaybackPreferences, RepeatMode

# Queue origins
from .origin import (
    AlbumOrigin,
    AllSongsOrigin,
    ArtistOrigin,
    FavoritesOrigin,
    PlaybackOrigin,
    PlaylistOrigin,
    RecentOrigin,
    SearchOrigin,
)

# Backends
from .backend import AudioBackend, PlaybackStatus
from .mpv import MpvBackend, MpvError, check_mpv_available

# Engine
from .engine import PlaybackEngine, PlaybackSnapshot

__all__ = [
    "PlaybackPreferences",
    "RepeatMode",
    "AlbumOrigin",
    "AllSongsOrigin",
    "ArtistOrigin",
    "FavoritesOrigin",
    "PlaybackOrigin",
    "PlaylistOrigin",
    "RecentOrigin",
    "SearchOrigin",
    "AudioBackend",
    "PlaybackStatus",
    "MpvBackend",
    "MpvError",
    "check_mpv_available",
    "PlaybackEngine",
    "PlaybackSnapshot",
]
