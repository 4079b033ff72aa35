"""
Music library domain models.

Contains data structures for representing tracks, playlists and the
bookkeeping rows that live next to them in the library store.
"""

from typing import NamedTuple, Optional

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"


class Track(NamedTuple):
    """A single audio file in the library.

    `id` and `uri` are absolute paths when handed out by the store; the
    store persists them in stable (root-independent) form.
    """

    id: str
    title: str
    artist: str = UNKNOWN_ARTIST
    album: str = UNKNOWN_ALBUM
    uri: str = ""
    artwork: Optional[str] = None  # Cached image shared by the album
    track_number: Optional[int] = None
    duration: Optional[int] = None  # in milliseconds
    lrc: Optional[str] = None  # Raw contents of the sibling .lrc file

    @property
    def duplicate_key(self) -> tuple:
        """Fields that make two tracks duplicates of each other (exact match)."""
        return (self.title, self.artist, self.album, self.duration)


class TrackMetadata(NamedTuple):
    """Result of metadata extraction for one file."""

    title: str
    artist: str = UNKNOWN_ARTIST
    album: str = UNKNOWN_ALBUM
    artwork: Optional[str] = None
    track_number: Optional[int] = None
    duration: Optional[int] = None


class Playlist(NamedTuple):
    id: str
    title: str
    created_at: int  # epoch milliseconds


class WatchedFolder(NamedTuple):
    uri: str
    added_at: int


class HistoryEntry(NamedTuple):
    track_id: str
    played_at: int
