"""
Where the current queue came from.

Each origin kind is its own frozen dataclass carrying exactly the data that
kind needs; `PlaybackOrigin` is the union of them.
"""

from dataclasses import dataclass
from typing import Union


@dataclass(frozen=True)
class AllSongsOrigin:
    title: str = "All Songs"


@dataclass(frozen=True)
class FavoritesOrigin:
    title: str = "Favorites"


@dataclass(frozen=True)
class SearchOrigin:
    query: str
    title: str = "Search Results"


@dataclass(frozen=True)
class ArtistOrigin:
    artist: str

    @property
    def title(self) -> str:
        return self.artist


@dataclass(frozen=True)
class AlbumOrigin:
    album: str

    @property
    def title(self) -> str:
        return self.album


@dataclass(frozen=True)
class PlaylistOrigin:
    playlist_id: str
    title: str = "Playlist"


@dataclass(frozen=True)
class RecentOrigin:
    title: str = "Recently Played"


PlaybackOrigin = Union[
    AllSongsOrigin,
    FavoritesOrigin,
    SearchOrigin,
    ArtistOrigin,
    AlbumOrigin,
    PlaylistOrigin,
    RecentOrigin,
]
