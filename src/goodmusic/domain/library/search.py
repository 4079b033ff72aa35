"""
Search and sort helpers over in-memory track lists.
"""

import unicodedata
from typing import Optional, Sequence

from .models import Track

SORT_ALPHABETICAL = "alphabetical"
SORT_RECENTLY_PLAYED = "recently_played"

_SINGLE_QUOTES = "‘’‚‛′‵`"
_DOUBLE_QUOTES = "“”„‟″‶"
_QUOTE_TABLE = str.maketrans(
    {**{ch: "'" for ch in _SINGLE_QUOTES}, **{ch: '"' for ch in _DOUBLE_QUOTES}}
)


def normalize_for_search(text: Optional[str]) -> str:
    """Lowercase, strip accents and straighten quotes so "Beyoncé’s" matches "beyonce's"."""
    if not text:
        return ""

    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.translate(_QUOTE_TABLE).strip()


def search_tracks(tracks: Sequence[Track], query: str) -> list[Track]:
    """Filter tracks whose title, artist or album contains the query."""
    needle = normalize_for_search(query)
    if not needle:
        return list(tracks)

    return [
        track
        for track in tracks
        if needle in normalize_for_search(track.title)
        or needle in normalize_for_search(track.artist)
        or needle in normalize_for_search(track.album)
    ]


def _title_key(track: Track) -> str:
    return (track.title or "").casefold()


def sort_tracks(
    tracks: Sequence[Track],
    option: str = SORT_ALPHABETICAL,
    descending: bool = False,
    history: Optional[Sequence[str]] = None,
) -> list[Track]:
    """Sort alphabetically by title, or by recency given history track ids (newest first).

    Tracks absent from the history follow the played ones, alphabetically.
    """
    if option == SORT_RECENTLY_PLAYED and history is not None:
        rank = {track_id: index for index, track_id in enumerate(history)}
        unplayed = len(rank)
        ordered = sorted(
            tracks, key=lambda t: (rank.get(t.id, unplayed), _title_key(t))
        )
    else:
        ordered = sorted(tracks, key=_title_key)

    if descending:
        ordered.reverse()
    return ordered


def sort_by_track_number(tracks: Sequence[Track], descending: bool = False) -> list[Track]:
    """Album order: numbered tracks first, then the rest by title."""
    ordered = sorted(
        tracks,
        key=lambda t: (
            t.track_number is None,
            t.track_number or 0,
            _title_key(t),
        ),
    )
    if descending:
        ordered.reverse()
    return ordered
