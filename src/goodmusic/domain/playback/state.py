"""
Persisted playback preferences for goodmusic

Shuffle, repeat and lyrics visibility live in the single-row playback_state
table; favorites are a set of track ids. The functions here are blocking and
are called through LibraryStore, which runs them off the event loop.
"""

import time
from enum import Enum
from pathlib import Path
from typing import NamedTuple

from goodmusic.core.database import get_db_connection


class RepeatMode(str, Enum):
    NONE = "none"
    ALL = "all"
    ONE = "one"

    def next(self) -> "RepeatMode":
        """none -> all -> one -> none"""
        order = [RepeatMode.NONE, RepeatMode.ALL, RepeatMode.ONE]
        return order[(order.index(self) + 1) % len(order)]


class PlaybackPreferences(NamedTuple):
    shuffle: bool = False
    repeat_mode: RepeatMode = RepeatMode.NONE
    show_lyrics: bool = False


def get_playback_preferences(db_path: Path) -> PlaybackPreferences:
    """
    Get the persisted playback toggles.

    Returns:
        Stored preferences, or defaults when nothing was saved yet
    """
    with get_db_connection(db_path) as conn:
        row = conn.execute("""
            SELECT shuffle_enabled, repeat_mode, show_lyrics
            FROM playback_state WHERE id = 1
        """).fetchone()

    if row is None:
        return PlaybackPreferences()

    try:
        repeat_mode = RepeatMode(row["repeat_mode"])
    except ValueError:
        repeat_mode = RepeatMode.NONE

    return PlaybackPreferences(
        shuffle=bool(row["shuffle_enabled"]),
        repeat_mode=repeat_mode,
        show_lyrics=bool(row["show_lyrics"]),
    )


def save_playback_preferences(db_path: Path, preferences: PlaybackPreferences) -> None:
    with get_db_connection(db_path) as conn:
        conn.execute(
            """
            INSERT OR REPLACE INTO playback_state
                (id, shuffle_enabled, repeat_mode, show_lyrics, updated_at)
            VALUES (1, ?, ?, ?, CURRENT_TIMESTAMP)
        """,
            (
                int(preferences.shuffle),
                RepeatMode(preferences.repeat_mode).value,
                int(preferences.show_lyrics),
            ),
        )
        conn.commit()


def get_favorites(db_path: Path) -> set[str]:
    """Stable ids of all favorite tracks."""
    with get_db_connection(db_path) as conn:
        rows = conn.execute("SELECT trackId FROM favorites").fetchall()
    return {row["trackId"] for row in rows}


def set_favorite(db_path: Path, stable_id: str, enabled: bool) -> None:
    """
    Add or remove a favorite.

    Args:
        db_path: Library database
        stable_id: Track id in stored (root-independent) form
        enabled: True to mark as favorite, False to clear
    """
    with get_db_connection(db_path) as conn:
        if enabled:
            conn.execute(
                "INSERT OR IGNORE INTO favorites (trackId, addedAt) VALUES (?, ?)",
                (stable_id, int(time.time() * 1000)),
            )
        else:
            conn.execute("DELETE FROM favorites WHERE trackId = ?", (stable_id,))
        conn.commit()
