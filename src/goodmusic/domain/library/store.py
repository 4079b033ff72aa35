"""
Library store: tracks, playlists, folders and playback history in SQLite.

Every operation opens its own connection inside a worker thread
(asyncio.to_thread), so awaiting a store call never blocks the event loop.
Identifiers are persisted in stable form (doc://, cache://) and translated
back to absolute paths on the way out.
"""

import asyncio
import os
import sqlite3
import time
import uuid
from pathlib import Path
from typing import Iterable, Optional, Sequence

from loguru import logger

from goodmusic.core.database import get_db_connection, init_database
from goodmusic.core.paths import PathCodec
from goodmusic.domain.playback import state as playback_state
from goodmusic.domain.playback.state import PlaybackPreferences

from .models import (
    UNKNOWN_ALBUM,
    UNKNOWN_ARTIST,
    HistoryEntry,
    Playlist,
    Track,
    WatchedFolder,
)

DEFAULT_HISTORY_LIMIT = 200

TRACK_COLUMNS = "id, title, artist, album, uri, artwork, duration, lrc, trackNumber"


def _now_ms() -> int:
    return int(time.time() * 1000)


class LibraryStore:
    """Async facade over the library database."""

    def __init__(
        self,
        db_path: Path,
        codec: PathCodec,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ):
        self.db_path = Path(db_path)
        self.codec = codec
        self.history_limit = history_limit

    async def open(self) -> None:
        """Create tables and run migrations. Safe to call on every startup."""
        await asyncio.to_thread(init_database, self.db_path)

    # -- conversion -------------------------------------------------------

    def _row_to_track(self, row: sqlite3.Row) -> Track:
        return Track(
            id=self.codec.to_absolute(row["id"]),
            title=row["title"] or "",
            artist=row["artist"] or UNKNOWN_ARTIST,
            album=row["album"] or UNKNOWN_ALBUM,
            uri=self.codec.to_absolute(row["uri"]),
            artwork=self.codec.to_absolute(row["artwork"]) or None,
            track_number=row["trackNumber"],
            duration=row["duration"],
            lrc=row["lrc"],
        )

    def _track_params(self, track: Track) -> tuple:
        return (
            self.codec.to_stable_id(track.id),
            track.title,
            track.artist,
            track.album,
            self.codec.to_stable_id(track.uri),
            self.codec.to_stable_id(track.artwork) or None,
            track.duration,
            track.lrc,
            track.track_number,
        )

    def _stable_ids(self, track_ids: Iterable[str]) -> list[str]:
        return [self.codec.to_stable_id(track_id) for track_id in track_ids]

    # -- tracks -----------------------------------------------------------

    def _upsert_tracks(self, tracks: list[Track]) -> int:
        if not tracks:
            return 0

        # ON CONFLICT keeps the row (and its playlist memberships); REPLACE would cascade
        with get_db_connection(self.db_path) as conn:
            conn.executemany(
                f"""
                INSERT INTO tracks ({TRACK_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                    title = excluded.title,
                    artist = excluded.artist,
                    album = excluded.album,
                    uri = excluded.uri,
                    artwork = excluded.artwork,
                    duration = excluded.duration,
                    lrc = excluded.lrc,
                    trackNumber = excluded.trackNumber
            """,
                [self._track_params(track) for track in tracks],
            )
            conn.commit()

        return len(tracks)

    async def upsert_tracks(self, tracks: Sequence[Track]) -> int:
        """Insert or update tracks by id, as a single transaction."""
        return await asyncio.to_thread(self._upsert_tracks, list(tracks))

    def _fetch_tracks(self, query: str, params: tuple = ()) -> list[Track]:
        with get_db_connection(self.db_path) as conn:
            rows = conn.execute(query, params).fetchall()
        return [self._row_to_track(row) for row in rows]

    async def get_all_tracks(self) -> list[Track]:
        return await asyncio.to_thread(
            self._fetch_tracks,
            f"SELECT {TRACK_COLUMNS} FROM tracks ORDER BY title COLLATE NOCASE, id",
        )

    async def get_track_by_id(self, track_id: str) -> Optional[Track]:
        tracks = await asyncio.to_thread(
            self._fetch_tracks,
            f"SELECT {TRACK_COLUMNS} FROM tracks WHERE id = ?",
            (self.codec.to_stable_id(track_id),),
        )
        return tracks[0] if tracks else None

    async def track_exists(self, track_id: str) -> bool:
        return await self.get_track_by_id(track_id) is not None

    def _get_all_track_uris(self) -> list[str]:
        with get_db_connection(self.db_path) as conn:
            rows = conn.execute("SELECT uri FROM tracks ORDER BY uri").fetchall()
        return [self.codec.to_absolute(row["uri"]) for row in rows]

    async def get_all_track_uris(self) -> list[str]:
        return await asyncio.to_thread(self._get_all_track_uris)

    async def search_tracks(self, query: str) -> list[Track]:
        """Case-insensitive substring match over title, artist and album."""
        escaped = query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        pattern = f"%{escaped}%"
        return await asyncio.to_thread(
            self._fetch_tracks,
            f"""
            SELECT {TRACK_COLUMNS} FROM tracks
            WHERE title LIKE ? ESCAPE '\\'
               OR artist LIKE ? ESCAPE '\\'
               OR album LIKE ? ESCAPE '\\'
            ORDER BY title COLLATE NOCASE, id
            """,
            (pattern, pattern, pattern),
        )

    @staticmethod
    def _delete_rows(conn: sqlite3.Connection, stable_ids: list[str]) -> int:
        params = [(stable_id,) for stable_id in stable_ids]
        removed = conn.executemany("DELETE FROM tracks WHERE id = ?", params).rowcount
        conn.executemany("DELETE FROM playback_history WHERE trackId = ?", params)
        conn.executemany("DELETE FROM favorites WHERE trackId = ?", params)
        return removed

    def _delete_tracks(self, track_ids: list[str]) -> int:
        if not track_ids:
            return 0

        with get_db_connection(self.db_path) as conn:
            removed = self._delete_rows(conn, self._stable_ids(track_ids))
            conn.commit()
        return removed

    async def delete_tracks(self, track_ids: Sequence[str]) -> int:
        """Delete several tracks in one transaction. Memberships cascade."""
        return await asyncio.to_thread(self._delete_tracks, list(track_ids))

    async def delete_track(self, track_id: str, remove_file: bool = False) -> bool:
        """Delete one track; with remove_file also delete its audio file.

        Returns:
            True if a row was removed
        """
        track = await self.get_track_by_id(track_id)
        removed = await self.delete_tracks([track_id]) > 0

        if remove_file and track is not None:
            try:
                await asyncio.to_thread(os.remove, track.uri)
                logger.info(f"Deleted file: {track.uri}")
            except FileNotFoundError:
                logger.debug(f"File already gone: {track.uri}")
            except OSError as e:
                logger.warning(f"Could not delete {track.uri}: {e}")

        return removed

    def _clear_library(self) -> None:
        with get_db_connection(self.db_path) as conn:
            conn.execute("DELETE FROM tracks")
            conn.execute("DELETE FROM playback_history")
            conn.execute("DELETE FROM favorites")
            conn.commit()

    async def clear_library(self) -> None:
        await asyncio.to_thread(self._clear_library)
        logger.info("Library cleared")

    # -- playlists --------------------------------------------------------

    def _create_playlist(self, title: str) -> str:
        playlist_id = uuid.uuid4().hex
        with get_db_connection(self.db_path) as conn:
            conn.execute(
                "INSERT INTO playlists (id, title, createdAt) VALUES (?, ?, ?)",
                (playlist_id, title, _now_ms()),
            )
            conn.commit()
        return playlist_id

    async def create_playlist(self, title: str) -> str:
        return await asyncio.to_thread(self._create_playlist, title)

    def _get_all_playlists(self) -> list[Playlist]:
        with get_db_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT id, title, createdAt FROM playlists ORDER BY createdAt DESC, id"
            ).fetchall()
        return [Playlist(row["id"], row["title"], row["createdAt"]) for row in rows]

    async def get_all_playlists(self) -> list[Playlist]:
        """Playlists, newest first."""
        return await asyncio.to_thread(self._get_all_playlists)

    def _add_tracks_to_playlist(self, playlist_id: str, track_ids: list[str]) -> int:
        with get_db_connection(self.db_path) as conn:
            row = conn.execute(
                "SELECT COALESCE(MAX(orderIndex), -1) AS max_order "
                "FROM playlist_tracks WHERE playlistId = ?",
                (playlist_id,),
            ).fetchone()
            next_order = row["max_order"] + 1

            added = 0
            for stable_id in self._stable_ids(track_ids):
                cursor = conn.execute(
                    """
                    INSERT OR IGNORE INTO playlist_tracks (playlistId, trackId, orderIndex)
                    VALUES (?, ?, ?)
                """,
                    (playlist_id, stable_id, next_order),
                )
                if cursor.rowcount:
                    added += 1
                    next_order += 1

            conn.commit()
        return added

    async def add_tracks_to_playlist(
        self, playlist_id: str, track_ids: Sequence[str]
    ) -> int:
        """Append tracks to a playlist; existing memberships are left alone.

        Returns:
            Number of memberships actually created

        Raises:
            sqlite3.IntegrityError: if the playlist or a track does not exist
        """
        return await asyncio.to_thread(
            self._add_tracks_to_playlist, playlist_id, list(track_ids)
        )

    def _remove_from_playlist(self, playlist_id: str, track_ids: list[str]) -> int:
        with get_db_connection(self.db_path) as conn:
            removed = conn.executemany(
                "DELETE FROM playlist_tracks WHERE playlistId = ? AND trackId = ?",
                [(playlist_id, stable_id) for stable_id in self._stable_ids(track_ids)],
            ).rowcount
            conn.commit()
        return removed

    async def remove_from_playlist(
        self, playlist_id: str, track_ids: Sequence[str]
    ) -> int:
        return await asyncio.to_thread(
            self._remove_from_playlist, playlist_id, list(track_ids)
        )

    def _delete_playlist(self, playlist_id: str) -> bool:
        with get_db_connection(self.db_path) as conn:
            removed = conn.execute(
                "DELETE FROM playlists WHERE id = ?", (playlist_id,)
            ).rowcount
            conn.commit()
        return removed > 0

    async def delete_playlist(self, playlist_id: str) -> bool:
        return await asyncio.to_thread(self._delete_playlist, playlist_id)

    async def get_playlist_tracks(self, playlist_id: str) -> list[Track]:
        """Playlist members in orderIndex order."""
        columns = ", ".join(f"t.{c.strip()}" for c in TRACK_COLUMNS.split(","))
        return await asyncio.to_thread(
            self._fetch_tracks,
            f"""
            SELECT {columns}
            FROM playlist_tracks pt
            JOIN tracks t ON t.id = pt.trackId
            WHERE pt.playlistId = ?
            ORDER BY pt.orderIndex
            """,
            (playlist_id,),
        )

    # -- folders ----------------------------------------------------------

    def _add_folder(self, uri: str) -> None:
        with get_db_connection(self.db_path) as conn:
            conn.execute(
                "INSERT OR IGNORE INTO added_folders (uri, addedAt) VALUES (?, ?)",
                (self.codec.to_stable_id(uri), _now_ms()),
            )
            conn.commit()

    async def add_folder(self, uri: str) -> None:
        await asyncio.to_thread(self._add_folder, uri)

    def _get_folders(self) -> list[WatchedFolder]:
        with get_db_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT uri, addedAt FROM added_folders ORDER BY addedAt, uri"
            ).fetchall()
        return [
            WatchedFolder(self.codec.to_absolute(row["uri"]), row["addedAt"])
            for row in rows
        ]

    async def get_folders(self) -> list[WatchedFolder]:
        return await asyncio.to_thread(self._get_folders)

    # -- history ----------------------------------------------------------

    def _record_history(self, track_id: str, played_at: int) -> None:
        with get_db_connection(self.db_path) as conn:
            # REPLACE reinserts the row, so rowid orders entries played in the same millisecond
            conn.execute(
                "INSERT OR REPLACE INTO playback_history (trackId, playedAt) VALUES (?, ?)",
                (self.codec.to_stable_id(track_id), played_at),
            )
            conn.execute(
                """
                DELETE FROM playback_history WHERE rowid NOT IN (
                    SELECT rowid FROM playback_history
                    ORDER BY playedAt DESC, rowid DESC
                    LIMIT ?
                )
            """,
                (self.history_limit,),
            )
            conn.commit()

    async def record_history(self, track_id: str, played_at: Optional[int] = None) -> None:
        """Mark a track as played now, keeping only the most recent entries."""
        await asyncio.to_thread(
            self._record_history, track_id, played_at if played_at is not None else _now_ms()
        )

    def _get_playback_history(self) -> list[HistoryEntry]:
        with get_db_connection(self.db_path) as conn:
            rows = conn.execute(
                "SELECT trackId, playedAt FROM playback_history "
                "ORDER BY playedAt DESC, rowid DESC"
            ).fetchall()
        return [
            HistoryEntry(self.codec.to_absolute(row["trackId"]), row["playedAt"])
            for row in rows
        ]

    async def get_playback_history(self) -> list[HistoryEntry]:
        """History entries, most recent first."""
        return await asyncio.to_thread(self._get_playback_history)

    async def get_recently_played(self) -> list[Track]:
        columns = ", ".join(f"t.{c.strip()}" for c in TRACK_COLUMNS.split(","))
        return await asyncio.to_thread(
            self._fetch_tracks,
            f"""
            SELECT {columns}
            FROM playback_history h
            JOIN tracks t ON t.id = h.trackId
            ORDER BY h.playedAt DESC, h.rowid DESC
            """,
        )

    # -- deduplication ----------------------------------------------------

    def _deduplicate(self) -> list[str]:
        with get_db_connection(self.db_path) as conn:
            rows = conn.execute("""
                SELECT id FROM (
                    SELECT id, ROW_NUMBER() OVER (
                        PARTITION BY title, artist, album, duration
                        ORDER BY id
                    ) AS rn
                    FROM tracks
                )
                WHERE rn > 1
                ORDER BY id
            """).fetchall()

            duplicate_ids = [row["id"] for row in rows]
            if duplicate_ids:
                self._delete_rows(conn, duplicate_ids)
                conn.commit()

        return [self.codec.to_absolute(stable_id) for stable_id in duplicate_ids]

    async def deduplicate(self) -> list[str]:
        """Collapse tracks with identical (title, artist, album, duration).

        The survivor of each group is the lowest stored id, so repeated calls
        converge and then do nothing.

        Returns:
            Absolute ids of removed tracks
        """
        removed = await asyncio.to_thread(self._deduplicate)
        if removed:
            logger.info(f"Removed {len(removed)} duplicate tracks")
        return removed

    # -- playback preferences ---------------------------------------------

    async def get_playback_preferences(self) -> PlaybackPreferences:
        return await asyncio.to_thread(
            playback_state.get_playback_preferences, self.db_path
        )

    async def save_playback_preferences(self, preferences: PlaybackPreferences) -> None:
        await asyncio.to_thread(
            playback_state.save_playback_preferences, self.db_path, preferences
        )

    async def get_favorites(self) -> set[str]:
        """Absolute ids of favorite tracks."""
        stable_ids = await asyncio.to_thread(playback_state.get_favorites, self.db_path)
        return {self.codec.to_absolute(stable_id) for stable_id in stable_ids}

    async def set_favorite(self, track_id: str, enabled: bool) -> None:
        await asyncio.to_thread(
            playback_state.set_favorite,
            self.db_path,
            self.codec.to_stable_id(track_id),
            enabled,
        )
