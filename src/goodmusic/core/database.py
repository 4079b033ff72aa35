"""
SQLite database setup for goodmusic
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from loguru import logger


@contextmanager
def get_db_connection(db_path: Path) -> Iterator[sqlite3.Connection]:
    """Get a database connection with proper cleanup and concurrency support."""
    conn = sqlite3.connect(db_path, timeout=30.0)
    conn.row_factory = sqlite3.Row  # Enable dict-like access

    # WAL allows reads while a sync batch is being written
    conn.execute("PRAGMA journal_mode=WAL")
    # Membership rows cascade on track/playlist delete
    conn.execute("PRAGMA foreign_keys=ON")

    try:
        yield conn
    finally:
        conn.close()


def _table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    return {row["name"] for row in conn.execute(f"PRAGMA table_info({table})")}


def _ensure_column(
    conn: sqlite3.Connection, table: str, column: str, definition: str
) -> bool:
    """Add a column if it does not exist yet. Returns True when it was added."""
    if column in _table_columns(conn, table):
        return False

    conn.execute(f"ALTER TABLE {table} ADD COLUMN {column} {definition}")
    logger.info(f"Migration: added {table}.{column}")
    return True


def migrate_database(conn: sqlite3.Connection) -> None:
    """Apply additive migrations to databases created by older versions.

    Columns are only ever added, never dropped or retyped, so this is safe to
    run on every startup.
    """
    _ensure_column(conn, "tracks", "lrc", "TEXT")
    _ensure_column(conn, "tracks", "trackNumber", "INTEGER")
    _ensure_column(conn, "playback_state", "show_lyrics", "INTEGER NOT NULL DEFAULT 0")


def init_database(db_path: Path) -> None:
    """Initialize the database with required tables."""
    db_path.parent.mkdir(parents=True, exist_ok=True)

    with get_db_connection(db_path) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS tracks (
                id TEXT PRIMARY KEY NOT NULL,
                title TEXT,
                artist TEXT,
                album TEXT,
                uri TEXT NOT NULL,
                artwork TEXT,
                duration INTEGER
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS playlists (
                id TEXT PRIMARY KEY NOT NULL,
                title TEXT NOT NULL,
                createdAt INTEGER NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS playlist_tracks (
                playlistId TEXT NOT NULL,
                trackId TEXT NOT NULL,
                orderIndex INTEGER NOT NULL,
                PRIMARY KEY (playlistId, trackId),
                FOREIGN KEY (playlistId) REFERENCES playlists (id) ON DELETE CASCADE,
                FOREIGN KEY (trackId) REFERENCES tracks (id) ON DELETE CASCADE
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS added_folders (
                uri TEXT PRIMARY KEY NOT NULL,
                addedAt INTEGER NOT NULL
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS playback_history (
                trackId TEXT PRIMARY KEY NOT NULL,
                playedAt INTEGER NOT NULL
            )
        """)

        # Single-row table (id = 1) holding the persisted playback toggles
        conn.execute("""
            CREATE TABLE IF NOT EXISTS playback_state (
                id INTEGER PRIMARY KEY CHECK (id = 1),
                shuffle_enabled INTEGER NOT NULL DEFAULT 0,
                repeat_mode TEXT NOT NULL DEFAULT 'none',
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        conn.execute("""
            CREATE TABLE IF NOT EXISTS favorites (
                trackId TEXT PRIMARY KEY NOT NULL,
                addedAt INTEGER NOT NULL
            )
        """)

        migrate_database(conn)

        conn.execute("CREATE INDEX IF NOT EXISTS idx_artist ON tracks (artist)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_album ON tracks (album)")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_playlist_tracks_order "
            "ON playlist_tracks (playlistId, orderIndex)"
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_history_played_at "
            "ON playback_history (playedAt)"
        )

        conn.commit()

    logger.debug(f"Database ready: {db_path}")
