"""
Library synchronization engine.

One sync pass runs four phases:

1. Discovery - make sure the music root exists and walk it.
2. Processing - reuse stored tracks by uri, extract metadata for new files,
   flush new tracks to the store in batches.
3. Cleanup - delete stored tracks whose file was not discovered.
4. Deduplication - collapse tracks with identical metadata.

Only one sync (or metadata/lyrics refresh) runs at a time per LibrarySync
instance; overlapping calls return an empty list immediately.
"""

import asyncio
import os
from pathlib import Path
from typing import Callable, NamedTuple, Optional, Sequence

from loguru import logger

from goodmusic.core.config import Config
from goodmusic.core.paths import PathCodec
from goodmusic.domain.library.metadata import (
    AlbumArtCache,
    create_album_art_cache,
    extract_metadata,
    read_lrc_file,
)
from goodmusic.domain.library.models import Track, TrackMetadata
from goodmusic.domain.library.scanner import discover_audio_files
from goodmusic.domain.library.store import LibraryStore

from .reconcile import DuplicateIndex, plan_reconciliation, snapshot_by_uri

PLACEHOLDER_FILE_NAME = "PLACE_MUSIC_HERE.txt"
PLACEHOLDER_TEXT = (
    "Place your audio files (.mp3, .m4a, .wav, .flac) in this folder "
    "to sync them with the library."
)

PHASE_DISCOVERY = "discovery"
PHASE_PROCESSING = "processing"
PHASE_CLEANUP = "cleanup"
PHASE_DEDUPLICATION = "deduplication"
PHASE_REFRESH = "refresh"


class SyncProgress(NamedTuple):
    phase: str
    processed: int = 0
    total: int = 0
    track: Optional[Track] = None


ProgressCallback = Callable[[SyncProgress], None]


class SyncResult(NamedTuple):
    """Counts from the last completed pass, for reporting."""

    discovered: int = 0
    added: int = 0
    removed: int = 0
    duplicates: int = 0
    failed: int = 0


def ensure_music_directory(music_dir: Path) -> None:
    """Create the music root, seeding a placeholder when it is empty.

    Raises:
        OSError: if the directory cannot be created or listed
    """
    if not music_dir.exists():
        logger.info(f"Music directory does not exist, creating: {music_dir}")
        music_dir.mkdir(parents=True, exist_ok=True)

    if not any(music_dir.iterdir()):
        logger.info("Music directory is empty, creating placeholder file")
        (music_dir / PLACEHOLDER_FILE_NAME).write_text(PLACEHOLDER_TEXT, encoding="utf-8")


def track_from_metadata(
    path: str, metadata: TrackMetadata, lrc: Optional[str] = None
) -> Track:
    return Track(
        id=path,
        title=metadata.title,
        artist=metadata.artist,
        album=metadata.album,
        uri=path,
        artwork=metadata.artwork,
        track_number=metadata.track_number,
        duration=metadata.duration,
        lrc=lrc,
    )


class LibrarySync:
    """Reconciles the library store against the managed music directory."""

    def __init__(self, store: LibraryStore, codec: PathCodec, config: Config):
        self.store = store
        self.codec = codec
        self.config = config
        self.last_result = SyncResult()
        self._lock = asyncio.Lock()

    @property
    def music_dir(self) -> Path:
        return self.config.paths.music_dir

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    def _report(self, on_progress: Optional[ProgressCallback], progress: SyncProgress) -> None:
        if on_progress is None:
            return
        try:
            on_progress(progress)
        except Exception:
            logger.exception("Progress callback failed")

    async def sync(self, on_progress: Optional[ProgressCallback] = None) -> list[Track]:
        """Run one full sync pass.

        Returns:
            Tracks on disk after the pass, in discovery order. An empty list
            also means another sync was already running.
        """
        if self._lock.locked():
            logger.warning("Sync already in progress, skipping")
            return []

        async with self._lock:
            loop = asyncio.get_running_loop()
            started = loop.time()
            logger.info("Starting library sync")
            try:
                tracks = await self._sync(on_progress)
            except Exception:
                logger.exception("Library sync failed")
                return []

            elapsed = loop.time() - started
            logger.info(
                f"Library sync completed in {elapsed:.2f}s: "
                f"{len(tracks)} tracks, {self.last_result}"
            )
            return tracks

    async def _sync(self, on_progress: Optional[ProgressCallback]) -> list[Track]:
        sync_config = self.config.sync

        # Phase 1: Discovery
        try:
            await asyncio.to_thread(ensure_music_directory, self.music_dir)
        except OSError as e:
            # Without a readable root every stored track would look missing
            logger.error(f"Cannot prepare music directory {self.music_dir}: {e}")
            return []

        file_paths = await asyncio.to_thread(
            discover_audio_files, self.music_dir, self.config.library.supported_formats
        )
        total = len(file_paths)
        logger.info(f"Discovered {total} audio files in {self.music_dir}")
        self._report(on_progress, SyncProgress(PHASE_DISCOVERY, 0, total))

        # Phase 2: Processing
        snapshot = snapshot_by_uri(await self.store.get_all_tracks())
        plan = plan_reconciliation(snapshot, file_paths)
        logger.info(
            f"Loaded {len(snapshot)} stored tracks: {len(plan.unchanged)} unchanged, "
            f"{len(plan.new)} new, {len(plan.missing)} missing"
        )

        # Missing tracks give up their key: a renamed file is a delete plus an add
        duplicates = DuplicateIndex(plan.unchanged.values())
        album_art_cache = create_album_art_cache()
        results: dict[str, Track] = {}
        rejected: set[str] = set()
        pending: list[Track] = []
        processed = 0
        added = 0
        failed = 0

        def accept_new(track: Track) -> None:
            loser = duplicates.claim(track)
            if loser is not None:
                logger.debug(f"Skipping duplicate of another track: {loser.uri}")
                rejected.add(loser.uri)
                # A displaced track that was already flushed is removed in phase 4
                pending[:] = [p for p in pending if p is not loser]
            if loser is not track:
                pending.append(track)

        async def flush() -> None:
            nonlocal added
            written = await self._flush(pending)
            if written is None:
                duplicates.release(pending)
            else:
                added += written
            pending.clear()

        async def process_file(path: str) -> None:
            nonlocal processed, failed
            track = plan.unchanged.get(path)
            try:
                if track is None:
                    track = await self._build_track(path, album_art_cache)
                    accept_new(track)
                results[path] = track
            except Exception as e:
                failed += 1
                track = None
                logger.error(f"Error processing file in sync: {path} - {e}")

            processed += 1
            self._report(on_progress, SyncProgress(PHASE_PROCESSING, processed, total, track))

        chunk_size = max(1, sync_config.chunk_size)
        for chunk_number, start in enumerate(range(0, total, chunk_size)):
            if chunk_number % max(1, sync_config.yield_every_chunks) == 0:
                logger.debug(f"Progress: {start}/{total} files")
                await asyncio.sleep(sync_config.yield_delay_ms / 1000)

            chunk = file_paths[start:start + chunk_size]
            await asyncio.gather(*(process_file(path) for path in chunk))

            if len(pending) >= sync_config.batch_size:
                await flush()

        if pending:
            await flush()

        # Phase 3: Cleanup, decided against the snapshot taken above
        removed = 0
        if plan.missing:
            for track in plan.missing:
                logger.warning(f"Removing missing track: {track.title} by {track.artist} ({track.uri})")
            try:
                removed = await self.store.delete_tracks([t.id for t in plan.missing])
            except Exception:
                logger.exception("Failed to remove missing tracks")
        self._report(on_progress, SyncProgress(PHASE_CLEANUP, processed, total))

        # Phase 4: Deduplication
        removed_ids = set(await self.store.deduplicate())
        self._report(on_progress, SyncProgress(PHASE_DEDUPLICATION, processed, total))

        self.last_result = SyncResult(
            discovered=total,
            added=added,
            removed=removed,
            duplicates=len(removed_ids),
            failed=failed,
        )

        return [
            results[path]
            for path in file_paths
            if path in results
            and path not in rejected
            and results[path].id not in removed_ids
        ]

    async def _build_track(self, path: str, album_art_cache: AlbumArtCache) -> Track:
        file_name = os.path.basename(path)
        lrc = await asyncio.to_thread(read_lrc_file, path)
        metadata = await extract_metadata(
            path,
            file_name,
            album_art_cache,
            self.config.paths.artwork_dir,
            self.config.metadata,
        )
        return track_from_metadata(path, metadata, lrc)

    async def _flush(self, batch: list[Track]) -> Optional[int]:
        """Write a batch of new tracks.

        Returns:
            Rows written, or None when the batch failed and was dropped
        """
        logger.debug(f"Batch inserting {len(batch)} tracks")
        try:
            return await self.store.upsert_tracks(batch)
        except Exception as e:
            logger.error(f"Error in batch insert, dropping {len(batch)} tracks: {e}")
            return None

    async def refresh_metadata(
        self,
        tracks: Optional[Sequence[Track]] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> list[Track]:
        """Re-read tags and lyrics for tracks (all stored tracks by default)."""
        if self._lock.locked():
            logger.warning("Sync already in progress, skipping metadata refresh")
            return []

        async with self._lock:
            if tracks is None:
                tracks = await self.store.get_all_tracks()

            album_art_cache = create_album_art_cache()
            updates: list[Track] = []
            for index, track in enumerate(tracks, start=1):
                try:
                    rebuilt = await self._build_track(track.uri, album_art_cache)
                    updates.append(rebuilt._replace(id=track.id, uri=track.uri))
                except Exception as e:
                    logger.warning(f"Failed to refresh metadata for {track.uri}: {e}")
                self._report(on_progress, SyncProgress(PHASE_REFRESH, index, len(tracks)))

            await self._flush(updates)
            logger.info(f"Refreshed metadata for {len(updates)}/{len(tracks)} tracks")
            return updates

    async def refresh_lyrics(
        self, on_progress: Optional[ProgressCallback] = None
    ) -> list[Track]:
        """Re-read sibling .lrc files; only tracks whose lyrics changed are updated."""
        if self._lock.locked():
            logger.warning("Sync already in progress, skipping lyrics refresh")
            return []

        async with self._lock:
            tracks = await self.store.get_all_tracks()
            updates: list[Track] = []
            for index, track in enumerate(tracks, start=1):
                lrc = await asyncio.to_thread(read_lrc_file, track.uri)
                if lrc and lrc != track.lrc:
                    updates.append(track._replace(lrc=lrc))
                self._report(on_progress, SyncProgress(PHASE_REFRESH, index, len(tracks)))

            await self._flush(updates)
            logger.info(f"Updated lyrics for {len(updates)} tracks")
            return updates
