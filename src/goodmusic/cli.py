"""
goodmusic CLI - entry point for library maintenance and playback.

Every subcommand loads the configuration, opens the library store and runs
one async operation on a fresh event loop.
"""

import argparse
import asyncio
import random
import sys
from pathlib import Path
from typing import Optional, Sequence

from loguru import logger
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from goodmusic.core.config import Config, ensure_directories, load_config
from goodmusic.core.console import get_console, safe_print
from goodmusic.core.output import configure_logging, log
from goodmusic.core.paths import PathCodec
from goodmusic.domain.library.import_files import import_files, import_folder
from goodmusic.domain.library.models import Track
from goodmusic.domain.library.search import (
    SORT_ALPHABETICAL,
    SORT_RECENTLY_PLAYED,
    normalize_for_search,
    search_tracks,
    sort_by_track_number,
    sort_tracks,
)
from goodmusic.domain.library.store import LibraryStore
from goodmusic.domain.playback.backend import PlaybackStatus
from goodmusic.domain.playback.engine import PlaybackEngine
from goodmusic.domain.playback.mpv import MpvBackend, MpvError, check_mpv_available
from goodmusic.domain.playback.origin import AllSongsOrigin, SearchOrigin
from goodmusic.domain.sync.engine import LibrarySync, SyncProgress


def format_duration(millis: Optional[int]) -> str:
    """Format milliseconds as M:SS."""
    if not millis:
        return "--:--"
    seconds = millis // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


def print_tracks(tracks: Sequence[Track], title: str) -> None:
    table = Table(title=f"{title} ({len(tracks)})")
    table.add_column("Title")
    table.add_column("Artist")
    table.add_column("Album")
    table.add_column("Length", justify="right")

    for track in tracks:
        table.add_row(track.title, track.artist, track.album, format_duration(track.duration))

    get_console().print(table)


async def open_store(config: Config) -> LibraryStore:
    codec = PathCodec(config.paths.document_dir, config.paths.cache_dir)
    store = LibraryStore(config.paths.database_path, codec, config.playback.history_limit)
    await store.open()
    return store


async def run_sync(config: Config, store: LibraryStore) -> int:
    syncer = LibrarySync(store, store.codec, config)

    with Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=get_console(),
        transient=True,
    ) as progress:
        task_id = progress.add_task("Syncing", total=None)

        def on_progress(update: SyncProgress) -> None:
            progress.update(
                task_id,
                description=update.phase.capitalize(),
                completed=update.processed,
                total=update.total or None,
            )

        tracks = await syncer.sync(on_progress)

    result = syncer.last_result
    log(
        f"Synced {len(tracks)} tracks: {result.added} added, {result.removed} removed, "
        f"{result.duplicates} duplicates, {result.failed} failed"
    )
    return 0


async def find_tracks(store: LibraryStore, query: str) -> list[Track]:
    """Substring match in the store, then accent and quote-insensitive matching."""
    tracks = await store.search_tracks(query)
    if tracks:
        return tracks
    return search_tracks(await store.get_all_tracks(), query)


async def run_tracks(store: LibraryStore, album: Optional[str] = None) -> int:
    tracks = await store.get_all_tracks()
    if album is None:
        print_tracks(tracks, "Library")
        return 0

    wanted = normalize_for_search(album)
    tracks = [t for t in tracks if normalize_for_search(t.album) == wanted]
    print_tracks(sort_by_track_number(tracks), f"Album: {album}")
    return 0


async def run_search(store: LibraryStore, query: str) -> int:
    tracks = await find_tracks(store, query)
    if not tracks:
        safe_print(f"No tracks match '{query}'", style="yellow", markup=False)
        return 0
    print_tracks(tracks, f"Search: {query}")
    return 0


async def run_dedupe(store: LibraryStore) -> int:
    removed = await store.deduplicate()
    log(f"Removed {len(removed)} duplicate tracks")
    return 0


async def run_import(config: Config, store: LibraryStore, paths: Sequence[str]) -> int:
    music_dir = config.paths.music_dir
    music_dir.mkdir(parents=True, exist_ok=True)

    def on_progress(done: int, total: int) -> None:
        safe_print(f"  {done}/{total} files", style="cyan")

    files = []
    imported: list[str] = []
    for raw in paths:
        path = Path(raw).expanduser()
        if path.is_dir():
            imported += await import_folder(path, music_dir, store, on_progress)
        elif path.is_file():
            files.append(path)
        else:
            safe_print(f"Not found: {path}", style="red", markup=False)

    if files:
        imported += await import_files(files, music_dir, on_progress)

    log(f"Imported {len(imported)} files")
    if not imported:
        return 1
    return await run_sync(config, store)


async def run_history(store: LibraryStore) -> int:
    tracks = await store.get_recently_played()
    print_tracks(tracks, "Recently Played")
    return 0


async def run_play(
    config: Config, store: LibraryStore, query: Optional[str], recent: bool = False
) -> int:
    if not check_mpv_available():
        log("mpv is not installed or not on PATH", level="error")
        return 1

    if query:
        tracks = await find_tracks(store, query)
        title, origin = "Search Results", SearchOrigin(query)
    else:
        tracks = await store.get_all_tracks()
        title, origin = "All Songs", AllSongsOrigin()

    if not tracks:
        log("Nothing to play", level="warning")
        return 1

    history = [entry.track_id for entry in await store.get_playback_history()]
    option = SORT_RECENTLY_PLAYED if recent else SORT_ALPHABETICAL
    tracks = sort_tracks(tracks, option, history=history)

    backend = MpvBackend(config.playback)
    try:
        await backend.start()
    except MpvError as e:
        log(str(e), level="error")
        return 1

    engine = PlaybackEngine(backend, store, config.playback)
    finished = asyncio.Event()

    async def on_status(status: PlaybackStatus) -> None:
        # Subscribed after the engine, so the engine has already reacted to the end
        if status.did_just_finish and not engine.is_playing:
            finished.set()

    unsubscribe = backend.subscribe(on_status)
    try:
        await engine.load_preferences()
        first = random.choice(tracks) if engine.is_shuffle else tracks[0]
        if not await engine.play(first, tracks, title, origin):
            return 1

        current_id = None

        def on_change(snapshot) -> None:
            nonlocal current_id
            track = snapshot.current_track
            if track is not None and track.id != current_id:
                current_id = track.id
                safe_print(f"♪ {track.artist} - {track.title}", style="green", markup=False)

        engine.add_listener(on_change)
        on_change(engine.snapshot())
        await finished.wait()
        return 0
    finally:
        unsubscribe()
        engine.close()
        await backend.stop()


async def run_command(args: argparse.Namespace) -> int:
    config = load_config(Path(args.config) if args.config else None)
    configure_logging(config.logging)
    ensure_directories(config)

    store = await open_store(config)

    if args.subcommand == "sync":
        return await run_sync(config, store)
    if args.subcommand == "tracks":
        return await run_tracks(store, args.album)
    if args.subcommand == "search":
        return await run_search(store, " ".join(args.query))
    if args.subcommand == "dedupe":
        return await run_dedupe(store)
    if args.subcommand == "import":
        return await run_import(config, store, args.paths)
    if args.subcommand == "history":
        return await run_history(store)
    if args.subcommand == "play":
        return await run_play(config, store, " ".join(args.query) or None, args.recent)

    raise ValueError(f"Unknown command: {args.subcommand}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="goodmusic",
        description="goodmusic - local music library sync and playback",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--config", help="Path to config.toml")

    subparsers = parser.add_subparsers(dest="subcommand", required=True)
    subparsers.add_parser("sync", help="Sync the library with the music directory")
    tracks_parser = subparsers.add_parser("tracks", help="List all tracks")
    tracks_parser.add_argument("--album", help="Only list this album, in track order")

    search_parser = subparsers.add_parser("search", help="Search tracks")
    search_parser.add_argument("query", nargs="+", help="Text to match")

    subparsers.add_parser("dedupe", help="Remove tracks with identical metadata")

    import_parser = subparsers.add_parser(
        "import", help="Copy files or folders into the music directory and sync"
    )
    import_parser.add_argument("paths", nargs="+", help="Files or folders to import")

    subparsers.add_parser("history", help="Show recently played tracks")

    play_parser = subparsers.add_parser("play", help="Play tracks through mpv")
    play_parser.add_argument("query", nargs="*", help="Only play tracks matching this")
    play_parser.add_argument(
        "--recent", action="store_true", help="Start with the most recently played tracks"
    )

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point for the goodmusic command."""
    args = build_parser().parse_args(argv)

    try:
        return asyncio.run(run_command(args))
    except KeyboardInterrupt:
        safe_print("\nStopped", style="yellow")
        return 0
    except Exception as e:
        logger.exception(f"Command {args.subcommand} failed")
        safe_print(f"Error: {e}", style="red", markup=False)
        return 1


if __name__ == "__main__":
    sys.exit(main())
