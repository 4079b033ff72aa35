"""
Import user-picked files into the managed music directory.

Copies land under the music root so the next sync picks them up. Names that
would resolve outside the root and hidden entries are skipped.
"""

import asyncio
import os
import shutil
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable, Optional, Union

from loguru import logger

from goodmusic.core.paths import is_path_within_root

if TYPE_CHECKING:
    from .store import LibraryStore

PROGRESS_EVERY = 10

ImportProgressCallback = Callable[[int, int], None]


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def _copy_file(source: Path, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy2(source, destination)


def list_visible_files(folder: Path) -> list[tuple[Path, Path]]:
    """(source, path relative to folder) for every visible file under folder."""
    entries: list[tuple[Path, Path]] = []
    for dirpath, dirnames, filenames in os.walk(folder):
        dirnames[:] = sorted(d for d in dirnames if not is_hidden(d))
        for filename in sorted(filenames):
            if is_hidden(filename):
                continue
            source = Path(dirpath) / filename
            entries.append((source, source.relative_to(folder)))
    return entries


async def _copy_entries(
    entries: list[tuple[Path, Path]],
    music_dir: Path,
    on_progress: Optional[ImportProgressCallback],
) -> list[str]:
    music_dir = Path(music_dir)
    total = len(entries)
    imported: list[str] = []

    for index, (source, relative) in enumerate(entries, start=1):
        destination = music_dir / relative
        if not is_path_within_root(destination, [music_dir]):
            logger.warning(f"Refusing to import outside music directory: {relative}")
        else:
            try:
                await asyncio.to_thread(_copy_file, source, destination)
                imported.append(str(destination))
            except OSError as e:
                logger.error(f"Failed to import {source}: {e}")

        if on_progress is not None and (index % PROGRESS_EVERY == 0 or index == total):
            on_progress(index, total)

    logger.info(f"Imported {len(imported)}/{total} files into {music_dir}")
    return imported


async def import_files(
    sources: Iterable[Union[str, Path]],
    music_dir: Path,
    on_progress: Optional[ImportProgressCallback] = None,
) -> list[str]:
    """Copy individual files into the music root.

    Returns:
        Absolute destination paths of the files that were copied
    """
    entries = [
        (Path(source), Path(Path(source).name))
        for source in sources
        if not is_hidden(Path(source).name)
    ]
    return await _copy_entries(entries, music_dir, on_progress)


async def import_folder(
    folder: Union[str, Path],
    music_dir: Path,
    store: Optional["LibraryStore"] = None,
    on_progress: Optional[ImportProgressCallback] = None,
) -> list[str]:
    """Copy the visible contents of a folder into music_dir/<folder name>/."""
    folder = Path(folder)
    if not folder.is_dir():
        logger.warning(f"Not a folder, nothing to import: {folder}")
        return []

    entries = await asyncio.to_thread(list_visible_files, folder)
    target = Path(music_dir) / folder.name
    imported = await _copy_entries(
        [(source, Path(folder.name) / relative) for source, relative in entries],
        music_dir,
        on_progress,
    )

    if store is not None:
        await store.add_folder(str(target))
    return imported
