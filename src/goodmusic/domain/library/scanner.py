"""
Audio file discovery.

Walks a directory tree and returns every file with a known audio extension.
"""

import asyncio
import os
from pathlib import Path
from typing import Iterable, Optional, Union

from loguru import logger

from goodmusic.core.config import DEFAULT_AUDIO_EXTENSIONS


def is_supported_format(local_path: Union[str, Path], supported_formats: Iterable[str]) -> bool:
    """Check if file format is supported (case-insensitive)."""
    suffix = os.path.splitext(str(local_path))[1].lower()
    return suffix in {ext.lower() for ext in supported_formats}


def discover_audio_files(
    root: Union[str, Path], supported_formats: Optional[Iterable[str]] = None
) -> list[str]:
    """Recursively collect audio files under root.

    Directories and files are visited in sorted order, so the result is stable
    for an unchanged tree. Unreadable directories and broken entries are
    skipped.

    Args:
        root: Directory to walk
        supported_formats: Extensions to accept (defaults to the known audio set)

    Returns:
        Absolute file paths in discovery order
    """
    extensions = {ext.lower() for ext in (supported_formats or DEFAULT_AUDIO_EXTENSIONS)}
    found: list[str] = []

    def _on_walk_error(error: OSError) -> None:
        logger.debug(f"Skipping unreadable directory {error.filename}: {error.strerror}")

    for dirpath, dirnames, filenames in os.walk(
        os.path.abspath(root), onerror=_on_walk_error
    ):
        dirnames.sort()

        for name in sorted(filenames):
            if os.path.splitext(name)[1].lower() not in extensions:
                continue

            full_path = os.path.join(dirpath, name)
            # Dangling symlinks and special files
            if not os.path.isfile(full_path):
                logger.debug(f"Skipping broken entry: {full_path}")
                continue

            found.append(full_path)

    return found


async def discover_audio_files_async(
    root: Union[str, Path], supported_formats: Optional[Iterable[str]] = None
) -> list[str]:
    """discover_audio_files() run off the event loop."""
    return await asyncio.to_thread(discover_audio_files, root, supported_formats)
