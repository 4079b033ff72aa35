"""
Stable path identities for library files.

Absolute storage roots move (reinstalls, sandbox container changes, a new
data directory), so tracks are stored with their root replaced by a scheme
tag and resolved against the current roots at read time:

    /home/me/.local/share/goodmusic/documents/music/a.mp3  ->  doc://music/a.mp3
    /home/me/.cache/goodmusic/artworks/art_x.jpg           ->  cache://artworks/art_x.jpg
"""

from pathlib import Path
from typing import Iterable, Optional, Union
from urllib.parse import unquote, urlparse

DOC_SCHEME = "doc://"
CACHE_SCHEME = "cache://"
FILE_SCHEME = "file://"

# Sandboxed app containers embed a per-install UUID in the path
LEGACY_CONTAINER_MARKER = "/Containers/Data/Application/"
LEGACY_ROOT_MARKERS = (
    ("/Documents/", DOC_SCHEME),
    ("/Library/Caches/", CACHE_SCHEME),
)

PathLike = Union[str, Path]


def _strip_file_scheme(uri: str) -> str:
    if not uri.startswith(FILE_SCHEME):
        return uri
    return unquote(urlparse(uri).path)


def _as_root(path: PathLike) -> str:
    root = _strip_file_scheme(str(path))
    return root if root.endswith("/") else root + "/"


class PathCodec:
    """Translates between absolute file paths and root-independent identifiers."""

    def __init__(self, document_dir: PathLike, cache_dir: PathLike):
        self.document_root = _as_root(document_dir)
        self.cache_root = _as_root(cache_dir)

    def __repr__(self) -> str:
        return f"PathCodec(document_root={self.document_root!r}, cache_root={self.cache_root!r})"

    def to_stable_id(self, path: Optional[PathLike]) -> str:
        """Convert an absolute path (or file:// URI) into its stable form.

        Paths outside both roots are returned unchanged.
        """
        if not path:
            return ""

        raw = str(path)
        if raw.startswith(DOC_SCHEME) or raw.startswith(CACHE_SCHEME):
            return raw

        plain = _strip_file_scheme(raw)

        if plain.startswith(self.document_root):
            return DOC_SCHEME + plain[len(self.document_root):]
        if plain.startswith(self.cache_root):
            return CACHE_SCHEME + plain[len(self.cache_root):]

        if LEGACY_CONTAINER_MARKER in plain:
            for marker, scheme in LEGACY_ROOT_MARKERS:
                index = plain.find(marker)
                if index != -1:
                    return scheme + plain[index + len(marker):]

        return raw

    def to_absolute(self, stable: Optional[str]) -> str:
        """Resolve a stored identifier against the current roots."""
        if not stable:
            return ""

        if stable.startswith(DOC_SCHEME):
            return self.document_root + stable[len(DOC_SCHEME):]
        if stable.startswith(CACHE_SCHEME):
            return self.cache_root + stable[len(CACHE_SCHEME):]

        # Absolute URI written under an older root
        if stable.startswith(FILE_SCHEME):
            migrated = self.to_stable_id(stable)
            if migrated.startswith(DOC_SCHEME) or migrated.startswith(CACHE_SCHEME):
                return self.to_absolute(migrated)
            return _strip_file_scheme(stable)

        return stable


def is_path_within_root(file_path: Path, roots: Iterable[PathLike]) -> bool:
    """Check that a path resolves inside one of the given directories.

    Uses Path.resolve() so symlinks and '..' segments cannot escape the root.
    """
    try:
        resolved_path = file_path.resolve()

        for root in roots:
            try:
                resolved_path.relative_to(Path(root).resolve())
                return True
            except ValueError:
                continue

        return False
    except (OSError, RuntimeError):
        return False
