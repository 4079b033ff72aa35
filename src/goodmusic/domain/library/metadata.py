"""
Music metadata extraction for library sync.

Only the head of each file is read: the container header tells how large the
tag block is, so a scan costs roughly the size of the tags rather than the
size of the audio. The bytes are then parsed with Mutagen.
"""

import asyncio
import base64
import binascii
import io
import os
import re
import struct
from pathlib import Path
from typing import Any, BinaryIO, NamedTuple, Optional

from loguru import logger
from mutagen import File as MutagenFile
from mutagen import MutagenError
from mutagen.aac import AAC
from mutagen.flac import FLAC, Picture
from mutagen.id3 import ID3
from mutagen.mp3 import MP3, BitrateMode
from mutagen.mp4 import MP4
from mutagen.ogg import OggFileType
from mutagen.wave import WAVE

from goodmusic.core.config import MetadataConfig

from .models import UNKNOWN_ALBUM, UNKNOWN_ARTIST, TrackMetadata

ID3_HEADER_SIZE = 10
ID3_FOOTER_SIZE = 10
ID3_FOOTER_FLAG = 0x10
# Room for the first MPEG frames after the tag, where stream info lives
ID3_FRAME_MARGIN = 16 * 1024
ATOM_HEADER_SIZE = 8
FLAC_BLOCK_HEADER_SIZE = 4
FLAC_LAST_BLOCK_FLAG = 0x80

CONTAINER_ID3 = "id3"
CONTAINER_MP4 = "mp4"
CONTAINER_FLAC = "flac"

MIME_BY_EXTENSION = {
    ".mp3": "audio/mpeg",
    ".m4a": "audio/mp4",
    ".mp4": "audio/mp4",
    ".aac": "audio/aac",
    ".wav": "audio/wav",
    ".flac": "audio/flac",
    ".ogg": "audio/ogg",
}
DEFAULT_MIME_TYPE = "audio/mpeg"

PARSER_BY_MIME = {
    "audio/mpeg": MP3,
    "audio/mp4": MP4,
    "audio/flac": FLAC,
    "audio/wav": WAVE,
    "audio/aac": AAC,
}

TITLE_TAGS = ["TIT2", "\xa9nam", "TITLE", "title"]
ARTIST_TAGS = ["TPE1", "\xa9ART", "ARTIST", "artist"]
ALBUM_TAGS = ["TALB", "\xa9alb", "ALBUM", "album"]
TRACK_NUMBER_TAGS = ["TRCK", "trkn", "TRACKNUMBER", "tracknumber"]

COVER_BASENAMES = ("cover", "folder", "front", "artwork")
COVER_EXTENSIONS = (".jpg", ".png")

# Artwork already resolved during this batch, keyed by (album, artist)
AlbumArtCache = dict[tuple[str, str], str]

_PARSE_ERRORS = (MutagenError, ValueError, struct.error, EOFError, IndexError)


class ParsedTags(NamedTuple):
    title: Optional[str]
    artist: Optional[str]
    album: Optional[str]
    track_number: Optional[int]
    duration: Optional[int]
    picture: Optional[bytes]


def create_album_art_cache() -> AlbumArtCache:
    return {}


def get_mime_type(file_name: str) -> str:
    """Infer the MIME type from the file extension."""
    return MIME_BY_EXTENSION.get(Path(file_name).suffix.lower(), DEFAULT_MIME_TYPE)


def title_from_filename(file_name: str) -> str:
    return os.path.splitext(os.path.basename(file_name))[0]


def metadata_from_filename(file_name: str) -> TrackMetadata:
    """Best-effort record used when a file has no readable tags."""
    return TrackMetadata(title=title_from_filename(file_name))


# ---------------------------------------------------------------------------
# Header probing
# ---------------------------------------------------------------------------


def detect_container(header: bytes) -> Optional[str]:
    """Identify the container from its magic bytes."""
    if header[:3] == b"ID3":
        return CONTAINER_ID3
    if header[4:8] == b"ftyp":
        return CONTAINER_MP4
    if header[:4] == b"fLaC":
        return CONTAINER_FLAC
    return None


def synchsafe_to_int(data: bytes) -> int:
    """Decode an ID3v2 synchsafe integer (7 significant bits per byte)."""
    value = 0
    for byte in data[:4]:
        value = (value << 7) | (byte & 0x7F)
    return value


def id3_tag_size(header: bytes) -> int:
    """Total size of an ID3v2 tag including its header and optional footer."""
    if len(header) < ID3_HEADER_SIZE:
        raise ValueError("truncated ID3 header")

    size = ID3_HEADER_SIZE + synchsafe_to_int(header[6:10])
    if header[5] & ID3_FOOTER_FLAG:
        size += ID3_FOOTER_SIZE
    return size


def _mp4_read_length(fh: BinaryIO, header: bytes, config: MetadataConfig) -> int:
    ftyp_size = struct.unpack(">I", header[0:4])[0]
    if ftyp_size < ATOM_HEADER_SIZE:
        return config.fallback_read_bytes

    fh.seek(ftyp_size)
    atom = fh.read(ATOM_HEADER_SIZE)
    if len(atom) < ATOM_HEADER_SIZE:
        return config.fallback_read_bytes

    atom_size, atom_type = struct.unpack(">I4s", atom)
    if atom_type != b"moov":
        # Metadata sits after the media data; settle for a larger head chunk
        return config.mp4_fallback_read_bytes

    if atom_size == 1:
        atom_size = struct.unpack(">Q", fh.read(8))[0]
    if atom_size < ATOM_HEADER_SIZE:
        return config.mp4_fallback_read_bytes

    return min(ftyp_size + atom_size, config.max_tag_bytes)


def _flac_read_length(fh: BinaryIO, config: MetadataConfig) -> int:
    offset = 4  # "fLaC"
    while offset < config.max_tag_bytes:
        fh.seek(offset)
        block_header = fh.read(FLAC_BLOCK_HEADER_SIZE)
        if len(block_header) < FLAC_BLOCK_HEADER_SIZE:
            break

        offset += FLAC_BLOCK_HEADER_SIZE + int.from_bytes(block_header[1:4], "big")
        if block_header[0] & FLAC_LAST_BLOCK_FLAG:
            break

    return min(offset, config.max_tag_bytes)


def compute_read_length(
    fh: BinaryIO, header: bytes, file_size: int, config: MetadataConfig
) -> int:
    """Number of bytes from the start of the file needed to parse its tags."""
    container = detect_container(header)

    try:
        if container == CONTAINER_ID3:
            length = min(id3_tag_size(header) + ID3_FRAME_MARGIN, config.max_tag_bytes)
        elif container == CONTAINER_MP4:
            length = _mp4_read_length(fh, header, config)
        elif container == CONTAINER_FLAC:
            length = _flac_read_length(fh, config)
        else:
            length = config.fallback_read_bytes
    except (OSError, ValueError, struct.error) as e:
        logger.debug(f"Header probe failed ({container}): {e}")
        length = config.fallback_read_bytes

    return min(length, file_size)


# ---------------------------------------------------------------------------
# Tag parsing
# ---------------------------------------------------------------------------


def load_tags(data: bytes, mime_type: str, container: Optional[str]) -> Any:
    """Parse a byte range with the Mutagen class matching the MIME type.

    Falls back to Mutagen's own format sniffing, and for ID3-tagged data to a
    tags-only ID3 read when no audio frames are present in the range.
    """
    parser = PARSER_BY_MIME.get(mime_type)
    if parser is not None:
        try:
            return parser(io.BytesIO(data))
        except _PARSE_ERRORS as e:
            logger.debug(f"{parser.__name__} parse failed: {e}")

    try:
        audio = MutagenFile(io.BytesIO(data))
        if audio is not None:
            return audio
    except _PARSE_ERRORS as e:
        logger.debug(f"Generic parse failed: {e}")

    if container == CONTAINER_ID3:
        try:
            return ID3(io.BytesIO(data))
        except _PARSE_ERRORS as e:
            logger.debug(f"ID3 parse failed: {e}")

    return None


def get_tag_value(audio_file: Any, tag_names: list[str]) -> Optional[str]:
    """Get tag value, trying multiple possible tag names."""
    for tag_name in tag_names:
        try:
            value = audio_file.get(tag_name)
        except (KeyError, ValueError):
            # Vorbis comments raise ValueError for keys they cannot hold
            continue
        if not value:
            continue

        if isinstance(value, list):
            value = value[0]
        # Multi-value ID3 text frames are NUL separated
        text = str(value).split("\x00")[0].strip()
        if text:
            return text
    return None


def get_track_number(audio_file: Any) -> Optional[int]:
    """Track number from "3", "3/12" or MP4 (3, 12) style values."""
    for tag_name in TRACK_NUMBER_TAGS:
        try:
            value = audio_file.get(tag_name)
        except (KeyError, ValueError):
            continue
        if not value:
            continue

        if isinstance(value, list):
            value = value[0]
        if isinstance(value, tuple):
            value = value[0]

        match = re.match(r"\s*(\d+)", str(value))
        if match and int(match.group(1)) > 0:
            return int(match.group(1))
    return None


def _tlen_seconds(audio_file: Any) -> Optional[float]:
    value = get_tag_value(audio_file, ["TLEN"])
    if not value:
        return None
    try:
        return float(value) / 1000.0
    except ValueError:
        return None


def get_duration_ms(
    audio_file: Any, data_length: int, file_size: int, audio_offset: int
) -> Optional[int]:
    """Duration in milliseconds.

    Stream lengths that Mutagen estimates from the size of the data it was given
    are only trusted when the whole file was read.
    """
    truncated = data_length < file_size
    info = getattr(audio_file, "info", None)
    length = getattr(info, "length", None)

    if isinstance(audio_file, ID3):
        # Tags only, no stream info
        length = _tlen_seconds(audio_file)
    elif truncated:
        if isinstance(audio_file, MP3) and info.bitrate_mode == BitrateMode.UNKNOWN:
            # No Xing/VBRI frame count: estimate from the real size
            length = _tlen_seconds(audio_file)
            if length is None and info.bitrate:
                length = (file_size - audio_offset) * 8 / info.bitrate
        elif isinstance(audio_file, (OggFileType, AAC)):
            length = None

    if not length or length <= 0:
        return None
    return int(round(length * 1000))


def _first_picture(pictures: list) -> Optional[bytes]:
    front = [p for p in pictures if getattr(p, "type", None) == 3]
    picture = (front or pictures)[0]
    return bytes(getattr(picture, "data", picture))


def get_embedded_picture(audio_file: Any) -> Optional[bytes]:
    """Raw bytes of the embedded cover image, preferring the front cover."""
    tags = audio_file if isinstance(audio_file, ID3) else getattr(audio_file, "tags", None)

    if isinstance(tags, ID3):
        frames = tags.getall("APIC")
        return _first_picture(frames) if frames else None

    # FLAC picture blocks
    pictures = getattr(audio_file, "pictures", None)
    if pictures:
        return _first_picture(pictures)

    if tags is None:
        return None

    try:
        covers = tags.get("covr")
        if covers:
            return bytes(covers[0])

        encoded = tags.get("metadata_block_picture")
    except (KeyError, ValueError):
        return None

    # Ogg Vorbis/Opus carry base64 encoded FLAC picture blocks
    for value in encoded or []:
        try:
            return Picture(base64.b64decode(value)).data
        except (binascii.Error, MutagenError, ValueError, struct.error) as e:
            logger.debug(f"Unreadable metadata_block_picture: {e}")
    return None


def read_tags(path: str, file_name: str, config: MetadataConfig) -> Optional[ParsedTags]:
    """Read the head of a file and parse its tags. Blocking."""
    with open(path, "rb") as fh:
        file_size = os.fstat(fh.fileno()).st_size
        if file_size == 0:
            logger.debug(f"Empty file, using filename for {file_name}")
            return None

        header = fh.read(config.header_bytes)
        read_length = compute_read_length(fh, header, file_size, config)
        fh.seek(0)
        data = fh.read(read_length)

    container = detect_container(header)
    audio_file = load_tags(data, get_mime_type(file_name), container)
    if audio_file is None:
        logger.debug(f"No tag parser accepted {file_name}")
        return None

    audio_offset = 0
    if container == CONTAINER_ID3:
        audio_offset = id3_tag_size(header)

    return ParsedTags(
        title=get_tag_value(audio_file, TITLE_TAGS),
        artist=get_tag_value(audio_file, ARTIST_TAGS),
        album=get_tag_value(audio_file, ALBUM_TAGS),
        track_number=get_track_number(audio_file),
        duration=get_duration_ms(audio_file, len(data), file_size, audio_offset),
        picture=get_embedded_picture(audio_file),
    )


# ---------------------------------------------------------------------------
# Artwork
# ---------------------------------------------------------------------------


def _image_extension(data: bytes) -> str:
    return ".png" if data.startswith(b"\x89PNG") else ".jpg"


def artwork_file_name(album: str, artist: str, data: bytes) -> str:
    """Cache file name derived from the album and artist."""
    safe_name = re.sub(r"[^a-z0-9]", "_", f"{album}_{artist}", flags=re.IGNORECASE)
    return f"art_{safe_name[:50]}{_image_extension(data)}"


def save_artwork(data: bytes, album: str, artist: str, artwork_dir: Path) -> str:
    artwork_dir.mkdir(parents=True, exist_ok=True)
    artwork_path = artwork_dir / artwork_file_name(album, artist, data)
    artwork_path.write_bytes(data)
    return str(artwork_path)


def find_cover_image(directory: str) -> Optional[str]:
    """Look for cover.jpg, folder.jpg and friends next to a track."""
    try:
        entries = {name.lower(): name for name in os.listdir(directory)}
    except OSError as e:
        logger.debug(f"Cannot list {directory} for cover art: {e}")
        return None

    for extension in COVER_EXTENSIONS:
        for basename in COVER_BASENAMES:
            name = entries.get(basename + extension)
            if name is None:
                continue
            candidate = os.path.join(directory, name)
            if os.path.isfile(candidate):
                return candidate
    return None


async def resolve_artwork(
    parsed: ParsedTags,
    album: str,
    artist: str,
    path: str,
    album_art_cache: AlbumArtCache,
    artwork_dir: Path,
) -> Optional[str]:
    """Pick artwork for a track: album cache, embedded picture, then cover file."""
    cacheable = album != UNKNOWN_ALBUM
    cache_key = (album, artist)

    if cacheable and cache_key in album_art_cache:
        return album_art_cache[cache_key]

    artwork = None
    if parsed.picture:
        try:
            artwork = await asyncio.to_thread(
                save_artwork, parsed.picture, album, artist, artwork_dir
            )
        except OSError as e:
            logger.warning(f"Failed to save artwork for {album}: {e}")

    if artwork is None:
        artwork = await asyncio.to_thread(find_cover_image, os.path.dirname(path))

    if artwork and cacheable:
        album_art_cache[cache_key] = artwork
    return artwork


async def extract_metadata(
    path: str,
    file_name: str,
    album_art_cache: AlbumArtCache,
    artwork_dir: Path,
    config: Optional[MetadataConfig] = None,
) -> TrackMetadata:
    """Extract tags, duration and artwork for one file.

    Never raises: unreadable or untagged files get a filename-derived title
    and the unknown artist/album placeholders.
    """
    config = config or MetadataConfig()
    fallback = metadata_from_filename(file_name)

    try:
        parsed = await asyncio.to_thread(read_tags, path, file_name, config)
        if parsed is None:
            return fallback

        title = parsed.title or fallback.title
        artist = parsed.artist or UNKNOWN_ARTIST
        album = parsed.album or UNKNOWN_ALBUM
        artwork = await resolve_artwork(
            parsed, album, artist, path, album_art_cache, artwork_dir
        )

        return TrackMetadata(
            title=title,
            artist=artist,
            album=album,
            artwork=artwork,
            track_number=parsed.track_number,
            duration=parsed.duration,
        )
    except Exception as e:
        logger.warning(f"Metadata parse failed for {file_name}: {e}")
        return fallback


def read_lrc_file(path: str) -> Optional[str]:
    """Contents of the .lrc file sitting next to an audio file, if any."""
    lrc_path = os.path.splitext(path)[0] + ".lrc"
    try:
        with open(lrc_path, encoding="utf-8", errors="replace") as f:
            return f.read()
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.debug(f"Could not read lyrics {lrc_path}: {e}")
        return None
