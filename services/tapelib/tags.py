# Tape Deck Player
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Embedded tag reading for the tape deck library.

read_tags() parses a file with mutagen and returns a TrackTags, or None
when the file cannot be parsed at all.  Callers fall back to
filename-derived metadata on None; parse errors are logged here and never
raised.

save_cover() writes the first embedded picture to covers/{track_id}.jpg,
re-encoded as JPEG with Pillow when the bytes are a decodable image.
"""

import base64
import logging
import os
from dataclasses import dataclass
from io import BytesIO

from mutagen import File as MutagenFile
from mutagen.flac import Picture
from PIL import Image

logger = logging.getLogger(__name__)

UNKNOWN_ARTIST = "Unknown Artist"
UNKNOWN_ALBUM = "Unknown Album"

# ID3, MP4 and Vorbis comment keys, tried in order
_TEXT_KEYS = {
    "title": ("TIT2", "\xa9nam", "title"),
    "artist": ("TPE1", "\xa9ART", "artist"),
    "album": ("TALB", "\xa9alb", "album"),
}

JPEG_QUALITY = 90


@dataclass(frozen=True)
class TrackTags:
    title: str | None = None
    artist: str | None = None
    album: str | None = None
    cover: bytes | None = None


def fallback_title(filename: str) -> str:
    """'01_my-song.mp3' -> '01 my song'."""
    stem, _ = os.path.splitext(filename)
    return stem.replace("_", " ").replace("-", " ").strip()


def _first_text(value) -> str | None:
    if value is None:
        return None
    # ID3 frames carry their values in .text
    if hasattr(value, "text"):
        value = value.text
    if isinstance(value, (list, tuple)):
        if not value:
            return None
        value = value[0]
    s = str(value).strip()
    return s or None


def _tag_text(tags, field: str) -> str | None:
    for key in _TEXT_KEYS[field]:
        try:
            found = _first_text(tags.get(key))
        except (KeyError, ValueError):
            found = None
        if found:
            return found
    return None


def _first_picture(audio) -> bytes | None:
    """Return the bytes of the first embedded picture, whatever the container."""
    tags = audio.tags

    # MP3 / WAV / AIFF (ID3 APIC frames)
    if tags is not None and hasattr(tags, "getall"):
        apics = tags.getall("APIC")
        if apics:
            return apics[0].data

    # FLAC picture blocks
    pictures = getattr(audio, "pictures", None)
    if pictures:
        return pictures[0].data

    if tags is None:
        return None

    # MP4 / M4A
    covr = tags.get("covr")
    if covr:
        return bytes(covr[0])

    # Ogg Vorbis / Opus
    blocks = tags.get("metadata_block_picture")
    if blocks:
        return Picture(base64.b64decode(blocks[0])).data

    return None


def read_tags(path: str) -> TrackTags | None:
    """Parse embedded tags.  Returns None if the file can't be parsed."""
    try:
        audio = MutagenFile(path)
        if audio is None:
            logger.warning("No tag parser recognised %s", path)
            return None
        tags = audio.tags
        if tags is None:
            return TrackTags()
        return TrackTags(
            title=_tag_text(tags, "title"),
            artist=_tag_text(tags, "artist"),
            album=_tag_text(tags, "album"),
            cover=_first_picture(audio),
        )
    except Exception as e:
        logger.warning("Error reading metadata for %s: %s", os.path.basename(path), e)
        return None


def _to_jpeg(image_bytes: bytes) -> bytes:
    """Re-encode an image as JPEG.  Raises if Pillow can't decode it."""
    image = Image.open(BytesIO(image_bytes))
    if image.format == "JPEG":
        return image_bytes

    if image.mode != "RGB":
        image = image.convert("RGB")

    img_io = BytesIO()
    image.save(img_io, "JPEG", quality=JPEG_QUALITY)
    return img_io.getvalue()


def save_cover(image_bytes: bytes, track_id: str, covers_dir: str) -> str | None:
    """Write cover art to covers_dir/{track_id}.jpg and return its URL path."""
    try:
        data = _to_jpeg(image_bytes)
    except Exception as e:
        logger.debug("Cover for %s is not a decodable image (%s), writing as-is", track_id, e)
        data = image_bytes

    filename = f"{track_id}.jpg"
    try:
        with open(os.path.join(covers_dir, filename), "wb") as f:
            f.write(data)
    except OSError as e:
        logger.warning("Error saving cover for %s: %s", track_id, e)
        return None
    return f"/covers/{filename}"
