# Tape Deck Player
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Side A / side B library scanner.

Lists the audio files in the two side folders, reads their tags through
the metadata cache and builds ordered track lists.  Files are ordered by
name (case-insensitive) so ids and ordinals don't depend on the order the
filesystem happens to return entries in.

Layout under base_dir:
    musics/side a/   side A audio files
    musics/side b/   side B audio files
    covers/          extracted cover art, {track_id}.jpg
"""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import quote

from .metadata_cache import MetadataCache, MetadataEntry
from .tags import UNKNOWN_ALBUM, UNKNOWN_ARTIST, fallback_title, read_tags, save_cover

logger = logging.getLogger(__name__)

AUDIO_EXTENSIONS = {'.mp3', '.wav', '.ogg', '.m4a', '.flac'}
SIDES = ('A', 'B')


class ScanError(Exception):
    """An existing side folder could not be listed."""


def normalize_side(side) -> str | None:
    """'a' / 'B' -> 'A' / 'B'; anything else -> None."""
    if not isinstance(side, str):
        return None
    side = side.strip().upper()
    return side if side in SIDES else None


@dataclass
class Track:
    id: str
    title: str
    artist: str
    album: str
    filename: str
    url: str
    album_cover_url: str | None
    size_bytes: int
    ordinal: int

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'title': self.title,
            'artist': self.artist,
            'album': self.album,
            'filename': self.filename,
            'url': self.url,
            'albumCoverUrl': self.album_cover_url,
            'sizeBytes': self.size_bytes,
            'ordinal': self.ordinal,
        }


@dataclass
class Playlists:
    side_a: list[Track] = field(default_factory=list)
    side_b: list[Track] = field(default_factory=list)

    def side(self, side: str) -> list[Track]:
        return self.side_a if side == 'A' else self.side_b

    def to_dict(self) -> dict:
        return {
            'sideA': [t.to_dict() for t in self.side_a],
            'sideB': [t.to_dict() for t in self.side_b],
        }


class LibraryScanner:
    """Scans the two side folders, consulting the cache before parsing tags."""

    def __init__(self, base_dir, cache: MetadataCache | None = None,
                 music_dir="musics", covers_dir="covers"):
        self.base_dir = os.path.abspath(base_dir)
        self.music_dir = os.path.join(self.base_dir, music_dir)
        self.covers_dir = os.path.join(self.base_dir, covers_dir)
        self.side_dirs = {
            side: os.path.join(self.music_dir, f"side {side.lower()}")
            for side in SIDES
        }
        self.cache = cache if cache is not None else MetadataCache()

    def ensure_folders(self):
        """Create the music, side and cover folders if they don't exist."""
        for path in (self.music_dir, *self.side_dirs.values(), self.covers_dir):
            os.makedirs(path, exist_ok=True)

    def list_audio_files(self, side: str) -> list[Path]:
        """Allow-listed audio files of a side, ordered by name.

        A missing folder yields an empty list.
        """
        folder = Path(self.side_dirs[side])
        if not folder.is_dir():
            return []
        try:
            entries = sorted(folder.iterdir(), key=lambda e: (e.name.lower(), e.name))
        except OSError as e:
            raise ScanError(f"Cannot list {folder}: {e}") from e
        return [e for e in entries if e.suffix.lower() in AUDIO_EXTENSIONS and e.is_file()]

    def scan_side(self, side: str) -> list[Track]:
        tracks = []
        for index, entry in enumerate(self.list_audio_files(side)):
            try:
                size = entry.stat().st_size
            except OSError as e:
                logger.warning("Skipping %s: %s", entry.name, e)
                continue
            track_id = f"{side}-{index}"
            meta = self._metadata(entry, track_id)
            tracks.append(Track(
                id=track_id,
                title=meta.title,
                artist=meta.artist,
                album=meta.album,
                filename=entry.name,
                url=f"/musics/side {side.lower()}/{quote(entry.name, safe='')}",
                album_cover_url=meta.album_cover_url,
                size_bytes=size,
                ordinal=index + 1,
            ))
        return tracks

    def scan(self) -> Playlists:
        return Playlists(side_a=self.scan_side('A'), side_b=self.scan_side('B'))

    def _metadata(self, entry: Path, track_id: str) -> MetadataEntry:
        key = os.path.abspath(entry)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        tags = read_tags(key)
        title = fallback_title(entry.name)
        artist, album, cover_url = UNKNOWN_ARTIST, UNKNOWN_ALBUM, None
        if tags is not None:
            title = tags.title or title
            artist = tags.artist or artist
            album = tags.album or album
            if tags.cover:
                os.makedirs(self.covers_dir, exist_ok=True)
                cover_url = save_cover(tags.cover, track_id, self.covers_dir)

        meta = MetadataEntry(title=title, artist=artist, album=album, album_cover_url=cover_url)
        self.cache.put(key, meta)
        return meta
