# Tape Deck Player
# SPDX-License-Identifier: GPL-3.0-or-later

"""In-memory metadata cache keyed by absolute file path."""

import logging
from dataclasses import asdict, dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MetadataEntry:
    title: str
    artist: str
    album: str
    album_cover_url: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


class MetadataCache:
    """Path -> MetadataEntry.  Unbounded; emptied only by clear()."""

    def __init__(self):
        self._cache: dict[str, MetadataEntry] = {}

    def get(self, path):
        """Cached entry for path, or None on a miss."""
        return self._cache.get(path)

    def put(self, path, entry: MetadataEntry):
        self._cache[path] = entry

    def clear(self):
        count = len(self._cache)
        self._cache.clear()
        logger.info("Metadata cache cleared (%d entries)", count)

    def __contains__(self, path):
        return path in self._cache

    def __len__(self):
        return len(self._cache)
