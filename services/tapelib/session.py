# Tape Deck Player
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Playback session store.

One mutable record per server process: current side, track, elapsed
time, volume, tape mode and playing flag.  Owned by the server object and
handed to the request handlers; nothing is persisted.
"""

import logging
import math
import numbers
from dataclasses import dataclass

from .library import normalize_side

logger = logging.getLogger(__name__)

DEFAULT_VOLUME = 75


class ValidationError(ValueError):
    """A client supplied a value outside the accepted range."""


@dataclass
class Session:
    side: str = 'A'
    current_track_id: str | None = None
    current_time: float = 0
    volume: float = DEFAULT_VOLUME
    tape_mode: bool = True
    is_playing: bool = False

    def to_dict(self) -> dict:
        return {
            'side': self.side,
            'currentTrackId': self.current_track_id,
            'currentTime': self.current_time,
            'volume': self.volume,
            'tapeMode': self.tape_mode,
            'isPlaying': self.is_playing,
        }


# JSON key -> Session attribute ("currentSide" is what older clients send)
_FIELDS = {
    'side': 'side',
    'currentSide': 'side',
    'currentTrackId': 'current_track_id',
    'currentTime': 'current_time',
    'volume': 'volume',
    'tapeMode': 'tape_mode',
    'isPlaying': 'is_playing',
}


def _is_number(value) -> bool:
    """Finite int or float.  NaN and Infinity would make the session unserialisable."""
    return (isinstance(value, numbers.Real) and not isinstance(value, bool)
            and math.isfinite(value))


def validate_flag(name, value) -> bool:
    if not isinstance(value, bool):
        raise ValidationError(f'{name} must be true or false')
    return value


def validate_volume(volume):
    if not _is_number(volume):
        raise ValidationError('Volume must be a number between 0 and 100')
    if volume < 0 or volume > 100:
        raise ValidationError('Volume must be between 0 and 100')
    return volume


class SessionStore:

    def __init__(self):
        self._session = Session()

    def get(self) -> dict:
        return self._session.to_dict()

    def merge(self, partial: dict) -> dict:
        """Overwrite the fields present in partial; leave the rest alone.

        Every value is checked before anything is written, so a rejected
        update leaves the session untouched.
        """
        updates = {}
        for key, value in partial.items():
            attr = _FIELDS.get(key)
            if attr is None:
                continue
            if attr == 'side':
                if not value:
                    continue
                value = normalize_side(value)
                if value is None:
                    raise ValidationError('Side must be A or B')
            elif attr == 'volume':
                validate_volume(value)
            elif attr == 'current_time' and not _is_number(value):
                raise ValidationError('currentTime must be a number')
            elif attr in ('tape_mode', 'is_playing'):
                validate_flag(key, value)
            updates[attr] = value

        for attr, value in updates.items():
            setattr(self._session, attr, value)
        return self.get()

    def reset(self) -> dict:
        self._session = Session()
        logger.info("Session reset")
        return self.get()

    def set_volume(self, volume) -> float:
        self._session.volume = validate_volume(volume)
        return self._session.volume

    def set_tape_mode(self, enabled) -> bool:
        self._session.tape_mode = validate_flag('enabled', enabled)
        return self._session.tape_mode
