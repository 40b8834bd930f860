# Tape Deck Player
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Headless model of the browser tape deck.

Reference model for the transport rules implemented in web/js/player.js.
The server never imports it; the unit tests exercise the next/previous
and flip rules through it.  Rule changes in player.js belong here too.

Positions are passed in by the caller (the audio element owns the clock
in the browser).
"""

import logging

from .library import SIDES, normalize_side

log = logging.getLogger(__name__)


class TapeDeck:
    """Playback state over the side A / side B playlists."""

    def __init__(self, playlists: dict | None = None):
        self.playlists = {'A': [], 'B': []}
        self.side = 'A'
        self.current_track = 0
        self.state = 'stopped'  # stopped | playing
        self.tape_mode = True
        self.volume = 75
        self.saved_position = 0.0
        self.status = ''
        if playlists:
            self.load_playlists(playlists)

    @property
    def playing(self):
        return self.state == 'playing'

    @property
    def tracks(self):
        return self.playlists[self.side]

    @property
    def track(self):
        """The loaded track dict, or None on an empty side."""
        if 0 <= self.current_track < len(self.tracks):
            return self.tracks[self.current_track]
        return None

    def load_playlists(self, playlists: dict):
        """Accept the /api/playlists payload ({"sideA": [...], "sideB": [...]})."""
        self.playlists = {
            'A': list(playlists.get('sideA', [])),
            'B': list(playlists.get('sideB', [])),
        }
        self.current_track = 0
        total = len(self.playlists['A']) + len(self.playlists['B'])
        self.status = f"Loaded {total} tracks" if total else "No tracks found"

    def apply_session(self, session: dict):
        """Restore side, volume, tape mode and saved position from /api/session."""
        side = session.get('side') or session.get('currentSide')
        if side in SIDES:
            self.side = side
        if session.get('volume') is not None:
            self.volume = session['volume']
        if session.get('tapeMode') is not None:
            self.tape_mode = bool(session['tapeMode'])
        if session.get('currentTime') is not None:
            self.saved_position = session['currentTime']

    def session_payload(self, position=0.0) -> dict:
        """Body for POST /api/session."""
        track = self.track
        return {
            'side': self.side,
            'currentTrackId': track['id'] if track else None,
            'currentTime': int(position),
            'volume': self.volume,
            'tapeMode': self.tape_mode,
            'isPlaying': self.playing,
        }

    # ── Transport ──

    def load_track(self, index) -> bool:
        if index < 0 or index >= len(self.tracks):
            return False
        self.current_track = index
        return True

    def toggle_play(self):
        if not self.tracks:
            return
        self.state = 'stopped' if self.playing else 'playing'

    def select_track(self, index):
        self.load_track(index)

    def previous_track(self):
        if self.current_track > 0:
            self.load_track(self.current_track - 1)

    def next_track(self, position=0.0):
        """Advance; at the end of a side flip over in tape mode, else stay put."""
        if self.current_track < len(self.tracks) - 1:
            self.load_track(self.current_track + 1)
        elif self.tape_mode:
            self.flip(position)

    def track_ended(self, position=0.0):
        self.next_track(position)

    def flip(self, position=0.0):
        """Turn the tape over: other side, first track, keep the position."""
        self.saved_position = position
        self.side = 'B' if self.side == 'A' else 'A'
        self.current_track = 0
        self.status = f"Flipped to Side {self.side}"
        log.info("Flipped to side %s at %.1fs", self.side, position)

    def switch_side(self, side, position=0.0) -> bool:
        """Manual side change.  Refused while a tape-mode deck is playing."""
        side = normalize_side(side)
        if side is None:
            raise ValueError("Side must be A or B")
        if self.tape_mode and self.playing:
            self.status = "Stop playback to flip tape"
            return False
        self.saved_position = position
        self.side = side
        self.current_track = 0
        return True

    def restore_position(self) -> float:
        """Position to seek to once the new track is loaded; consumed once."""
        position, self.saved_position = self.saved_position, 0.0
        return position

    def toggle_tape_mode(self) -> bool:
        self.tape_mode = not self.tape_mode
        self.status = f"Tape Mode: {'ON' if self.tape_mode else 'OFF'}"
        return self.tape_mode
