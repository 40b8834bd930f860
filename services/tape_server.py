#!/usr/bin/env python3
# Tape Deck Player
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Tape Deck Player backend (tape-server)

Scans musics/side a and musics/side b for audio files, reads their tags
(title, artist, album, cover art) into an in-memory cache, and serves the
playlists, the playback session and the audio/cover files to the browser
player in web/.

Port: 5000 (PORT env var, config server.port, or first CLI argument)
"""

import asyncio
import json
import logging
import os
import signal
import sys
from datetime import datetime, timezone

from aiohttp import web

# Ensure services/ is on the path for sibling imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from tapelib.config import REPO_ROOT, base_path, cfg, server_port
from tapelib.library import LibraryScanner, ScanError, normalize_side
from tapelib.metadata_cache import MetadataCache
from tapelib.session import SessionStore, ValidationError

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
log = logging.getLogger("tape-server")

WEB_DIR = os.path.join(REPO_ROOT, "web")
SAMPLE_TRACKS = 3


def _cors_headers():
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, POST, PUT, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
    }


def _error(message, status):
    return web.json_response({"error": message}, status=status)


@web.middleware
async def error_middleware(request, handler):
    """Turn handler failures into JSON error responses."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ValidationError as e:
        return _error(str(e), 400)
    except Exception as e:
        log.exception("Unhandled error on %s %s", request.method, request.path)
        return _error(f"Internal server error: {e}", 500)


def _reject_constant(name):
    raise ValidationError(f"Invalid JSON body: {name} is not a number")


async def _read_json(request) -> dict:
    """Request body as a dict.  An empty body counts as {}."""
    body = await request.text()
    if not body.strip():
        return {}
    try:
        data = json.loads(body, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Invalid JSON body: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


class TapeServer:
    """Owns the scanner, metadata cache and session store for one process."""

    def __init__(self, base_dir=None, port=None, host=None, web_dir=WEB_DIR):
        base_dir = base_dir or base_path()
        self.port = port if port is not None else server_port()
        self.host = host or cfg("server", "host", default="0.0.0.0")
        self.cache = MetadataCache()
        self.scanner = LibraryScanner(
            base_dir,
            cache=self.cache,
            music_dir=cfg("library", "music_dir", default="musics"),
            covers_dir=cfg("library", "covers_dir", default="covers"),
        )
        self.session = SessionStore()
        self.web_dir = web_dir
        self._runner: web.AppRunner | None = None
        # One scan at a time; the cache and covers/ are not safe to share
        self._scan_lock = asyncio.Lock()

    # ── Library ──

    async def load_playlists(self, refresh=False):
        """Scan both sides off the event loop (tag parsing is blocking I/O).

        With refresh=True the metadata cache is emptied first, under the
        same lock, so no in-flight scan can refill it with stale entries.
        """
        loop = asyncio.get_running_loop()
        async with self._scan_lock:
            if refresh:
                self.cache.clear()
            return await loop.run_in_executor(None, self.scanner.scan)

    # ── App ──

    def make_app(self) -> web.Application:
        self.scanner.ensure_folders()

        app = web.Application(middlewares=[error_middleware])
        app.router.add_get("/api/health", self._handle_health)
        app.router.add_get("/api/playlists", self._handle_playlists)
        app.router.add_get("/api/playlists/{side}", self._handle_playlist_side)
        app.router.add_get("/api/session", self._handle_get_session)
        app.router.add_post("/api/session", self._handle_update_session)
        app.router.add_put("/api/session/tape-mode", self._handle_tape_mode)
        app.router.add_put("/api/session/volume", self._handle_volume)
        app.router.add_post("/api/session/reset", self._handle_reset_session)
        app.router.add_post("/api/refresh", self._handle_refresh)
        app.router.add_route("OPTIONS", "/api/{tail:.*}", self._handle_cors)

        app.router.add_static("/musics", self.scanner.music_dir)
        app.router.add_static("/covers", self.scanner.covers_dir)
        if os.path.isdir(self.web_dir):
            app.router.add_get("/", self._handle_index)
            app.router.add_static("/static", self.web_dir)

        app.on_response_prepare.append(self._on_response_prepare)
        return app

    async def _on_response_prepare(self, request, response):
        response.headers.update(_cors_headers())
        if request.path.startswith("/api/"):
            # Playlists and session change under the browser's feet
            response.headers["Cache-Control"] = "no-store, no-cache, must-revalidate"

    # ── Lifecycle ──

    async def start(self):
        app = self.make_app()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        log.info("TAPE PLAYER BACKEND on http://localhost:%d", self.port)
        log.info("Health: http://localhost:%d/api/health", self.port)
        await self.on_start()

    async def on_start(self):
        """Log the folders and do a first scan so the cache is warm."""
        for side, folder in self.scanner.side_dirs.items():
            log.info("Side %s folder: %s", side, folder)
        log.info("Covers folder: %s", self.scanner.covers_dir)
        log.info("Loading tracks and extracting metadata...")

        try:
            playlists = await self.load_playlists()
        except ScanError as e:
            log.error("Error during startup scan: %s", e)
            return

        log.info("Loaded tracks: side A %d, side B %d",
                 len(playlists.side_a), len(playlists.side_b))
        if not playlists.side_a and not playlists.side_b:
            log.warning("No music files found! Drop your audio files into %s or %s",
                        self.scanner.side_dirs["A"], self.scanner.side_dirs["B"])
            return
        for track in playlists.side_a[:SAMPLE_TRACKS]:
            log.info("  A%d. %s by %s", track.ordinal, track.title, track.artist)

    async def stop(self):
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    async def run(self):
        """Start, wait for SIGTERM/SIGINT, stop."""
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            await stop_event.wait()
        finally:
            log.info("Shutting down")
            await self.stop()

    # ── Routes ──

    async def _handle_cors(self, request):
        return web.Response()

    async def _handle_index(self, request):
        return web.FileResponse(os.path.join(self.web_dir, "index.html"))

    async def _handle_health(self, request):
        try:
            playlists = await self.load_playlists()
        except ScanError as e:
            log.error("Error scanning for health check: %s", e)
            return _error("Failed to scan music folders", 500)
        return web.json_response({
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "sideA": len(playlists.side_a),
            "sideB": len(playlists.side_b),
        })

    async def _handle_playlists(self, request):
        try:
            playlists = await self.load_playlists()
        except ScanError as e:
            log.error("Error loading playlists: %s", e)
            return _error("Failed to load playlists", 500)
        return web.json_response(playlists.to_dict())

    async def _handle_playlist_side(self, request):
        side = normalize_side(request.match_info["side"])
        if side is None:
            return _error("Side not found. Use A or B", 404)
        try:
            playlists = await self.load_playlists()
        except ScanError as e:
            log.error("Error loading side %s: %s", side, e)
            return _error("Failed to load side", 500)
        return web.json_response({
            "side": side,
            "tracks": [t.to_dict() for t in playlists.side(side)],
        })

    async def _handle_get_session(self, request):
        return web.json_response(self.session.get())

    async def _handle_update_session(self, request):
        data = await _read_json(request)
        session = self.session.merge(data)
        return web.json_response({
            "success": True,
            "message": "Session saved",
            "session": session,
        })

    async def _handle_tape_mode(self, request):
        data = await _read_json(request)
        tape_mode = self.session.set_tape_mode(data.get("enabled"))
        log.info("Tape mode: %s", "on" if tape_mode else "off")
        return web.json_response({"success": True, "tapeMode": tape_mode})

    async def _handle_volume(self, request):
        data = await _read_json(request)
        volume = self.session.set_volume(data.get("volume"))
        return web.json_response({"success": True, "volume": volume})

    async def _handle_reset_session(self, request):
        self.session.reset()
        return web.json_response({"success": True, "message": "Session reset"})

    async def _handle_refresh(self, request):
        try:
            playlists = await self.load_playlists(refresh=True)
        except ScanError as e:
            log.error("Error refreshing playlists: %s", e)
            return _error("Failed to refresh playlists", 500)
        log.info("Playlists refreshed: side A %d, side B %d",
                 len(playlists.side_a), len(playlists.side_b))
        return web.json_response({
            "success": True,
            "message": "Playlists refreshed",
            "sideA": len(playlists.side_a),
            "sideB": len(playlists.side_b),
        })


def main():
    server = TapeServer(port=server_port(sys.argv))
    asyncio.run(server.run())


if __name__ == "__main__":
    main()
