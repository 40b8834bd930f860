# Tape Deck Player
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Configuration loader for the tape deck server.

Loads a single JSON config file.  Search order:
  1. /etc/tapedeck/config.json     (system install)
  2. config.json                    (CWD, handy for local dev)
  3. ../../config/default.json      (repo fallback)

A couple of values can be overridden from the environment:
  PORT                 HTTP port (default 5000)
  TAPEDECK_BASE_PATH   directory holding musics/ and covers/

Usage:
    from tapelib.config import cfg

    port     = cfg("server", "port", default=5000)
    base_dir = cfg("library", "base_dir")
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))

_SEARCH_PATHS = [
    "/etc/tapedeck/config.json",
    "config.json",
    os.path.join(REPO_ROOT, "config", "default.json"),
]

DEFAULT_PORT = 5000


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    server = config.get("server") or {}
    port = server.get("port")
    if port is not None and not isinstance(port, int):
        logger.warning("Config %s: server.port should be an integer, got %r", path, port)
    library = config.get("library") or {}
    base_dir = library.get("base_dir")
    if base_dir and not os.path.isdir(base_dir):
        logger.warning("Config %s: library.base_dir %s does not exist yet", path, base_dir)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _SEARCH_PATHS:
        try:
            with open(path) as f:
                _config = json.load(f)
                logger.info("Config loaded from %s", path)
                _validate(_config, path)
                return _config
        except FileNotFoundError:
            continue
        except json.JSONDecodeError as e:
            logger.error("Invalid JSON in %s: %s", path, e)
            continue

    logger.warning("No config.json found, using defaults")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("server")                    → config["server"]
    cfg("server", "port")            → config["server"]["port"]
    cfg("library", "base_dir", default=".")  → config["library"]["base_dir"] or "."
    """
    config = load_config()
    val = config.get(section)
    if key is None:
        return val if val is not None else default
    if isinstance(val, dict):
        return val.get(key, default)
    return default


def reload_config():
    """Force re-read from disk (for testing or hot-reload)."""
    global _config
    _config = None
    return load_config()


def server_port(argv: list[str] | None = None) -> int:
    """Resolve the HTTP port: argv[1] > $PORT > config > 5000."""
    if argv and len(argv) > 1:
        return int(argv[1])
    env_port = os.getenv("PORT")
    if env_port:
        return int(env_port)
    return int(cfg("server", "port", default=DEFAULT_PORT))


def base_path() -> str:
    """Directory that holds the musics/ and covers/ folders."""
    return os.getenv("TAPEDECK_BASE_PATH") or cfg("library", "base_dir", default=REPO_ROOT)
