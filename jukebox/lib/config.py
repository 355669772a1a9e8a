# Jukebox
# Copyright (C) 2026 Jukebox contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Shared configuration loader for the jukebox server and client.

Loads a single JSON config file.  Search order:
  1. $JUKEBOX_CONFIG               (explicit override)
  2. /etc/jukebox/config.json      (system install)
  3. config.json                   (CWD — handy for local dev)

Command-line flags take precedence over anything read here.

Usage:
    from jukebox.lib.config import cfg

    music_dir  = cfg("library", "music_dir", default="~/Music")
    port       = cfg("server", "port", default=3000)
    sink_type  = cfg("playback", "sink", default="mpv")
"""

import json
import logging
import os

logger = logging.getLogger(__name__)

_config: dict | None = None

SINK_TYPES = ("mpv", "null")


def _search_paths() -> list[str]:
    paths = []
    override = os.environ.get("JUKEBOX_CONFIG")
    if override:
        paths.append(override)
    paths += ["/etc/jukebox/config.json", "config.json"]
    return paths


def _validate(config: dict, path: str) -> None:
    """Warn about missing or suspicious config values."""
    library = config.get("library") or {}
    if not library.get("music_dir"):
        logger.warning("Config %s: missing library.music_dir — using ~/Music", path)
    playback = config.get("playback") or {}
    sink = playback.get("sink", "mpv")
    if sink not in SINK_TYPES:
        logger.warning("Config %s: unknown playback.sink '%s'", path, sink)
    queue_size = playback.get("queue_size", 32)
    if not isinstance(queue_size, int) or queue_size < 1:
        logger.warning("Config %s: playback.queue_size must be a positive integer", path)


def load_config() -> dict:
    """Load config from the first JSON file found. Cached after first call."""
    global _config
    if _config is not None:
        return _config

    for path in _search_paths():
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

    logger.info("No config.json found — using defaults")
    _config = {}
    return _config


def cfg(section: str, key: str | None = None, *, default=None):
    """Read a config value.

    cfg("server")                     → config["server"]
    cfg("server", "port")             → config["server"]["port"]
    cfg("playback", "sink", default="mpv")  → config["playback"]["sink"] or "mpv"
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
