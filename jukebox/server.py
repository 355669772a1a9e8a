#!/usr/bin/env python3
# Jukebox
# Copyright (C) 2026 Jukebox contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Jukebox HTTP server (jukebox-server)

Serves the music library and forwards transport commands to the playback
actor.  Handlers never touch playback state themselves: every request
becomes one command on the actor's queue and the reply is translated into
an HTTP status.

Port: 3000
"""

import argparse
import asyncio
import logging
import math
import signal
import sys
from pathlib import Path

from aiohttp import web

from .commands import (
    ActorUnavailable, Pause, PlaybackError, Play, ResourceError, Resume, Seek,
    SetVolume, Stop, UnsupportedCommand,
)
from .lib.config import cfg
from .lib.sinks import sink_from_config
from .library import Catalog, Track, resolve_track_path, scan_library
from .playback import QUEUE_SIZE, REPLY_TIMEOUT, PlaybackActor

log = logging.getLogger(__name__)


class JukeboxServer:
    def __init__(self, music_root, actor: PlaybackActor, catalog: Catalog | None = None,
                 host="0.0.0.0", port=3000):
        self.music_root = Path(music_root).resolve()
        self.actor = actor
        self.catalog = catalog if catalog is not None else Catalog()
        self.host = host
        self.port = port
        self._runner: web.AppRunner | None = None
        self._rescan_lock = asyncio.Lock()

    # ── App wiring ──

    def make_app(self) -> web.Application:
        app = web.Application()
        app.router.add_get("/health", self._handle_health)
        app.router.add_get("/api/library", self._handle_library)
        app.router.add_get("/api/library/artists", self._handle_artists)
        app.router.add_get("/api/library/artists/{artist}/albums", self._handle_albums)
        app.router.add_get("/api/library/artists/{artist}/{album}", self._handle_tracks)
        app.router.add_post("/api/library/rescan", self._handle_rescan)
        app.router.add_post("/api/play", self._handle_play)
        app.router.add_post("/api/pause", self._handle_pause)
        app.router.add_post("/api/resume", self._handle_resume)
        app.router.add_post("/api/stop", self._handle_stop)
        app.router.add_post("/api/seek", self._handle_seek)
        app.router.add_post("/api/volume", self._handle_volume)
        app.router.add_get("/api/status", self._handle_status)
        app.router.add_route("OPTIONS", "/{tail:.*}", self._handle_preflight)
        return app

    async def start(self):
        """Start the playback actor, then the HTTP listener."""
        if not self.actor.alive:
            self.actor.start()
        self._runner = web.AppRunner(self.make_app())
        await self._runner.setup()
        site = web.TCPSite(self._runner, self.host, self.port)
        await site.start()
        log.info("Listening on %s:%d", self.host, self.port)

    async def run(self):
        """Convenience entry-point: start + wait for signal + stop."""
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        log.info("Server ready")
        try:
            await stop_event.wait()
        finally:
            await self.shutdown()

    async def shutdown(self):
        if self._runner:
            await self._runner.cleanup()
            self._runner = None
        await asyncio.get_running_loop().run_in_executor(None, self.actor.close)

    async def rescan(self) -> int:
        """Rebuild the catalog off the event loop and swap it in."""
        async with self._rescan_lock:
            loop = asyncio.get_running_loop()
            tracks = await loop.run_in_executor(None, scan_library, self.music_root)
            self.catalog.replace(tracks)
            return len(tracks)

    # ── Helpers ──

    def _cors_headers(self):
        return {
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        }

    def _json(self, data, status=200):
        return web.json_response(data, status=status, headers=self._cors_headers())

    def _error(self, status, message):
        return self._json({"status": "error", "message": message}, status=status)

    async def _send(self, cmd):
        """Run a transport command and map the outcome to a response."""
        try:
            result = await self.actor.request(cmd)
        except UnsupportedCommand as e:
            return self._error(501, str(e))
        except ActorUnavailable as e:
            log.error("Failed to send %s command: %s", cmd.name, e)
            return self._error(500, str(e))
        except PlaybackError as e:
            log.error("%s command failed: %s", cmd.name, e)
            return self._error(500, str(e))
        body = {"status": "ok"}
        if isinstance(cmd, SetVolume):
            body["volume"] = result
        return self._json(body)

    async def _read_json(self, request):
        try:
            data = await request.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None

    # ── Library handlers ──

    async def _handle_health(self, request):
        return web.Response(text="OK", headers=self._cors_headers())

    async def _handle_preflight(self, request):
        return web.Response(headers=self._cors_headers())

    async def _handle_library(self, request):
        log.debug("GET /api/library")
        return self._json(self.catalog.to_dict())

    async def _handle_artists(self, request):
        log.debug("GET /api/library/artists")
        return self._json(self.catalog.artists())

    async def _handle_albums(self, request):
        artist = request.match_info["artist"]
        log.debug("GET /api/library/artists/%s/albums", artist)
        return self._json(self.catalog.albums(artist))

    async def _handle_tracks(self, request):
        artist = request.match_info["artist"]
        album = request.match_info["album"]
        log.debug("GET /api/library/artists/%s/%s", artist, album)
        return self._json([t.to_dict() for t in self.catalog.tracks(artist, album)])

    async def _handle_rescan(self, request):
        log.info("POST /api/library/rescan")
        count = await self.rescan()
        return self._json({"status": "ok", "tracks": count})

    # ── Transport handlers ──

    async def _handle_play(self, request):
        data = await self._read_json(request)
        rel_path = data.get("path") if data else None
        if not isinstance(rel_path, str) or not rel_path:
            return self._error(400, "missing 'path'")
        log.info("POST /api/play - %s", rel_path)

        full_path = resolve_track_path(self.music_root, rel_path)
        if full_path is None:
            log.warning("Path traversal attempt detected: %s", rel_path)
            return self._error(403, "path outside music directory")
        if not full_path.is_file():
            log.warning("Track not found or cannot access: %s", full_path)
            return self._error(404, "track not found")

        # Capture the metadata now; a later rescan must not change it.
        track = self.catalog.find(rel_path)
        log.info("Playing: %s (in catalog: %s)", full_path, track is not None)
        if track is None:
            track = Track(path=rel_path, title=full_path.stem, artist="", album="")

        try:
            await self.actor.request(Play(full_path, track))
        except ResourceError as e:
            status = 404 if e.missing else 400
            return self._error(status, e.reason)
        except ActorUnavailable as e:
            log.error("Failed to send play command: %s", e)
            return self._error(500, str(e))
        except PlaybackError as e:
            log.error("Play command failed: %s", e)
            return self._error(500, str(e))
        return self._json({"status": "ok"})

    async def _handle_pause(self, request):
        log.info("POST /api/pause")
        return await self._send(Pause())

    async def _handle_resume(self, request):
        log.info("POST /api/resume")
        return await self._send(Resume())

    async def _handle_stop(self, request):
        log.info("POST /api/stop")
        return await self._send(Stop())

    async def _handle_seek(self, request):
        data = await self._read_json(request)
        position = data.get("position_ms") if data else None
        if isinstance(position, bool) or not isinstance(position, int) or position < 0:
            return self._error(400, "'position_ms' must be a non-negative integer")
        log.info("POST /api/seek - %dms", position)
        return await self._send(Seek(position))

    async def _handle_volume(self, request):
        data = await self._read_json(request)
        volume = data.get("volume") if data else None
        if isinstance(volume, bool) or not isinstance(volume, (int, float)):
            return self._error(400, "'volume' must be a number")
        try:
            volume = float(volume)
        except OverflowError:
            return self._error(400, "'volume' is out of range")
        if not math.isfinite(volume):
            return self._error(400, "'volume' must be a number")
        log.info("POST /api/volume - %s", volume)
        return await self._send(SetVolume(volume))

    async def _handle_status(self, request):
        log.debug("GET /api/status")
        return self._json(await self.actor.status())


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Music server with HTTP API")
    parser.add_argument("-m", "--music-dir",
                        default=cfg("library", "music_dir", default="~/Music"))
    parser.add_argument("-b", "--bind", default=cfg("server", "bind", default="0.0.0.0"))
    parser.add_argument("-p", "--port", type=int, default=cfg("server", "port", default=3000))
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format='[%(levelname)s] %(message)s')

    music_root = Path(args.music_dir).expanduser()
    if not music_root.is_dir():
        log.error("Music directory does not exist: %s", music_root)
        sys.exit(1)
    music_root = music_root.resolve()
    log.info("Starting music server")
    log.info("Music directory: %s", music_root)

    catalog = Catalog(scan_library(music_root))
    reply_timeout = cfg("playback", "reply_timeout", default=REPLY_TIMEOUT)
    if reply_timeout < REPLY_TIMEOUT:
        log.warning("playback.reply_timeout %ss is shorter than sink startup, using %ss",
                    reply_timeout, REPLY_TIMEOUT)
        reply_timeout = REPLY_TIMEOUT
    actor = PlaybackActor(
        sink_from_config(cfg),
        queue_size=cfg("playback", "queue_size", default=QUEUE_SIZE),
        reply_timeout=reply_timeout,
    )
    server = JukeboxServer(music_root, actor, catalog, host=args.bind, port=args.port)
    asyncio.run(server.run())


if __name__ == "__main__":
    main()
