#!/usr/bin/env python3
# Jukebox
# Copyright (C) 2026 Jukebox contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Jukebox terminal client (jukebox-client)

One-shot commands print a line and exit.  ``watch`` opens a curses screen
that lists the library and polls /api/status twice a second.

Keys in watch mode:
    up/down  select      enter  play selected
    space    pause/resume  s    stop
    + / -    volume        q    quit
"""

import argparse
import curses
import json
import logging
import sys
import time

import requests

from .lib.config import cfg

log = logging.getLogger(__name__)

POLL_INTERVAL = 0.5  # seconds
VOLUME_STEP = 0.05


class JukeboxClient:
    """Thin wrapper over the server's HTTP API."""

    def __init__(self, server, timeout=5):
        self.base_url = server if server.startswith("http") else f"http://{server}"
        self.timeout = timeout
        self.session = requests.Session()

    def _get(self, path):
        resp = self.session.get(f"{self.base_url}{path}", timeout=self.timeout)
        resp.raise_for_status()
        return resp.json()

    def _post(self, path, payload=None):
        resp = self.session.post(f"{self.base_url}{path}", json=payload or {},
                                 timeout=self.timeout)
        try:
            body = resp.json()
        except ValueError:
            body = {}
        return resp.status_code, body

    def library(self) -> list:
        return self._get("/api/library")["tracks"]

    def status(self) -> dict:
        return self._get("/api/status")

    def play(self, path):
        return self._post("/api/play", {"path": path})

    def pause(self):
        return self._post("/api/pause")

    def resume(self):
        return self._post("/api/resume")

    def stop(self):
        return self._post("/api/stop")

    def seek(self, position_ms):
        return self._post("/api/seek", {"position_ms": position_ms})

    def set_volume(self, volume):
        return self._post("/api/volume", {"volume": volume})


def format_ms(ms) -> str:
    if ms is None:
        return "--:--"
    seconds = int(ms) // 1000
    return f"{seconds // 60}:{seconds % 60:02d}"


def format_status(status: dict) -> str:
    track = status.get("track")
    if not track:
        return f"Stopped  vol {round(status.get('volume', 1.0) * 100)}%"
    state = "Playing" if status.get("playing") else "Paused"
    who = " - ".join(p for p in (track.get("artist"), track.get("title")) if p)
    return (f"{state}: {who}  "
            f"{format_ms(status.get('position_ms'))}/{format_ms(status.get('duration_ms'))}  "
            f"vol {round(status.get('volume', 1.0) * 100)}%")


# ── Watch mode ──

class WatchScreen:
    def __init__(self, client: JukeboxClient):
        self.client = client
        self.tracks = []
        self.selected = 0
        self.status = None
        self.message = ""

    def next_item(self):
        if self.tracks:
            self.selected = (self.selected + 1) % len(self.tracks)

    def prev_item(self):
        if self.tracks:
            self.selected = (self.selected - 1) % len(self.tracks)

    def _report(self, action, result):
        code, body = result
        if code == 200:
            self.message = f"{action}: ok"
        else:
            self.message = f"{action}: {body.get('message', f'HTTP {code}')}"

    def handle_key(self, key) -> bool:
        """Act on one key press.  Returns False when the user quits."""
        if key in (ord('q'), 27):
            return False
        if key == curses.KEY_DOWN:
            self.next_item()
        elif key == curses.KEY_UP:
            self.prev_item()
        elif key in (curses.KEY_ENTER, 10, 13) and self.tracks:
            self._report("play", self.client.play(self.tracks[self.selected]["path"]))
        elif key == ord(' '):
            if self.status and self.status.get("playing"):
                self._report("pause", self.client.pause())
            else:
                self._report("resume", self.client.resume())
        elif key == ord('s'):
            self._report("stop", self.client.stop())
        elif key in (ord('+'), ord('=')):
            volume = (self.status or {}).get("volume", 1.0) + VOLUME_STEP
            self._report("volume", self.client.set_volume(min(volume, 1.0)))
        elif key == ord('-'):
            volume = (self.status or {}).get("volume", 1.0) - VOLUME_STEP
            self._report("volume", self.client.set_volume(max(volume, 0.0)))
        return True

    def draw(self, stdscr):
        stdscr.erase()
        height, width = stdscr.getmaxyx()
        stdscr.addnstr(0, 0, f"Jukebox - {self.client.base_url}", width - 1, curses.A_BOLD)

        list_height = max(height - 5, 1)
        top = max(self.selected - list_height + 1, 0)
        for row, track in enumerate(self.tracks[top:top + list_height]):
            index = top + row
            label = f"{track['artist']} / {track['album']} / {track['title']}"
            attr = curses.A_REVERSE if index == self.selected else curses.A_NORMAL
            stdscr.addnstr(2 + row, 0, label, width - 1, attr)

        status_line = format_status(self.status) if self.status else "Status unavailable"
        stdscr.addnstr(height - 2, 0, status_line, width - 1)
        stdscr.addnstr(height - 1, 0, self.message, width - 1, curses.A_DIM)
        stdscr.refresh()

    def run(self, stdscr):
        curses.curs_set(0)
        stdscr.timeout(int(POLL_INTERVAL * 1000))
        try:
            self.tracks = self.client.library()
        except requests.RequestException as e:
            self.message = f"Failed to load library: {e}"
        last_poll = 0.0
        while True:
            now = time.monotonic()
            if now - last_poll >= POLL_INTERVAL:
                last_poll = now
                try:
                    self.status = self.client.status()
                except requests.RequestException as e:
                    self.status = None
                    self.message = f"Server unreachable: {e}"
            self.draw(stdscr)
            key = stdscr.getch()
            if key == -1:
                continue
            try:
                if not self.handle_key(key):
                    return
            except requests.RequestException as e:
                self.message = f"Request failed: {e}"


# ── CLI ──

def parse_args(argv=None):
    default_server = f"127.0.0.1:{cfg('server', 'port', default=3000)}"
    parser = argparse.ArgumentParser(description="Music player terminal client")
    parser.add_argument("-s", "--server", default=default_server)
    sub = parser.add_subparsers(dest="command")
    sub.add_parser("status")
    sub.add_parser("library")
    play = sub.add_parser("play")
    play.add_argument("path")
    sub.add_parser("pause")
    sub.add_parser("resume")
    sub.add_parser("stop")
    volume = sub.add_parser("volume")
    volume.add_argument("volume", type=float)
    seek = sub.add_parser("seek")
    seek.add_argument("position_ms", type=int)
    sub.add_parser("watch")
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.WARNING, format='[%(levelname)s] %(message)s')
    client = JukeboxClient(args.server)
    command = args.command or "watch"

    try:
        if command == "watch":
            curses.wrapper(WatchScreen(client).run)
            return 0
        if command == "status":
            print(format_status(client.status()))
            return 0
        if command == "library":
            for track in client.library():
                print(f"{track['path']}\t{track['artist']} / {track['album']} / {track['title']}")
            return 0

        if command == "play":
            code, body = client.play(args.path)
        elif command == "volume":
            code, body = client.set_volume(args.volume)
        elif command == "seek":
            code, body = client.seek(args.position_ms)
        else:
            code, body = getattr(client, command)()
    except requests.RequestException as e:
        log.error("Cannot reach %s: %s", client.base_url, e)
        return 2

    if code != 200:
        print(f"{command} failed ({code}): {body.get('message', '')}", file=sys.stderr)
        return 1
    print(json.dumps(body))
    return 0


if __name__ == "__main__":
    sys.exit(main())
