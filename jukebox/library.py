# Jukebox
# Copyright (C) 2026 Jukebox contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Music library: tracks, the shared catalog, and the filesystem scanner.

Layout on disk is expected to be ``<artist>/<album>/<file>`` below the
music root.  Tags, when mutagen can read them, win over the folder names.
"""

import logging
import os
import threading
from dataclasses import asdict, dataclass
from pathlib import Path

from .commands import ResourceError
from .lib.media import probe

log = logging.getLogger(__name__)

AUDIO_EXTENSIONS = {'.flac', '.mp3', '.wma', '.aac', '.wav', '.m4a', '.ogg', '.opus'}


@dataclass(frozen=True)
class Track:
    path: str
    title: str
    artist: str
    album: str

    def to_dict(self) -> dict:
        return asdict(self)

    @property
    def sort_key(self):
        return (self.artist, self.album, self.title)

    @classmethod
    def from_path(cls, full_path, music_root, tags=None):
        """Build a Track for *full_path*, or None if it is not below an
        ``artist/album/`` folder inside *music_root*."""
        try:
            rel = Path(full_path).relative_to(music_root)
        except ValueError:
            return None
        parts = rel.parts
        if len(parts) < 3:
            return None
        title = Path(parts[-1]).stem
        artist, album = parts[0], parts[-2]
        if tags is not None:
            title = tags.title or title
            artist = tags.artist or artist
            album = tags.album or album
        return cls(path=rel.as_posix(), title=title, artist=artist, album=album)


class Catalog:
    """The current set of tracks, replaced wholesale on every scan.

    The tracks live in a tuple that is never modified in place; replace()
    swaps in a new one under the lock, so every reader holds a complete
    snapshot for as long as it keeps the reference.
    """

    def __init__(self, tracks=()):
        self._lock = threading.Lock()
        self._tracks: tuple[Track, ...] = tuple(sorted(tracks, key=lambda t: t.sort_key))

    def snapshot(self) -> tuple:
        with self._lock:
            return self._tracks

    def replace(self, tracks):
        new = tuple(sorted(tracks, key=lambda t: t.sort_key))
        with self._lock:
            self._tracks = new
        log.info("Catalog replaced (%d tracks)", len(new))

    def __len__(self):
        return len(self.snapshot())

    def find(self, path: str):
        for track in self.snapshot():
            if track.path == path:
                return track
        return None

    def artists(self) -> list[str]:
        return sorted({t.artist for t in self.snapshot()})

    def albums(self, artist: str) -> list[str]:
        return sorted({t.album for t in self.snapshot() if t.artist == artist})

    def tracks(self, artist: str, album: str) -> list[Track]:
        found = [t for t in self.snapshot() if t.artist == artist and t.album == album]
        return sorted(found, key=lambda t: t.title)

    def to_dict(self) -> dict:
        return {"tracks": [t.to_dict() for t in self.snapshot()]}


def _read_tags(path):
    try:
        return probe(path)
    except ResourceError as e:
        log.debug("No tags for %s: %s", path, e.reason)
        return None


def scan_library(music_root, read_tags=True) -> list[Track]:
    """Walk *music_root* and return every playable track, sorted."""
    root = Path(music_root).resolve()
    log.info("Scanning music directory: %s", root)

    tracks = []
    file_count = 0
    supported_count = 0
    for dirpath, dirnames, filenames in os.walk(root, followlinks=True):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith('.'))
        for name in filenames:
            if name.startswith('.'):
                continue
            file_count += 1
            full_path = Path(dirpath) / name
            if full_path.suffix.lower() not in AUDIO_EXTENSIONS:
                continue
            supported_count += 1
            tags = _read_tags(full_path) if read_tags else None
            track = Track.from_path(full_path, root, tags)
            if track is None:
                log.debug("Skipping file (not in artist/album folder): %s", full_path)
                continue
            log.debug("Found track: %s | Path: %s | Artist: %s | Album: %s",
                      track.title, track.path, track.artist, track.album)
            tracks.append(track)

    tracks.sort(key=lambda t: t.sort_key)
    log.info("Scanned %d files (%d supported), found %d valid tracks",
             file_count, supported_count, len(tracks))
    return tracks


def resolve_track_path(music_root, rel_path):
    """Resolve a client-supplied relative path below *music_root*.

    Returns the absolute Path, or None when it escapes the root.  Does not
    check existence.
    """
    root = Path(music_root).resolve()
    target = (root / rel_path).resolve()
    if not target.is_relative_to(root):
        return None
    return target
