# Jukebox
# Copyright (C) 2026 Jukebox contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Audio file probing via mutagen.

probe() is the "open and decode" gate the playback actor runs before
handing a file to the sink: the file must open and mutagen must recognise
a stream in it.  It also yields the duration and the easy tags the library
scanner uses for titles.
"""

import logging

import mutagen

from ..commands import ResourceError

log = logging.getLogger(__name__)


class MediaInfo:
    """What we learned about one audio file."""

    def __init__(self, duration_ms=None, title=None, artist=None, album=None):
        self.duration_ms = duration_ms
        self.title = title
        self.artist = artist
        self.album = album

    def __repr__(self):
        return (f"<MediaInfo {self.artist!r} / {self.album!r} / {self.title!r} "
                f"{self.duration_ms}ms>")


def _first_tag(tags, key):
    if not tags:
        return None
    try:
        values = tags.get(key)
    except (KeyError, ValueError):
        return None
    if not values:
        return None
    value = str(values[0]).strip()
    return value or None


def probe(path) -> MediaInfo:
    """Open *path* and parse its stream header.

    Raises ResourceError (``missing=True`` when the file does not exist).
    """
    try:
        with open(path, "rb") as f:
            f.read(1)
    except FileNotFoundError:
        raise ResourceError(path, "file not found", missing=True)
    except OSError as e:
        raise ResourceError(path, f"cannot open: {e.strerror or e}")

    try:
        audio = mutagen.File(path, easy=True)
    except mutagen.MutagenError as e:
        raise ResourceError(path, f"cannot decode: {e}")
    if audio is None:
        raise ResourceError(path, "unrecognised audio format")

    length = getattr(audio.info, "length", None)
    duration_ms = int(length * 1000) if length else None
    info = MediaInfo(
        duration_ms=duration_ms,
        title=_first_tag(audio.tags, "title"),
        artist=_first_tag(audio.tags, "artist"),
        album=_first_tag(audio.tags, "album"),
    )
    log.debug("Probed %s: %s", path, info)
    return info
