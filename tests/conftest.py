"""
Common fixtures for the jukebox tests.

The actor runs on its real thread with a NullSink and a manual clock, so
position arithmetic is exact and nothing needs sleeping.
"""

import os

import pytest

from jukebox.commands import ResourceError
from jukebox.lib.media import MediaInfo
from jukebox.lib.sinks import NullSink
from jukebox.playback import PlaybackActor


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start=100.0):
        self.now = start

    def __call__(self):
        return self.now

    def tick(self, seconds):
        self.now += seconds


def fake_probe(path):
    """Accepts any existing file, without parsing it."""
    if not os.path.exists(path):
        raise ResourceError(path, "file not found", missing=True)
    return MediaInfo()


def call(actor, cmd, timeout=2):
    """Submit a command and block for its reply."""
    return actor.submit(cmd).result(timeout=timeout)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def sinks():
    """Every NullSink an actor built during the test, in order."""
    return []


@pytest.fixture
def sink_factory(sinks):
    def factory():
        sink = NullSink()
        sinks.append(sink)
        return sink
    return factory


@pytest.fixture
def actor(sink_factory, clock):
    actor = PlaybackActor(sink_factory, clock=clock, prober=fake_probe)
    actor.start()
    yield actor
    actor.close()


@pytest.fixture
def music_dir(tmp_path):
    """A small artist/album/file tree.  Files are not real audio."""
    root = tmp_path / "music"
    for rel in ("Air/Moon Safari/La Femme d'Argent.mp3",
                "Air/Moon Safari/Sexy Boy.mp3",
                "Air/Talkie Walkie/Venus.flac",
                "Boards of Canada/Geogaddi/Julie and Candy.ogg"):
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"not really audio")
    (root / "loose.mp3").write_bytes(b"too shallow")
    (root / "Air" / "Moon Safari" / "cover.jpg").write_bytes(b"jpeg")
    return root
