"""
Tests for the playback actor.

Covers the transport state machine, the position clock, and the queue
contract between callers and the actor thread.
"""

import asyncio
import threading
import time
from concurrent.futures import Future

import pytest

from conftest import FakeClock, call, fake_probe
from jukebox.commands import (
    ActorUnavailable, GetStatus, Pause, Play, ResourceError, Resume, Seek,
    SetVolume, Stop, UnsupportedCommand,
)
from jukebox.lib.media import MediaInfo
from jukebox.lib.sinks import MpvSink, NullSink, SinkError
from jukebox.library import Track
from jukebox.playback import REPLY_TIMEOUT, PlaybackActor, clamp_volume, default_status


@pytest.fixture
def song(tmp_path):
    path = tmp_path / "a.mp3"
    path.write_bytes(b"data")
    return path, Track(path="Artist/Album/a.mp3", title="a", artist="Artist", album="Album")


def status(actor):
    return call(actor, GetStatus())


def test_idle_status_is_default(actor):
    assert status(actor) == default_status()


def test_play_pause_resume_stop_scenario(actor, clock, song):
    path, track = song
    call(actor, Play(path, track))

    s = status(actor)
    assert s["playing"] is True
    assert s["track"] == track.to_dict()
    assert s["position_ms"] == 0

    clock.tick(0.5)
    assert status(actor)["position_ms"] == 500

    call(actor, Pause())
    s = status(actor)
    assert s["playing"] is False
    assert s["position_ms"] == 500

    clock.tick(3)
    assert status(actor)["position_ms"] == 500

    call(actor, Resume())
    clock.tick(0.2)
    s = status(actor)
    assert s["playing"] is True
    assert s["position_ms"] == pytest.approx(700, abs=1)

    call(actor, Stop())
    s = status(actor)
    assert s["playing"] is False
    assert s["track"] is None
    assert s["position_ms"] == 0


def test_pause_then_resume_keeps_position(actor, clock, song):
    call(actor, Play(*song))
    clock.tick(1.25)
    before = status(actor)["position_ms"]
    call(actor, Pause())
    clock.tick(10)
    call(actor, Resume())
    assert status(actor)["position_ms"] == before


def test_pause_resume_cycles_accumulate(actor, clock, song):
    call(actor, Play(*song))
    for _ in range(3):
        clock.tick(0.25)
        call(actor, Pause())
        clock.tick(5)
        call(actor, Resume())
    assert status(actor)["position_ms"] == 750


def test_stop_resets_from_any_state(actor, clock, song, sinks):
    call(actor, Stop())
    assert status(actor)["position_ms"] == 0

    call(actor, Play(*song))
    clock.tick(2)
    call(actor, Pause())
    call(actor, Stop())
    s = status(actor)
    assert s["track"] is None
    assert s["position_ms"] == 0
    assert sinks[0].source is None


def test_pause_when_idle_is_noop(actor, sinks):
    call(actor, Pause())
    assert ("pause",) not in sinks[0].calls
    assert status(actor) == default_status()


def test_resume_when_idle_is_noop(actor, clock):
    call(actor, Resume())
    clock.tick(1)
    s = status(actor)
    assert s["playing"] is False
    assert s["position_ms"] == 0


def test_resume_while_playing_keeps_time(actor, clock, song):
    call(actor, Play(*song))
    clock.tick(1)
    call(actor, Resume())
    clock.tick(1)
    assert status(actor)["position_ms"] == 2000


def test_play_replaces_current_track(actor, clock, song, tmp_path, sinks):
    call(actor, Play(*song))
    clock.tick(4)
    other = tmp_path / "b.mp3"
    other.write_bytes(b"data")
    b = Track(path="Artist/Album/b.mp3", title="b", artist="Artist", album="Album")
    call(actor, Play(other, b))

    s = status(actor)
    assert s["track"]["path"] == "Artist/Album/b.mp3"
    assert s["position_ms"] == 0
    assert sinks[0].source == str(other)
    assert sinks[0].calls.count(("stop",)) == 2


def test_failed_play_leaves_state_unchanged(actor, clock, song, tmp_path):
    call(actor, Play(*song))
    clock.tick(1)
    before = status(actor)

    missing = Track(path="x/y/missing.mp3", title="missing", artist="x", album="y")
    with pytest.raises(ResourceError) as exc:
        call(actor, Play(tmp_path / "missing.mp3", missing))
    assert exc.value.missing

    assert status(actor) == before


def test_failed_play_from_idle_never_claims_playing(actor, tmp_path):
    with pytest.raises(ResourceError):
        call(actor, Play(tmp_path / "nope.flac", None))
    s = status(actor)
    assert s["playing"] is False
    assert s["track"] is None


@pytest.mark.parametrize("requested, stored", [
    (-0.5, 0.0),
    (0.0, 0.0),
    (0.3, 0.3),
    (1.0, 1.0),
    (1.7, 1.0),
    (250, 1.0),
])
def test_volume_is_clamped(actor, sinks, requested, stored):
    assert call(actor, SetVolume(requested)) == stored
    assert status(actor)["volume"] == stored
    assert sinks[0].volume == stored


def test_clamp_volume():
    assert clamp_volume(-1) == 0.0
    assert clamp_volume(2) == 1.0
    assert clamp_volume(0.42) == 0.42


def test_seek_is_unsupported_and_harmless(actor, clock, song):
    call(actor, Play(*song))
    clock.tick(1)
    with pytest.raises(UnsupportedCommand):
        call(actor, Seek(30_000))
    s = status(actor)
    assert s["playing"] is True
    assert s["position_ms"] == 1000


def test_status_is_side_effect_free(actor, clock, song, sinks):
    call(actor, Play(*song))
    clock.tick(0.1)
    calls_before = list(sinks[0].calls)
    first = status(actor)
    second = status(actor)
    assert first == second
    assert sinks[0].calls == calls_before

    clock.tick(0.1)
    third = status(actor)
    assert third["position_ms"] >= second["position_ms"]
    assert {k: v for k, v in third.items() if k != "position_ms"} == \
        {k: v for k, v in second.items() if k != "position_ms"}


def test_status_reports_end_of_known_duration(sink_factory, clock, song):
    actor = PlaybackActor(sink_factory, clock=clock,
                          prober=lambda path: MediaInfo(duration_ms=1500))
    actor.start()
    try:
        call(actor, Play(*song))
        clock.tick(1)
        s = status(actor)
        assert s["playing"] is True
        assert s["duration_ms"] == 1500

        clock.tick(5)
        s = status(actor)
        assert s["playing"] is False
        assert s["position_ms"] == 1500
    finally:
        actor.close()


def test_real_clock_advances(sink_factory, song):
    actor = PlaybackActor(sink_factory, prober=fake_probe)
    actor.start()
    try:
        call(actor, Play(*song))
        first = status(actor)["position_ms"]
        threading.Event().wait(0.05)
        second = status(actor)["position_ms"]
        assert second >= first
        assert second >= 40
    finally:
        actor.close()


def test_sink_is_built_inside_actor_thread(clock):
    seen = []

    def factory():
        seen.append(threading.current_thread().name)
        return NullSink()

    actor = PlaybackActor(factory, clock=clock, prober=fake_probe)
    actor.start()
    actor.close()
    assert seen == ["playback-actor"]


def test_close_releases_sink_and_rejects_commands(sink_factory, clock, sinks):
    actor = PlaybackActor(sink_factory, clock=clock, prober=fake_probe)
    actor.start()
    actor.close()
    assert sinks[0].closed
    assert not actor.alive
    with pytest.raises(ActorUnavailable):
        actor.submit(GetStatus())


async def test_status_falls_back_to_default_when_actor_gone(sink_factory, clock):
    actor = PlaybackActor(sink_factory, clock=clock, prober=fake_probe)
    actor.start()
    actor.close()
    assert await actor.status() == default_status()


async def test_request_from_event_loop(actor, song):
    await actor.request(Play(*song))
    s = await actor.status()
    assert s["playing"] is True


def test_sink_init_failure_makes_actor_unavailable(clock):
    def broken():
        raise RuntimeError("no audio device")

    actor = PlaybackActor(broken, clock=clock)
    actor.start()
    assert not actor.alive
    with pytest.raises(ActorUnavailable):
        actor.submit(Stop())
    actor.close()


def test_full_queue_fails_fast(sink_factory, song):
    entered = threading.Event()
    release = threading.Event()

    def slow_probe(path):
        entered.set()
        release.wait(5)
        return MediaInfo()

    actor = PlaybackActor(sink_factory, queue_size=1, clock=FakeClock(), prober=slow_probe)
    actor.start()
    try:
        first = actor.submit(Play(*song))
        assert entered.wait(2)
        queued = actor.submit(Pause())
        with pytest.raises(ActorUnavailable):
            actor.submit(Stop())
        release.set()
        first.result(timeout=2)
        queued.result(timeout=2)
        assert status(actor)["playing"] is False
    finally:
        release.set()
        actor.close()


def test_commands_from_one_caller_run_in_order(actor, clock, song):
    futures = [actor.submit(cmd) for cmd in (Play(*song), Pause(), SetVolume(0.5), Resume())]
    for f in futures:
        f.result(timeout=2)
    s = status(actor)
    assert s["playing"] is True
    assert s["volume"] == 0.5


def test_sink_failure_on_play_leaves_actor_idle(clock, song):
    class BrokenSink(NullSink):
        def load(self, path):
            raise SinkError("device unplugged")

    actor = PlaybackActor(BrokenSink, clock=clock, prober=fake_probe)
    actor.start()
    try:
        with pytest.raises(SinkError):
            call(actor, Play(*song))
        s = status(actor)
        assert s["playing"] is False
        assert s["track"] is None
        call(actor, Stop())
    finally:
        actor.close()


def test_reply_cancelled_during_dispatch_still_resolves(actor):
    class CancelsWhenChecked(Future):
        def done(self):
            self.cancel()
            return super().done()

    cmd = Stop()
    cmd.reply = CancelsWhenChecked()
    assert actor.submit(cmd).result(timeout=2) is None
    assert not cmd.reply.cancelled()
    assert status(actor) == default_status()


def blocked_actor(sink_factory, queue_size=2):
    """An actor stuck inside its first Play until ``release`` is set."""
    entered = threading.Event()
    release = threading.Event()

    def slow_probe(path):
        entered.set()
        release.wait(5)
        return MediaInfo()

    actor = PlaybackActor(sink_factory, queue_size=queue_size, clock=FakeClock(),
                          prober=slow_probe)
    actor.start()
    return actor, entered, release


def test_command_cancelled_while_queued_is_skipped(sink_factory, sinks, song):
    actor, entered, release = blocked_actor(sink_factory)
    try:
        playing = actor.submit(Play(*song))
        assert entered.wait(2)
        pause = actor.submit(Pause())
        assert pause.cancel()
        release.set()
        playing.result(timeout=2)
        assert status(actor)["playing"] is True
        assert ("pause",) not in sinks[0].calls
    finally:
        release.set()
        actor.close()


def test_reply_timeout_outlasts_mpv_startup():
    assert REPLY_TIMEOUT > MpvSink.STARTUP_TIMEOUT


class SlowLoadSink(NullSink):
    LOAD_TIME = 0.3

    def load(self, path):
        time.sleep(self.LOAD_TIME)
        super().load(path)


async def test_slow_sink_load_within_default_timeout(clock, song):
    actor = PlaybackActor(SlowLoadSink, clock=clock, prober=fake_probe)
    actor.start()
    try:
        await actor.request(Play(*song))
        assert (await actor.status())["track"]["path"] == "Artist/Album/a.mp3"
    finally:
        actor.close()


async def test_timed_out_request_is_not_replayed_later(clock, song, tmp_path):
    other = tmp_path / "b.mp3"
    other.write_bytes(b"data")
    other_track = Track(path="Artist/Album/b.mp3", title="b", artist="Artist", album="Album")

    actor = PlaybackActor(SlowLoadSink, clock=clock, prober=fake_probe)
    actor.start()
    try:
        first = actor.submit(Play(*song))
        actor.reply_timeout = 0.1
        with pytest.raises(ActorUnavailable):
            await actor.request(Play(other, other_track))
        actor.reply_timeout = REPLY_TIMEOUT
        await asyncio.wrap_future(first)
        s = await actor.status()
        assert s["track"]["path"] == "Artist/Album/a.mp3"
    finally:
        actor.close()


def test_close_with_full_queue_does_not_hang(sink_factory, sinks, song):
    actor, entered, release = blocked_actor(sink_factory, queue_size=1)
    try:
        actor.submit(Play(*song))
        assert entered.wait(2)
        actor.submit(Pause())
        started = time.monotonic()
        actor.close(timeout=0.2)
        assert time.monotonic() - started < 1.5
    finally:
        release.set()
    # Once unblocked, the actor drains what it has and shuts down.
    actor._thread.join(2)
    assert not actor.alive
    assert sinks[0].closed
