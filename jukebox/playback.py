# Jukebox
# Copyright (C) 2026 Jukebox contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
PlaybackActor — the single owner of the audio sink and transport state.

One daemon thread builds the sink, then takes commands off a bounded queue
and runs each to completion before looking at the next.  Nothing outside
that thread ever sees the sink or mutates PlaybackState; callers only
enqueue commands and wait on the command's reply future.

Position is never asked of the sink.  It is derived from a monotonic clock:

    playing:  now - start_time + pause_offset
    paused:   pause_offset

Usage:
    actor = PlaybackActor(NullSink)
    actor.start()
    status = await actor.request(GetStatus())
    actor.close()
"""

import asyncio
import logging
import queue
import threading
import time

from .commands import (
    ActorUnavailable, GetStatus, Pause, PlaybackError, Play, ResourceError,
    Resume, Seek, SetVolume, Stop, UnsupportedCommand,
)
from .lib.media import probe
from .lib.sinks import MpvSink, SinkError

log = logging.getLogger(__name__)

DEFAULT_VOLUME = 1.0
QUEUE_SIZE = 32
# Must outlast the slowest sink operation (starting mpv).
REPLY_TIMEOUT = MpvSink.STARTUP_TIMEOUT + 2.0

_CLOSE = object()


def clamp_volume(volume: float) -> float:
    return min(max(float(volume), 0.0), 1.0)


def default_status() -> dict:
    """The status reported when nothing is playing or the actor is gone."""
    return {
        "playing": False,
        "track": None,
        "position_ms": 0,
        "duration_ms": None,
        "volume": DEFAULT_VOLUME,
    }


class PlaybackState:
    """Transport state.  Owned by the actor thread."""

    def __init__(self, sink, clock=time.monotonic):
        self.sink = sink
        self.current_track = None
        self.source = None
        self.start_time: float | None = None
        self.pause_offset: float = 0.0
        self.duration_ms: int | None = None
        self.volume: float = DEFAULT_VOLUME
        self._clock = clock

    @property
    def playing(self) -> bool:
        return self.start_time is not None

    def elapsed(self) -> float:
        if self.start_time is not None:
            return self._clock() - self.start_time + self.pause_offset
        return self.pause_offset

    def position_ms(self) -> int:
        return int(self.elapsed() * 1000)

    def status(self) -> dict:
        position = self.position_ms()
        playing = self.playing
        # Past the end of a known-length source: report it finished.
        if self.duration_ms is not None and position >= self.duration_ms:
            position = self.duration_ms
            playing = False
        return {
            "playing": playing,
            "track": self.current_track.to_dict() if self.current_track else None,
            "position_ms": position,
            "duration_ms": self.duration_ms,
            "volume": self.volume,
        }


class PlaybackActor:

    def __init__(self, sink_factory, queue_size=QUEUE_SIZE, clock=time.monotonic,
                 reply_timeout=REPLY_TIMEOUT, prober=probe):
        self._sink_factory = sink_factory
        self._queue: queue.Queue = queue.Queue(maxsize=queue_size)
        self._clock = clock
        self._probe = prober
        self.reply_timeout = reply_timeout
        self._thread: threading.Thread | None = None
        self._closed = False
        self._ready = threading.Event()

    # ── Lifecycle ──

    def start(self):
        self._thread = threading.Thread(
            target=self._run, name="playback-actor", daemon=True)
        self._thread.start()
        self._ready.wait(5)
        if self._closed:
            # Sink construction failed; let the thread finish exiting.
            self._thread.join(1)

    def close(self, timeout=5):
        """Stop accepting commands, let the loop drain, release the sink."""
        if self._closed:
            return
        self._closed = True
        if not self.alive:
            return
        try:
            self._queue.put(_CLOSE, timeout=timeout)
        except queue.Full:
            # The loop exits by itself once it drains the queue.
            log.warning("Playback actor queue still full after %ss, not waiting", timeout)
            return
        self._thread.join(timeout)
        if self._thread.is_alive():
            log.warning("Playback actor did not stop within %ss", timeout)

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ── Caller side ──

    def submit(self, cmd):
        """Enqueue *cmd* without blocking; return its reply future.

        A full or closed queue raises ActorUnavailable — commands are never
        dropped silently.
        """
        if self._closed or not self.alive:
            raise ActorUnavailable("playback actor is not running")
        try:
            self._queue.put_nowait(cmd)
        except queue.Full:
            log.warning("Command queue full, rejecting %r", cmd)
            raise ActorUnavailable("playback command queue is full")
        return cmd.reply

    async def request(self, cmd):
        """Submit *cmd* and await its reply from an asyncio context."""
        future = self.submit(cmd)
        try:
            return await asyncio.wait_for(
                asyncio.wrap_future(future), timeout=self.reply_timeout)
        except asyncio.TimeoutError:
            raise ActorUnavailable(f"no reply to {cmd.name} within {self.reply_timeout}s")

    async def status(self) -> dict:
        """Current status, or the default one if the actor cannot answer."""
        try:
            return await self.request(GetStatus())
        except ActorUnavailable as e:
            log.error("Failed to get status: %s", e)
            return default_status()

    # ── Actor thread ──

    def _run(self):
        try:
            sink = self._sink_factory()
            sink.set_volume(DEFAULT_VOLUME)
        except Exception as e:
            log.error("Failed to initialize audio: %s", e)
            self._closed = True
            self._ready.set()
            self._fail_pending()
            return

        state = PlaybackState(sink, clock=self._clock)
        self._ready.set()
        log.info("Playback actor started (%s)", type(sink).__name__)
        try:
            while True:
                cmd = self._queue.get()
                if cmd is _CLOSE:
                    break
                # Marks the reply running so callers can no longer cancel it.
                if cmd.reply.set_running_or_notify_cancel():
                    self._dispatch(state, cmd)
                else:
                    log.info("Skipping %r, caller gave up", cmd)
                # close() may have given up on queueing _CLOSE.
                if self._closed and self._queue.empty():
                    break
        finally:
            self._closed = True
            self._fail_pending()
            try:
                sink.close()
            except Exception as e:
                log.warning("Error releasing sink: %s", e)
            log.info("Playback actor stopped")

    def _fail_pending(self):
        while True:
            try:
                cmd = self._queue.get_nowait()
            except queue.Empty:
                return
            if cmd is not _CLOSE and cmd.reply.set_running_or_notify_cancel():
                cmd.reply.set_exception(ActorUnavailable("playback actor stopped"))

    def _dispatch(self, state, cmd):
        handler = self._handlers.get(type(cmd))
        try:
            if handler is None:
                raise UnsupportedCommand(f"unknown command {cmd!r}")
            result = handler(self, state, cmd)
        except PlaybackError as e:
            cmd.reply.set_exception(e)
            return
        except Exception as e:
            log.exception("Unexpected error handling %r", cmd)
            cmd.reply.set_exception(e)
            return
        cmd.reply.set_result(result)

    # ── Command handlers (actor thread only) ──

    def _play(self, state, cmd):
        try:
            info = self._probe(cmd.path)
        except ResourceError as e:
            log.error("Failed to open %s: %s", cmd.path, e.reason)
            raise
        try:
            state.sink.stop()
            state.sink.load(cmd.path)
        except SinkError:
            # The old source is gone either way.
            self._reset(state)
            raise
        state.source = cmd.path
        state.current_track = cmd.track
        state.start_time = self._clock()
        state.pause_offset = 0.0
        state.duration_ms = info.duration_ms
        log.info("Started playing: %s", cmd.path)

    def _pause(self, state, cmd):
        if not state.playing:
            return
        state.sink.pause()
        state.pause_offset += self._clock() - state.start_time
        state.start_time = None
        log.info("Playback paused at %dms", state.position_ms())

    def _resume(self, state, cmd):
        if state.sink is None or state.source is None or state.playing:
            return
        state.sink.play()
        state.start_time = self._clock()
        log.info("Playback resumed at %dms", state.position_ms())

    def _stop(self, state, cmd):
        try:
            state.sink.stop()
        except SinkError as e:
            log.error("Sink stop failed: %s", e)
        self._reset(state)
        log.info("Playback stopped")

    def _reset(self, state):
        state.current_track = None
        state.source = None
        state.start_time = None
        state.pause_offset = 0.0
        state.duration_ms = None

    def _seek(self, state, cmd):
        log.warning("Seek to %dms requested — seeking is not supported", cmd.position_ms)
        raise UnsupportedCommand("seek is not supported")

    def _set_volume(self, state, cmd):
        volume = clamp_volume(cmd.volume)
        state.sink.set_volume(volume)
        state.volume = volume
        log.info("Volume set to %s", volume)
        return volume

    def _get_status(self, state, cmd):
        return state.status()

    _handlers = {
        Play: _play,
        Pause: _pause,
        Resume: _resume,
        Stop: _stop,
        Seek: _seek,
        SetVolume: _set_volume,
        GetStatus: _get_status,
    }
