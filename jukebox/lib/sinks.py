# Jukebox
# Copyright (C) 2026 Jukebox contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Sinks — the audio output the playback actor drives.

A sink is only ever touched from the actor thread, so implementations are
free to be blocking and not thread-safe.

Subclass contract:

    class MySink(Sink):
        def load(self, path): ...       # replace current output with path, start it
        def play(self): ...             # unpause
        def pause(self): ...
        def stop(self): ...             # silence, drop the source
        def set_volume(self, volume): ...  # 0.0 .. 1.0, already clamped
        def close(self): ...            # release the device / process

Current sinks:
  MpvSink   — an mpv process in idle mode, driven over its JSON IPC socket
  NullSink  — silent; remembers what it was told (headless runs and tests)
"""

import json
import logging
import os
import socket
import subprocess
import tempfile
import time

from ..commands import PlaybackError

log = logging.getLogger(__name__)


class SinkError(PlaybackError):
    """The sink refused or could not carry out an operation."""


class Sink:

    def load(self, path):
        raise NotImplementedError

    def play(self):
        raise NotImplementedError

    def pause(self):
        raise NotImplementedError

    def stop(self):
        raise NotImplementedError

    def set_volume(self, volume: float):
        raise NotImplementedError

    def close(self):
        """Release the output. Safe to call more than once."""


class NullSink(Sink):
    """Accepts every operation and plays nothing."""

    def __init__(self):
        self.source = None
        self.paused = True
        self.volume = 1.0
        self.closed = False
        self.calls: list[tuple] = []

    def load(self, path):
        self.calls.append(("load", str(path)))
        self.source = str(path)
        self.paused = False

    def play(self):
        self.calls.append(("play",))
        self.paused = False

    def pause(self):
        self.calls.append(("pause",))
        self.paused = True

    def stop(self):
        self.calls.append(("stop",))
        self.source = None
        self.paused = True

    def set_volume(self, volume: float):
        self.calls.append(("volume", volume))
        self.volume = volume

    def close(self):
        self.calls.append(("close",))
        self.closed = True


class MpvSink(Sink):
    """Plays files through a long-lived ``mpv --idle`` process.

    The process is started lazily on the first load and restarted if it
    has died since.  Commands go over mpv's JSON IPC unix socket.
    """

    STARTUP_TIMEOUT = 3.0  # seconds to wait for the IPC socket to appear

    def __init__(self, binary="mpv", ipc_socket=None, extra_args=None):
        self.binary = binary
        self._ipc_socket = ipc_socket or os.path.join(
            tempfile.gettempdir(), f"jukebox-mpv-{os.getpid()}.sock")
        self._extra_args = list(extra_args or [])
        self._volume = 1.0
        self.process = None

    # ── Process management ──

    def _ensure_process(self):
        if self.process and self.process.poll() is None:
            return
        if self.process:
            log.warning("mpv exited with %s — restarting", self.process.returncode)
        try:
            os.unlink(self._ipc_socket)
        except FileNotFoundError:
            pass

        args = [
            self.binary,
            '--idle=yes',
            '--no-video', '--no-terminal',
            f'--input-ipc-server={self._ipc_socket}',
            f'--volume={round(self._volume * 100)}',
        ] + self._extra_args
        try:
            self.process = subprocess.Popen(
                args, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL)
        except OSError as e:
            self.process = None
            raise SinkError(f"cannot start {self.binary}: {e}")

        deadline = time.monotonic() + self.STARTUP_TIMEOUT
        while not os.path.exists(self._ipc_socket):
            if self.process.poll() is not None:
                raise SinkError(f"{self.binary} exited during startup")
            if time.monotonic() > deadline:
                raise SinkError(f"{self.binary} IPC socket did not appear")
            time.sleep(0.05)
        log.info("mpv started (pid %d)", self.process.pid)

    def _command(self, *args):
        s = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            s.settimeout(2)
            s.connect(self._ipc_socket)
            cmd = json.dumps({'command': list(args)}) + '\n'
            s.sendall(cmd.encode())
        except OSError as e:
            log.error("mpv IPC error: %s", e)
            raise SinkError(f"mpv IPC error: {e}")
        finally:
            s.close()

    # ── Sink operations ──

    def load(self, path):
        self._ensure_process()
        self._command('loadfile', str(path), 'replace')
        self._command('set_property', 'pause', False)

    def play(self):
        if self.process is None:
            return
        self._command('set_property', 'pause', False)

    def pause(self):
        if self.process is None:
            return
        self._command('set_property', 'pause', True)

    def stop(self):
        if self.process is None or self.process.poll() is not None:
            return
        self._command('stop')

    def set_volume(self, volume: float):
        self._volume = volume
        if self.process is None or self.process.poll() is not None:
            return
        self._command('set_property', 'volume', round(volume * 100))

    def close(self):
        if self.process:
            self.process.terminate()
            try:
                self.process.wait(2)
            except subprocess.TimeoutExpired:
                self.process.kill()
            self.process = None
        try:
            os.unlink(self._ipc_socket)
        except FileNotFoundError:
            pass


def sink_from_config(cfg):
    """Return a zero-argument factory for the sink named in config.

    The factory runs inside the actor thread; only that thread owns the sink.
    """
    kind = cfg("playback", "sink", default="mpv")
    if kind == "null":
        return NullSink
    if kind != "mpv":
        log.warning("Unknown sink type %r — falling back to mpv", kind)
    binary = cfg("playback", "mpv_binary", default="mpv")
    ipc_socket = cfg("playback", "mpv_socket", default=None)
    extra_args = cfg("playback", "mpv_args", default=[])
    return lambda: MpvSink(binary=binary, ipc_socket=ipc_socket, extra_args=extra_args)
