# Jukebox
# Copyright (C) 2026 Jukebox contributors
# SPDX-License-Identifier: GPL-3.0-or-later

"""
Commands accepted by the playback actor.

Every command is a plain value object carrying a one-shot ``reply`` future.
The actor resolves it exactly once: with a result (``None`` for transport
commands, a status dict for GetStatus, the stored volume for SetVolume) or
with one of the exceptions below.
"""

from concurrent.futures import Future


class PlaybackError(Exception):
    """Base class for everything a playback command can fail with."""


class ResourceError(PlaybackError):
    """The file could not be opened or decoded."""

    def __init__(self, path, reason, missing=False):
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason
        self.missing = missing


class ActorUnavailable(PlaybackError):
    """The actor could not take or answer the command (closed, full, gone)."""


class UnsupportedCommand(PlaybackError):
    """The command is accepted by the protocol but has no implementation."""


class Command:
    name = "command"

    def __init__(self):
        self.reply: Future = Future()

    def __repr__(self):
        return f"<{type(self).__name__}>"


class Play(Command):
    name = "play"

    def __init__(self, path, track=None):
        super().__init__()
        self.path = path
        self.track = track

    def __repr__(self):
        return f"<Play {self.path}>"


class Pause(Command):
    name = "pause"


class Resume(Command):
    name = "resume"


class Stop(Command):
    name = "stop"


class Seek(Command):
    name = "seek"

    def __init__(self, position_ms: int):
        super().__init__()
        self.position_ms = position_ms


class SetVolume(Command):
    name = "volume"

    def __init__(self, volume: float):
        super().__init__()
        self.volume = volume

    def __repr__(self):
        return f"<SetVolume {self.volume}>"


class GetStatus(Command):
    name = "status"
