"""
Jukebox — a local music library served over HTTP.

The server scans a music directory into a catalog and drives playback
through a single actor thread that owns the audio sink.  A terminal client
polls and controls it.

  library.py   — tracks, catalog, scanner
  playback.py  — the playback actor and position clock
  commands.py  — commands and errors exchanged with the actor
  server.py    — aiohttp API (jukebox-server)
  client.py    — terminal client (jukebox-client)
"""

__version__ = "0.3.0"
