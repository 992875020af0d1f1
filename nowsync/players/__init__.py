"""
Players — concrete AudioTransport implementations.

A player owns the native playback engine.  It does not decide what the
now-playing surface shows; it only reports what the engine is doing
(position, pause state, seeks, rate, end of file) and executes transport
commands.  The sync engine does the rest.

Current players:
  mpv.py  — mpv subprocess over JSON IPC
"""
