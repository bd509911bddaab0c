"""
wavscribe package.

Design intent:
- Adapt WAV/MP3 input into the fixed PCM frame stream whisper.cpp expects.
- Keep decoding inside the engine; this package only frames, feeds and writes.
"""
