from __future__ import annotations

"""
Group normalized frames into fixed-size chunks for the inference engine.

Design intent:
- One caller-owned float32 buffer is reused for every chunk (zero-copy).
- A chunk is only valid until the iterator is advanced; copy to keep it.
- Only the final chunk may be shorter than the buffer; never an empty one.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Protocol

import numpy as np

from .audio_utils import REQUIRED_FORMAT, AudioFormat, AudioFrameSource, normalize_to_wav16k_mono


class FrameSource(Protocol):
    def next_frame(self) -> Optional[float]: ...


@dataclass(frozen=True)
class Chunk:
    index: int
    samples: np.ndarray

    def __len__(self) -> int:
        return int(self.samples.shape[0])

    def duration_sec(self, fmt: AudioFormat = REQUIRED_FORMAT) -> float:
        return len(self) / float(fmt.sample_rate)


def produce_chunks(buffer: np.ndarray, source: FrameSource) -> Iterator[Chunk]:
    if buffer.shape[0] == 0:
        raise ValueError("chunk buffer must hold at least one frame")

    index = 0
    while True:
        filled = 0
        while filled < buffer.shape[0]:
            frame = source.next_frame()
            if frame is None:
                break
            buffer[filled] = frame
            filled += 1

        if filled == 0:
            return
        yield Chunk(index=index, samples=buffer[:filled])
        if filled < buffer.shape[0]:
            return
        index += 1


def frames_for_seconds(seconds: float, fmt: AudioFormat = REQUIRED_FORMAT) -> int:
    if seconds <= 0:
        raise ValueError("chunk seconds must be > 0")
    return max(1, int(round(seconds * fmt.sample_rate)))


def allocate_buffer(
    source: AudioFrameSource,
    chunk_seconds: float,
    fmt: AudioFormat = REQUIRED_FORMAT,
) -> np.ndarray:
    """Chunk-sized buffer, or one sized to the whole stream when chunk_seconds is 0."""
    if chunk_seconds < 0:
        raise ValueError("chunk_seconds must be >= 0")
    if chunk_seconds == 0:
        frames = max(1, source.total_frames())
    else:
        frames = frames_for_seconds(chunk_seconds, fmt)
    return np.zeros(frames, dtype=np.float32)


def _first_difference(wav_path: Path, chunk_frames: int) -> Optional[int]:
    with AudioFrameSource.open(wav_path) as whole_src:
        whole_buffer = np.zeros(max(1, whole_src.total_frames()), dtype=np.float32)
        whole = np.concatenate(
            [c.samples.copy() for c in produce_chunks(whole_buffer, whole_src)]
            or [np.zeros(0, dtype=np.float32)]
        )

    with AudioFrameSource.open(wav_path) as chunk_src:
        frames = chunk_frames if chunk_frames > 0 else max(1, chunk_src.total_frames())
        buffer = np.zeros(frames, dtype=np.float32)
        offset = 0
        for chunk in produce_chunks(buffer, chunk_src):
            n = len(chunk)
            expected = whole[offset : offset + n]
            if expected.shape[0] != n:
                return offset + expected.shape[0]
            diff = np.nonzero(expected != chunk.samples)[0]
            if diff.size:
                return offset + int(diff[0])
            offset += n

    if offset != whole.shape[0]:
        return offset
    return None


def verify_chunking(path: Path, chunk_frames: int, tmp_dir: Path) -> Optional[int]:
    """
    Read `path` once with a whole-stream buffer and once in `chunk_frames`
    chunks (0 = whole stream). Returns the index of the first frame that
    differs, or None.

    MP3 input is normalized into `tmp_dir` first; the temporary WAV is removed
    afterwards.
    """
    path = Path(path)
    wav_path = normalize_to_wav16k_mono(path, tmp_dir=tmp_dir, session_prefix=path.stem)
    try:
        return _first_difference(wav_path, chunk_frames)
    finally:
        if wav_path.resolve() != path.resolve():
            wav_path.unlink(missing_ok=True)
