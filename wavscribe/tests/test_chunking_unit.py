from typing import Optional

import numpy as np
import pytest

from conftest import ramp, write_pcm_wav
from wavscribe.internal_core import chunking
from wavscribe.internal_core.audio_utils import AudioFrameSource, AudioInputError
from wavscribe.internal_core.chunking import (
    allocate_buffer,
    frames_for_seconds,
    produce_chunks,
    verify_chunking,
)


class ListSource:
    def __init__(self, frames: list[float]) -> None:
        self._frames = list(frames)
        self._pos = 0

    def next_frame(self) -> Optional[float]:
        if self._pos >= len(self._frames):
            return None
        value = self._frames[self._pos]
        self._pos += 1
        return value


def _collect(buffer: np.ndarray, source) -> list[tuple[int, np.ndarray]]:
    return [(c.index, c.samples.copy()) for c in produce_chunks(buffer, source)]


def test_exact_multiple_yields_full_chunks_without_trailing_empty() -> None:
    chunks = _collect(np.zeros(4, dtype=np.float32), ListSource([float(i) for i in range(12)]))

    assert [idx for idx, _ in chunks] == [0, 1, 2]
    assert all(len(samples) == 4 for _, samples in chunks)


def test_remainder_yields_one_short_final_chunk() -> None:
    chunks = _collect(np.zeros(4, dtype=np.float32), ListSource([float(i) for i in range(10)]))

    assert [len(samples) for _, samples in chunks] == [4, 4, 2]
    assert chunks[-1][1].tolist() == [8.0, 9.0]


def test_shorter_than_one_chunk_and_empty_source() -> None:
    assert [len(s) for _, s in _collect(np.zeros(8, dtype=np.float32), ListSource([0.1, 0.2]))] == [2]
    assert _collect(np.zeros(8, dtype=np.float32), ListSource([])) == []


def test_chunks_share_the_caller_buffer() -> None:
    buffer = np.zeros(3, dtype=np.float32)
    for chunk in produce_chunks(buffer, ListSource([1.0, 2.0, 3.0, 4.0])):
        assert np.shares_memory(chunk.samples, buffer)


def test_exhausted_source_yields_nothing_more() -> None:
    buffer = np.zeros(3, dtype=np.float32)
    source = ListSource([1.0] * 7)
    assert len(list(produce_chunks(buffer, source))) == 3
    assert list(produce_chunks(buffer, source)) == []


def test_zero_length_buffer_is_rejected() -> None:
    with pytest.raises(ValueError):
        list(produce_chunks(np.zeros(0, dtype=np.float32), ListSource([1.0])))


@pytest.mark.parametrize("n_frames, chunk_frames", [(16000, 4000), (16001, 4000), (3999, 4000), (7, 1)])
def test_chunked_read_matches_whole_stream_read(tmp_path, n_frames, chunk_frames) -> None:
    path = write_pcm_wav(tmp_path / "a.wav", ramp(n_frames))

    with AudioFrameSource.open(path) as whole_src:
        whole = list(produce_chunks(allocate_buffer(whole_src, 0), whole_src))
        assert len(whole) == 1
        reference = whole[0].samples.copy()

    with AudioFrameSource.open(path) as src:
        chunks = _collect(np.zeros(chunk_frames, dtype=np.float32), src)

    expected_full, remainder = divmod(n_frames, chunk_frames)
    assert len(chunks) == expected_full + (1 if remainder else 0)
    np.testing.assert_array_equal(np.concatenate([s for _, s in chunks]), reference)
    assert verify_chunking(path, chunk_frames, tmp_path / "tmp") is None
    assert verify_chunking(path, 0, tmp_path / "tmp") is None


def test_frames_for_seconds_and_allocate_buffer(tmp_path) -> None:
    assert frames_for_seconds(30) == 480000
    with pytest.raises(ValueError):
        frames_for_seconds(0)

    path = write_pcm_wav(tmp_path / "a.wav", ramp(1234))
    with AudioFrameSource.open(path) as src:
        assert allocate_buffer(src, 0).shape == (1234,)
        assert allocate_buffer(src, 2).shape == (32000,)
        with pytest.raises(ValueError):
            allocate_buffer(src, -1)


def test_verify_chunking_normalizes_mp3_and_removes_temp_wav(tmp_path, monkeypatch) -> None:
    mp3 = tmp_path / "talk.mp3"
    mp3.write_bytes(b"ID3 not really decoded here")
    converted = []

    def fake_normalize(input_path, tmp_dir, session_prefix):
        tmp_dir.mkdir(parents=True, exist_ok=True)
        out = write_pcm_wav(tmp_dir / f"{session_prefix}_norm.wav", ramp(9000))
        converted.append(out)
        return out

    monkeypatch.setattr(chunking, "normalize_to_wav16k_mono", fake_normalize)

    assert verify_chunking(mp3, 4000, tmp_path / "tmp") is None
    assert len(converted) == 1
    assert not converted[0].exists()
    assert mp3.exists()


def test_verify_chunking_missing_file(tmp_path) -> None:
    with pytest.raises(AudioInputError):
        verify_chunking(tmp_path / "missing.wav", 4000, tmp_path / "tmp")
