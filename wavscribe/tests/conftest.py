import struct
import wave
from pathlib import Path

import numpy as np
import pytest

from wavscribe.internal_core.config import ScribeConfig, load_config


def write_pcm_wav(
    path: Path,
    samples: np.ndarray,
    *,
    sample_rate: int = 16000,
    channels: int = 1,
    sampwidth: int = 2,
) -> Path:
    dtype = {1: "u1", 2: "<i2", 4: "<i4"}[sampwidth]
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(channels)
        wf.setsampwidth(sampwidth)
        wf.setframerate(sample_rate)
        wf.writeframes(np.asarray(samples).astype(dtype).tobytes())
    return path


def write_raw_wav(
    path: Path,
    data: bytes,
    *,
    sample_rate: int = 16000,
    format_tag: int = 1,
    bits: int = 16,
) -> Path:
    """Hand-built RIFF so the data chunk may hold a partial frame or a non-PCM encoding."""
    block_align = bits // 8
    fmt_chunk = struct.pack("<HHIIHH", format_tag, 1, sample_rate, sample_rate * block_align, block_align, bits)
    body = b"WAVE" + b"fmt " + struct.pack("<I", len(fmt_chunk)) + fmt_chunk
    body += b"data" + struct.pack("<I", len(data)) + data
    if len(data) % 2:
        body += b"\x00"
    path.write_bytes(b"RIFF" + struct.pack("<I", len(body)) + body)
    return path


def ramp(n: int) -> np.ndarray:
    return (np.arange(n, dtype=np.int64) % 65536 - 32768).astype(np.int16)


@pytest.fixture
def scribe_config(tmp_path, monkeypatch) -> ScribeConfig:
    for name in ("WAVSCRIBE_CHUNK_SECONDS", "WAVSCRIBE_SAMPLING", "WAVSCRIBE_EMIT_TIMESTAMPS", "WAVSCRIBE_SKIP_EXISTING"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("WAVSCRIBE_MODEL_PATH", str(tmp_path / "ggml-test.bin"))
    monkeypatch.setenv("WAVSCRIBE_TMP_DIR", str(tmp_path / "tmp"))
    return load_config()
