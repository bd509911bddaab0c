from __future__ import annotations

import shutil
import struct
import subprocess
import uuid
import wave
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Optional, Tuple, Union

import numpy as np


ALLOWED_INPUT_EXTS = {".wav", ".mp3"}

# Frames decoded per read; next_frame() serves from this block.
_READ_BLOCK_FRAMES = 4096


@dataclass(frozen=True)
class AudioFormat:
    sample_rate: int
    bits_per_sample: int
    channels: int

    @property
    def block_align(self) -> int:
        return self.channels * self.bits_per_sample // 8


REQUIRED_FORMAT = AudioFormat(sample_rate=16000, bits_per_sample=16, channels=1)


class AudioInputError(ValueError):
    code = "AUDIO_INPUT"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class FormatMismatch(AudioInputError):
    code = "FORMAT_MISMATCH"

    def __init__(self, attribute: str, expected: int, actual: int):
        super().__init__(
            f"Audio format must be {REQUIRED_FORMAT.sample_rate}Hz/"
            f"{REQUIRED_FORMAT.bits_per_sample}-bit/mono ({attribute} does not match: "
            f"expected {expected}, got {actual})"
        )
        self.attribute = attribute
        self.expected = expected
        self.actual = actual


class TruncatedStream(AudioInputError):
    code = "TRUNCATED_STREAM"


class EmptyInput(AudioInputError):
    code = "EMPTY_INPUT"


class AudioConversionError(AudioInputError):
    code = "CONVERSION_FAILED"


def _which(cmd: str) -> Optional[str]:
    return shutil.which(cmd)


def check_format(actual: AudioFormat, required: AudioFormat = REQUIRED_FORMAT) -> None:
    # Each attribute is checked on its own so the error names the culprit.
    if actual.bits_per_sample != required.bits_per_sample:
        raise FormatMismatch("bits_per_sample", required.bits_per_sample, actual.bits_per_sample)
    if actual.sample_rate != required.sample_rate:
        raise FormatMismatch("sample_rate", required.sample_rate, actual.sample_rate)
    if actual.channels != required.channels:
        raise FormatMismatch("channels", required.channels, actual.channels)


_WAVE_FORMAT_PCM = 0x0001


def _read_fmt_header(src: Union[str, BinaryIO]) -> Optional[Tuple[int, AudioFormat]]:
    """Format tag and declared format from the RIFF `fmt ` chunk, if one can be found."""
    try:
        if isinstance(src, str):
            with open(src, "rb") as f:
                head = f.read(4096)
        else:
            src.seek(0)
            head = src.read(4096)
    except OSError:
        return None

    if head[:4] != b"RIFF" or head[8:12] != b"WAVE":
        return None
    pos = 12
    while pos + 8 <= len(head):
        chunk_id = head[pos : pos + 4]
        (size,) = struct.unpack_from("<I", head, pos + 4)
        if chunk_id == b"fmt " and pos + 24 <= len(head):
            format_tag, channels, rate, _, _, bits = struct.unpack_from("<HHIIHH", head, pos + 8)
            return format_tag, AudioFormat(sample_rate=rate, bits_per_sample=bits, channels=channels)
        pos += 8 + size + (size & 1)
    return None


class AudioFrameSource:
    """
    Pull-based reader of normalized float frames from a 16-bit PCM WAV stream.

    The format is validated when the source is opened. `next_frame()` returns
    `None` at a clean end of stream and raises `TruncatedStream` when the data
    ends in the middle of a frame.
    """

    def __init__(self, wav: wave.Wave_read, fmt: AudioFormat = REQUIRED_FORMAT):
        self._wav = wav
        self._fmt = fmt
        self._block = np.empty(0, dtype=np.float32)
        self._pos = 0
        self._truncated_tail = 0
        self._exhausted = False
        self._closed = False

    @classmethod
    def open(
        cls,
        stream: Union[str, Path, BinaryIO],
        fmt: AudioFormat = REQUIRED_FORMAT,
    ) -> "AudioFrameSource":
        src = str(stream) if isinstance(stream, Path) else stream
        try:
            wav = wave.open(src, "rb")
        except wave.Error as e:
            # Non-PCM encodings (IEEE float, A-law, ...) are a format mismatch.
            header = _read_fmt_header(src) if str(e).startswith("unknown") else None
            if header is not None:
                format_tag, declared = header
                check_format(declared, fmt)
                raise FormatMismatch("format_tag", _WAVE_FORMAT_PCM, format_tag) from e
            raise AudioInputError(f"Not a readable PCM WAV stream: {e}") from e
        except EOFError as e:
            raise AudioInputError(f"Not a readable PCM WAV stream: {e}") from e
        except OSError as e:
            raise AudioInputError(f"Cannot read audio stream {stream}: {e}") from e
        actual = AudioFormat(
            sample_rate=wav.getframerate(),
            bits_per_sample=wav.getsampwidth() * 8,
            channels=wav.getnchannels(),
        )
        try:
            check_format(actual, fmt)
        except FormatMismatch:
            wav.close()
            raise
        return cls(wav, fmt)

    def total_frames(self) -> int:
        return self._wav.getnframes()

    def duration_sec(self) -> float:
        return self.total_frames() / float(self._fmt.sample_rate)

    def _fill_block(self) -> None:
        raw = self._wav.readframes(_READ_BLOCK_FRAMES)
        align = self._fmt.block_align
        whole = len(raw) - (len(raw) % align)
        self._truncated_tail = len(raw) - whole
        self._block = (np.frombuffer(raw[:whole], dtype="<i2").astype(np.float32) / 32768.0)
        self._pos = 0
        if len(raw) == 0 or self._truncated_tail:
            self._exhausted = True

    def next_frame(self) -> Optional[float]:
        if self._pos >= self._block.size:
            if self._exhausted:
                if self._truncated_tail:
                    raise TruncatedStream(
                        f"Unexpected end of stream: {self._truncated_tail} byte(s) "
                        f"of a {self._fmt.block_align}-byte frame"
                    )
                return None
            self._fill_block()
            return self.next_frame()
        value = float(self._block[self._pos])
        self._pos += 1
        return value

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._wav.close()

    def __enter__(self) -> "AudioFrameSource":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def ensure_not_empty(path: Path) -> None:
    if not path.exists():
        raise AudioInputError(f"Audio file not found: {path}")
    if path.stat().st_size == 0:
        raise EmptyInput(f"Empty input file: {path}")


def normalize_to_wav16k_mono(
    input_path: Path,
    tmp_dir: Path,
    session_prefix: str,
) -> Path:
    """
    Normalize any supported audio to 16kHz mono 16-bit WAV.
    Prefers ffmpeg when present; falls back to `miniaudio` decode/convert.
    WAV input that already matches is returned untouched.
    """
    if not input_path.exists():
        raise AudioInputError(f"Audio file not found: {input_path}")

    if input_path.suffix.lower() == ".wav":
        return input_path

    if input_path.suffix.lower() not in ALLOWED_INPUT_EXTS:
        raise AudioConversionError(
            f"Unsupported input type: {input_path.suffix}. Only WAV/MP3 are allowed."
        )

    tmp_dir.mkdir(parents=True, exist_ok=True)
    out_path = tmp_dir / f"{session_prefix}_norm_{uuid.uuid4().hex}.wav"

    ffmpeg = _which("ffmpeg")
    if ffmpeg:
        cmd = [
            ffmpeg,
            "-y",
            "-i",
            str(input_path),
            "-ac",
            "1",
            "-ar",
            str(REQUIRED_FORMAT.sample_rate),
            "-sample_fmt",
            "s16",
            str(out_path),
        ]
        try:
            subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
            return out_path
        except subprocess.CalledProcessError as e:
            stderr = (
                e.stderr.decode("utf-8", "ignore")
                if isinstance(e.stderr, (bytes, bytearray))
                else str(e.stderr)
            )
            raise AudioConversionError(
                f"Audio conversion failed via ffmpeg: {stderr.strip() or 'unknown error'}"
            ) from e

    try:
        import miniaudio  # type: ignore
    except ImportError as e:
        raise AudioConversionError(
            f"Cannot convert {input_path.suffix} without a decoder. "
            "Install `ffmpeg` (recommended) or the Python dependency `miniaudio`."
        ) from e

    try:
        decoded = miniaudio.decode_file(
            str(input_path),
            output_format=miniaudio.SampleFormat.SIGNED16,
            nchannels=REQUIRED_FORMAT.channels,
            sample_rate=REQUIRED_FORMAT.sample_rate,
        )
    except miniaudio.DecodeError as e:
        raise AudioConversionError(f"Audio conversion failed: {e}") from e

    # decoded.samples is an array('h') for SIGNED16
    write_wav16k_mono_pcm(out_path, decoded.samples.tobytes())
    return out_path


def write_wav16k_mono_pcm(path: Path, pcm_bytes: bytes) -> None:
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(REQUIRED_FORMAT.channels)
        wf.setsampwidth(REQUIRED_FORMAT.bits_per_sample // 8)
        wf.setframerate(REQUIRED_FORMAT.sample_rate)
        wf.writeframes(pcm_bytes)
