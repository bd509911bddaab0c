from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Iterable, List, Optional, TextIO

from ..audio_utils import (
    REQUIRED_FORMAT,
    AudioFormat,
    AudioFrameSource,
    AudioInputError,
    EmptyInput,
    TruncatedStream,
    ensure_not_empty,
    normalize_to_wav16k_mono,
)
from ..chunking import Chunk, allocate_buffer, produce_chunks
from ..config import ScribeConfig
from ..contracts import BatchReport, FileTranscriptionResult, TranscriptSegment
from .base import EngineInvocationFailed, EngineParams, InferenceEngine

logger = logging.getLogger(__name__)


def _safe_unlink(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("could not remove temp file %s", path)


def format_timestamp(seconds: float) -> str:
    total_ms = int(round(max(0.0, seconds) * 1000))
    hours, rem = divmod(total_ms, 3_600_000)
    minutes, rem = divmod(rem, 60_000)
    secs, ms = divmod(rem, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{ms:03d}"


def engine_params_from_config(cfg: ScribeConfig) -> EngineParams:
    return EngineParams(
        sampling=cfg.WAVSCRIBE_SAMPLING,  # type: ignore[arg-type]
        n_threads=cfg.WAVSCRIBE_N_THREADS,
        print_realtime=cfg.WAVSCRIBE_PRINT_REALTIME,
        print_progress=cfg.WAVSCRIBE_PRINT_PROGRESS,
        print_timestamps=cfg.WAVSCRIBE_PRINT_TIMESTAMPS,
        translate=cfg.WAVSCRIBE_TRANSLATE,
        language=cfg.WAVSCRIBE_LANGUAGE,
        offset_ms=cfg.WAVSCRIBE_OFFSET_MS,
        duration_ms=cfg.WAVSCRIBE_DURATION_MS,
    )


def output_path_for(input_path: Path) -> Path:
    return input_path.with_suffix(".txt")


def transcribe_chunks(
    engine: InferenceEngine,
    params: EngineParams,
    chunks: Iterable[Chunk],
    sink: TextIO,
    *,
    emit_timestamps: bool = False,
    fmt: AudioFormat = REQUIRED_FORMAT,
) -> List[TranscriptSegment]:
    """
    Feed chunks to the engine in order and write each segment to `sink` as
    soon as its chunk is decoded.

    Chunk 0 runs with `no_context=True`; later chunks let the engine carry
    text context forward. A non-zero engine status aborts the run with
    `EngineInvocationFailed`; text already written stays in the sink.
    """
    segments: List[TranscriptSegment] = []
    start_sec = 0.0

    for chunk in chunks:
        duration = chunk.duration_sec(fmt)
        logger.info(
            "Processing chunk %d [%s --> %s]",
            chunk.index,
            format_timestamp(start_sec),
            format_timestamp(start_sec + duration),
        )
        chunk_params = dataclasses.replace(params, no_context=chunk.index == 0)

        status = engine.run_full(chunk_params, chunk.samples)
        if status != 0:
            raise EngineInvocationFailed(chunk.index, status, engine.name())

        for i in range(engine.segment_count()):
            text = engine.segment_text(i)
            t0, t1 = engine.segment_span(i)
            seg = TranscriptSegment(
                chunk_index=chunk.index,
                start_sec=start_sec + max(0.0, t0),
                end_sec=start_sec + max(0.0, t0, t1),
                text=text,
            )
            segments.append(seg)
            if emit_timestamps:
                sink.write(
                    f"[{format_timestamp(seg.start_sec)} --> {format_timestamp(seg.end_sec)}] {text.strip()}\n"
                )
            else:
                sink.write(text)
        sink.flush()
        start_sec += duration

    return segments


def transcribe_file(
    engine: InferenceEngine,
    cfg: ScribeConfig,
    input_path: Path,
    output_path: Optional[Path] = None,
    params: Optional[EngineParams] = None,
) -> FileTranscriptionResult:
    """
    Transcribe one audio file into its text output.

    Raises `EmptyInput`, `FormatMismatch`, `TruncatedStream`,
    `AudioConversionError`, `EngineInvocationFailed` or `OSError`;
    `transcribe_files` turns those into per-file results.
    """
    output_path = output_path_for(input_path) if output_path is None else output_path
    params = engine_params_from_config(cfg) if params is None else params

    ensure_not_empty(input_path)

    tmp_dir = cfg.tmp_dir_path()
    wav_path = normalize_to_wav16k_mono(input_path, tmp_dir=tmp_dir, session_prefix=input_path.stem)
    try:
        with AudioFrameSource.open(wav_path) as source:
            if source.total_frames() == 0:
                raise EmptyInput(f"No audio frames in {input_path}")
            duration_sec = source.duration_sec()
            logger.info("Processing %.2fs of audio in %s", duration_sec, input_path)

            buffer = allocate_buffer(source, cfg.WAVSCRIBE_CHUNK_SECONDS)
            chunks_seen = 0

            def _counted(chunks: Iterable[Chunk]) -> Iterable[Chunk]:
                nonlocal chunks_seen
                for chunk in chunks:
                    chunks_seen += 1
                    yield chunk

            with open(output_path, "w", encoding="utf-8") as writer:
                writer.write(f"Transcript of {input_path}\n")
                writer.write("\n")
                segments = transcribe_chunks(
                    engine,
                    params,
                    _counted(produce_chunks(buffer, source)),
                    writer,
                    emit_timestamps=cfg.WAVSCRIBE_EMIT_TIMESTAMPS,
                )

            engine.print_timings()
    finally:
        if wav_path.resolve() != input_path.resolve():
            _safe_unlink(wav_path)

    return FileTranscriptionResult(
        input_path=str(input_path),
        output_path=str(output_path),
        status="ok",
        chunks=chunks_seen,
        duration_sec=duration_sec,
        segments=segments,
    )


def transcribe_files(
    engine: InferenceEngine,
    cfg: ScribeConfig,
    paths: Iterable[Path],
) -> BatchReport:
    """Sequential batch; one file's failure never stops the next file."""
    report = BatchReport()
    params = engine_params_from_config(cfg)

    for input_path in paths:
        input_path = Path(input_path)
        output_path = output_path_for(input_path)
        logger.info("Processing %s", input_path)

        if cfg.WAVSCRIBE_SKIP_EXISTING and output_path.exists():
            logger.warning("Skipping existing transcription %s", output_path)
            report.files.append(
                FileTranscriptionResult(
                    input_path=str(input_path),
                    output_path=str(output_path),
                    status="skipped_existing",
                )
            )
            continue

        try:
            result = transcribe_file(engine, cfg, input_path, output_path, params=params)
        except EmptyInput as e:
            logger.warning("Skipping empty file %s", input_path)
            result = FileTranscriptionResult(
                input_path=str(input_path),
                status="skipped_empty",
                error_code=e.code,
                error=e.message,
            )
        except AudioInputError as e:
            logger.error("Rejected %s: %s", input_path, e.message)
            result = FileTranscriptionResult(
                input_path=str(input_path),
                # Truncation surfaces mid-read; the partial transcript stays on disk.
                output_path=str(output_path) if isinstance(e, TruncatedStream) else None,
                status="failed",
                error_code=e.code,
                error=e.message,
            )
        except EngineInvocationFailed as e:
            logger.error("Engine failed on %s: %s", input_path, e.message)
            result = FileTranscriptionResult(
                input_path=str(input_path),
                output_path=str(output_path),
                status="failed",
                error_code=e.code,
                error=e.message,
            )
        except OSError as e:
            logger.error("I/O error on %s: %s", input_path, e)
            result = FileTranscriptionResult(
                input_path=str(input_path),
                status="failed",
                error_code="IO_ERROR",
                error=str(e),
            )
        else:
            logger.info("Processed %s (%d chunk(s))", input_path, result.chunks)

        report.files.append(result)

    return report
