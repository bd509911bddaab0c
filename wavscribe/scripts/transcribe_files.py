from __future__ import annotations

import argparse
import dataclasses
import logging
import sys
from pathlib import Path
from typing import List, Optional

from wavscribe.internal_core.asr import (
    EngineInitError,
    InferenceEngine,
    MockEngine,
    WhisperCppEngine,
    transcribe_files,
)
from wavscribe.internal_core.audio_utils import AudioInputError
from wavscribe.internal_core.chunking import frames_for_seconds, verify_chunking
from wavscribe.internal_core.config import ScribeConfig, load_config, validate_config

logger = logging.getLogger("wavscribe")


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Transcribe 16kHz mono WAV (or MP3) files with whisper.cpp, chunk by chunk."
    )
    parser.add_argument("inputs", nargs="+", help="Audio files to transcribe (.wav, .mp3).")
    parser.add_argument("--model", default=None, help="Path to ggml model (default: WAVSCRIBE_MODEL_PATH).")
    parser.add_argument(
        "--chunk-seconds",
        type=int,
        default=None,
        help="Chunk length in seconds; 0 feeds the whole file at once (default: 30).",
    )
    parser.add_argument("--threads", type=int, default=None, help="Engine worker threads.")
    parser.add_argument("--sampling", choices=["greedy", "beam_search"], default=None)
    parser.add_argument("--language", default=None)
    parser.add_argument("--translate", action="store_true", help="Translate to English.")
    parser.add_argument(
        "--timestamps",
        action="store_true",
        help="Write one [start --> end] line per segment instead of plain text.",
    )
    parser.add_argument(
        "--skip-existing",
        action="store_true",
        help="Skip inputs whose .txt transcript already exists.",
    )
    parser.add_argument("--mock", action="store_true", help="Use the mock engine (no model needed).")
    parser.add_argument(
        "--verify-chunking",
        action="store_true",
        help="Only check that chunked reads match a whole-file read, then exit.",
    )
    return parser.parse_args(argv)


def _apply_overrides(cfg: ScribeConfig, args: argparse.Namespace) -> ScribeConfig:
    overrides = {}
    if args.model is not None:
        overrides["WAVSCRIBE_MODEL_PATH"] = args.model
    if args.chunk_seconds is not None:
        overrides["WAVSCRIBE_CHUNK_SECONDS"] = args.chunk_seconds
    if args.threads is not None:
        overrides["WAVSCRIBE_N_THREADS"] = args.threads
    if args.sampling is not None:
        overrides["WAVSCRIBE_SAMPLING"] = args.sampling
    if args.language is not None:
        overrides["WAVSCRIBE_LANGUAGE"] = args.language
    if args.translate:
        overrides["WAVSCRIBE_TRANSLATE"] = True
    if args.timestamps:
        overrides["WAVSCRIBE_EMIT_TIMESTAMPS"] = True
    if args.skip_existing:
        overrides["WAVSCRIBE_SKIP_EXISTING"] = True
    return validate_config(dataclasses.replace(cfg, **overrides))


def _verify(paths: List[Path], cfg: ScribeConfig) -> int:
    # 0 keeps whole-file mode: both reads use a stream-sized buffer.
    chunk_frames = frames_for_seconds(cfg.WAVSCRIBE_CHUNK_SECONDS) if cfg.WAVSCRIBE_CHUNK_SECONDS else 0
    tmp_dir = cfg.tmp_dir_path()
    mismatches = 0
    for path in paths:
        try:
            first_diff = verify_chunking(path, chunk_frames, tmp_dir)
        except AudioInputError as e:
            logger.error("Cannot verify %s: %s", path, e.message)
            mismatches += 1
            continue
        except OSError as e:
            logger.error("Cannot verify %s: %s", path, e)
            mismatches += 1
            continue
        if first_diff is None:
            print(f"{path}: chunked read matches whole-file read")
        else:
            print(f"{path}: frames differ starting at {first_diff}")
            mismatches += 1
    return 0 if mismatches == 0 else 1


def main(argv: Optional[List[str]] = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)

    try:
        cfg = _apply_overrides(load_config(), args)
    except ValueError as exc:
        print(f"Config error: {exc}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, cfg.WAVSCRIBE_LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    paths = [Path(p).expanduser() for p in args.inputs]
    if args.verify_chunking:
        return _verify(paths, cfg)

    try:
        engine: InferenceEngine = MockEngine() if args.mock else WhisperCppEngine(cfg.WAVSCRIBE_MODEL_PATH)
    except EngineInitError as exc:
        print(f"Engine error: {exc.message}", file=sys.stderr)
        return 2

    with engine:
        report = transcribe_files(engine, cfg, paths)
        info = engine.system_info()
        if info:
            print(info)

    for item in report.files:
        line = f"{item.status:<17} {item.input_path}"
        if item.error:
            line += f"  ({item.error_code}: {item.error})"
        print(line)
    print(f"ok={report.ok} skipped={report.skipped} failed={report.failed}")
    return 0 if report.failed == 0 else 1


if __name__ == "__main__":
    raise SystemExit(main())
