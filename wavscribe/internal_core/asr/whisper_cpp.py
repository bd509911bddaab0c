from __future__ import annotations

from pathlib import Path
from typing import Any, Optional, Tuple

import numpy as np

from .base import EngineInitError, EngineParams, InferenceEngine

# whisper.cpp reports segment bounds in 10 ms ticks.
_TICK_SEC = 0.01


def whisper_cpp_available(model_path: str) -> Tuple[bool, str]:
    if not model_path:
        return False, "missing WAVSCRIBE_MODEL_PATH"
    if not Path(model_path).exists():
        return False, f"model not found: {model_path}"
    try:
        import _pywhispercpp  # noqa: F401
    except ImportError:
        return False, "pywhispercpp is not installed (pip install 'wavscribe[whisper]')"
    return True, ""


class WhisperCppEngine(InferenceEngine):
    def __init__(self, model_path: str):
        self._model_path = model_path
        if not model_path or not Path(model_path).exists():
            raise EngineInitError(
                "whisper.cpp model is missing. Download a ggml model, e.g.: "
                "`bash ./models/download-ggml-model.sh base.en`, "
                "then set WAVSCRIBE_MODEL_PATH=models/ggml-base.en.bin",
                self.name(),
            )
        try:
            import _pywhispercpp as pw
        except ImportError as e:
            raise EngineInitError(
                "whisper.cpp bindings are not installed. Install with: pip install 'wavscribe[whisper]'",
                self.name(),
            ) from e

        self._pw = pw
        self._ctx: Optional[Any] = pw.whisper_init_from_file(model_path)
        if self._ctx is None:
            raise EngineInitError(f"failed to load whisper.cpp model: {model_path}", self.name())

    def name(self) -> str:
        return "whisper_cpp"

    def _context(self) -> Any:
        if self._ctx is None:
            raise RuntimeError("whisper.cpp context has already been released")
        return self._ctx

    def _native_params(self, params: EngineParams) -> Any:
        pw = self._pw
        strategy = (
            pw.whisper_sampling_strategy.WHISPER_SAMPLING_BEAM_SEARCH
            if params.sampling == "beam_search"
            else pw.whisper_sampling_strategy.WHISPER_SAMPLING_GREEDY
        )
        native = pw.whisper_full_default_params(strategy)
        native.n_threads = params.n_threads
        native.print_realtime = params.print_realtime
        native.print_progress = params.print_progress
        native.print_timestamps = params.print_timestamps
        native.translate = params.translate
        native.language = params.language
        native.offset_ms = params.offset_ms
        if params.duration_ms is not None:
            native.duration_ms = params.duration_ms
        native.no_context = params.no_context
        return native

    def run_full(self, params: EngineParams, samples: np.ndarray) -> int:
        audio = np.ascontiguousarray(samples, dtype=np.float32)
        return int(self._pw.whisper_full(self._context(), self._native_params(params), audio, audio.size))

    def segment_count(self) -> int:
        return int(self._pw.whisper_full_n_segments(self._context()))

    def segment_text(self, index: int) -> str:
        return self._pw.whisper_full_get_segment_text(self._context(), index)

    def segment_span(self, index: int) -> Tuple[float, float]:
        ctx = self._context()
        t0 = self._pw.whisper_full_get_segment_t0(ctx, index)
        t1 = self._pw.whisper_full_get_segment_t1(ctx, index)
        return t0 * _TICK_SEC, t1 * _TICK_SEC

    def print_timings(self) -> None:
        if self._ctx is not None:
            self._pw.whisper_print_timings(self._ctx)

    def system_info(self) -> str:
        return str(self._pw.whisper_print_system_info())

    def release(self) -> None:
        if self._ctx is None:
            return
        ctx, self._ctx = self._ctx, None
        self._pw.whisper_free(ctx)
