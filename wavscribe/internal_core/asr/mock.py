from __future__ import annotations

from typing import List, Optional, Tuple

import numpy as np

from .base import EngineParams, InferenceEngine


class MockEngine(InferenceEngine):
    def __init__(self, segments_per_chunk: int = 1, fail_at_chunk: Optional[int] = None) -> None:
        self._segments_per_chunk = segments_per_chunk
        self._fail_at_chunk = fail_at_chunk
        self._counter = 0
        self._last_frames = 0
        self.calls: List[Tuple[bool, int]] = []
        self.released = False

    def run_full(self, params: EngineParams, samples: np.ndarray) -> int:
        chunk_index = len(self.calls)
        self.calls.append((params.no_context, int(samples.shape[0])))
        if self._fail_at_chunk is not None and chunk_index == self._fail_at_chunk:
            return -1
        self._counter += 1
        self._last_frames = int(samples.shape[0])
        return 0

    def segment_count(self) -> int:
        return self._segments_per_chunk

    def segment_text(self, index: int) -> str:
        return f" (mock) chunk {self._counter} segment {index}."

    def segment_span(self, index: int) -> Tuple[float, float]:
        span = self._last_frames / 16000.0 / max(1, self._segments_per_chunk)
        return index * span, (index + 1) * span

    def name(self) -> str:
        return "mock"

    def system_info(self) -> str:
        return "mock engine"

    def release(self) -> None:
        self.released = True
