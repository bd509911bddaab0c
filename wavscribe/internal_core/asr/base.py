from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Literal, Optional, Tuple

import numpy as np

SamplingStrategy = Literal["greedy", "beam_search"]


class ASRError(RuntimeError):
    def __init__(self, code: str, message: str, provider_name: str):
        super().__init__(message)
        self.code = code
        self.message = message
        self.provider_name = provider_name


class EngineInitError(ASRError):
    def __init__(self, message: str, provider_name: str):
        super().__init__("ENGINE_INIT_FAILED", message, provider_name)


class EngineInvocationFailed(ASRError):
    def __init__(self, chunk_index: int, status: int, provider_name: str):
        super().__init__(
            "ENGINE_RUN_FAILED",
            f"Failed to process audio (chunk_index={chunk_index} status={status})",
            provider_name,
        )
        self.chunk_index = chunk_index
        self.status = status


@dataclass(frozen=True)
class EngineParams:
    sampling: SamplingStrategy = "greedy"
    n_threads: int = 4
    print_realtime: bool = True
    print_progress: bool = False
    print_timestamps: bool = True
    translate: bool = False
    language: str = "en"
    offset_ms: int = 0
    duration_ms: Optional[int] = None
    no_context: bool = True


class InferenceEngine(ABC):
    """Owned handle to an inference engine; released exactly once."""

    @abstractmethod
    def run_full(self, params: EngineParams, samples: np.ndarray) -> int: ...

    @abstractmethod
    def segment_count(self) -> int: ...

    @abstractmethod
    def segment_text(self, index: int) -> str: ...

    @abstractmethod
    def segment_span(self, index: int) -> Tuple[float, float]: ...

    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def release(self) -> None: ...

    def print_timings(self) -> None:
        return None

    def system_info(self) -> str:
        return ""

    def __enter__(self) -> "InferenceEngine":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
