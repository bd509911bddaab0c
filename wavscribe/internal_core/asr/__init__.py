from __future__ import annotations

from .base import (
    ASRError,
    EngineInitError,
    EngineInvocationFailed,
    EngineParams,
    InferenceEngine,
)
from .controller import transcribe_chunks, transcribe_file, transcribe_files
from .mock import MockEngine
from .whisper_cpp import WhisperCppEngine, whisper_cpp_available

__all__ = [
    "ASRError",
    "EngineInitError",
    "EngineInvocationFailed",
    "EngineParams",
    "InferenceEngine",
    "MockEngine",
    "WhisperCppEngine",
    "whisper_cpp_available",
    "transcribe_chunks",
    "transcribe_file",
    "transcribe_files",
]
