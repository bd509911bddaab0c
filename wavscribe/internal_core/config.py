from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

SAMPLING_STRATEGIES = {"greedy", "beam_search"}


def _project_root() -> Path:
    # wavscribe/internal_core/config.py -> wavscribe -> repo root
    return Path(__file__).resolve().parents[2]


def _resolve_default_path(candidates: list[Path]) -> str:
    for candidate in candidates:
        try:
            resolved = candidate.expanduser().resolve()
        except OSError:
            continue
        if resolved.exists():
            return str(resolved)
    # Keep deterministic fallback even when file is absent.
    if candidates:
        return str(candidates[0].expanduser().resolve())
    return ""


def _model_root_from_env() -> Optional[Path]:
    raw = os.getenv("WAVSCRIBE_MODEL_ROOT", "").strip()
    if not raw:
        return None
    return Path(raw).expanduser()


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _getenv_opt_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    if value is None or value == "":
        return None
    return _getenv_int(name, 0)


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


@dataclass(frozen=True)
class ScribeConfig:
    WAVSCRIBE_MODEL_PATH: str
    WAVSCRIBE_CHUNK_SECONDS: int
    WAVSCRIBE_SAMPLING: str
    WAVSCRIBE_N_THREADS: int
    WAVSCRIBE_PRINT_REALTIME: bool
    WAVSCRIBE_PRINT_PROGRESS: bool
    WAVSCRIBE_PRINT_TIMESTAMPS: bool
    WAVSCRIBE_TRANSLATE: bool
    WAVSCRIBE_LANGUAGE: str
    WAVSCRIBE_OFFSET_MS: int
    WAVSCRIBE_DURATION_MS: Optional[int]
    WAVSCRIBE_EMIT_TIMESTAMPS: bool
    WAVSCRIBE_SKIP_EXISTING: bool
    WAVSCRIBE_TMP_DIR: str
    WAVSCRIBE_LOG_LEVEL: str

    def tmp_dir_path(self, repo_root: Optional[Path] = None) -> Path:
        root = _project_root() if repo_root is None else repo_root
        return (root / self.WAVSCRIBE_TMP_DIR).resolve()


def validate_config(cfg: ScribeConfig) -> ScribeConfig:
    if cfg.WAVSCRIBE_CHUNK_SECONDS < 0:
        raise ValueError("WAVSCRIBE_CHUNK_SECONDS must be >= 0 (0 = whole file)")
    if cfg.WAVSCRIBE_SAMPLING not in SAMPLING_STRATEGIES:
        raise ValueError(
            f"WAVSCRIBE_SAMPLING must be one of {sorted(SAMPLING_STRATEGIES)}, got {cfg.WAVSCRIBE_SAMPLING!r}"
        )
    if cfg.WAVSCRIBE_N_THREADS <= 0:
        raise ValueError("WAVSCRIBE_N_THREADS must be > 0")
    if cfg.WAVSCRIBE_OFFSET_MS < 0:
        raise ValueError("WAVSCRIBE_OFFSET_MS must be >= 0")
    return cfg


def load_config() -> ScribeConfig:
    project_root = _project_root()
    model_root = _model_root_from_env()

    model_prefixes: list[Path] = []
    if model_root is not None:
        model_prefixes.append(model_root)
    model_prefixes.extend([project_root / "models", project_root, project_root.parent])

    default_model = _resolve_default_path(
        [base / "ggml-base.en.bin" for base in model_prefixes]
        + [base / "whisper.cpp" / "models" / "ggml-base.en.bin" for base in model_prefixes]
    )

    return validate_config(
        ScribeConfig(
            WAVSCRIBE_MODEL_PATH=_getenv_str("WAVSCRIBE_MODEL_PATH", default_model),
            WAVSCRIBE_CHUNK_SECONDS=_getenv_int("WAVSCRIBE_CHUNK_SECONDS", 30),
            WAVSCRIBE_SAMPLING=_getenv_str("WAVSCRIBE_SAMPLING", "greedy").strip().lower(),
            WAVSCRIBE_N_THREADS=_getenv_int("WAVSCRIBE_N_THREADS", 4),
            WAVSCRIBE_PRINT_REALTIME=_getenv_bool("WAVSCRIBE_PRINT_REALTIME", True),
            WAVSCRIBE_PRINT_PROGRESS=_getenv_bool("WAVSCRIBE_PRINT_PROGRESS", False),
            WAVSCRIBE_PRINT_TIMESTAMPS=_getenv_bool("WAVSCRIBE_PRINT_TIMESTAMPS", True),
            WAVSCRIBE_TRANSLATE=_getenv_bool("WAVSCRIBE_TRANSLATE", False),
            WAVSCRIBE_LANGUAGE=_getenv_str("WAVSCRIBE_LANGUAGE", "en"),
            WAVSCRIBE_OFFSET_MS=_getenv_int("WAVSCRIBE_OFFSET_MS", 0),
            WAVSCRIBE_DURATION_MS=_getenv_opt_int("WAVSCRIBE_DURATION_MS"),
            WAVSCRIBE_EMIT_TIMESTAMPS=_getenv_bool("WAVSCRIBE_EMIT_TIMESTAMPS", False),
            WAVSCRIBE_SKIP_EXISTING=_getenv_bool("WAVSCRIBE_SKIP_EXISTING", False),
            WAVSCRIBE_TMP_DIR=_getenv_str("WAVSCRIBE_TMP_DIR", "./tmp"),
            WAVSCRIBE_LOG_LEVEL=_getenv_str("WAVSCRIBE_LOG_LEVEL", "INFO"),
        )
    )
