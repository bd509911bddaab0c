from __future__ import annotations

from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

FileStatus = Literal["ok", "skipped_empty", "skipped_existing", "failed"]


class TranscriptSegment(BaseModel):
    model_config = ConfigDict(extra="forbid")

    chunk_index: int = Field(ge=0)
    start_sec: float = Field(ge=0.0)
    end_sec: float = Field(ge=0.0)
    text: str

    @model_validator(mode="after")
    def _validate_window(self) -> "TranscriptSegment":
        if self.end_sec < self.start_sec:
            raise ValueError("TranscriptSegment.end_sec must be >= TranscriptSegment.start_sec")
        return self


class FileTranscriptionResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    input_path: str
    output_path: Optional[str] = None
    status: FileStatus
    chunks: int = Field(default=0, ge=0)
    duration_sec: float = Field(default=0.0, ge=0.0)
    segments: List[TranscriptSegment] = Field(default_factory=list)
    error_code: Optional[str] = None
    error: Optional[str] = None

    @property
    def text(self) -> str:
        return "".join(seg.text for seg in self.segments)


class BatchReport(BaseModel):
    model_config = ConfigDict(extra="forbid")

    files: List[FileTranscriptionResult] = Field(default_factory=list)

    def _count(self, *statuses: str) -> int:
        return sum(1 for f in self.files if f.status in statuses)

    @property
    def ok(self) -> int:
        return self._count("ok")

    @property
    def failed(self) -> int:
        return self._count("failed")

    @property
    def skipped(self) -> int:
        return self._count("skipped_empty", "skipped_existing")
