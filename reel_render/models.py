from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from uuid import uuid4


class PipelineStage(str, Enum):
    INIT = "init"
    PROBING = "probing"
    SYNTHESIZING = "synthesizing"
    MANIFEST_BUILDING = "manifest_building"
    ASSEMBLING = "assembling"
    DONE = "done"
    FAILED = "failed"


@dataclass
class MediaJob:
    audio_path: Path
    images: list[Path]
    workspace_dir: Path | None = None
    job_id: str = field(default_factory=lambda: uuid4().hex[:12])


@dataclass(frozen=True)
class Segment:
    index: int
    source_image: Path
    allotted_duration: float
    frame_count: int
    file_path: Path


@dataclass(frozen=True)
class OutputVideo:
    file_path: Path
    filename: str

    def to_dict(self) -> dict[str, str]:
        return {"output_path": str(self.file_path), "filename": self.filename}
