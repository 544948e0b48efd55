from __future__ import annotations

import logging
from pathlib import Path

from reel_render.errors import ManifestWriteFailure
from reel_render.models import Segment


logger = logging.getLogger(__name__)

MANIFEST_FILENAME = "concat.ffconcat"


def quote_path(path: Path) -> str:
    """Quote a path for the concat demuxer; ``'`` becomes ``'\\''``."""
    text = Path(path).resolve().as_posix()
    return "'" + text.replace("'", "'\\''") + "'"


def manifest_lines(segments: list[Segment], framerate: int) -> list[str]:
    if not segments:
        raise ManifestWriteFailure("Cannot build a manifest without segments")

    ordered = sorted(segments, key=lambda s: s.index)
    indices = [segment.index for segment in ordered]
    if indices != list(range(len(ordered))):
        raise ManifestWriteFailure(
            f"Segment indices must be contiguous from 0, got {indices}"
        )

    lines = ["ffconcat version 1.0"]
    for segment in ordered:
        lines.append(f"file {quote_path(segment.file_path)}")
        lines.append(f"duration {segment.frame_count / framerate:.6f}")
    return lines


def build_manifest(segments: list[Segment], manifest_path: Path, framerate: int) -> Path:
    lines = manifest_lines(segments, framerate)
    try:
        manifest_path.parent.mkdir(parents=True, exist_ok=True)
        manifest_path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    except OSError as exc:
        raise ManifestWriteFailure(
            f"Failed to write concat manifest {manifest_path}: {exc}"
        ) from exc

    logger.info("Wrote concat manifest with %s segments: %s", len(segments), manifest_path)
    return manifest_path
