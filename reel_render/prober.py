from __future__ import annotations

import logging
import math
from pathlib import Path

from reel_render.errors import ParseFailure, ProbeFailure, ToolInvocationError
from reel_render.tool_runner import ToolRunner


logger = logging.getLogger(__name__)


def duration_args(media_path: Path | str) -> list[str]:
    return [
        "-v",
        "error",
        "-show_entries",
        "format=duration",
        "-of",
        "default=noprint_wrappers=1:nokey=1",
        str(media_path),
    ]


def parse_duration(raw: str) -> float:
    value = raw.strip()
    if not value:
        raise ParseFailure("ffprobe returned no duration")
    try:
        duration = float(value)
    except ValueError as exc:
        raise ParseFailure(f"Invalid duration value: {value!r}") from exc
    if not math.isfinite(duration) or duration < 0:
        raise ParseFailure(f"Invalid duration value: {value!r}")
    return duration


def probe_duration(audio_path: Path | str, runner: ToolRunner) -> float:
    """Return the container duration of ``audio_path`` in seconds."""
    try:
        result = runner.ffprobe(duration_args(audio_path))
    except ToolInvocationError as exc:
        raise ProbeFailure(
            f"Failed to probe duration of {Path(audio_path).name}: {exc}",
            diagnostic=exc.output or None,
        ) from exc

    duration = parse_duration(result.stdout)
    logger.info("Audio duration: %.3fs", duration)
    return duration
