from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path

import dotenv


logger = logging.getLogger(__name__)

DEFAULT_TOOL_TIMEOUT_SECONDS = 7200
MIN_TOOL_TIMEOUT_SECONDS = 60


def _int_env(name: str, default: int, minimum: int | None = None) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using %s", name, raw, default)
        return default
    if minimum is not None:
        value = max(minimum, value)
    return value


def _optional_float_env(name: str) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        value = float(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, ignoring", name, raw)
        return None
    return value if value > 0 else None


@dataclass(frozen=True)
class RenderSettings:
    ffmpeg_bin: str = "ffmpeg"
    ffprobe_bin: str = "ffprobe"
    temp_dir: Path = Path(tempfile.gettempdir()) / "reel-render"
    output_dir: Path = Path("output")
    tool_timeout_seconds: int = DEFAULT_TOOL_TIMEOUT_SECONDS
    job_timeout_seconds: float | None = None
    segment_workers: int = 1
    preset_name: str = "standard"
    verify_output: bool = True
    output_bucket: str | None = None
    url_ttl_hours: int = 24
    gcp_credentials: str | None = None

    @classmethod
    def from_env(cls, load_env_file: bool = True) -> RenderSettings:
        if load_env_file:
            dotenv.load_dotenv()

        temp_dir_raw = os.getenv("RENDER_TEMP_DIR", "").strip()
        output_dir_raw = os.getenv("RENDER_OUTPUT_DIR", "").strip()

        return cls(
            ffmpeg_bin=os.getenv("FFMPEG_BIN", "ffmpeg"),
            ffprobe_bin=os.getenv("FFPROBE_BIN", "ffprobe"),
            temp_dir=Path(temp_dir_raw) if temp_dir_raw else cls.temp_dir,
            output_dir=Path(output_dir_raw) if output_dir_raw else cls.output_dir,
            tool_timeout_seconds=_int_env(
                "FFMPEG_TIMEOUT_SECONDS",
                DEFAULT_TOOL_TIMEOUT_SECONDS,
                minimum=MIN_TOOL_TIMEOUT_SECONDS,
            ),
            job_timeout_seconds=_optional_float_env("RENDER_JOB_TIMEOUT_SECONDS"),
            segment_workers=_int_env("RENDER_SEGMENT_WORKERS", 1, minimum=1),
            preset_name=os.getenv("RENDER_PRESET", "standard").strip() or "standard",
            verify_output=os.getenv("RENDER_VERIFY_OUTPUT", "true").strip().lower()
            not in {"0", "false", "no"},
            output_bucket=os.getenv("RENDER_OUTPUT_BUCKET", "").strip() or None,
            url_ttl_hours=_int_env("RENDER_URL_TTL_HOURS", 24, minimum=1),
            gcp_credentials=os.getenv("GCP_CREDENTIALS") or None,
        )
