from __future__ import annotations

import logging
from pathlib import Path

from reel_render.errors import MergeFailure, ParseFailure, ToolInvocationError
from reel_render.presets import ReelPreset
from reel_render.prober import duration_args, parse_duration
from reel_render.tool_runner import ToolRunner


logger = logging.getLogger(__name__)


def assemble_args(
    manifest_path: Path,
    audio_path: Path,
    output_path: Path,
    preset: ReelPreset,
) -> list[str]:
    return [
        "-f",
        "concat",
        "-safe",
        "0",
        "-i",
        str(manifest_path),
        "-i",
        str(audio_path),
        "-map",
        "0:v:0",
        "-map",
        "1:a:0",
        "-c:v",
        "copy",
        "-c:a",
        preset.audio.codec.value,
        "-b:a",
        preset.audio.bitrate,
        "-shortest",
        "-movflags",
        "+faststart",
        "-y",
        str(output_path),
    ]


class Assembler:
    def __init__(self, runner: ToolRunner, preset: ReelPreset, verify_output: bool = True):
        self.runner = runner
        self.preset = preset
        self.verify_output = verify_output

    def assemble(self, manifest_path: Path, audio_path: Path, output_path: Path) -> Path:
        """Stream-copy the segments, mux the audio and write ``output_path``."""
        try:
            self.runner.ffmpeg(
                assemble_args(manifest_path, audio_path, output_path, self.preset)
            )
        except ToolInvocationError as exc:
            raise MergeFailure(
                f"FFmpeg final merge failed: {exc}",
                diagnostic=exc.output or None,
            ) from exc

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise MergeFailure(f"Merge produced no output at {output_path}")

        if self.verify_output:
            duration = self.probe_output_duration(output_path)
            if duration is not None:
                logger.info("Output duration: %.3fs", duration)
                min_duration = 0.5 / self.preset.video.framerate
                if duration < min_duration:
                    raise MergeFailure(
                        f"FFmpeg produced zero-duration output "
                        f"({duration:.3f}s, under half a frame)"
                    )

        return output_path

    def probe_output_duration(self, output_path: Path) -> float | None:
        try:
            result = self.runner.ffprobe(duration_args(output_path))
            return parse_duration(result.stdout)
        except (ToolInvocationError, ParseFailure) as exc:
            logger.warning("Failed to probe output duration: %s", exc)
            return None
