from __future__ import annotations

import logging
import shutil
import subprocess
import time
from dataclasses import dataclass

from reel_render.config import RenderSettings
from reel_render.errors import ToolInvocationError


logger = logging.getLogger(__name__)

OUTPUT_TAIL_LINES = 40
MAX_COMMAND_LOG_CHARS = 4000


@dataclass
class ToolResult:
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return "\n".join(part for part in (self.stdout, self.stderr) if part)


class JobClock:
    """Wall-clock budget for a whole job; None means unbounded."""

    def __init__(self, budget_seconds: float | None = None):
        self.budget_seconds = budget_seconds
        self._started = time.monotonic()

    def remaining(self) -> float | None:
        if self.budget_seconds is None:
            return None
        return self.budget_seconds - (time.monotonic() - self._started)

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0


def format_command(cmd: list[str]) -> str:
    text = " ".join(cmd)
    if len(text) > MAX_COMMAND_LOG_CHARS:
        return f"{text[:MAX_COMMAND_LOG_CHARS]}... [truncated]"
    return text


def output_tail(text: str, lines: int = OUTPUT_TAIL_LINES) -> str:
    kept = [line.rstrip() for line in text.splitlines() if line.strip()]
    return "\n".join(kept[-lines:])


class ToolRunner:
    """Runs ffmpeg/ffprobe and maps exit status to ToolInvocationError."""

    def __init__(self, settings: RenderSettings | None = None, clock: JobClock | None = None):
        self.settings = settings or RenderSettings()
        self.clock = clock

    def with_clock(self, clock: JobClock) -> ToolRunner:
        return ToolRunner(self.settings, clock)

    def ffmpeg(self, args: list[str], *, timeout: float | None = None) -> ToolResult:
        return self.run([self.settings.ffmpeg_bin, "-hide_banner", *args], timeout=timeout)

    def ffprobe(self, args: list[str], *, timeout: float | None = None) -> ToolResult:
        return self.run([self.settings.ffprobe_bin, *args], timeout=timeout)

    def _timeout(self, requested: float | None = None) -> float:
        timeout = float(self.settings.tool_timeout_seconds)
        if requested is not None:
            timeout = min(timeout, requested)
        if self.clock is not None:
            remaining = self.clock.remaining()
            if remaining is not None:
                if remaining <= 0:
                    raise ToolInvocationError(
                        "Job time budget exhausted before running command",
                        timed_out=True,
                    )
                timeout = min(timeout, remaining)
        return timeout

    def run(self, cmd: list[str], *, timeout: float | None = None) -> ToolResult:
        """Run ``cmd``; ``timeout`` can only shorten the configured limit."""
        timeout = self._timeout(timeout)
        logger.info("Running: %s", format_command(cmd))

        try:
            completed = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
            )
        except subprocess.TimeoutExpired as exc:
            captured = exc.stderr or exc.output or ""
            if isinstance(captured, bytes):
                captured = captured.decode("utf-8", errors="replace")
            raise ToolInvocationError(
                f"{cmd[0]} timed out after {timeout:.0f}s",
                output=output_tail(captured),
                timed_out=True,
            ) from exc
        except OSError as exc:
            raise ToolInvocationError(f"Failed to execute {cmd[0]}: {exc}") from exc

        result = ToolResult(
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
        if result.returncode != 0:
            tail = output_tail(result.output)
            logger.warning("%s failed (code %s):\n%s", cmd[0], result.returncode, tail)
            raise ToolInvocationError(
                f"{cmd[0]} failed (code {result.returncode})",
                returncode=result.returncode,
                output=tail,
            )
        if result.stderr:
            logger.debug("%s output (tail): %s", cmd[0], output_tail(result.stderr, 20))
        return result


def tool_status(settings: RenderSettings | None = None) -> dict[str, object]:
    settings = settings or RenderSettings()
    ffmpeg_path = shutil.which(settings.ffmpeg_bin)
    ffprobe_path = shutil.which(settings.ffprobe_bin)
    return {
        "status": "ok" if ffmpeg_path and ffprobe_path else "degraded",
        "ffmpeg": ffmpeg_path is not None,
        "ffprobe": ffprobe_path is not None,
        "ffmpeg_path": ffmpeg_path,
        "ffprobe_path": ffprobe_path,
        "storage": bool(settings.output_bucket),
    }
