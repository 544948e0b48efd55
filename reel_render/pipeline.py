from __future__ import annotations

import logging
import os
import shutil
import tempfile
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Sequence
from uuid import uuid4

from reel_render.assembler import Assembler
from reel_render.config import RenderSettings
from reel_render.errors import (
    CleanupFailure,
    EmptyInputError,
    MergeFailure,
    RenderError,
    WorkspaceError,
)
from reel_render.manifest import MANIFEST_FILENAME, build_manifest
from reel_render.models import MediaJob, OutputVideo, PipelineStage, Segment
from reel_render.presets import ReelPreset
from reel_render.prober import probe_duration
from reel_render.synthesizer import SegmentSynthesizer
from reel_render.tool_runner import JobClock, ToolRunner


logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, str | None], None]

PROGRESS_PROBED = 5
PROGRESS_SEGMENTS_START = 10
PROGRESS_SEGMENTS_END = 80
PROGRESS_MANIFEST = 85
PROGRESS_ASSEMBLED = 95
PROGRESS_DONE = 100


def output_filename() -> str:
    return f"video_{int(time.time())}_{uuid4().hex[:8]}.mp4"


def _check_readable(path: Path, label: str) -> None:
    if not path.is_file():
        raise EmptyInputError(f"{label} not found: {path}")
    if not os.access(path, os.R_OK):
        raise EmptyInputError(f"{label} is not readable: {path}")


class PipelineRun:
    """One job moving through probe, synthesis, manifest and assembly."""

    def __init__(
        self,
        pipeline: ReelPipeline,
        job: MediaJob,
        output_dir: Path,
        progress_callback: ProgressCallback | None = None,
    ):
        self.pipeline = pipeline
        self.job = job
        self.output_dir = output_dir
        self.progress_callback = progress_callback
        self.stage = PipelineStage.INIT
        self.stages: list[PipelineStage] = [PipelineStage.INIT]
        self.error: RenderError | None = None

    def _advance(self, stage: PipelineStage) -> None:
        logger.info("Job %s: %s -> %s", self.job.job_id, self.stage.value, stage.value)
        self.stage = stage
        self.stages.append(stage)

    def _progress(self, percent: int, message: str | None = None) -> None:
        if message:
            logger.info("Job %s: %s", self.job.job_id, message)
        if self.progress_callback:
            self.progress_callback(percent, message)

    def execute(self) -> OutputVideo:
        pipeline = self.pipeline
        runner = pipeline.runner.with_clock(JobClock(pipeline.settings.job_timeout_seconds))
        filename = output_filename()
        output_path = self.output_dir / filename

        try:
            with pipeline.workspace(self.job) as workspace:
                self._advance(PipelineStage.PROBING)
                duration = probe_duration(self.job.audio_path, runner)
                self._progress(PROGRESS_PROBED, f"Probed audio duration {duration:.3f}s")

                self._advance(PipelineStage.SYNTHESIZING)
                segments = self._synthesize(runner, duration, workspace)

                self._advance(PipelineStage.MANIFEST_BUILDING)
                manifest_path = build_manifest(
                    segments,
                    workspace / MANIFEST_FILENAME,
                    pipeline.preset.video.framerate,
                )
                self._progress(PROGRESS_MANIFEST, "Built concat manifest")

                self._advance(PipelineStage.ASSEMBLING)
                try:
                    self.output_dir.mkdir(parents=True, exist_ok=True)
                except OSError as exc:
                    raise MergeFailure(
                        f"Cannot create output directory {self.output_dir}: {exc}"
                    ) from exc
                assembler = Assembler(runner, pipeline.preset, pipeline.settings.verify_output)
                try:
                    assembler.assemble(manifest_path, self.job.audio_path, output_path)
                finally:
                    _remove_file(manifest_path)
                self._progress(PROGRESS_ASSEMBLED, "Merged segments with audio")
        except RenderError as exc:
            self.error = exc
            self._advance(PipelineStage.FAILED)
            _remove_file(output_path)
            logger.error("Job %s failed during %s: %s", self.job.job_id, exc.stage, exc.message)
            raise
        except BaseException:
            self._advance(PipelineStage.FAILED)
            _remove_file(output_path)
            raise

        self._advance(PipelineStage.DONE)
        self._progress(PROGRESS_DONE, f"Video ready: {filename}")
        return OutputVideo(file_path=output_path, filename=filename)

    def _synthesize(self, runner: ToolRunner, duration: float, workspace: Path) -> list[Segment]:
        pipeline = self.pipeline
        synthesizer = SegmentSynthesizer(runner, pipeline.preset)
        total = len(self.job.images)
        done = 0

        def on_segment(segment: Segment) -> None:
            nonlocal done
            done += 1
            span = PROGRESS_SEGMENTS_END - PROGRESS_SEGMENTS_START
            self._progress(
                PROGRESS_SEGMENTS_START + int(span * done / total),
                f"Encoded segment {done}/{total}",
            )

        return synthesizer.synthesize_all(
            self.job.images,
            duration,
            workspace,
            workers=pipeline.settings.segment_workers,
            on_segment=on_segment,
        )


class ReelPipeline:
    def __init__(
        self,
        settings: RenderSettings | None = None,
        preset: ReelPreset | None = None,
        runner: ToolRunner | None = None,
    ):
        self.settings = settings or RenderSettings()
        self.preset = preset or ReelPreset.by_name(self.settings.preset_name)
        self.runner = runner or ToolRunner(self.settings)

    def create_job(self, audio_path: Path | str, image_paths: Sequence[Path | str]) -> MediaJob:
        if not image_paths:
            raise EmptyInputError("At least one image is required")
        if not audio_path:
            raise EmptyInputError("Audio file is required")

        audio = Path(audio_path)
        images = [Path(p) for p in image_paths]
        _check_readable(audio, "Audio file")
        for index, image in enumerate(images):
            _check_readable(image, f"Image {index}")
        return MediaJob(audio_path=audio, images=images)

    def start(
        self,
        audio_path: Path | str,
        image_paths: Sequence[Path | str],
        output_dir: Path | str | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> PipelineRun:
        job = self.create_job(audio_path, image_paths)
        target_dir = Path(output_dir) if output_dir else self.settings.output_dir
        return PipelineRun(self, job, target_dir, progress_callback)

    def render(
        self,
        audio_path: Path | str,
        image_paths: Sequence[Path | str],
        output_dir: Path | str | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> OutputVideo:
        run = self.start(audio_path, image_paths, output_dir, progress_callback)
        logger.info(
            "Starting reel job %s: %s image(s), preset %s",
            run.job.job_id,
            len(run.job.images),
            self.preset.name,
        )
        return run.execute()

    @contextmanager
    def workspace(self, job: MediaJob) -> Iterator[Path]:
        try:
            self.settings.temp_dir.mkdir(parents=True, exist_ok=True)
            path = Path(tempfile.mkdtemp(prefix=f"reel-{job.job_id}-", dir=self.settings.temp_dir))
        except OSError as exc:
            raise WorkspaceError(
                f"Cannot allocate workspace in {self.settings.temp_dir}: {exc}"
            ) from exc
        job.workspace_dir = path
        logger.debug("Job %s workspace: %s", job.job_id, path)
        try:
            yield path
        finally:
            remove_workspace(path)


def remove_workspace(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        failure = CleanupFailure(f"Failed to remove workspace {path}: {exc}")
        logger.warning("%s", failure)


def _remove_file(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        failure = CleanupFailure(f"Failed to remove {path}: {exc}")
        logger.warning("%s", failure)


def render_reel(
    audio_path: Path | str,
    image_paths: Sequence[Path | str],
    output_dir: Path | str | None = None,
    settings: RenderSettings | None = None,
    preset: ReelPreset | None = None,
    progress_callback: ProgressCallback | None = None,
) -> OutputVideo:
    pipeline = ReelPipeline(settings=settings, preset=preset)
    return pipeline.render(audio_path, image_paths, output_dir, progress_callback)
