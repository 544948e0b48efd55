from __future__ import annotations

import concurrent.futures
import logging
from pathlib import Path
from typing import Callable

from reel_render.errors import CleanupFailure, SegmentEncodeFailure, ToolInvocationError
from reel_render.models import Segment
from reel_render.motion import frame_count_for, split_duration, zoompan_filter
from reel_render.presets import ReelPreset
from reel_render.tool_runner import ToolRunner


logger = logging.getLogger(__name__)

SegmentCallback = Callable[[Segment], None]


def segment_filename(index: int) -> str:
    return f"segment_{index:04d}.mp4"


def encoding_args(preset: ReelPreset) -> list[str]:
    """Encoder options shared by every segment so they concat with stream copy."""
    video = preset.video
    return [
        "-c:v",
        video.codec.value,
        "-pix_fmt",
        video.pixel_format,
        "-preset",
        video.preset,
        "-crf",
        str(video.crf),
        "-r",
        str(video.framerate),
        "-an",
    ]


class SegmentSynthesizer:
    def __init__(self, runner: ToolRunner, preset: ReelPreset):
        self.runner = runner
        self.preset = preset

    @property
    def framerate(self) -> int:
        return self.preset.video.framerate

    def plan(self, allotted_duration: float) -> tuple[int, float]:
        """Return the frame count and encode duration for one image.

        A window shorter than one frame (zero-length audio) is clamped to a
        single frame so the encoder always receives a positive duration.
        """
        frames = frame_count_for(allotted_duration, self.framerate)
        if frames < 1:
            logger.warning(
                "Allotted duration %.4fs is below one frame at %s fps; using 1 frame",
                allotted_duration,
                self.framerate,
            )
            return 1, 1.0 / self.framerate
        return frames, allotted_duration

    def segment_args(
        self,
        image: Path,
        encode_duration: float,
        frame_count: int,
        output_path: Path,
    ) -> list[str]:
        return [
            "-loop",
            "1",
            "-i",
            str(image),
            "-t",
            f"{encode_duration:.6f}",
            "-vf",
            zoompan_filter(self.preset.video, self.preset.motion, frame_count),
            *encoding_args(self.preset),
            "-frames:v",
            str(frame_count),
            "-y",
            str(output_path),
        ]

    def synthesize(
        self,
        image: Path,
        allotted_duration: float,
        index: int,
        workspace: Path,
    ) -> Segment:
        frame_count, encode_duration = self.plan(allotted_duration)
        output_path = workspace / segment_filename(index)

        try:
            self.runner.ffmpeg(
                self.segment_args(Path(image), encode_duration, frame_count, output_path)
            )
        except ToolInvocationError as exc:
            raise SegmentEncodeFailure(
                index,
                f"Failed to encode segment {index} from {Path(image).name}: {exc}",
                diagnostic=exc.output or None,
            ) from exc

        if not output_path.exists() or output_path.stat().st_size == 0:
            raise SegmentEncodeFailure(
                index, f"Encoder produced no output for segment {index}"
            )

        logger.info(
            "Segment %s ready: %s frames (%.3fs) from %s",
            index,
            frame_count,
            allotted_duration,
            Path(image).name,
        )
        return Segment(
            index=index,
            source_image=Path(image),
            allotted_duration=allotted_duration,
            frame_count=frame_count,
            file_path=output_path,
        )

    def synthesize_all(
        self,
        images: list[Path],
        total_duration: float,
        workspace: Path,
        workers: int = 1,
        on_segment: SegmentCallback | None = None,
    ) -> list[Segment]:
        """Encode one segment per image, ordered by index.

        On any failure every segment file written so far is removed and the
        failure with the lowest index is raised.
        """
        allotted = split_duration(total_duration, len(images))
        logger.info(
            "Synthesizing %s segments of %.3fs each (%s worker(s))",
            len(images),
            allotted,
            workers,
        )
        if workers <= 1 or len(images) == 1:
            return self._synthesize_sequential(images, allotted, workspace, on_segment)
        return self._synthesize_parallel(images, allotted, workspace, workers, on_segment)

    def _synthesize_sequential(
        self,
        images: list[Path],
        allotted: float,
        workspace: Path,
        on_segment: SegmentCallback | None,
    ) -> list[Segment]:
        segments: list[Segment] = []
        for index, image in enumerate(images):
            try:
                segment = self.synthesize(image, allotted, index, workspace)
            except SegmentEncodeFailure:
                self.discard(workspace, range(index + 1))
                raise
            segments.append(segment)
            if on_segment:
                on_segment(segment)
        return segments

    def _synthesize_parallel(
        self,
        images: list[Path],
        allotted: float,
        workspace: Path,
        workers: int,
        on_segment: SegmentCallback | None,
    ) -> list[Segment]:
        results: dict[int, Segment] = {}
        failures: dict[int, SegmentEncodeFailure] = {}

        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as pool:
            future_map = {
                pool.submit(self.synthesize, image, allotted, index, workspace): index
                for index, image in enumerate(images)
            }
            for future in concurrent.futures.as_completed(future_map):
                index = future_map[future]
                if future.cancelled():
                    continue
                try:
                    segment = future.result()
                except SegmentEncodeFailure as exc:
                    failures[index] = exc
                    for pending in future_map:
                        pending.cancel()
                    continue
                results[index] = segment
                if on_segment and not failures:
                    on_segment(segment)

        if failures:
            self.discard(workspace, range(len(images)))
            raise failures[min(failures)]

        return [results[index] for index in range(len(images))]

    def discard(self, workspace: Path, indices) -> None:
        for index in indices:
            path = workspace / segment_filename(index)
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                failure = CleanupFailure(f"Could not remove {path}: {exc}", index=index)
                logger.warning("%s", failure)
