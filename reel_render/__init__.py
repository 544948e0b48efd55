from reel_render.config import RenderSettings
from reel_render.errors import (
    CleanupFailure,
    EmptyInputError,
    ManifestWriteFailure,
    MergeFailure,
    ParseFailure,
    ProbeFailure,
    RenderError,
    SegmentEncodeFailure,
    WorkspaceError,
)
from reel_render.models import MediaJob, OutputVideo, PipelineStage, Segment
from reel_render.pipeline import ReelPipeline, render_reel
from reel_render.presets import ReelPreset

__all__ = [
    "CleanupFailure",
    "EmptyInputError",
    "ManifestWriteFailure",
    "MediaJob",
    "MergeFailure",
    "OutputVideo",
    "ParseFailure",
    "PipelineStage",
    "ProbeFailure",
    "ReelPipeline",
    "ReelPreset",
    "RenderError",
    "RenderSettings",
    "Segment",
    "SegmentEncodeFailure",
    "WorkspaceError",
    "render_reel",
]
