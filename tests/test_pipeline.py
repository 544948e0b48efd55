from __future__ import annotations

import dataclasses
import threading
from pathlib import Path

import pytest

from reel_render import pipeline as pipeline_module
from reel_render.errors import (
    EmptyInputError,
    ManifestWriteFailure,
    MergeFailure,
    ParseFailure,
    ProbeFailure,
    SegmentEncodeFailure,
    WorkspaceError,
)
from reel_render.models import PipelineStage
from reel_render.pipeline import ReelPipeline, render_reel
from reel_render.presets import ReelPreset


def _leftovers(settings):
    if not settings.temp_dir.exists():
        return []
    return list(settings.temp_dir.rglob("*"))


def test_render_scenario_nine_seconds_three_images(fake_tools, settings, inputs):
    audio, images = inputs
    progress = []

    output = ReelPipeline(settings).render(
        audio, images, progress_callback=lambda pct, msg: progress.append(pct)
    )

    assert output.file_path.parent == settings.output_dir
    assert output.file_path.exists()
    assert output.filename == output.file_path.name
    assert output.filename.startswith("video_") and output.filename.endswith(".mp4")

    segment_calls = fake_tools.segment_calls()
    assert len(segment_calls) == 3
    for cmd in segment_calls:
        assert cmd[cmd.index("-frames:v") + 1] == "90"
        assert cmd[cmd.index("-t") + 1] == "3.000000"

    assert progress == sorted(progress)
    assert progress[-1] == 100
    assert _leftovers(settings) == []


def test_stage_history_on_success(fake_tools, settings, inputs):
    audio, images = inputs

    run = ReelPipeline(settings).start(audio, images)
    run.execute()

    assert run.stages == [
        PipelineStage.INIT,
        PipelineStage.PROBING,
        PipelineStage.SYNTHESIZING,
        PipelineStage.MANIFEST_BUILDING,
        PipelineStage.ASSEMBLING,
        PipelineStage.DONE,
    ]
    assert run.error is None


def test_manifest_order_matches_input_order(fake_tools, settings, inputs):
    audio, images = inputs
    reordered = [images[2], images[0], images[1]]

    ReelPipeline(settings).render(audio, reordered)

    sources = {}
    for cmd in fake_tools.segment_calls():
        sources[Path(cmd[-1]).name] = cmd[cmd.index("-i") + 1]
    manifest = fake_tools.manifests[0]
    listed = [
        Path(line.split(" ", 1)[1].strip("'")).name
        for line in manifest.splitlines()
        if line.startswith("file ")
    ]

    assert [sources[path] for path in listed] == [str(p) for p in reordered]


def test_empty_images_rejected_before_any_tool_runs(fake_tools, settings, inputs):
    audio, _ = inputs

    with pytest.raises(EmptyInputError) as excinfo:
        ReelPipeline(settings).render(audio, [])

    assert excinfo.value.is_input_error
    assert fake_tools.calls == []
    assert _leftovers(settings) == []


def test_missing_audio_rejected(fake_tools, settings, inputs, tmp_path):
    _, images = inputs

    with pytest.raises(EmptyInputError, match="Audio file not found"):
        ReelPipeline(settings).render(tmp_path / "missing.mp3", images)

    assert fake_tools.calls == []


def test_missing_image_rejected(fake_tools, settings, inputs, tmp_path):
    audio, images = inputs

    with pytest.raises(EmptyInputError, match="Image 1"):
        ReelPipeline(settings).render(audio, [images[0], tmp_path / "gone.png"])

    assert fake_tools.calls == []


def test_probe_failure_removes_workspace(fake_tools, settings, inputs):
    audio, images = inputs
    fake_tools.probe_returncode = 1

    run = ReelPipeline(settings).start(audio, images)
    with pytest.raises(ProbeFailure):
        run.execute()

    assert fake_tools.segment_calls() == []
    assert _leftovers(settings) == []
    assert run.stages[-1] == PipelineStage.FAILED
    assert not settings.output_dir.exists()


def test_segment_failure_leaves_no_segments(fake_tools, settings, inputs):
    audio, images = inputs
    fake_tools.fail_segments = {2}

    with pytest.raises(SegmentEncodeFailure) as excinfo:
        ReelPipeline(settings).render(audio, images)

    assert excinfo.value.index == 2
    assert fake_tools.merge_calls() == []
    assert _leftovers(settings) == []


def test_merge_failure_removes_partial_output(fake_tools, settings, inputs):
    audio, images = inputs
    fake_tools.merge_returncode = 1

    run = ReelPipeline(settings).start(audio, images)
    with pytest.raises(MergeFailure) as excinfo:
        run.execute()

    assert "Conversion failed!" in excinfo.value.diagnostic
    assert list(settings.output_dir.iterdir()) == []
    assert _leftovers(settings) == []
    assert run.error is excinfo.value


def test_zero_length_audio_encodes_one_frame_then_fails_verification(fake_tools, settings, inputs):
    audio, images = inputs
    fake_tools.audio_duration = "0.000000"
    fake_tools.output_duration = "0.000000"

    with pytest.raises(MergeFailure, match="zero-duration"):
        ReelPipeline(settings).render(audio, images[:1])

    cmd = fake_tools.segment_calls()[0]
    assert cmd[cmd.index("-frames:v") + 1] == "1"
    assert list(settings.output_dir.iterdir()) == []
    assert _leftovers(settings) == []


def test_cleanup_failure_does_not_mask_primary_error(monkeypatch, fake_tools, settings, inputs):
    audio, images = inputs
    fake_tools.probe_returncode = 1

    def broken_rmtree(path):
        raise PermissionError(13, "Permission denied", str(path))

    monkeypatch.setattr(pipeline_module.shutil, "rmtree", broken_rmtree)

    with pytest.raises(ProbeFailure):
        ReelPipeline(settings).render(audio, images)


def test_exhausted_job_budget_fails_without_running_tools(fake_tools, settings, inputs):
    audio, images = inputs
    budgeted = dataclasses.replace(settings, job_timeout_seconds=0.0)

    with pytest.raises(ProbeFailure, match="budget"):
        ReelPipeline(budgeted).render(audio, images)

    assert fake_tools.calls == []
    assert _leftovers(budgeted) == []


def test_parallel_segments_through_pipeline(fake_tools, settings, inputs):
    audio, images = inputs
    parallel = dataclasses.replace(settings, segment_workers=3)

    output = ReelPipeline(parallel).render(audio, images)

    assert output.file_path.exists()
    assert len(fake_tools.segment_calls()) == 3


def test_concurrent_jobs_use_disjoint_workspaces(fake_tools, settings, inputs):
    audio, images = inputs
    workspaces = []
    original = ReelPipeline.workspace

    def recording_workspace(self, job):
        workspaces.append(job)
        return original(self, job)

    pipeline = ReelPipeline(settings)
    pipeline.workspace = recording_workspace.__get__(pipeline)
    outputs = []

    def run_job():
        outputs.append(pipeline.render(audio, images))

    threads = [threading.Thread(target=run_job) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(outputs) == 2
    assert outputs[0].file_path != outputs[1].file_path
    assert workspaces[0].workspace_dir != workspaces[1].workspace_dir
    assert workspaces[0].job_id != workspaces[1].job_id
    assert _leftovers(settings) == []


def test_render_reel_uses_given_preset(fake_tools, settings, inputs):
    audio, images = inputs

    render_reel(audio, images, settings=settings, preset=ReelPreset.draft())

    cmd = fake_tools.segment_calls()[0]
    assert cmd[cmd.index("-crf") + 1] == "30"
    assert cmd[cmd.index("-preset") + 1] == "veryfast"


def test_unparseable_duration_stops_before_synthesis(fake_tools, settings, inputs):
    audio, images = inputs
    fake_tools.audio_duration = "N/A"

    with pytest.raises(ParseFailure) as excinfo:
        ReelPipeline(settings).render(audio, images)

    assert excinfo.value.stage == "probing"
    assert fake_tools.segment_calls() == []
    assert fake_tools.merge_calls() == []
    assert _leftovers(settings) == []


def test_manifest_write_failure_skips_assembly(monkeypatch, fake_tools, settings, inputs):
    audio, images = inputs

    def failing_manifest(segments, path, framerate):
        raise ManifestWriteFailure(f"Failed to write concat manifest {path}: disk full")

    monkeypatch.setattr(pipeline_module, "build_manifest", failing_manifest)

    run = ReelPipeline(settings).start(audio, images)
    with pytest.raises(ManifestWriteFailure):
        run.execute()

    assert len(fake_tools.segment_calls()) == 3
    assert fake_tools.merge_calls() == []
    assert run.stages[-2:] == [PipelineStage.MANIFEST_BUILDING, PipelineStage.FAILED]
    assert _leftovers(settings) == []


def test_unusable_output_dir_is_merge_failure(fake_tools, settings, inputs, tmp_path):
    audio, images = inputs
    blocker = tmp_path / "outfile"
    blocker.write_text("not a directory", encoding="utf-8")
    blocked = dataclasses.replace(settings, output_dir=blocker)

    with pytest.raises(MergeFailure, match="output directory") as excinfo:
        ReelPipeline(blocked).render(audio, images)

    assert excinfo.value.stage == "assembling"
    assert fake_tools.merge_calls() == []
    assert blocker.read_text(encoding="utf-8") == "not a directory"
    assert _leftovers(blocked) == []


def test_unallocatable_workspace_is_environment_error(fake_tools, settings, inputs, tmp_path):
    audio, images = inputs
    blocker = tmp_path / "scratch"
    blocker.write_text("not a directory", encoding="utf-8")
    blocked = dataclasses.replace(settings, temp_dir=blocker)

    run = ReelPipeline(blocked).start(audio, images)
    with pytest.raises(WorkspaceError) as excinfo:
        run.execute()

    assert excinfo.value.stage == "init"
    assert not excinfo.value.is_input_error
    assert fake_tools.calls == []
    assert run.stages == [PipelineStage.INIT, PipelineStage.FAILED]
    assert run.error is excinfo.value
