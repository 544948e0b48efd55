from __future__ import annotations

import re
import sys
import threading
from pathlib import Path

import pytest


PROJECT_DIR = Path(__file__).resolve().parents[1]
if str(PROJECT_DIR) not in sys.path:
    sys.path.insert(0, str(PROJECT_DIR))

from reel_render import tool_runner  # noqa: E402
from reel_render.config import RenderSettings  # noqa: E402


SEGMENT_RE = re.compile(r"segment_(\d+)\.mp4$")


class Completed:
    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = ""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


class FakeTools:
    """Stands in for ffmpeg/ffprobe: records commands and writes placeholder files."""

    def __init__(self):
        self.audio_duration = "9.000000"
        self.output_duration = "9.000000"
        self.probe_returncode = 0
        self.merge_returncode = 0
        self.merge_writes_nothing = False
        self.fail_segments: set[int] = set()
        self.calls: list[list[str]] = []
        self.timeouts: list[float | None] = []
        self.manifests: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, cmd, capture_output=False, text=False, timeout=None, check=False):
        with self._lock:
            self.calls.append(list(cmd))
            self.timeouts.append(timeout)

        if Path(cmd[0]).name == "ffprobe":
            return self._probe(cmd)
        if "concat" in cmd:
            return self._merge(cmd)
        return self._segment(cmd)

    def _probe(self, cmd):
        target = cmd[-1]
        if target.endswith(".mp4"):
            return Completed(stdout=f"{self.output_duration}\n")
        if self.probe_returncode:
            return Completed(
                returncode=self.probe_returncode,
                stderr=f"{target}: Invalid data found when processing input",
            )
        return Completed(stdout=f"{self.audio_duration}\n")

    def _merge(self, cmd):
        manifest = Path(cmd[cmd.index("-i") + 1])
        self.manifests.append(manifest.read_text(encoding="utf-8"))
        if self.merge_returncode:
            Path(cmd[-1]).write_bytes(b"partial")
            return Completed(
                returncode=self.merge_returncode,
                stderr="Non-monotonous DTS in output stream\nConversion failed!",
            )
        if not self.merge_writes_nothing:
            Path(cmd[-1]).write_bytes(b"\x00\x00\x00\x18ftypmp42 final")
        return Completed(stderr="muxing overhead: 0.1%")

    def _segment(self, cmd):
        output = Path(cmd[-1])
        match = SEGMENT_RE.search(output.name)
        index = int(match.group(1)) if match else -1
        if index in self.fail_segments:
            output.write_bytes(b"trunc")
            return Completed(
                returncode=1,
                stderr=f"Error while encoding segment {index}\nConversion failed!",
            )
        output.write_bytes(b"\x00\x00\x00\x18ftypisom segment")
        return Completed(stderr="frame=   90 fps=0.0 q=-1.0 Lsize=1kB")

    def segment_calls(self) -> list[list[str]]:
        return [c for c in self.calls if Path(c[0]).name == "ffmpeg" and "concat" not in c]

    def merge_calls(self) -> list[list[str]]:
        return [c for c in self.calls if "concat" in c]

    def probe_calls(self) -> list[list[str]]:
        return [c for c in self.calls if Path(c[0]).name == "ffprobe"]


@pytest.fixture
def fake_tools(monkeypatch) -> FakeTools:
    fake = FakeTools()
    monkeypatch.setattr(tool_runner.subprocess, "run", fake)
    return fake


@pytest.fixture
def settings(tmp_path) -> RenderSettings:
    return RenderSettings(
        temp_dir=tmp_path / "work",
        output_dir=tmp_path / "out",
    )


@pytest.fixture
def inputs(tmp_path) -> tuple[Path, list[Path]]:
    input_dir = tmp_path / "inputs"
    input_dir.mkdir()
    audio = input_dir / "narration.mp3"
    audio.write_bytes(b"ID3 audio")
    images = []
    for name in ("A", "B", "C"):
        image = input_dir / f"{name}.png"
        image.write_bytes(f"PNG {name}".encode())
        images.append(image)
    return audio, images
