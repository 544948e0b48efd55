from __future__ import annotations

import math

from reel_render.presets import MotionSettings, VideoSettings


# float products such as 2.3 * 30 land just under the integer
FRAME_EPSILON = 1e-9


def clamp(value: float, min_value: float = 0.0, max_value: float = 1.0) -> float:
    return max(min_value, min(max_value, value))


def split_duration(total_seconds: float, image_count: int) -> float:
    if image_count <= 0:
        raise ValueError("image_count must be positive")
    return max(0.0, total_seconds) / image_count


def frame_count_for(duration_s: float, framerate: int) -> int:
    return max(0, math.floor(duration_s * framerate + FRAME_EPSILON))


def zoom_factor(frame_index: int, motion: MotionSettings) -> float:
    """Python mirror of the zoompan ``z`` expression for a given output frame."""
    return clamp(1.0 + motion.zoom_step * max(0, frame_index), 1.0, motion.max_zoom)


def crop_origin(frame_index: int, width: int, height: int, motion: MotionSettings) -> tuple[float, float]:
    zoom = zoom_factor(frame_index, motion)
    return width / 2 - (width / zoom / 2), height / 2 - (height / zoom / 2)


def _num(value: float) -> str:
    return f"{value:g}"


def zoom_expression(motion: MotionSettings) -> str:
    return f"min(1+{_num(motion.zoom_step)}*on,{_num(motion.max_zoom)})"


def zoompan_filter(video: VideoSettings, motion: MotionSettings, frame_count: int) -> str:
    """Cover-scale to the portrait frame, then zoom toward a fixed center."""
    w, h = video.width, video.height
    return (
        f"scale={w}:{h}:force_original_aspect_ratio=increase,"
        f"crop={w}:{h},"
        f"zoompan=z='{zoom_expression(motion)}'"
        f":d={frame_count}"
        ":x='iw/2-(iw/zoom/2)'"
        ":y='ih/2-(ih/zoom/2)'"
        f":s={video.size}"
        f":fps={video.framerate},"
        "setsar=1"
    )
