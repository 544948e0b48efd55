"""
Pydantic models for reel encoding presets.

Every segment of a job is encoded from the same preset, which is what makes
the segments safe to stream-copy into one video:
- Video settings (geometry, codec, pixel format, frame rate, quality)
- Motion settings (zoom curve applied to each still image)
- Audio settings (delivery codec used when muxing the narration track)
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, field_validator


# =============================================================================
# ENUMS
# =============================================================================


class VideoCodec(str, Enum):
    """Supported video encoders."""

    H264 = "libx264"
    H265 = "libx265"


class AudioCodec(str, Enum):
    """Supported audio delivery codecs."""

    AAC = "aac"
    MP3 = "libmp3lame"


class PresetName(str, Enum):
    DRAFT = "draft"
    STANDARD = "standard"
    HIGH = "high"


# =============================================================================
# SETTINGS
# =============================================================================


class VideoSettings(BaseModel):
    """Video encoding settings shared by every segment."""

    codec: VideoCodec = Field(default=VideoCodec.H264, description="Video encoder")
    width: int = Field(default=1080, gt=0, description="Output width in pixels")
    height: int = Field(default=1920, gt=0, description="Output height in pixels")
    framerate: int = Field(default=30, gt=0, le=120, description="Output frame rate")
    crf: int = Field(
        default=23,
        ge=0,
        le=51,
        description="Constant Rate Factor (0=lossless, 23=default, 51=worst)",
    )
    preset: str = Field(
        default="medium",
        description="Encoding preset: ultrafast, superfast, veryfast, faster, fast, medium, slow, slower, veryslow",
    )
    pixel_format: str = Field(default="yuv420p", description="Pixel format")

    @field_validator("width", "height")
    @classmethod
    def _even_dimension(cls, value: int) -> int:
        # yuv420p chroma subsampling needs even dimensions
        if value % 2:
            raise ValueError("dimensions must be even")
        return value

    @property
    def size(self) -> str:
        return f"{self.width}x{self.height}"


class MotionSettings(BaseModel):
    """Zoom applied to each still: z = min(1 + zoom_step * frame, max_zoom)."""

    zoom_step: float = Field(default=0.002, ge=0.0, description="Zoom added per frame")
    max_zoom: float = Field(default=1.3, ge=1.0, description="Zoom factor cap")


class AudioSettings(BaseModel):
    """Audio encoding settings for the final mux."""

    codec: AudioCodec = Field(default=AudioCodec.AAC, description="Audio codec")
    bitrate: str = Field(default="192k", description="Audio bitrate")


class ReelPreset(BaseModel):
    """Complete encoding preset for one reel."""

    name: str = Field(description="Preset name")
    video: VideoSettings = Field(default_factory=VideoSettings)
    motion: MotionSettings = Field(default_factory=MotionSettings)
    audio: AudioSettings = Field(default_factory=AudioSettings)

    @classmethod
    def draft(cls) -> ReelPreset:
        """Fast preview preset, same portrait geometry at lower quality."""
        return cls(
            name="draft",
            video=VideoSettings(crf=30, preset="veryfast"),
            audio=AudioSettings(bitrate="128k"),
        )

    @classmethod
    def standard(cls) -> ReelPreset:
        return cls(
            name="standard",
            video=VideoSettings(crf=23, preset="medium"),
            audio=AudioSettings(bitrate="192k"),
        )

    @classmethod
    def high(cls) -> ReelPreset:
        return cls(
            name="high",
            video=VideoSettings(crf=18, preset="slow"),
            audio=AudioSettings(bitrate="320k"),
        )

    @classmethod
    def by_name(cls, name: str | PresetName) -> ReelPreset:
        try:
            key = PresetName(name)
        except ValueError as exc:
            choices = ", ".join(p.value for p in PresetName)
            raise ValueError(f"Unknown preset '{name}'. Expected one of: {choices}") from exc
        return {
            PresetName.DRAFT: cls.draft,
            PresetName.STANDARD: cls.standard,
            PresetName.HIGH: cls.high,
        }[key]()
