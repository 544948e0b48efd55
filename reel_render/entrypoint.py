#!/usr/bin/env python3
import argparse
import json
import logging
import os
import sys

from google.auth.exceptions import GoogleAuthError

from reel_render.config import RenderSettings
from reel_render.errors import RenderError
from reel_render.pipeline import ReelPipeline
from reel_render.presets import PresetName, ReelPreset
from reel_render.storage import GCSUploader, StorageError, deliver
from reel_render.tool_runner import tool_status


logger = logging.getLogger("reel-render")


def configure_logging() -> None:
    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Render a vertical reel from audio and images")
    parser.add_argument("--audio", help="Path to the narration audio file")
    parser.add_argument(
        "--image",
        dest="images",
        action="append",
        default=[],
        help="Image path; repeat in display order",
    )
    parser.add_argument(
        "--output-dir",
        default=None,
        help="Directory for the rendered video (default: RENDER_OUTPUT_DIR)",
    )
    parser.add_argument(
        "--preset",
        choices=[p.value for p in PresetName],
        default=None,
        help="Encoding preset (default: RENDER_PRESET or standard)",
    )
    parser.add_argument(
        "--upload-prefix",
        default=None,
        help="Upload to RENDER_OUTPUT_BUCKET under this prefix",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Report ffmpeg/ffprobe availability and exit",
    )
    return parser.parse_args(argv)


def emit(payload: dict) -> None:
    print(json.dumps(payload, indent=2))


def main(argv=None) -> int:
    configure_logging()
    args = parse_args(argv)
    settings = RenderSettings.from_env()

    if args.check:
        status = tool_status(settings)
        emit(status)
        return 0 if status["ffmpeg"] and status["ffprobe"] else 1

    if not args.audio:
        emit({"success": False, "message": "--audio is required"})
        return 2

    def progress_callback(progress: int, message: str | None = None):
        logger.info("Progress: %s%%", progress)

    try:
        preset = ReelPreset.by_name(args.preset or settings.preset_name)
        pipeline = ReelPipeline(settings=settings, preset=preset)
        output = pipeline.render(
            args.audio,
            args.images,
            output_dir=args.output_dir,
            progress_callback=progress_callback,
        )
    except RenderError as e:
        logger.error("Render failed [%s]: %s", type(e).__name__, e)
        emit({"success": False, "message": f"Failed to create video: {e.message}", **e.to_dict()})
        return 1
    except Exception as e:
        logger.exception("Unexpected error: %s", e)
        emit({"success": False, "message": f"Failed to create video: {e}", "error": type(e).__name__})
        return 1

    response = {
        "success": True,
        "message": "Video created successfully",
        "filename": output.filename,
        "output_path": str(output.file_path),
    }

    if args.upload_prefix is not None and settings.output_bucket:
        try:
            with GCSUploader(settings.output_bucket, settings) as uploader:
                result = deliver(output, uploader, args.upload_prefix)
        except (StorageError, GoogleAuthError) as e:
            logger.warning("Storage unavailable: %s", e)
            result = None
        if result is not None:
            response["video_url"] = result.url
            response["output_path"] = None
    elif args.upload_prefix is not None:
        logger.warning("RENDER_OUTPUT_BUCKET is not set; skipping upload")

    emit(response)
    return 0


if __name__ == "__main__":
    sys.exit(main())
