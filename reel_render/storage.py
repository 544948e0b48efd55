from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path

from google.cloud import storage
from google.oauth2 import service_account

from reel_render.config import RenderSettings
from reel_render.models import OutputVideo


logger = logging.getLogger(__name__)

VIDEO_CONTENT_TYPE = "video/mp4"


class StorageError(Exception):
    pass


@dataclass(frozen=True)
class UploadResult:
    bucket: str
    blob_path: str
    url: str | None


def blob_path_for(output: OutputVideo, prefix: str | None = None) -> str:
    prefix = (prefix or "").strip("/")
    return f"{prefix}/{output.filename}" if prefix else output.filename


class GCSUploader:
    """Uploads finished videos; the client lives between open() and close()."""

    def __init__(self, bucket_name: str, settings: RenderSettings | None = None):
        if not bucket_name:
            raise StorageError("bucket_name is required")
        self.bucket_name = bucket_name
        self.settings = settings or RenderSettings()
        self._client: storage.Client | None = None

    def __enter__(self) -> GCSUploader:
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._client is not None

    def open(self) -> None:
        if self._client is not None:
            return
        self._client = self._build_client()
        logger.info("Storage client initialized for bucket %s", self.bucket_name)

    def close(self) -> None:
        if self._client is None:
            return
        close = getattr(self._client, "close", None)
        if callable(close):
            close()
        self._client = None

    def _build_client(self) -> storage.Client:
        credentials_json = self.settings.gcp_credentials
        if not credentials_json:
            return storage.Client()

        try:
            credentials_info = json.loads(credentials_json)
        except json.JSONDecodeError as exc:
            raise StorageError("Invalid GCP_CREDENTIALS JSON") from exc

        credentials = service_account.Credentials.from_service_account_info(
            credentials_info
        )
        return storage.Client(
            credentials=credentials, project=credentials_info.get("project_id")
        )

    def upload(self, output: OutputVideo, prefix: str | None = None) -> UploadResult:
        if self._client is None:
            raise StorageError("Storage client not initialized")
        if not output.file_path.exists():
            raise StorageError(f"Render output not found: {output.file_path}")

        blob_path = blob_path_for(output, prefix)
        blob = self._client.bucket(self.bucket_name).blob(blob_path)
        blob.upload_from_filename(str(output.file_path), content_type=VIDEO_CONTENT_TYPE)
        logger.info("Uploaded %s to gs://%s/%s", output.filename, self.bucket_name, blob_path)

        url = blob.generate_signed_url(
            expiration=timedelta(hours=self.settings.url_ttl_hours),
            method="GET",
            version="v4",
        )
        return UploadResult(bucket=self.bucket_name, blob_path=blob_path, url=url)


def deliver(
    output: OutputVideo,
    uploader: GCSUploader,
    prefix: str | None = None,
) -> UploadResult | None:
    """Upload ``output`` and drop the local copy; keep it if the upload fails."""
    try:
        result = uploader.upload(output, prefix)
    except Exception:
        logger.exception("Failed to upload %s; keeping local file", output.filename)
        return None

    try:
        Path(output.file_path).unlink(missing_ok=True)
    except OSError as exc:
        logger.warning("Failed to remove uploaded file %s: %s", output.file_path, exc)
    return result
