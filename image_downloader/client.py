from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import requests

from image_downloader.errors import RemoteServiceError
from image_downloader.materializer import ImageDescriptor

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_URL = "http://localhost:5000"
UPLOAD_TIMEOUT_SECONDS = 60
# Retrieval fetches every image server-side, so allow several minutes.
DOWNLOAD_TIMEOUT_SECONDS = 300
DEFAULT_DOWNLOAD_PATH = "downloads"


@dataclass
class UploadResponse:
    columns: List[str]
    filename: str


@dataclass
class DownloadResponse:
    message: str
    total_images: int
    images: List[ImageDescriptor] = field(default_factory=list)


class ImageServiceClient:
    """Client for the remote service that parses uploads and fetches images.

    Non-2xx answers and unreadable bodies raise ``RemoteServiceError``;
    transport failures (connection refused, timeouts) propagate as the
    ``requests`` exceptions so they can be classified by the caller.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_SERVICE_URL,
        http: Optional[requests.Session] = None,
        upload_timeout: float = UPLOAD_TIMEOUT_SECONDS,
        download_timeout: float = DOWNLOAD_TIMEOUT_SECONDS,
    ):
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        self.upload_timeout = upload_timeout
        self.download_timeout = download_timeout

    def upload(self, display_name: str, file_bytes: bytes) -> UploadResponse:
        logger.info("Uploading %s (%d bytes)", display_name, len(file_bytes))
        payload = self._post(
            "/upload",
            files={"file": (display_name, file_bytes)},
            timeout=self.upload_timeout,
        )

        columns = payload.get("columns")
        filename = payload.get("filename")
        if not isinstance(columns, list) or not isinstance(filename, str):
            raise RemoteServiceError("Upload response is missing columns or filename", payload=payload)
        return UploadResponse(columns=[str(column) for column in columns], filename=filename)

    def download_images(
        self,
        filename: str,
        columns: Sequence[str],
        download_path: str = DEFAULT_DOWNLOAD_PATH,
    ) -> DownloadResponse:
        logger.info("Requesting images for %d column(s) of %s", len(columns), filename)
        payload = self._post(
            "/download-images",
            json={
                "filename": filename,
                "columns": list(columns),
                "downloadPath": download_path,
            },
            timeout=self.download_timeout,
        )

        try:
            total_images = int(payload.get("total_images") or 0)
        except (TypeError, ValueError):
            raise RemoteServiceError("Download response has an invalid total_images", payload=payload)

        images = payload.get("images") or []
        if not isinstance(images, list):
            raise RemoteServiceError("Download response has an invalid images list", payload=payload)

        return DownloadResponse(
            message=str(payload.get("message") or ""),
            total_images=total_images,
            images=[ImageDescriptor.from_payload(item) for item in images],
        )

    def _post(self, path, **kwargs):
        url = "{0}{1}".format(self.base_url, path)
        response = self.http.post(url, **kwargs)

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.ok:
            logger.error("POST %s failed with status %s", path, response.status_code)
            raise RemoteServiceError(
                "POST {0} failed with status {1}".format(path, response.status_code),
                status_code=response.status_code,
                payload=payload,
            )
        if not isinstance(payload, dict):
            raise RemoteServiceError(
                "POST {0} returned an unreadable body".format(path),
                status_code=response.status_code,
            )
        return payload
