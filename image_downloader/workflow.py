from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

import requests

from image_downloader.client import DEFAULT_DOWNLOAD_PATH, ImageServiceClient
from image_downloader.errors import (
    ImageDownloaderError,
    UPLOAD_FAILED_MESSAGE,
    UploadRejected,
    classify_failure,
)
from image_downloader.materializer import (
    LocalFileSaver,
    MaterializationReport,
    materialize,
    write_manifest,
)
from image_downloader.session import (
    AllColumnsCleared,
    AllColumnsSelected,
    ColumnToggled,
    DownloadFailed,
    DownloadStarted,
    DownloadSucceeded,
    FileUploaded,
    NoImagesFound,
    Reset,
    Session,
    UploadFailed,
    UploadStarted,
    initial_session,
    transition,
)

logger = logging.getLogger(__name__)

ALLOWED_EXTENSIONS = {".csv", ".xlsx", ".xls"}
MAX_FILE_SIZE_BYTES = 10 * 1024 * 1024


def validate_upload(display_name, file_bytes):
    if not display_name:
        raise UploadRejected("No file uploaded")

    ext = Path(display_name).suffix.lower()
    if ext not in ALLOWED_EXTENSIONS:
        raise UploadRejected("Please upload a valid CSV or Excel file (.csv, .xlsx or .xls)")

    if not file_bytes:
        raise UploadRejected("Uploaded file is empty")
    if len(file_bytes) > MAX_FILE_SIZE_BYTES:
        raise UploadRejected("File too large. Please upload a file up to 10MB.")


class Workflow:
    """Drives one session from upload to completion.

    The session is replaced, never edited, and only through ``transition``.
    Remote calls run outside the lock; their results are applied with the
    generation captured when the call started, so a result that arrives after
    a reset is dropped.
    """

    def __init__(
        self,
        client: Optional[ImageServiceClient] = None,
        saver: Optional[LocalFileSaver] = None,
        download_path: str = DEFAULT_DOWNLOAD_PATH,
        write_manifest_file: bool = True,
    ):
        self.client = client or ImageServiceClient()
        self.saver = saver or LocalFileSaver()
        self.download_path = download_path
        self.write_manifest_file = write_manifest_file
        self.last_report: Optional[MaterializationReport] = None
        self._session = initial_session()
        self._lock = threading.Lock()

    @property
    def session(self) -> Session:
        return self._session

    def dispatch(self, event) -> Session:
        with self._lock:
            self._session = transition(self._session, event)
            return self._session

    def upload(self, display_name: str, file_bytes: bytes) -> Session:
        session = self.dispatch(UploadStarted())
        generation = session.generation

        try:
            validate_upload(display_name, file_bytes)
        except UploadRejected as exc:
            logger.warning("Upload of %s rejected: %s", display_name, exc)
            return self.dispatch(UploadFailed(generation, str(exc)))

        try:
            response = self.client.upload(display_name, file_bytes)
        except (ImageDownloaderError, requests.RequestException) as exc:
            logger.error("Upload error for %s: %s", display_name, exc)
            return self.dispatch(UploadFailed(generation, UPLOAD_FAILED_MESSAGE))

        logger.info("Uploaded %s: %d column(s)", display_name, len(response.columns))
        return self.dispatch(
            FileUploaded(
                generation=generation,
                display_name=display_name,
                columns=tuple(response.columns),
                filename_token=response.filename,
            )
        )

    def toggle(self, column: str) -> Session:
        return self.dispatch(ColumnToggled(column))

    def select_all(self) -> Session:
        return self.dispatch(AllColumnsSelected())

    def clear_all(self) -> Session:
        return self.dispatch(AllColumnsCleared())

    def download(self) -> Session:
        session = self.dispatch(DownloadStarted())
        generation = session.generation

        try:
            response = self.client.download_images(
                session.filename_token,
                session.selected,
                download_path=self.download_path,
            )
        except (ImageDownloaderError, requests.RequestException) as exc:
            logger.error("Download error: %s", exc)
            return self.dispatch(DownloadFailed(generation, classify_failure(exc)))

        if response.total_images == 0:
            logger.warning("No images found for columns %s", ", ".join(session.selected))
            return self.dispatch(NoImagesFound(generation))

        if self._session.generation != generation:
            logger.info("Session was reset during download; discarding %d image(s)", response.total_images)
            return self._session

        report = None
        if response.images:
            report = materialize(
                response.images,
                response.total_images,
                self.saver,
                message=response.message,
            )

        with self._lock:
            if self._session.generation != generation:
                logger.info("Session was reset while saving images; dropping the report")
                return self._session
            self.last_report = report

        if report is not None:
            self._write_manifest(report)

        return self.dispatch(DownloadSucceeded(generation, response.message, response.total_images))

    def reset(self) -> Session:
        with self._lock:
            self.last_report = None
            self._session = transition(self._session, Reset())
            return self._session

    def _write_manifest(self, report):
        if not self.write_manifest_file:
            return
        root = getattr(self.saver, "root", None)
        if root is None:
            return
        try:
            path = write_manifest(report, root)
        except OSError:
            logger.exception("Could not write image manifest under %s", root)
            return
        logger.info("Wrote image manifest to %s", path)
