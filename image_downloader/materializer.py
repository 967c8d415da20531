from __future__ import annotations

import base64
import binascii
import io
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

import openpyxl
from PIL import Image, UnidentifiedImageError

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_ROOT = Path.home() / "Downloads" / "hubspot-images"
MANIFEST_NAME = "manifest.xlsx"
KNOWN_EXTENSIONS = {"png", "jpg", "gif", "bmp", "tif", "tiff", "webp", "svg", "ico"}


@dataclass
class ImageDescriptor:
    column: str
    filename: str
    extension: str
    data: str

    @classmethod
    def from_payload(cls, item):
        if not isinstance(item, dict):
            item = {}
        return cls(
            column=str(item.get("column") or ""),
            filename=str(item.get("filename") or ""),
            extension=str(item.get("extension") or ""),
            data=item.get("data") or "",
        )


@dataclass
class ImageBlob:
    data: bytes
    content_type: str
    extension: str


@dataclass
class SaveResult:
    descriptor: ImageDescriptor
    path: Optional[Path] = None
    error: Optional[str] = None

    @property
    def ok(self):
        return self.error is None


@dataclass
class MaterializationReport:
    total_images: int
    groups: Dict[str, List[ImageDescriptor]] = field(default_factory=dict)
    results: List[SaveResult] = field(default_factory=list)
    message: str = ""

    @property
    def saved_count(self):
        return sum(1 for result in self.results if result.ok)

    @property
    def failed_count(self):
        return sum(1 for result in self.results if not result.ok)

    def column_counts(self):
        return {column: len(items) for column, items in self.groups.items()}

    def summary(self):
        return {
            "total_images": self.total_images,
            "saved": self.saved_count,
            "failed": self.failed_count,
            "columns": self.column_counts(),
        }


def _detect_ext(data):
    if data.startswith(b"\x89PNG\r\n\x1a\n"):
        return "png"
    if data.startswith(b"\xff\xd8\xff"):
        return "jpg"
    if data.startswith(b"GIF8"):
        return "gif"
    return "png"


def _sniff_ext(data):
    try:
        with Image.open(io.BytesIO(data)) as img:
            image_format = (img.format or "").lower()
    except (UnidentifiedImageError, OSError):
        return _detect_ext(data)
    if image_format == "jpeg":
        return "jpg"
    if image_format in KNOWN_EXTENSIONS:
        return image_format
    return _detect_ext(data)


def _normalize_ext(ext, data):
    ext = (ext or "").lower().replace(".", "")
    if ext == "jpeg":
        return "jpg"
    if ext in KNOWN_EXTENSIONS:
        return ext
    return _sniff_ext(data)


def _content_type(ext):
    if ext == "jpg":
        return "image/jpeg"
    if ext == "svg":
        return "image/svg+xml"
    return "image/{0}".format(ext)


def _safe_folder_name(column):
    name = (column or "").strip()
    if not name:
        return "Unnamed_Column"
    name = name.replace("/", "_").replace("\\", "_")
    name = re.sub(r"[\x00-\x1f]+", "", name).strip()
    if name in (".", ".."):
        return "Unnamed_Column"
    return name or "Unnamed_Column"


def _safe_file_name(filename, ext):
    # Only the final path component is kept so a name cannot escape its folder.
    name = re.split(r"[\\/]", filename or "")[-1]
    name = re.sub(r"[\x00-\x1f]+", "", name).strip()
    if name in ("", ".", ".."):
        return "image.{0}".format(ext)
    return name


def _next_unique_path(folder, name):
    candidate = folder / name
    if not candidate.exists():
        return candidate

    stem, suffix = Path(name).stem, Path(name).suffix
    counter = 2
    while True:
        candidate = folder / "{0}_{1}{2}".format(stem, counter, suffix)
        if not candidate.exists():
            return candidate
        counter += 1


def group_by_column(descriptors):
    """Group descriptors by source column, in order of first appearance."""
    groups = {}
    for descriptor in descriptors:
        groups.setdefault(descriptor.column, []).append(descriptor)
    return groups


def decode_descriptor(descriptor: ImageDescriptor) -> ImageBlob:
    if not isinstance(descriptor.data, str) or not descriptor.data:
        raise ValueError("Image {0} has no payload".format(descriptor.filename or "<unnamed>"))
    try:
        data = base64.b64decode("".join(descriptor.data.split()), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError(
            "Image {0} has an invalid base64 payload: {1}".format(descriptor.filename or "<unnamed>", exc)
        ) from exc

    ext = _normalize_ext(descriptor.extension, data)
    declared = (descriptor.extension or "").lower().replace(".", "")
    if declared == "jpeg":
        declared = "jpg"
    return ImageBlob(data=data, content_type=_content_type(declared or ext), extension=ext)


class LocalFileSaver:
    """Saves each image as its own file under ``root/<column>/<filename>``.

    Existing files are never overwritten; a numeric suffix is added instead.
    """

    def __init__(self, root=DEFAULT_DOWNLOAD_ROOT):
        self.root = Path(root)

    def save(self, blob: ImageBlob, descriptor: ImageDescriptor) -> Path:
        folder = self.root / _safe_folder_name(descriptor.column)
        folder.mkdir(parents=True, exist_ok=True)
        path = _next_unique_path(folder, _safe_file_name(descriptor.filename, blob.extension))
        path.write_bytes(blob.data)
        return path


def materialize(descriptors, total_images, saver, message="") -> MaterializationReport:
    """Decode and save every descriptor, one independent save per image.

    A failure on one image is recorded in its ``SaveResult`` and logged; the
    remaining images are still processed. Grouping only feeds the report.
    """
    descriptors = list(descriptors)
    report = MaterializationReport(
        total_images=total_images,
        groups=group_by_column(descriptors),
        message=message,
    )

    for descriptor in descriptors:
        try:
            blob = decode_descriptor(descriptor)
            path = saver.save(blob, descriptor)
        except Exception as exc:
            logger.exception("Error saving image %s from column %s", descriptor.filename, descriptor.column)
            report.results.append(SaveResult(descriptor=descriptor, error=str(exc) or type(exc).__name__))
            continue
        report.results.append(SaveResult(descriptor=descriptor, path=path))

    logger.info(
        "Materialized %d of %d image(s) across %d column(s)",
        report.saved_count,
        len(descriptors),
        len(report.groups),
    )
    return report


def write_manifest(report: MaterializationReport, root) -> Path:
    root = Path(root)
    root.mkdir(parents=True, exist_ok=True)
    path = root / MANIFEST_NAME

    wb = openpyxl.Workbook()
    summary = wb.active
    summary.title = "Summary"
    summary.append(["Image Download Summary"])
    summary.append(["Generated at", datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")])
    summary.append(["Message", report.message])
    summary.append(["Total images reported", report.total_images])
    summary.append(["Saved images", report.saved_count])
    summary.append(["Failed images", report.failed_count])
    summary.append([])
    summary.append(["Column", "Images"])
    for column, count in report.column_counts().items():
        summary.append([column, count])

    images = wb.create_sheet("Images")
    images.append(["Column", "Filename", "Status", "Saved path", "Error"])
    for result in report.results:
        images.append(
            [
                result.descriptor.column,
                result.descriptor.filename,
                "saved" if result.ok else "failed",
                str(result.path) if result.path else "",
                result.error or "",
            ]
        )

    try:
        wb.save(path)
    finally:
        wb.close()
    return path
