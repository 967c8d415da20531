import base64
import io

import pytest
from PIL import Image

from image_downloader.client import DownloadResponse, UploadResponse
from image_downloader.materializer import ImageDescriptor, LocalFileSaver
from image_downloader.workflow import Workflow


def png_bytes(size=(2, 2), color=(255, 0, 0)):
    output = io.BytesIO()
    Image.new("RGB", size, color).save(output, format="PNG")
    return output.getvalue()


def descriptor(column, filename, data=None, extension="png"):
    if data is None:
        data = png_bytes()
    return ImageDescriptor(
        column=column,
        filename=filename,
        extension=extension,
        data=base64.b64encode(data).decode("ascii"),
    )


class FakeResponse:
    def __init__(self, status_code=200, payload=None, body_is_json=True):
        self.status_code = status_code
        self._payload = payload
        self._body_is_json = body_is_json

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if not self._body_is_json:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeHttp:
    """Stands in for requests.Session; replays queued responses or errors."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class FakeClient:
    def __init__(self, upload=None, download=None):
        self.upload_outcome = upload or UploadResponse(
            columns=["Name", "Photo URL", "Description"], filename="abc123"
        )
        self.download_outcome = download
        self.upload_calls = []
        self.download_calls = []
        self.on_download = None

    def upload(self, display_name, file_bytes):
        self.upload_calls.append((display_name, file_bytes))
        if isinstance(self.upload_outcome, BaseException):
            raise self.upload_outcome
        return self.upload_outcome

    def download_images(self, filename, columns, download_path="downloads"):
        self.download_calls.append((filename, tuple(columns), download_path))
        if self.on_download is not None:
            self.on_download()
        if isinstance(self.download_outcome, BaseException):
            raise self.download_outcome
        return self.download_outcome


class RecordingSaver:
    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.saved = []

    def save(self, blob, descriptor):
        self.saved.append((descriptor.filename, blob))
        if descriptor.filename in self.fail_on:
            raise OSError("disk full")
        return descriptor.filename


@pytest.fixture
def sample_download():
    images = [
        descriptor("Photo URL", "photo_1.png"),
        descriptor("Logo", "logo_1.png"),
        descriptor("Photo URL", "photo_2.png"),
    ]
    return DownloadResponse(message="Downloaded 3 images", total_images=3, images=images)


@pytest.fixture
def fake_client(sample_download):
    return FakeClient(download=sample_download)


@pytest.fixture
def saver(tmp_path):
    return LocalFileSaver(tmp_path / "hubspot-images")


@pytest.fixture
def workflow(fake_client, saver):
    return Workflow(fake_client, saver)
