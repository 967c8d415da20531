"""Tests for the workflow driver."""

import threading

import pytest
import requests

from conftest import FakeClient
from image_downloader.client import DownloadResponse
from image_downloader.errors import (
    CONNECTION_REFUSED_MESSAGE,
    EmptySelection,
    InvalidTransition,
    NO_IMAGES_MESSAGE,
    RemoteServiceError,
    TIMEOUT_MESSAGE,
    UPLOAD_FAILED_MESSAGE,
)
from image_downloader.materializer import LocalFileSaver, MANIFEST_NAME
from image_downloader.session import Session, Step
from image_downloader.workflow import Workflow


def ready(workflow, *columns):
    workflow.upload("contacts.csv", b"Name,Photo URL,Description\n")
    for column in columns:
        workflow.toggle(column)
    return workflow


class TestUpload:
    """Tests for Workflow.upload()."""

    def test_upload_populates_session(self, workflow, fake_client):
        session = workflow.upload("contacts.csv", b"data")
        assert session.step is Step.SELECT
        assert session.columns == ("Name", "Photo URL", "Description")
        assert session.filename_token == "abc123"
        assert fake_client.upload_calls == [("contacts.csv", b"data")]

    def test_rejected_extension_never_sent(self, workflow, fake_client):
        session = workflow.upload("notes.txt", b"data")
        assert session.step is Step.UPLOAD
        assert "valid CSV or Excel" in session.error
        assert fake_client.upload_calls == []

    def test_empty_file_rejected(self, workflow):
        assert workflow.upload("contacts.xlsx", b"").error == "Uploaded file is empty"

    def test_oversized_file_rejected(self, workflow, monkeypatch):
        monkeypatch.setattr("image_downloader.workflow.MAX_FILE_SIZE_BYTES", 3)
        assert "too large" in workflow.upload("contacts.csv", b"data").error

    def test_remote_failure_stays_in_upload(self, saver):
        client = FakeClient(upload=RemoteServiceError("failed", 400, {"error": "bad"}))
        session = Workflow(client, saver).upload("contacts.csv", b"data")
        assert session.step is Step.UPLOAD
        assert session.error == UPLOAD_FAILED_MESSAGE

    def test_upload_only_from_upload_step(self, workflow):
        ready(workflow)
        with pytest.raises(InvalidTransition):
            workflow.upload("contacts.csv", b"data")

    def test_reset_during_upload_discards_result(self, workflow, fake_client):
        original = fake_client.upload

        def upload_then_reset(display_name, file_bytes):
            result = original(display_name, file_bytes)
            workflow.reset()
            return result

        fake_client.upload = upload_then_reset
        assert workflow.upload("contacts.csv", b"data") == Session()

    def test_second_upload_while_pending_is_refused(self, workflow, fake_client):
        """Only one upload reaches the remote service at a time."""
        started = threading.Event()
        release = threading.Event()
        original = fake_client.upload

        def slow_upload(display_name, file_bytes):
            started.set()
            release.wait(5)
            return original(display_name, file_bytes)

        fake_client.upload = slow_upload
        results = []
        thread = threading.Thread(target=lambda: results.append(workflow.upload("contacts.csv", b"data")))
        thread.start()
        try:
            assert started.wait(5)
            with pytest.raises(InvalidTransition):
                workflow.upload("other.csv", b"data")
        finally:
            release.set()
            thread.join(5)

        assert fake_client.upload_calls == [("contacts.csv", b"data")]
        assert results[0].step is Step.SELECT
        assert results[0].uploaded_file_name == "contacts.csv"

    def test_upload_can_be_retried_after_failure(self, saver):
        client = FakeClient(upload=RemoteServiceError("failed", 500))
        workflow = Workflow(client, saver)
        assert workflow.upload("contacts.csv", b"data").error == UPLOAD_FAILED_MESSAGE

        client.upload_outcome = FakeClient().upload_outcome
        session = workflow.upload("contacts.csv", b"data")

        assert session.step is Step.SELECT
        assert len(client.upload_calls) == 2

    def test_rejected_upload_can_be_retried(self, workflow, fake_client):
        workflow.upload("notes.txt", b"data")
        assert workflow.upload("contacts.csv", b"data").step is Step.SELECT
        assert len(fake_client.upload_calls) == 1


class TestDownload:
    """Tests for Workflow.download()."""

    def test_success_materializes_and_completes(self, workflow, fake_client, saver):
        ready(workflow, "Photo URL")

        session = workflow.download()

        assert session.step is Step.COMPLETE
        assert session.message == "Downloaded 3 images"
        assert session.total_images == 3
        assert fake_client.download_calls == [("abc123", ("Photo URL",), "downloads")]
        assert (saver.root / "Photo URL" / "photo_2.png").exists()
        assert (saver.root / "Logo" / "logo_1.png").exists()
        assert (saver.root / MANIFEST_NAME).exists()
        assert workflow.last_report.saved_count == 3

    def test_empty_selection_never_downloads(self, workflow, fake_client):
        ready(workflow)
        with pytest.raises(EmptySelection):
            workflow.download()
        assert workflow.session.step is Step.SELECT
        assert fake_client.download_calls == []

    def test_zero_images_returns_to_select(self, workflow, fake_client, saver):
        fake_client.download_outcome = DownloadResponse(message="None", total_images=0, images=[])
        ready(workflow, "Name")

        session = workflow.download()

        assert session.step is Step.SELECT
        assert session.error == NO_IMAGES_MESSAGE
        assert not saver.root.exists()

    @pytest.mark.parametrize(
        "failure, message",
        [
            (RemoteServiceError("failed", 500, {"error": "Sheet vanished"}), "Sheet vanished"),
            (requests.exceptions.ConnectionError(ConnectionRefusedError(111, "Connection refused")),
             CONNECTION_REFUSED_MESSAGE),
            (requests.exceptions.ReadTimeout("Read timed out."), TIMEOUT_MESSAGE),
        ],
    )
    def test_failures_return_to_select(self, workflow, fake_client, failure, message):
        fake_client.download_outcome = failure
        ready(workflow, "Photo URL")

        session = workflow.download()

        assert session.step is Step.SELECT
        assert session.error == message
        assert session.selected == ("Photo URL",)

    def test_retry_after_failure_clears_error(self, workflow, fake_client, sample_download):
        fake_client.download_outcome = requests.exceptions.ReadTimeout("Read timed out.")
        ready(workflow, "Photo URL")
        workflow.download()

        fake_client.download_outcome = sample_download
        session = workflow.download()

        assert session.step is Step.COMPLETE
        assert session.error == ""

    def test_all_saves_failing_still_completes(self, workflow, fake_client):
        for image in fake_client.download_outcome.images:
            image.data = "not base64!"
        ready(workflow, "Photo URL")

        session = workflow.download()

        assert session.step is Step.COMPLETE
        assert workflow.last_report.failed_count == 3

    def test_reset_during_download_discards_result(self, workflow, fake_client, saver):
        ready(workflow, "Photo URL")
        fake_client.on_download = workflow.reset

        session = workflow.download()

        assert session == Session()
        assert workflow.session == Session()
        assert not saver.root.exists()
        assert workflow.last_report is None

    def test_reset_while_saving_drops_report(self, fake_client, tmp_path):
        class ResettingSaver(LocalFileSaver):
            def save(self, blob, descriptor):
                path = super().save(blob, descriptor)
                workflow.reset()
                return path

        saver = ResettingSaver(tmp_path / "images")
        workflow = Workflow(fake_client, saver)
        ready(workflow, "Photo URL")

        session = workflow.download()

        assert session == Session()
        assert workflow.session.step is Step.UPLOAD
        assert workflow.last_report is None
        assert not (saver.root / MANIFEST_NAME).exists()


class TestReset:
    """Tests for Workflow.reset()."""

    def test_reset_after_complete(self, workflow):
        ready(workflow, "Photo URL")
        workflow.download()

        assert workflow.reset() == Session()
        assert workflow.last_report is None
