from __future__ import annotations

import requests

CONNECTION_REFUSED_MESSAGE = "Cannot connect to server. Please make sure the backend is running."
TIMEOUT_MESSAGE = "Request timed out. Please try again."
FALLBACK_MESSAGE = "Please try different columns."
NO_IMAGES_MESSAGE = (
    "No images found to download. Please check that the selected columns contain valid image URLs."
)
UPLOAD_FAILED_MESSAGE = "Failed to upload file. Please try again."
FALLBACK_TIP = (
    'Look for columns with "Recommended" or "Suggested" badges that are likely to contain image URLs.'
)


class ImageDownloaderError(Exception):
    pass


class UploadRejected(ImageDownloaderError):
    """The file was refused before it was sent to the remote service."""


class RemoteServiceError(ImageDownloaderError):
    """The remote service answered with a non-2xx status or an unreadable body."""

    def __init__(self, message, status_code=None, payload=None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload

    @property
    def error_message(self):
        if isinstance(self.payload, dict):
            error = self.payload.get("error")
            if isinstance(error, str) and error.strip():
                return error
        return None


class InvalidTransition(ImageDownloaderError):
    def __init__(self, step, event, message=None):
        if message is None:
            message = "{0} is not accepted in the {1} step".format(
                type(event).__name__, getattr(step, "value", step)
            )
        super().__init__(message)
        self.step = step
        self.event = event


class EmptySelection(InvalidTransition):
    def __init__(self, step, event):
        super().__init__(step, event, "Select at least one column before downloading images")


class UnknownColumn(ImageDownloaderError):
    def __init__(self, column):
        super().__init__('Column "{0}" is not part of the uploaded file'.format(column))
        self.column = column


def _structured_message(failure):
    if isinstance(failure, RemoteServiceError):
        return failure.error_message

    response = getattr(failure, "response", None)
    if response is None:
        return None
    try:
        payload = response.json()
    except ValueError:
        return None
    return RemoteServiceError("", payload=payload).error_message


def _exception_chain(failure):
    # urllib3 buries the socket error in MaxRetryError.reason or the args
    # of the requests exception, not only in __cause__.
    seen = set()
    pending = [failure]
    while pending:
        exc = pending.pop()
        if exc is None or id(exc) in seen:
            continue
        seen.add(id(exc))
        yield exc
        pending.append(exc.__cause__)
        pending.append(exc.__context__)
        reason = getattr(exc, "reason", None)
        if isinstance(reason, BaseException):
            pending.append(reason)
        pending.extend(arg for arg in exc.args if isinstance(arg, BaseException))


def _is_connection_refused(failure):
    if isinstance(failure, requests.exceptions.Timeout):
        return False
    for exc in _exception_chain(failure):
        if isinstance(exc, ConnectionRefusedError):
            return True
        if "connection refused" in str(exc).lower():
            return True
    return False


def _is_timeout(failure):
    if isinstance(failure, (requests.exceptions.Timeout, TimeoutError)):
        return True
    text = str(failure).lower()
    return "timeout" in text or "timed out" in text


def classify_failure(failure: BaseException) -> str:
    """Turn a failed download call into the message shown to the user.

    First match wins: the service's own ``error`` text, then connection
    refused, then timeout, then a generic hint to pick other columns.
    """
    message = _structured_message(failure)
    if message:
        return message
    if _is_connection_refused(failure):
        return CONNECTION_REFUSED_MESSAGE
    if _is_timeout(failure):
        return TIMEOUT_MESSAGE
    return FALLBACK_MESSAGE
