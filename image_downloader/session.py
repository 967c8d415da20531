"""Session state and the transitions that move it through the four steps.

``transition`` is a pure function: it never mutates the session it is given
and returns the next one. Results of remote calls carry the generation that
was current when the call started; a result whose generation no longer
matches belongs to a session that was reset or replaced and is ignored.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Tuple

from image_downloader import selection
from image_downloader.errors import EmptySelection, InvalidTransition, NO_IMAGES_MESSAGE


class Step(str, Enum):
    UPLOAD = "upload"
    SELECT = "select"
    DOWNLOAD = "download"
    COMPLETE = "complete"


STEP_ORDER = (Step.UPLOAD, Step.SELECT, Step.DOWNLOAD, Step.COMPLETE)


@dataclass(frozen=True)
class Session:
    step: Step = Step.UPLOAD
    uploaded_file_name: str = ""
    filename_token: str = ""
    columns: Tuple[str, ...] = ()
    selected: Tuple[str, ...] = ()
    message: str = ""
    total_images: int = 0
    error: str = ""
    # Bookkeeping only: two sessions with the same facts compare equal.
    generation: int = field(default=0, compare=False)
    uploading: bool = field(default=False, compare=False)


# User actions


@dataclass(frozen=True)
class UploadStarted:
    pass


@dataclass(frozen=True)
class ColumnToggled:
    column: str


@dataclass(frozen=True)
class AllColumnsSelected:
    pass


@dataclass(frozen=True)
class AllColumnsCleared:
    pass


@dataclass(frozen=True)
class DownloadStarted:
    pass


@dataclass(frozen=True)
class Reset:
    pass


# Remote call outcomes


@dataclass(frozen=True)
class FileUploaded:
    generation: int
    display_name: str
    columns: Tuple[str, ...]
    filename_token: str


@dataclass(frozen=True)
class UploadFailed:
    generation: int
    message: str


@dataclass(frozen=True)
class DownloadSucceeded:
    generation: int
    message: str
    total_images: int


@dataclass(frozen=True)
class NoImagesFound:
    generation: int


@dataclass(frozen=True)
class DownloadFailed:
    generation: int
    message: str


def initial_session(generation: int = 0) -> Session:
    return Session(generation=generation)


def is_stale(session: Session, event) -> bool:
    generation = getattr(event, "generation", None)
    return generation is not None and generation != session.generation


def transition(session: Session, event) -> Session:
    if isinstance(event, Reset):
        return initial_session(session.generation + 1)

    if is_stale(session, event):
        return session

    step = session.step

    if isinstance(event, UploadStarted):
        _require(step, event, Step.UPLOAD)
        if session.uploading:
            raise InvalidTransition(step, event, "An upload is already in progress")
        return replace(session, uploading=True, error="")

    if isinstance(event, FileUploaded):
        _require(step, event, Step.UPLOAD)
        return Session(
            step=Step.SELECT,
            uploaded_file_name=event.display_name,
            filename_token=event.filename_token,
            columns=tuple(event.columns),
            generation=session.generation,
        )

    if isinstance(event, UploadFailed):
        _require(step, event, Step.UPLOAD)
        return replace(session, uploading=False, error=event.message)

    if isinstance(event, ColumnToggled):
        _require(step, event, Step.SELECT)
        return replace(
            session,
            selected=selection.toggle(session.selected, event.column, session.columns),
            error="",
        )

    if isinstance(event, AllColumnsSelected):
        _require(step, event, Step.SELECT)
        return replace(session, selected=selection.select_all(session.columns), error="")

    if isinstance(event, AllColumnsCleared):
        _require(step, event, Step.SELECT)
        return replace(session, selected=selection.clear_all(), error="")

    if isinstance(event, DownloadStarted):
        _require(step, event, Step.SELECT)
        if not session.selected:
            raise EmptySelection(step, event)
        return replace(
            session,
            step=Step.DOWNLOAD,
            error="",
            generation=session.generation + 1,
        )

    if isinstance(event, DownloadSucceeded):
        _require(step, event, Step.DOWNLOAD)
        if event.total_images == 0:
            return transition(session, NoImagesFound(event.generation))
        return replace(
            session,
            step=Step.COMPLETE,
            message=event.message,
            total_images=event.total_images,
        )

    if isinstance(event, NoImagesFound):
        _require(step, event, Step.DOWNLOAD)
        return replace(session, step=Step.SELECT, error=NO_IMAGES_MESSAGE)

    if isinstance(event, DownloadFailed):
        _require(step, event, Step.DOWNLOAD)
        return replace(session, step=Step.SELECT, error=event.message)

    raise TypeError("Unknown workflow event: {0!r}".format(event))


def _require(step, event, expected):
    if step is not expected:
        raise InvalidTransition(step, event)


def step_status(session: Session, step: Step) -> str:
    current = STEP_ORDER.index(session.step)
    position = STEP_ORDER.index(step)
    if position < current:
        return "completed"
    if position == current:
        return "current"
    return "pending"
