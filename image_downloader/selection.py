from __future__ import annotations

from typing import Sequence, Tuple

from image_downloader.errors import UnknownColumn


def toggle(selected: Sequence[str], column: str, columns: Sequence[str]) -> Tuple[str, ...]:
    """Add ``column`` to the selection if absent, remove it if present.

    Selection order is the order in which columns were picked.
    """
    if column in selected:
        return tuple(c for c in selected if c != column)
    if column not in columns:
        raise UnknownColumn(column)
    return tuple(selected) + (column,)


def select_all(columns: Sequence[str]) -> Tuple[str, ...]:
    # dict.fromkeys drops duplicate names while keeping the dataset order.
    return tuple(dict.fromkeys(columns))


def clear_all() -> Tuple[str, ...]:
    return ()
