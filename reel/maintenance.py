"""
The maintenance module holds whole-library housekeeping: tagging probable duplicates and transcoded
sources, bulk flag resets, exports, and the full reset.

These operations write straight to the store in one batch each; they are not undoable.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable, Iterable
from typing import Any

from reel.config import Config
from reel.playlists import clear_playlist
from reel.query import DUPLICATE_TAG, TRANSCODED_TAG
from reel.records import LibraryRecord
from reel.store import Store
from reel.sync import is_convertible

logger = logging.getLogger(__name__)


def _write_changed(
    store: Store,
    records: Iterable[LibraryRecord],
    change: Callable[[LibraryRecord], LibraryRecord | None],
) -> int:
    updates = [u for r in records if (u := change(r)) is not None]
    store.upsert_records(updates)
    return len(updates)


def find_duplicates(store: Store) -> int:
    """
    Tag records that share a file size and (rounded) duration as probable duplicates. Records
    without a known duration, and hidden or deleted records, are not considered.
    """
    groups: dict[tuple[int, int], list[LibraryRecord]] = defaultdict(list)
    for record in store.list_records():
        if not record.duration or record.deleted or record.hidden:
            continue
        groups[(record.size, round(record.duration))].append(record)

    candidates = [r for group in groups.values() if len(group) > 1 for r in group]
    count = _write_changed(
        store,
        candidates,
        lambda r: None if DUPLICATE_TAG in r.tags else r.replace(tags=[*r.tags, DUPLICATE_TAG]),
    )
    logger.info(f"Tagged {count} probable duplicates")
    return count


def find_transcoded(c: Config, store: Store) -> int:
    """
    Tag convertible-format files that sit next to an .mp4 with the same name: they are probably the
    source of a transcode that already happened.
    """
    groups: dict[str, list[LibraryRecord]] = defaultdict(list)
    for record in store.list_records():
        path = record.relative_path
        dot = path.rfind(".")
        groups[path[:dot] if dot > path.rfind("/") else path].append(record)

    candidates = [
        r
        for group in groups.values()
        if len(group) > 1 and any(m.relative_path.lower().endswith(".mp4") for m in group)
        for r in group
        if is_convertible(c, r.relative_path)
    ]
    count = _write_changed(
        store,
        candidates,
        lambda r: None if TRANSCODED_TAG in r.tags else r.replace(tags=[*r.tags, TRANSCODED_TAG]),
    )
    logger.info(f"Tagged {count} probable transcoded sources")
    return count


def reset_duplicates(store: Store) -> int:
    count = _write_changed(
        store,
        store.list_records(),
        lambda r: r.replace(tags=[t for t in r.tags if t != DUPLICATE_TAG])
        if DUPLICATE_TAG in r.tags
        else None,
    )
    logger.info(f"Removed the duplicate tag from {count} records")
    return count


def unheart_all(store: Store) -> int:
    count = _write_changed(
        store, store.list_records(), lambda r: r.replace(hearted=False) if r.hearted else None
    )
    logger.info(f"Unhearted {count} records")
    return count


def unhide_all(store: Store) -> int:
    count = _write_changed(
        store, store.list_records(), lambda r: r.replace(hidden=False) if r.hidden else None
    )
    logger.info(f"Unhid {count} records")
    return count


def export_selection(records: Iterable[LibraryRecord]) -> list[dict[str, Any]]:
    return [r.dump_selection() for r in records]


def reset_library(c: Config, store: Store) -> None:
    """Forget everything: records, previews, and the playlist."""
    store.clear_all()
    clear_playlist(c)
    logger.info("Reset the library")
