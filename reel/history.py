"""
The history module makes metadata edits reversible.

Every edit, single or batch, is committed to an `EditHistory` as one batch of pre-mutation
snapshots before the new state is written. Undo pops a batch, captures the current state of the
same records for redo, and writes the snapshots back in one atomic store write. History is linear:
committing anything new discards the redo stack.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from reel.common import ReelExpectedError, normalize_tags
from reel.config import Config
from reel.previews import PreviewCache
from reel.records import EDITABLE_FIELDS, SINGLE_EDITABLE_FIELDS, LibraryRecord
from reel.store import RecordDoesNotExistError, Store

logger = logging.getLogger(__name__)


class InvalidEditError(ReelExpectedError):
    pass


@dataclass(frozen=True)
class HistoryEntry:
    record_id: str
    snapshot: LibraryRecord


HistoryBatch = list[HistoryEntry]


class EditHistory:
    def __init__(self, store: Store, preview_cache: PreviewCache | None = None) -> None:
        self.store = store
        self.preview_cache = preview_cache
        self.undo_stack: list[HistoryBatch] = []
        self.redo_stack: list[HistoryBatch] = []

    @property
    def can_undo(self) -> bool:
        return bool(self.undo_stack)

    @property
    def can_redo(self) -> bool:
        return bool(self.redo_stack)

    def clear(self) -> None:
        self.undo_stack.clear()
        self.redo_stack.clear()

    def commit(self, snapshots: Iterable[LibraryRecord]) -> None:
        """Record the pre-mutation state of records about to be changed."""
        batch = [HistoryEntry(s.id, s.snapshot()) for s in snapshots]
        if not batch:
            return
        self.undo_stack.append(batch)
        self.redo_stack.clear()
        logger.debug(f"Committed history batch of {len(batch)} records")

    def undo(self) -> list[LibraryRecord]:
        if not self.undo_stack:
            logger.debug("No-Op: Nothing to undo")
            return []
        return self._swap(self.undo_stack, self.redo_stack, "undo")

    def redo(self) -> list[LibraryRecord]:
        if not self.redo_stack:
            logger.debug("No-Op: Nothing to redo")
            return []
        return self._swap(self.redo_stack, self.undo_stack, "redo")

    def _swap(self, source: list[HistoryBatch], target: list[HistoryBatch], verb: str) -> list[LibraryRecord]:
        batch = source.pop()
        current = {r.id: r for r in self.store.list_records(e.record_id for e in batch)}
        restored = [e.snapshot.snapshot() for e in batch]
        try:
            self.store.upsert_records(restored)
        except BaseException:
            # The write was rolled back, so the batch is still the next thing to undo/redo.
            source.append(batch)
            raise
        target.append([HistoryEntry(rid, r) for rid, r in current.items()])

        if self.preview_cache is not None:
            for r in restored:
                before = current.get(r.id)
                if before is None or (before.playable, before.last_modified) != (r.playable, r.last_modified):
                    self.preview_cache.delete(r.id)

        logger.info(f"Applied {verb} to {len(restored)} records")
        return restored


def apply_changes(
    c: Config,
    record: LibraryRecord,
    changes: dict[str, Any],
    allowed: frozenset[str] = SINGLE_EDITABLE_FIELDS,
) -> LibraryRecord:
    """Validate and apply a set of field changes, returning a new record."""
    for key, value in changes.items():
        if key not in allowed:
            raise InvalidEditError(f"Field {key} cannot be edited")
        _validate(key, value)

    changes = dict(changes)
    if "tags" in changes:
        changes["tags"] = normalize_tags(changes["tags"])
    if "title" in changes:
        changes["title"] = changes["title"] or None

    updated = record.replace(**changes)
    # Saving a position past the threshold counts as having seen the record. An explicit seen value
    # in the same edit wins.
    if (
        "saved_position" in changes
        and "seen" not in changes
        and not record.seen
        and updated.saved_position is not None
        and updated.saved_position > c.seen_threshold_seconds
    ):
        updated.seen = True
    return updated


def _validate(key: str, value: Any) -> None:
    if key in ("rating", "times_opened"):
        if not isinstance(value, int) or isinstance(value, bool) or value < 0:
            raise InvalidEditError(f"Field {key} must be a non-negative integer: got {value!r}")
    elif key in ("seen", "hearted", "hidden", "deleted"):
        if not isinstance(value, bool):
            raise InvalidEditError(f"Field {key} must be a boolean: got {value!r}")
    elif key == "tags":
        if not isinstance(value, list | tuple | set) or not all(isinstance(t, str) for t in value):
            raise InvalidEditError(f"Field tags must be a list of strings: got {value!r}")
    elif key in ("title", "description"):
        if value is not None and not isinstance(value, str):
            raise InvalidEditError(f"Field {key} must be a string: got {value!r}")
    elif key == "saved_position":
        if value is not None and (
            not isinstance(value, int | float) or isinstance(value, bool) or value < 0
        ):
            raise InvalidEditError(f"Field saved_position must be a non-negative number: got {value!r}")


def edit_record(
    c: Config,
    store: Store,
    history: EditHistory,
    record_id: str,
    **changes: Any,
) -> LibraryRecord:
    record = store.get_record(record_id)
    if record is None:
        raise RecordDoesNotExistError(f"Record {record_id} does not exist")
    updated = apply_changes(c, record, changes)
    if updated == record:
        logger.debug(f"No-Op: Edit of {record.relative_path} changed nothing")
        return record
    store.upsert_record(updated)
    history.commit([record])
    logger.info(f"Edited record {record.relative_path}")
    return updated


def batch_edit(
    c: Config,
    store: Store,
    history: EditHistory,
    records: Iterable[LibraryRecord],
    **changes: Any,
) -> list[LibraryRecord]:
    """
    Apply the same changes to every given record (normally the currently visible set). The whole
    batch becomes one history entry and one atomic write.
    """
    before: list[LibraryRecord] = []
    after: list[LibraryRecord] = []
    for record in records:
        updated = apply_changes(c, record, changes, allowed=EDITABLE_FIELDS)
        if updated != record:
            before.append(record)
            after.append(updated)
    if not after:
        logger.debug("No-Op: Batch edit changed nothing")
        return []
    store.upsert_records(after)
    history.commit(before)
    logger.info(f"Batch edited {len(after)} records: {', '.join(sorted(changes))}")
    return after
