"""
The sync module reconciles the files observed in the library directory against the stored
records.

Reconciliation is split in two. `plan_sync` is a pure diff: given the observed files and the
existing records it decides which records to create, refresh, or mark missing, and which need
their previews regenerated. `sync_library` gathers the inputs and writes the plan in one atomic
batch. User-entered metadata (rating, tags, flags, title, playback position) is never touched by
either.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from reel.common import now_millis
from reel.config import Config
from reel.files import ObservedFile, scan_library_dir
from reel.records import LibraryRecord, new_record_id
from reel.store import Store

logger = logging.getLogger(__name__)

GENERATING_DESCRIPTION = "Generating thumbnails..."
INCOMPATIBLE_DESCRIPTION = "Incompatible file format."


class FileKind(enum.Enum):
    PLAYABLE = "playable"
    HIDDEN = "hidden"
    OTHER = "other"


def _extension(relative_path: str) -> str:
    name = relative_path.rsplit("/", 1)[-1]
    return name[name.rfind(".") :].lower() if "." in name else ""


def classify_path(c: Config, relative_path: str) -> FileKind:
    ext = _extension(relative_path)
    # Extensionless files are given the benefit of the doubt; the pipeline will find out.
    if not ext or ext in c.playable_extensions:
        return FileKind.PLAYABLE
    if ext in c.hidden_extensions:
        return FileKind.HIDDEN
    return FileKind.OTHER


def is_convertible(c: Config, relative_path: str) -> bool:
    return _extension(relative_path) in c.convertible_extensions


def describe_kind(kind: FileKind, relative_path: str) -> str:
    if kind == FileKind.PLAYABLE:
        return GENERATING_DESCRIPTION
    if kind == FileKind.HIDDEN:
        return f"{_extension(relative_path).lstrip('.').upper()} Image"
    return INCOMPATIBLE_DESCRIPTION


@dataclass
class SyncPlan:
    # Records to write, in one batch.
    upserts: list[LibraryRecord] = field(default_factory=list)
    # Records that need preview generation after the write.
    regenerate: list[LibraryRecord] = field(default_factory=list)
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.upserts and not self.regenerate


def plan_sync(
    c: Config,
    observed: Iterable[ObservedFile],
    existing: Iterable[LibraryRecord],
    thumbnail_ids: set[str],
    now: int | None = None,
) -> SyncPlan:
    now = now if now is not None else now_millis()
    by_path = {r.relative_path: r for r in existing}
    seen_paths: set[str] = set()
    plan = SyncPlan()

    for o in observed:
        seen_paths.add(o.relative_path)
        kind = classify_path(c, o.relative_path)
        record = by_path.get(o.relative_path)

        if record is None:
            record = LibraryRecord(
                id=new_record_id(),
                relative_path=o.relative_path,
                size=o.size,
                last_modified=o.last_modified,
                date_added=now,
                playable=kind == FileKind.PLAYABLE,
                hidden=kind == FileKind.HIDDEN,
                description=describe_kind(kind, o.relative_path),
            )
            logger.debug(f"Sync: new file {o.relative_path} ({kind.value}), assigned {record.id}")
            plan.upserts.append(record)
            plan.created.append(record.id)
            if kind == FileKind.PLAYABLE:
                plan.regenerate.append(record)
            continue

        if record.last_modified != o.last_modified or record.not_found:
            reason = "reappeared" if record.not_found else "modified"
            refreshed = record.replace(
                size=o.size,
                last_modified=o.last_modified,
                not_found=False,
                playable=kind == FileKind.PLAYABLE,
                hidden=record.hidden or kind == FileKind.HIDDEN,
                description=describe_kind(kind, o.relative_path),
                duration=record.duration or None,
            )
            logger.debug(f"Sync: file {o.relative_path} {reason}, refreshing {record.id}")
            plan.upserts.append(refreshed)
            plan.updated.append(record.id)
            if kind == FileKind.PLAYABLE:
                plan.regenerate.append(refreshed)
            continue

        if record.playable and record.id not in thumbnail_ids:
            logger.debug(f"Sync: {o.relative_path} unchanged but has no thumbnail, scheduling")
            plan.regenerate.append(record)

    for record in by_path.values():
        if record.relative_path in seen_paths or record.not_found:
            continue
        logger.debug(f"Sync: {record.relative_path} no longer on disk, marking not found")
        plan.upserts.append(record.replace(not_found=True))
        plan.missing.append(record.id)

    return plan


def sync_library(
    c: Config,
    store: Store,
    observed: Iterable[ObservedFile] | None = None,
) -> SyncPlan:
    """
    Run a sync pass: scan the library directory (unless files are passed in), diff against the
    store, and write the result in one batch. Returns the plan so the caller can hand
    `plan.regenerate` to the processing pipeline.
    """
    if observed is None:
        observed = scan_library_dir(c.library_dir)
    plan = plan_sync(c, observed, store.list_records(), store.list_thumbnail_ids())
    store.upsert_records(plan.upserts)
    logger.info(
        f"Synced library: {len(plan.created)} new, {len(plan.updated)} updated, "
        f"{len(plan.missing)} missing, {len(plan.regenerate)} queued for previews"
    )
    return plan
