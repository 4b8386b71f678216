"""
The records module defines the LibraryRecord, the unit of the library: one record per distinct
relative file path in the library directory.

Records are decoded from storage exactly once, in `LibraryRecord.from_row`, which is where defaults
for absent columns are applied. No other module should need to know which columns may be NULL.
"""

from __future__ import annotations

import copy
import dataclasses
import sqlite3
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import uuid6

from reel.common import normalize_tags

# Defaults applied to columns that older schema versions did not have, or that were written NULL.
FIELD_DEFAULTS: dict[str, Any] = {
    "duration": None,
    "rating": 0,
    "seen": False,
    "hearted": False,
    "hidden": False,
    "deleted": False,
    "not_found": False,
    "title": None,
    "saved_position": None,
    "times_opened": 0,
    "playable": True,
    "description": "",
}

# Fields that a user may change through an edit. Everything else is owned by the sync engine or the
# processing pipeline.
EDITABLE_FIELDS = frozenset(
    [
        "rating",
        "seen",
        "tags",
        "hearted",
        "hidden",
        "deleted",
        "title",
        "description",
    ]
)

# Single-record edits may additionally touch playback bookkeeping.
SINGLE_EDITABLE_FIELDS = EDITABLE_FIELDS | {"saved_position", "times_opened"}

SELECTION_FIELDS = ["id", "relative_path", "rating", "tags", "seen", "hearted", "hidden", "title"]


def new_record_id() -> str:
    return str(uuid6.uuid7())


@dataclass(slots=True)
class LibraryRecord:
    id: str
    relative_path: str
    size: int
    last_modified: int
    date_added: int
    duration: float | None = None
    rating: int = 0
    seen: bool = False
    tags: list[str] = field(default_factory=list)
    hearted: bool = False
    hidden: bool = False
    deleted: bool = False
    not_found: bool = False
    title: str | None = None
    saved_position: float | None = None
    times_opened: int = 0
    playable: bool = True
    description: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row | Mapping[str, Any], tags: list[str]) -> LibraryRecord:
        keys = row.keys()

        def get(name: str) -> Any:
            value = row[name] if name in keys else None
            return FIELD_DEFAULTS[name] if value is None else value

        last_modified = int(row["last_modified"] or 0)
        date_added = row["date_added"] if "date_added" in keys else None
        duration = get("duration")
        return cls(
            id=row["id"],
            relative_path=row["relative_path"],
            size=int(row["size"] or 0),
            last_modified=last_modified,
            date_added=int(date_added or last_modified or 0),
            duration=float(duration) if duration else None,
            rating=int(get("rating")),
            seen=bool(get("seen")),
            tags=normalize_tags(tags),
            hearted=bool(get("hearted")),
            hidden=bool(get("hidden")),
            deleted=bool(get("deleted")),
            not_found=bool(get("not_found")),
            title=get("title") or None,
            saved_position=get("saved_position"),
            times_opened=int(get("times_opened")),
            playable=bool(get("playable")),
            description=get("description"),
        )

    @property
    def filename(self) -> str:
        return self.relative_path.rsplit("/", 1)[-1]

    @property
    def extension(self) -> str:
        name = self.filename
        return name[name.rfind(".") :].lower() if "." in name else ""

    @property
    def display_name(self) -> str:
        return self.title or self.relative_path

    def snapshot(self) -> LibraryRecord:
        return copy.deepcopy(self)

    def replace(self, **changes: Any) -> LibraryRecord:
        if "tags" in changes:
            changes["tags"] = normalize_tags(changes["tags"])
        return dataclasses.replace(self.snapshot(), **changes)

    def dump(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    def dump_selection(self) -> dict[str, Any]:
        return {k: copy.copy(getattr(self, k)) for k in SELECTION_FIELDS}
