"""
The query module decides which records are visible: status and tag filters, the search query,
sorting, and pagination. Batch edits apply to exactly the set this module returns.

Search queries are whitespace-separated terms. Terms that contain one of `:`, `=`, `>`, or `<` are
structured conditions on rating, size, or duration (`rating>3`, `size<1.5GB`, `duration:60`); the
remaining terms are joined and matched as text against the title (or path) and the tags.
"""

from __future__ import annotations

import enum
import hashlib
import logging
import re
from collections.abc import Iterable
from dataclasses import dataclass, field

from reel.common import ReelExpectedError
from reel.records import LibraryRecord

logger = logging.getLogger(__name__)

DUPLICATE_TAG = "Duplicate"
TRANSCODED_TAG = "Transcoded"

CONDITION_REGEX = re.compile(r"^(rating|size|duration)([:><=])(.+)$")
SIZE_UNITS = {"KB": 1024, "MB": 1024**2, "GB": 1024**3}


class InvalidQueryError(ReelExpectedError):
    pass


class StatusFilter(enum.Enum):
    WATCHED = "watched"
    TAGGED = "tagged"
    RATED = "rated"
    INCOMPATIBLE = "incompatible"
    HEARTED = "hearted"
    DUPLICATES = "duplicates"
    HIDDEN = "hidden"
    DELETED = "deleted"
    RENAMED = "renamed"
    NOT_FOUND = "not-found"


class FilterMode(enum.Enum):
    INCLUDE = "include"
    EXCLUDE = "exclude"


class SortCriteria(enum.Enum):
    FILENAME = "filename"
    PATH = "path"
    RATING = "rating"
    TIMES_OPENED = "times_opened"
    DATE_ADDED = "date_added"
    LAST_MODIFIED = "last_modified"
    DURATION = "duration"
    FILE_SIZE = "file_size"
    RANDOM = "random"


def matches_status(record: LibraryRecord, status: StatusFilter) -> bool:
    match status:
        case StatusFilter.WATCHED:
            return record.seen
        case StatusFilter.TAGGED:
            return bool(record.tags)
        case StatusFilter.RATED:
            return record.rating > 0
        case StatusFilter.INCOMPATIBLE:
            return not record.playable
        case StatusFilter.HEARTED:
            return record.hearted
        case StatusFilter.DUPLICATES:
            return DUPLICATE_TAG in record.tags
        case StatusFilter.HIDDEN:
            return record.hidden
        case StatusFilter.DELETED:
            return record.deleted
        case StatusFilter.RENAMED:
            return bool(record.title)
        case StatusFilter.NOT_FOUND:
            return record.not_found


def parse_status_filters(values: Iterable[str]) -> dict[StatusFilter, FilterMode]:
    """Parse `name=include` / `name=exclude` pairs. A bare name means include."""
    filters: dict[StatusFilter, FilterMode] = {}
    for value in values:
        name, _, mode = value.partition("=")
        try:
            filters[StatusFilter(name.strip())] = FilterMode(mode.strip() or "include")
        except ValueError as e:
            valid = ", ".join(s.value for s in StatusFilter)
            raise InvalidQueryError(
                f"Invalid status filter {value!r}: expected NAME[=include|exclude] with NAME one of {valid}"
            ) from e
    return filters


def parse_size(value: str) -> float | None:
    value = value.upper()
    multiplier = 1
    for suffix, m in SIZE_UNITS.items():
        if value.endswith(suffix):
            value = value[: -len(suffix)]
            multiplier = m
            break
    try:
        return float(value) * multiplier
    except ValueError:
        return None


@dataclass(frozen=True)
class Condition:
    key: str
    op: str
    value: float

    def matches(self, record: LibraryRecord) -> bool:
        actual: float
        if self.key == "rating":
            actual = record.rating
        elif self.key == "size":
            actual = record.size
        else:
            actual = record.duration or 0
        if self.op == ">":
            return actual > self.value
        if self.op == "<":
            return actual < self.value
        return actual == self.value


@dataclass(frozen=True)
class SearchQuery:
    text: str = ""
    conditions: list[Condition] = field(default_factory=list)

    @classmethod
    def parse(cls, query: str) -> SearchQuery:
        terms: list[str] = []
        conditions: list[Condition] = []
        for part in query.split():
            part = part.lower()
            if not any(op in part for op in ":><="):
                terms.append(part)
                continue
            m = CONDITION_REGEX.match(part)
            if not m:
                logger.debug(f"Ignoring unrecognized search condition {part}")
                continue
            key, op, raw = m.groups()
            value = parse_size(raw) if key == "size" else _parse_float(raw)
            if value is None:
                logger.debug(f"Ignoring search condition {part}: unparsable value")
                continue
            conditions.append(Condition(key, op, value))
        return cls(text=" ".join(terms), conditions=conditions)

    def matches(self, record: LibraryRecord) -> bool:
        if not all(cond.matches(record) for cond in self.conditions):
            return False
        if self.text:
            if self.text in record.display_name.lower():
                return True
            return any(self.text in t.lower() for t in record.tags)
        return True


def _parse_float(value: str) -> float | None:
    try:
        return float(value)
    except ValueError:
        return None


def filter_records(
    records: Iterable[LibraryRecord],
    status_filters: dict[StatusFilter, FilterMode] | None = None,
    tags: Iterable[str] = (),
    query: SearchQuery | None = None,
) -> list[LibraryRecord]:
    required_tags = set(tags)
    rv: list[LibraryRecord] = []
    for record in records:
        if status_filters:
            if not all(
                matches_status(record, status) == (mode == FilterMode.INCLUDE)
                for status, mode in status_filters.items()
            ):
                continue
        elif record.hidden or record.deleted or record.not_found:
            # With no status filters, the default view omits what the user put away.
            continue
        if required_tags and not required_tags.issubset(record.tags):
            continue
        if query is not None and not query.matches(record):
            continue
        rv.append(record)
    return rv


def _random_key(record: LibraryRecord, seed: int) -> str:
    return hashlib.sha256(f"{seed}:{record.id}".encode()).hexdigest()


def sort_records(
    records: Iterable[LibraryRecord],
    criteria: SortCriteria = SortCriteria.FILENAME,
    descending: bool = False,
    seed: int = 0,
) -> list[LibraryRecord]:
    """Sort stably; ties keep the store's path order."""
    keys = {
        SortCriteria.FILENAME: lambda r: r.filename.lower(),
        SortCriteria.PATH: lambda r: r.relative_path.lower(),
        SortCriteria.RATING: lambda r: r.rating,
        SortCriteria.TIMES_OPENED: lambda r: r.times_opened,
        SortCriteria.DATE_ADDED: lambda r: r.date_added,
        SortCriteria.LAST_MODIFIED: lambda r: r.last_modified,
        SortCriteria.DURATION: lambda r: r.duration or 0,
        SortCriteria.FILE_SIZE: lambda r: r.size,
        SortCriteria.RANDOM: lambda r: _random_key(r, seed),
    }
    return sorted(records, key=keys[criteria], reverse=descending)


def page_count(total: int, page_size: int) -> int:
    return max(1, -(-total // page_size))


def paginate(records: list[LibraryRecord], page: int, page_size: int) -> list[LibraryRecord]:
    """Return the 1-indexed page. Out-of-range pages are empty."""
    if page < 1:
        raise InvalidQueryError(f"Page must be a positive integer: got {page}")
    start = (page - 1) * page_size
    return records[start : start + page_size]


def visible_records(
    records: Iterable[LibraryRecord],
    status_filters: dict[StatusFilter, FilterMode] | None = None,
    tags: Iterable[str] = (),
    query: str = "",
    criteria: SortCriteria = SortCriteria.FILENAME,
    descending: bool = False,
    seed: int = 0,
) -> list[LibraryRecord]:
    """Every record that passes the filters, in display order. Pagination is left to the caller."""
    filtered = filter_records(records, status_filters, tags, SearchQuery.parse(query))
    return sort_records(filtered, criteria, descending, seed)
