"""
The files module enumerates the library directory and maps records back to files on disk.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable
from dataclasses import dataclass
from pathlib import Path

from reel.common import ReelExpectedError
from reel.records import LibraryRecord

logger = logging.getLogger(__name__)


class LibraryAccessError(ReelExpectedError):
    pass


@dataclass(frozen=True)
class ObservedFile:
    # POSIX-style path relative to the library directory.
    relative_path: str
    size: int
    # Milliseconds since the epoch.
    last_modified: int
    path: Path


def scan_library_dir(root: Path) -> list[ObservedFile]:
    """
    Recursively enumerate every file under the library directory, sorted by relative path.

    Enumeration is all-or-nothing: if the root or any subdirectory cannot be read, we raise
    LibraryAccessError rather than return a partial listing, since a partial listing would mark the
    unlisted records as missing. Files that disappear between listing and stat are skipped.
    """
    if not root.is_dir():
        raise LibraryAccessError(f"Library directory {root} does not exist or is not a directory")

    def onerror(e: OSError) -> None:
        raise LibraryAccessError(f"Failed to read library directory {e.filename}: {e}") from e

    observed: list[ObservedFile] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=onerror):
        dirnames.sort()
        for name in filenames:
            path = Path(dirpath) / name
            try:
                st = path.stat()
            except FileNotFoundError:
                logger.debug(f"Skipping {path}: file disappeared during scan")
                continue
            observed.append(
                ObservedFile(
                    relative_path=path.relative_to(root).as_posix(),
                    size=st.st_size,
                    last_modified=st.st_mtime_ns // 1_000_000,
                    path=path,
                )
            )
    observed.sort(key=lambda o: o.relative_path)
    logger.debug(f"Found {len(observed)} files in library directory {root}")
    return observed


class FileResolver:
    """Resolves records to the files observed in the most recent scan."""

    def __init__(self, observed: Iterable[ObservedFile]) -> None:
        self._files = {o.relative_path: o for o in observed}

    def __len__(self) -> int:
        return len(self._files)

    def __bool__(self) -> bool:
        return bool(self._files)

    def resolve(self, record: LibraryRecord) -> Path | None:
        o = self._files.get(record.relative_path)
        if o is None:
            return None
        if not o.path.is_file():
            logger.debug(f"Observed file {o.path} is no longer accessible")
            return None
        return o.path
