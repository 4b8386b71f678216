import logging
import os
from collections.abc import Iterator
from pathlib import Path

import pytest
from click.testing import CliRunner

from reel.config import Config
from reel.records import LibraryRecord
from reel.store import Store

logger = logging.getLogger(__name__)

# Fixed timestamps (ms) so that tests never depend on the wall clock.
T0 = 1_700_000_000_000
T1 = 1_700_000_100_000


@pytest.fixture(autouse=True)
def debug_logging() -> None:
    logging.getLogger().setLevel(logging.DEBUG)


@pytest.fixture()
def isolated_dir() -> Iterator[Path]:
    with CliRunner().isolated_filesystem():
        yield Path.cwd()


@pytest.fixture()
def config(isolated_dir: Path) -> Config:
    library_dir = isolated_dir / "library"
    library_dir.mkdir()
    data_dir = isolated_dir / "data"
    data_dir.mkdir()
    return Config(library_dir=library_dir, data_dir=data_dir)


@pytest.fixture()
def store(config: Config) -> Iterator[Store]:
    with Store(config.database_path) as s:
        yield s


def make_record(
    record_id: str,
    relative_path: str,
    size: int = 1000,
    last_modified: int = T0,
    **kwargs: object,
) -> LibraryRecord:
    return LibraryRecord(
        id=record_id,
        relative_path=relative_path,
        size=size,
        last_modified=last_modified,
        date_added=last_modified,
        **kwargs,  # type: ignore
    )


@pytest.fixture()
def seeded_store(store: Store) -> Store:
    store.upsert_records(
        [
            make_record("r1", "a/one.mp4", size=100, duration=60.0, rating=3, tags=["Beach"]),
            make_record("r2", "a/two.mp4", size=200, duration=120.0, seen=True),
            make_record("r3", "b/three.mkv", size=300, playable=False, description="Incompatible file format."),
            make_record("r4", "b/four.mp4", size=400, hidden=True),
        ]
    )
    store.set_thumbnail("r1", b"thumb-r1")
    store.set_thumbnail("r2", b"thumb-r2")
    return store


def write_library_file(c: Config, relative_path: str, content: bytes = b"data", mtime_ms: int = T0) -> Path:
    path = c.library_dir / relative_path
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    os.utime(path, ns=(mtime_ms * 1_000_000, mtime_ms * 1_000_000))
    return path


class FakeProbe:
    """
    Deterministic stand-in for MediaProbe. Files whose name contains "corrupt" fail every probe;
    everything else succeeds with bytes derived from the file name.
    """

    def __init__(self, durations: dict[str, float] | None = None) -> None:
        self.durations = durations or {}
        self.calls: list[tuple[str, str]] = []

    def duration(self, path: Path) -> float | None:
        self.calls.append(("duration", path.name))
        if "corrupt" in path.name:
            return None
        return self.durations.get(path.name, 60.0)

    def primary_frame(self, path: Path) -> bytes | None:
        self.calls.append(("primary_frame", path.name))
        if "corrupt" in path.name:
            return None
        return f"thumb:{path.name}".encode()

    def timeline_frames(self, path: Path, count: int) -> list[bytes] | None:
        self.calls.append(("timeline_frames", path.name))
        if "corrupt" in path.name:
            return None
        return [f"frame:{path.name}:{i}".encode() for i in range(count)]


@pytest.fixture()
def probe() -> FakeProbe:
    return FakeProbe()
