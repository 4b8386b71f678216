from pathlib import Path

import pytest

from conftest import T0, make_record, write_library_file
from reel.config import Config
from reel.files import FileResolver, LibraryAccessError, scan_library_dir


def test_scan_library_dir(config: Config) -> None:
    write_library_file(config, "b/two.mp4", b"22", mtime_ms=T0)
    write_library_file(config, "a/one.mp4", b"1", mtime_ms=T0 + 5)
    write_library_file(config, "noext", b"333")

    observed = scan_library_dir(config.library_dir)
    assert [o.relative_path for o in observed] == ["a/one.mp4", "b/two.mp4", "noext"]
    assert observed[0].size == 1
    assert observed[0].last_modified == T0 + 5
    assert observed[0].path == config.library_dir / "a" / "one.mp4"


def test_scan_missing_root(isolated_dir: Path) -> None:
    with pytest.raises(LibraryAccessError):
        scan_library_dir(isolated_dir / "nope")


def test_file_resolver(config: Config) -> None:
    path = write_library_file(config, "a/one.mp4")
    resolver = FileResolver(scan_library_dir(config.library_dir))
    assert len(resolver) == 1
    assert resolver.resolve(make_record("r1", "a/one.mp4")) == path
    assert resolver.resolve(make_record("r2", "a/other.mp4")) is None

    # Files that vanish after the scan are no longer resolvable.
    path.unlink()
    assert resolver.resolve(make_record("r1", "a/one.mp4")) is None

    assert not FileResolver([])
