import base64
import sqlite3
from pathlib import Path

import pytest

from conftest import make_record
from reel.config import Config
from reel.store import (
    SCHEMA_PATH,
    SCHEMA_VERSION,
    BatchWriteError,
    RecordDoesNotExistError,
    Store,
    StoreAccessError,
)


def test_open_creates_schema(config: Config) -> None:
    with Store(config.database_path) as store:
        assert store.schema_version == SCHEMA_VERSION
        tables = {
            row["name"]
            for row in store.conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        }
        assert {"records", "records_tags", "thumbnails", "timeline_thumbnails"} <= tables


def test_closed_store_raises(config: Config) -> None:
    store = Store(config.database_path)
    with pytest.raises(StoreAccessError):
        store.list_records()


def test_open_unreadable_path(isolated_dir: Path) -> None:
    path = isolated_dir / "not-a-db"
    path.mkdir()
    with pytest.raises(StoreAccessError):
        Store(path).open()


def test_newer_schema_rejected(config: Config) -> None:
    with Store(config.database_path) as store:
        store.conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1}")
    with pytest.raises(StoreAccessError):
        Store(config.database_path).open()


def test_migrates_version_one_database(config: Config) -> None:
    # Build a database as the first release would have left it.
    conn = sqlite3.connect(config.database_path)
    with SCHEMA_PATH.open("r") as fp:
        conn.executescript(fp.read())
    conn.execute(
        "INSERT INTO records (id, relative_path, size, last_modified) VALUES ('r1', 'old.mp4', 5, 777)"
    )
    conn.execute("INSERT INTO records_tags (record_id, tag) VALUES ('r1', 'kept')")
    conn.execute("PRAGMA user_version = 1")
    conn.commit()
    conn.close()

    with Store(config.database_path) as store:
        assert store.schema_version == SCHEMA_VERSION
        record = store.get_record("r1")
        assert record is not None
        assert record.tags == ["kept"]
        assert record.date_added == 777
        assert record.rating == 0
        assert record.hearted is False
        assert record.not_found is False
        assert record.playable is True
        assert record.description == ""
        assert store.get_timeline("r1") is None


def test_upsert_and_get(store: Store) -> None:
    record = make_record("r1", "a/one.mp4", tags=["a", "b"], rating=4, title="One")
    store.upsert_record(record)
    assert store.get_record("r1") == record
    assert store.get_record_by_path("a/one.mp4") == record
    assert store.get_record("nope") is None
    assert store.get_record_by_path("nope.mp4") is None

    record.tags = ["c"]
    record.saved_position = 12.5
    store.upsert_record(record)
    assert store.get_record("r1") == record


def test_upsert_with_thumbnail_keeps_existing_when_omitted(store: Store) -> None:
    record = make_record("r1", "one.mp4")
    store.upsert_record(record, thumbnail=b"jpeg")
    assert store.get_thumbnail("r1") == b"jpeg"
    store.upsert_record(record.replace(rating=1))
    assert store.get_thumbnail("r1") == b"jpeg"
    assert store.list_thumbnail_ids() == {"r1"}


def test_list_records_ordered_by_path(store: Store) -> None:
    store.upsert_records(
        [make_record("r2", "b.mp4"), make_record("r1", "a.mp4"), make_record("r3", "c.mp4")]
    )
    assert [r.id for r in store.list_records()] == ["r1", "r2", "r3"]
    assert [r.id for r in store.list_records(["r3", "r1"])] == ["r1", "r3"]
    assert store.list_records([]) == []


def test_batch_write_is_atomic(store: Store) -> None:
    store.upsert_record(make_record("r1", "a.mp4", rating=1))
    # The second record collides with the first on relative path.
    with pytest.raises(BatchWriteError):
        store.upsert_records(
            [make_record("r1", "a.mp4", rating=5), make_record("r2", "a.mp4")]
        )
    record = store.get_record("r1")
    assert record is not None
    assert record.rating == 1
    assert store.get_record("r2") is None


def test_delete_record_cascades(seeded_store: Store) -> None:
    seeded_store.set_timeline("r1", [b"f1", b"f2"])
    seeded_store.delete_record("r1")
    assert seeded_store.get_record("r1") is None
    assert seeded_store.get_thumbnail("r1") is None
    assert seeded_store.get_timeline("r1") is None
    with pytest.raises(RecordDoesNotExistError):
        seeded_store.delete_record("r1")


def test_timeline_roundtrip(seeded_store: Store) -> None:
    seeded_store.set_timeline("r1", [b"f1", b"f2", b"f3"])
    assert seeded_store.get_timeline("r1") == [b"f1", b"f2", b"f3"]
    seeded_store.set_timeline("r1", [b"g1"])
    assert seeded_store.get_timeline("r1") == [b"g1"]
    seeded_store.delete_timeline("r1")
    assert seeded_store.get_timeline("r1") is None


def test_previews_require_record(store: Store) -> None:
    with pytest.raises(RecordDoesNotExistError):
        store.set_thumbnail("nope", b"x")
    with pytest.raises(RecordDoesNotExistError):
        store.set_timeline("nope", [b"x"])


def test_clear_all(seeded_store: Store) -> None:
    seeded_store.set_timeline("r1", [b"f1"])
    seeded_store.clear_all()
    assert seeded_store.list_records() == []
    assert seeded_store.list_thumbnail_ids() == set()
    assert seeded_store.get_timeline("r1") is None


def test_export(seeded_store: Store) -> None:
    seeded_store.set_timeline("r2", [b"f1", b"f2"])
    data = seeded_store.export()
    assert [r["id"] for r in data["records"]] == ["r1", "r2", "r4", "r3"]
    assert data["thumbnails"] == [
        {"record_id": "r1", "image": "data:image/jpeg;base64," + base64.b64encode(b"thumb-r1").decode()},
        {"record_id": "r2", "image": "data:image/jpeg;base64," + base64.b64encode(b"thumb-r2").decode()},
    ]
    assert data["timeline_thumbnails"] == [
        {
            "record_id": "r2",
            "images": [
                "data:image/jpeg;base64," + base64.b64encode(b"f1").decode(),
                "data:image/jpeg;base64," + base64.b64encode(b"f2").decode(),
            ],
        }
    ]


def test_nested_transaction_joins_outer(store: Store) -> None:
    with pytest.raises(RuntimeError):
        with store.transaction():
            store.upsert_record(make_record("r1", "a.mp4"))
            raise RuntimeError("boom")
    assert store.get_record("r1") is None
