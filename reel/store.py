"""
The store module is the durable home of the library: records, primary thumbnails, and timeline
preview strips, kept in a single SQLite database.

A `Store` is explicitly constructed, opened, and closed by its owner, and passed to whoever needs
it. There is no module-level handle.

The schema is versioned with `PRAGMA user_version`. Version 1 is `schema.sql`; every later version
is an entry in `MIGRATIONS` that only adds nullable columns or new tables, so that rows written by
older versions decode with the defaults in `reel.records`.
"""

from __future__ import annotations

import base64
import binascii
import logging
import random
import sqlite3
import time
from collections import defaultdict
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path
from types import TracebackType
from typing import Any

from reel.common import ReelExpectedError, normalize_tags
from reel.records import LibraryRecord

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / "schema.sql"

# Entry N (zero-indexed) upgrades a database from version N+1 to version N+2.
MIGRATIONS: list[list[str]] = [
    [
        "ALTER TABLE records ADD COLUMN hearted BOOLEAN",
        "ALTER TABLE records ADD COLUMN hidden BOOLEAN",
        "ALTER TABLE records ADD COLUMN title TEXT",
    ],
    [
        """
        CREATE TABLE timeline_thumbnails (
            record_id TEXT REFERENCES records(id) ON DELETE CASCADE
          , position INTEGER NOT NULL
          , image BLOB NOT NULL
          , PRIMARY KEY (record_id, position)
        )
        """,
    ],
    [
        "ALTER TABLE records ADD COLUMN deleted BOOLEAN",
        "ALTER TABLE records ADD COLUMN not_found BOOLEAN",
    ],
]

SCHEMA_VERSION = 1 + len(MIGRATIONS)

RECORD_COLUMNS = [
    "id",
    "relative_path",
    "size",
    "last_modified",
    "date_added",
    "duration",
    "rating",
    "seen",
    "saved_position",
    "times_opened",
    "playable",
    "description",
    "hearted",
    "hidden",
    "title",
    "deleted",
    "not_found",
]


class StoreAccessError(ReelExpectedError):
    pass


class BatchWriteError(ReelExpectedError):
    pass


class RecordDoesNotExistError(ReelExpectedError):
    pass


def _schema_statements() -> list[str]:
    with SCHEMA_PATH.open("r") as fp:
        lines = [ln for ln in fp.read().splitlines() if not ln.lstrip().startswith("--")]
    return [s.strip() for s in "\n".join(lines).split(";") if s.strip()]


def _data_url(image: bytes) -> str:
    return "data:image/jpeg;base64," + base64.b64encode(image).decode()


class Store:
    def __init__(self, path: Path) -> None:
        self.path = path
        self._conn: sqlite3.Connection | None = None

    def __enter__(self) -> Store:
        return self.open()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def open(self) -> Store:
        if self._conn is not None:
            return self
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(self.path, isolation_level=None, timeout=15.0)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys=ON")
            conn.execute("PRAGMA journal_mode=WAL")
        except (OSError, sqlite3.Error) as e:
            raise StoreAccessError(f"Failed to open library database at {self.path}: {e}") from e
        self._conn = conn
        try:
            self.migrate()
        except BaseException:
            self.close()
            raise
        logger.debug(f"Opened library database at {self.path}")
        return self

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None
            logger.debug(f"Closed library database at {self.path}")

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreAccessError(f"Library database at {self.path} is not open")
        return self._conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Wrap the block in an IMMEDIATE transaction. Nested calls join the outer transaction rather
        than opening a new one.
        """
        conn = self.conn
        tx_log_id = binascii.b2a_hex(random.randbytes(8)).decode()
        start_time = time.time()

        if conn.in_transaction:
            logger.debug(f"Transaction {tx_log_id}. Starting nested transaction, NoOp.")
            yield conn
            return

        logger.debug(f"Transaction {tx_log_id}. Starting transaction.")
        with conn:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
        logger.debug(
            f"Transaction {tx_log_id}. End of transaction. Duration: {time.time() - start_time}."
        )

    @property
    def schema_version(self) -> int:
        return int(self.conn.execute("PRAGMA user_version").fetchone()[0])

    def migrate(self) -> None:
        try:
            version = self.schema_version
            if version > SCHEMA_VERSION:
                raise StoreAccessError(
                    f"Library database at {self.path} is at schema version {version}, which is "
                    f"newer than this version of reel supports ({SCHEMA_VERSION})"
                )
            if version == SCHEMA_VERSION:
                return
            with self.transaction() as conn:
                if version == 0:
                    logger.info(f"Creating library database at {self.path}")
                    for stmt in _schema_statements():
                        conn.execute(stmt)
                    version = 1
                for target, statements in enumerate(MIGRATIONS[version - 1 :], start=version + 1):
                    logger.info(f"Migrating library database to schema version {target}")
                    for stmt in statements:
                        conn.execute(stmt)
                conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
        except sqlite3.Error as e:
            raise StoreAccessError(f"Failed to migrate library database at {self.path}: {e}") from e

    # Records.

    def _tags_by_record(self, ids: list[str] | None = None) -> dict[str, list[str]]:
        tags: dict[str, list[str]] = defaultdict(list)
        if ids is None:
            cursor = self.conn.execute("SELECT record_id, tag FROM records_tags")
        else:
            cursor = self.conn.execute(
                f"SELECT record_id, tag FROM records_tags WHERE record_id IN ({','.join(['?'] * len(ids))})",
                ids,
            )
        for row in cursor:
            tags[row["record_id"]].append(row["tag"])
        return tags

    def get_record(self, record_id: str) -> LibraryRecord | None:
        row = self.conn.execute("SELECT * FROM records WHERE id = ?", (record_id,)).fetchone()
        if row is None:
            return None
        return LibraryRecord.from_row(row, self._tags_by_record([record_id])[record_id])

    def get_record_by_path(self, relative_path: str) -> LibraryRecord | None:
        row = self.conn.execute(
            "SELECT * FROM records WHERE relative_path = ?", (relative_path,)
        ).fetchone()
        if row is None:
            return None
        return LibraryRecord.from_row(row, self._tags_by_record([row["id"]])[row["id"]])

    def list_records(self, ids: Iterable[str] | None = None) -> list[LibraryRecord]:
        """Return records ordered by relative path, optionally restricted to the given ids."""
        if ids is None:
            rows = self.conn.execute("SELECT * FROM records ORDER BY relative_path").fetchall()
            tags = self._tags_by_record()
        else:
            idlist = list(ids)
            if not idlist:
                return []
            rows = self.conn.execute(
                f"SELECT * FROM records WHERE id IN ({','.join(['?'] * len(idlist))}) ORDER BY relative_path",
                idlist,
            ).fetchall()
            tags = self._tags_by_record(idlist)
        return [LibraryRecord.from_row(row, tags[row["id"]]) for row in rows]

    def _write_record(self, conn: sqlite3.Connection, record: LibraryRecord) -> None:
        values = [getattr(record, col) for col in RECORD_COLUMNS]
        updates = ", ".join(f"{col} = excluded.{col}" for col in RECORD_COLUMNS[1:])
        conn.execute(
            f"""
            INSERT INTO records ({", ".join(RECORD_COLUMNS)})
            VALUES ({", ".join(["?"] * len(RECORD_COLUMNS))})
            ON CONFLICT (id) DO UPDATE SET {updates}
            """,
            values,
        )
        conn.execute("DELETE FROM records_tags WHERE record_id = ?", (record.id,))
        if record.tags:
            conn.executemany(
                "INSERT INTO records_tags (record_id, tag) VALUES (?, ?)",
                [(record.id, t) for t in normalize_tags(record.tags)],
            )

    def upsert_record(self, record: LibraryRecord, thumbnail: bytes | None = None) -> None:
        """
        Write a single record. If a thumbnail is passed, it is written alongside the record;
        otherwise any existing thumbnail is left untouched.
        """
        try:
            with self.transaction() as conn:
                self._write_record(conn, record)
                if thumbnail is not None:
                    self._write_thumbnail(conn, record.id, thumbnail)
        except sqlite3.Error as e:
            raise BatchWriteError(f"Failed to write record {record.relative_path}: {e}") from e
        logger.debug(f"Wrote record {record.relative_path} ({record.id})")

    def upsert_records(self, records: Iterable[LibraryRecord]) -> None:
        """Write all records in a single transaction: either every record lands or none do."""
        records = list(records)
        if not records:
            logger.debug("No-Op: No records passed into upsert_records")
            return
        try:
            with self.transaction() as conn:
                for record in records:
                    self._write_record(conn, record)
        except sqlite3.Error as e:
            raise BatchWriteError(f"Failed to write batch of {len(records)} records: {e}") from e
        logger.debug(f"Wrote batch of {len(records)} records")

    def delete_record(self, record_id: str) -> None:
        with self.transaction() as conn:
            cursor = conn.execute("DELETE FROM records WHERE id = ?", (record_id,))
        if cursor.rowcount == 0:
            raise RecordDoesNotExistError(f"Record {record_id} does not exist")
        logger.info(f"Deleted record {record_id} and its previews")

    # Primary thumbnails.

    def _write_thumbnail(self, conn: sqlite3.Connection, record_id: str, image: bytes) -> None:
        conn.execute(
            """
            INSERT INTO thumbnails (record_id, image) VALUES (?, ?)
            ON CONFLICT (record_id) DO UPDATE SET image = excluded.image
            """,
            (record_id, image),
        )

    def get_thumbnail(self, record_id: str) -> bytes | None:
        row = self.conn.execute(
            "SELECT image FROM thumbnails WHERE record_id = ?", (record_id,)
        ).fetchone()
        return bytes(row["image"]) if row else None

    def set_thumbnail(self, record_id: str, image: bytes) -> None:
        try:
            with self.transaction() as conn:
                self._write_thumbnail(conn, record_id, image)
        except sqlite3.IntegrityError as e:
            raise RecordDoesNotExistError(f"Record {record_id} does not exist") from e

    def delete_thumbnail(self, record_id: str) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM thumbnails WHERE record_id = ?", (record_id,))

    def list_thumbnail_ids(self) -> set[str]:
        return {row["record_id"] for row in self.conn.execute("SELECT record_id FROM thumbnails")}

    # Timeline previews.

    def get_timeline(self, record_id: str) -> list[bytes] | None:
        rows = self.conn.execute(
            "SELECT image FROM timeline_thumbnails WHERE record_id = ? ORDER BY position",
            (record_id,),
        ).fetchall()
        return [bytes(r["image"]) for r in rows] or None

    def set_timeline(self, record_id: str, images: list[bytes]) -> None:
        try:
            with self.transaction() as conn:
                conn.execute("DELETE FROM timeline_thumbnails WHERE record_id = ?", (record_id,))
                conn.executemany(
                    "INSERT INTO timeline_thumbnails (record_id, position, image) VALUES (?, ?, ?)",
                    [(record_id, i, img) for i, img in enumerate(images)],
                )
        except sqlite3.IntegrityError as e:
            raise RecordDoesNotExistError(f"Record {record_id} does not exist") from e

    def delete_timeline(self, record_id: str) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM timeline_thumbnails WHERE record_id = ?", (record_id,))

    # Whole-library operations.

    def clear_all(self) -> None:
        with self.transaction() as conn:
            conn.execute("DELETE FROM timeline_thumbnails")
            conn.execute("DELETE FROM thumbnails")
            conn.execute("DELETE FROM records_tags")
            conn.execute("DELETE FROM records")
        logger.info("Cleared all records and previews from the library database")

    def export(self) -> dict[str, Any]:
        """Dump every collection as JSON-compatible data, with images as JPEG data URLs."""
        thumbnails = [
            {"record_id": row["record_id"], "image": _data_url(bytes(row["image"]))}
            for row in self.conn.execute("SELECT record_id, image FROM thumbnails ORDER BY record_id")
        ]
        timelines: dict[str, list[str]] = defaultdict(list)
        for row in self.conn.execute(
            "SELECT record_id, image FROM timeline_thumbnails ORDER BY record_id, position"
        ):
            timelines[row["record_id"]].append(_data_url(bytes(row["image"])))
        return {
            "records": [r.dump() for r in self.list_records()],
            "thumbnails": thumbnails,
            "timeline_thumbnails": [
                {"record_id": rid, "images": images} for rid, images in timelines.items()
            ],
        }
