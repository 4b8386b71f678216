"""
The playlists module manages the play queue: an ordered list of records persisted as a TOML file in
the data directory.

Each entry stores the record's id and, for humans reading the file, its path at the time it was
added:

    [[records]]
    uuid = "018b4ff1-..."
    description_meta = "Holidays/2019/beach.mp4"

Playlists are exported and imported as a bare JSON array of record ids.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import tomli_w
import tomllib

from reel.common import ReelExpectedError, uniq
from reel.config import Config
from reel.store import RecordDoesNotExistError, Store

logger = logging.getLogger(__name__)


class InvalidPlaylistError(ReelExpectedError):
    pass


def _read(c: Config) -> dict[str, Any]:
    try:
        with c.playlist_path.open("rb") as fp:
            return tomllib.load(fp)
    except FileNotFoundError:
        return {}
    except tomllib.TOMLDecodeError as e:
        raise InvalidPlaylistError(f"Playlist file {c.playlist_path} is not valid TOML: {e}") from e


def _write(c: Config, data: dict[str, Any]) -> None:
    c.playlist_path.parent.mkdir(parents=True, exist_ok=True)
    with c.playlist_path.open("wb") as fp:
        tomli_w.dump(data, fp)


def load_playlist(c: Config) -> list[str]:
    return [r["uuid"] for r in _read(c).get("records", [])]


def dump_playlist(c: Config, store: Store) -> str:
    ids = load_playlist(c)
    known = {r.id: r for r in store.list_records(ids)}
    return json.dumps(
        [
            {
                "id": rid,
                "relative_path": known[rid].relative_path if rid in known else None,
                "missing": rid not in known,
            }
            for rid in ids
        ]
    )


def add_to_playlist(c: Config, store: Store, record_id: str) -> None:
    record = store.get_record(record_id)
    if record is None:
        raise RecordDoesNotExistError(f"Record {record_id} does not exist")
    data = _read(c)
    data["records"] = data.get("records", [])
    if any(r["uuid"] == record_id for r in data["records"]):
        logger.info(f"No-Op: Record {record.relative_path} already in playlist")
        return
    data["records"].append({"uuid": record_id, "description_meta": record.relative_path})
    _write(c, data)
    logger.info(f"Added record {record.relative_path} to playlist")


def remove_from_playlist(c: Config, record_id: str) -> None:
    data = _read(c)
    old_records = data.get("records", [])
    new_records = [r for r in old_records if r["uuid"] != record_id]
    if old_records == new_records:
        logger.info(f"No-Op: Record {record_id} not in playlist")
        return
    data["records"] = new_records
    _write(c, data)
    logger.info(f"Removed record {record_id} from playlist")


def clear_playlist(c: Config) -> None:
    if not c.playlist_path.exists():
        return
    _write(c, {"records": []})
    logger.info("Cleared playlist")


def export_playlist(c: Config) -> str:
    return json.dumps(load_playlist(c), indent=2)


def import_playlist(c: Config, store: Store, text: str) -> list[str]:
    """
    Replace the playlist with the ids in a JSON array. The import is all-or-nothing on format
    errors; ids that do not name a known record are dropped.
    """
    try:
        ids = json.loads(text)
    except json.JSONDecodeError as e:
        raise InvalidPlaylistError(f"Invalid playlist file format: not JSON: {e}") from e
    if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
        raise InvalidPlaylistError(
            "Invalid playlist file format: expected a JSON array of record ids"
        )

    known = {r.id: r for r in store.list_records(ids)}
    kept = [i for i in uniq(ids) if i in known]
    if len(kept) != len(ids):
        logger.info(f"Dropped {len(ids) - len(kept)} unknown or repeated ids from imported playlist")
    _write(
        c,
        {"records": [{"uuid": i, "description_meta": known[i].relative_path} for i in kept]},
    )
    logger.info(f"Imported playlist of {len(kept)} records")
    return kept
