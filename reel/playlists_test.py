import json

import pytest
import tomllib

from reel.config import Config
from reel.playlists import (
    InvalidPlaylistError,
    add_to_playlist,
    clear_playlist,
    dump_playlist,
    export_playlist,
    import_playlist,
    load_playlist,
    remove_from_playlist,
)
from reel.store import RecordDoesNotExistError, Store


def test_empty_playlist(config: Config) -> None:
    assert load_playlist(config) == []
    assert export_playlist(config) == "[]"


def test_add_to_playlist(config: Config, seeded_store: Store) -> None:
    add_to_playlist(config, seeded_store, "r2")
    add_to_playlist(config, seeded_store, "r1")
    # Adding twice is a no-op.
    add_to_playlist(config, seeded_store, "r2")
    assert load_playlist(config) == ["r2", "r1"]

    with config.playlist_path.open("rb") as fp:
        data = tomllib.load(fp)
    assert data == {
        "records": [
            {"uuid": "r2", "description_meta": "a/two.mp4"},
            {"uuid": "r1", "description_meta": "a/one.mp4"},
        ]
    }


def test_add_unknown_record(config: Config, seeded_store: Store) -> None:
    with pytest.raises(RecordDoesNotExistError):
        add_to_playlist(config, seeded_store, "nope")
    assert not config.playlist_path.exists()


def test_remove_from_playlist(config: Config, seeded_store: Store) -> None:
    add_to_playlist(config, seeded_store, "r1")
    add_to_playlist(config, seeded_store, "r2")
    remove_from_playlist(config, "r1")
    assert load_playlist(config) == ["r2"]
    remove_from_playlist(config, "r1")
    assert load_playlist(config) == ["r2"]


def test_clear_playlist(config: Config, seeded_store: Store) -> None:
    clear_playlist(config)
    assert not config.playlist_path.exists()
    add_to_playlist(config, seeded_store, "r1")
    clear_playlist(config)
    assert load_playlist(config) == []


def test_dump_playlist_marks_missing(config: Config, seeded_store: Store) -> None:
    add_to_playlist(config, seeded_store, "r1")
    add_to_playlist(config, seeded_store, "r3")
    seeded_store.delete_record("r3")
    assert json.loads(dump_playlist(config, seeded_store)) == [
        {"id": "r1", "relative_path": "a/one.mp4", "missing": False},
        {"id": "r3", "relative_path": None, "missing": True},
    ]


def test_export_import(config: Config, seeded_store: Store) -> None:
    add_to_playlist(config, seeded_store, "r3")
    add_to_playlist(config, seeded_store, "r1")
    exported = export_playlist(config)
    assert json.loads(exported) == ["r3", "r1"]

    clear_playlist(config)
    assert import_playlist(config, seeded_store, exported) == ["r3", "r1"]
    assert load_playlist(config) == ["r3", "r1"]


def test_import_drops_unknown_and_repeated(config: Config, seeded_store: Store) -> None:
    kept = import_playlist(config, seeded_store, json.dumps(["r2", "ghost", "r2", "r4"]))
    assert kept == ["r2", "r4"]
    assert load_playlist(config) == ["r2", "r4"]


@pytest.mark.parametrize("text", ["not json", '{"ids": ["r1"]}', '["r1", 2]', '"r1"'])
def test_import_rejects_bad_format(config: Config, seeded_store: Store, text: str) -> None:
    add_to_playlist(config, seeded_store, "r1")
    with pytest.raises(InvalidPlaylistError):
        import_playlist(config, seeded_store, text)
    # The existing playlist is untouched.
    assert load_playlist(config) == ["r1"]


def test_invalid_toml(config: Config) -> None:
    config.playlist_path.write_text("records = [")
    with pytest.raises(InvalidPlaylistError):
        load_playlist(config)
