from conftest import make_record
from reel.config import Config
from reel.maintenance import (
    export_selection,
    find_duplicates,
    find_transcoded,
    reset_duplicates,
    reset_library,
    unheart_all,
    unhide_all,
)
from reel.playlists import add_to_playlist, load_playlist
from reel.query import DUPLICATE_TAG, TRANSCODED_TAG
from reel.store import Store


def _tags(store: Store) -> dict[str, list[str]]:
    return {r.id: r.tags for r in store.list_records()}


def test_find_duplicates(store: Store) -> None:
    store.upsert_records(
        [
            make_record("a", "a.mp4", size=10, duration=60.2, tags=["x"]),
            make_record("b", "b/a copy.mp4", size=10, duration=59.9),
            make_record("c", "c.mp4", size=10, duration=90.0),
            make_record("d", "d.mp4", size=10),
            make_record("e", "e.mp4", size=10),
            make_record("f", "f.mp4", size=10, duration=60.0, hidden=True),
        ]
    )
    assert find_duplicates(store) == 2
    assert _tags(store) == {
        "a": ["Duplicate", "x"],
        "b": [DUPLICATE_TAG],
        "c": [],
        "d": [],
        "e": [],
        "f": [],
    }
    # Already-tagged records are left alone.
    assert find_duplicates(store) == 0


def test_find_transcoded(config: Config, store: Store) -> None:
    store.upsert_records(
        [
            make_record("a", "x/movie.mp4"),
            make_record("b", "x/movie.MKV"),
            make_record("c", "x/movie.jpg"),
            make_record("d", "y/movie.avi"),
            make_record("e", "z/other.mov"),
            make_record("f", "z/other.ogv"),
        ]
    )
    assert find_transcoded(config, store) == 1
    tags = _tags(store)
    assert tags["b"] == [TRANSCODED_TAG]
    assert all(tags[i] == [] for i in "acdef")


def test_reset_duplicates(store: Store) -> None:
    store.upsert_records(
        [
            make_record("a", "a.mp4", tags=[DUPLICATE_TAG, "keep"]),
            make_record("b", "b.mp4", tags=["keep"]),
        ]
    )
    assert reset_duplicates(store) == 1
    assert _tags(store) == {"a": ["keep"], "b": ["keep"]}


def test_unheart_and_unhide_all(store: Store) -> None:
    store.upsert_records(
        [
            make_record("a", "a.mp4", hearted=True, hidden=True),
            make_record("b", "b.mp4", hearted=True),
            make_record("c", "c.mp4"),
        ]
    )
    assert unheart_all(store) == 2
    assert unhide_all(store) == 1
    assert not any(r.hearted or r.hidden for r in store.list_records())
    assert unheart_all(store) == 0


def test_export_selection(seeded_store: Store) -> None:
    exported = export_selection(seeded_store.list_records(["r1"]))
    assert exported == [
        {
            "id": "r1",
            "relative_path": "a/one.mp4",
            "rating": 3,
            "tags": ["Beach"],
            "seen": False,
            "hearted": False,
            "hidden": False,
            "title": None,
        }
    ]


def test_reset_library(config: Config, seeded_store: Store) -> None:
    add_to_playlist(config, seeded_store, "r1")
    reset_library(config, seeded_store)
    assert seeded_store.list_records() == []
    assert seeded_store.list_thumbnail_ids() == set()
    assert load_playlist(config) == []


def test_reset_library_without_playlist(config: Config, seeded_store: Store) -> None:
    reset_library(config, seeded_store)
    assert not config.playlist_path.exists()
