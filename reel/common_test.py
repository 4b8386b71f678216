from reel.common import normalize_tags, uniq


def test_uniq() -> None:
    assert uniq([3, 1, 3, 2, 1]) == [3, 1, 2]


def test_normalize_tags() -> None:
    assert normalize_tags(["b", "a", "b", "", "B"]) == ["B", "a", "b"]
