import pytest

from shared.errors import CycleError
from tag_system.hierarchy import ancestor_ids, ensure_acyclic
from tag_system.slug import disambiguate_slug, slugify


@pytest.mark.parametrize(
    "name, expected",
    [
        ("Machine Learning", "machine-learning"),
        ("  C++ / Rust  ", "c-rust"),
        ("--Hello__World--", "hello-world"),
        ("数据库", "数据库"),
        ("!!!", "tag"),
    ],
)
def test_slugify(name, expected):
    assert slugify(name) == expected


def test_disambiguate_slug():
    assert disambiguate_slug("python", []) == "python"
    assert disambiguate_slug("python", ["python"]) == "python-2"
    assert disambiguate_slug("python", ["python", "python-2", "python-4"]) == "python-3"


def test_ensure_acyclic_accepts_valid_chain():
    parent_map = {1: None, 2: 1, 3: 2}
    ensure_acyclic(4, 3, parent_map)
    ensure_acyclic(None, 3, parent_map)
    ensure_acyclic(1, None, parent_map)


def test_ensure_acyclic_rejects_cycles():
    parent_map = {1: None, 2: 1, 3: 2}
    with pytest.raises(CycleError):
        ensure_acyclic(1, 1, parent_map)
    with pytest.raises(CycleError):
        ensure_acyclic(1, 3, parent_map)
    with pytest.raises(CycleError):
        ensure_acyclic(9, 5, {5: 6, 6: 5})


def test_ancestor_ids_stops_on_corrupt_chain():
    assert ancestor_ids(3, {1: None, 2: 1, 3: 2}) == [2, 1]
    assert ancestor_ids(1, {1: None}) == []
    assert ancestor_ids(1, {1: 2, 2: 3, 3: 2}) == [2, 3]
