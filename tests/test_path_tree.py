"""Tests for PathTree insertion and leaf listing."""

import pytest

from services.path_tree import PathTree, is_prefix


def test_empty_tree_lists_root_only():
    assert PathTree().list() == [()]


def test_insert_empty_path_is_noop():
    tree = PathTree()
    tree.insert(())
    assert len(tree) == 0
    assert tree.list() == [()]


def test_prefix_is_absorbed_by_longer_path():
    tree = PathTree.from_paths([("A",), ("A", "B")])
    assert tree.list() == [("A", "B")]


def test_longer_path_absorbs_prefix_inserted_later():
    tree = PathTree.from_paths([("A", "B"), ("A",)])
    assert tree.list() == [("A", "B")]


def test_insert_is_idempotent():
    tree = PathTree.from_paths([("A", "B", "C")])
    before = tree.list()
    tree.insert(("A", "B", "C"))
    tree.insert(("A", "B"))
    assert tree.list() == before


def test_siblings_are_all_listed():
    paths = [
        ("Resources", "Bucket", "Type"),
        ("Resources", "Subnet", "Type"),
        ("Resources", "Subnet", "Properties", "CidrBlock"),
    ]
    tree = PathTree.from_paths(paths)
    assert sorted(tree.list()) == sorted(paths)
    assert set(tree["Resources"]) == {"Bucket", "Subnet"}


@pytest.mark.parametrize(
    "paths",
    [
        [("a",), ("b",), ("a", "c"), ("a", "c", "d"), ("b", "e")],
        [("x", "y"), ("x",), ("x", "y"), ("z",)],
        [("only",)],
    ],
)
def test_listed_paths_are_prefix_free_and_cover_inserts(paths):
    listed = PathTree.from_paths(paths).list()

    for first in listed:
        for second in listed:
            if first != second:
                assert not is_prefix(first, second)

    for path in paths:
        assert any(is_prefix(path, leaf) for leaf in listed)


def test_is_prefix():
    assert is_prefix((), ("a",))
    assert is_prefix(("a",), ("a", "b"))
    assert is_prefix(("a", "b"), ("a", "b"))
    assert not is_prefix(("a", "b"), ("a",))
    assert not is_prefix(("b",), ("a", "b"))
