"""Tests for shallow directory listing."""

from datetime import datetime

import pytest

from diskwise.browser import Listing, list_directory, sort_nodes
from diskwise.models import UNKNOWN_SIZE, Node, SortKey
from diskwise.scanner import TreeScanner


@pytest.fixture
def folder(tmp_path):
    root = tmp_path / "folder"
    (root / "big" / "inner").mkdir(parents=True)
    (root / "big" / "inner" / "blob.bin").write_bytes(b"x" * 400)
    (root / "small").mkdir()
    (root / "small" / "note.txt").write_bytes(b"x" * 40)
    (root / ".hidden").mkdir()
    (root / "readme.md").write_bytes(b"x" * 10)
    (root / ".env").write_bytes(b"x" * 5)
    return root


def by_name(listing: Listing) -> dict[str, Node]:
    return {n.name: n for n in listing.items}


class TestListDirectory:
    def test_unscanned_folders_have_unknown_size(self, folder):
        listing = list_directory(str(folder))
        items = by_name(listing)
        assert items["big"].size == UNKNOWN_SIZE
        assert not items["big"].is_scanned
        assert items["readme.md"].size == 10
        assert items["readme.md"].is_scanned

    def test_merges_cached_sizes(self, folder):
        scanned = TreeScanner().scan(str(folder))
        listing = list_directory(str(folder), cached_folder=scanned)
        items = by_name(listing)
        assert items["big"].size == 400
        assert items["big"].folder_count == 1
        assert items["big"].is_scanned
        assert items["small"].size == 40
        assert items["small"].file_count == 1
        assert listing.has_scanned_folders

    def test_merged_children_allow_further_navigation(self, folder):
        scanned = TreeScanner().scan(str(folder))
        big = by_name(list_directory(str(folder), cached_folder=scanned))["big"]
        assert [c.name for c in big.children] == ["inner"]
        assert big.children[0].size == 400

    def test_cached_tree_is_not_mutated(self, folder):
        scanned = TreeScanner().scan(str(folder))
        before = scanned.model_dump()
        cached_big = next(c for c in scanned.children if c.name == "big")
        cached_children = cached_big.children

        listing = list_directory(str(folder), cached_folder=scanned)
        listed_big = by_name(listing)["big"]
        listed_big.children.append(Node(path="/elsewhere", name="elsewhere"))

        assert listed_big is not cached_big
        assert cached_big.children is cached_children
        assert scanned.model_dump() == before

    def test_cached_match_ignores_case(self, folder):
        cached = Node(path=str(folder), name="folder", is_directory=True)
        cached.add_child(
            Node(path=str(folder / "BIG"), name="BIG", is_directory=True, size=123, is_scanned=True)
        )
        assert by_name(list_directory(str(folder), cached_folder=cached))["big"].size == 123

    def test_hide_hidden(self, folder):
        items = by_name(list_directory(str(folder), show_hidden=False))
        assert ".hidden" not in items
        assert ".env" not in items
        assert "big" in items

    def test_folders_only(self, folder):
        listing = list_directory(str(folder), show_files=False)
        assert all(n.is_directory for n in listing.items)
        assert listing.file_count == 0

    def test_counts(self, folder):
        listing = list_directory(str(folder))
        assert listing.folder_count == 3
        assert listing.file_count == 2

    def test_folders_listed_first_by_size(self, folder):
        scanned = TreeScanner().scan(str(folder))
        listing = list_directory(str(folder), cached_folder=scanned)
        assert [n.name for n in listing.items] == ["big", "small", ".hidden", "readme.md", ".env"]

    def test_total_and_percentage_ignore_unknown_sizes(self, folder):
        listing = list_directory(str(folder))
        assert listing.total_size == 15
        assert listing.percentage(by_name(listing)["readme.md"]) == pytest.approx(10 / 15 * 100)
        assert listing.percentage(by_name(listing)["big"]) == 0.0

    def test_missing_directory_raises(self, tmp_path):
        with pytest.raises(OSError):
            list_directory(str(tmp_path / "missing"))

    def test_does_not_recurse(self, folder):
        listing = list_directory(str(folder))
        assert all(n.children == [] for n in listing.items)


class TestSortNodes:
    def make_nodes(self) -> list[Node]:
        return [
            Node(path="/f1", name="beta.txt", size=5, last_modified=datetime(2024, 1, 3)),
            Node(path="/d1", name="Alpha", is_directory=True, size=50, last_modified=datetime(2024, 1, 1)),
            Node(path="/d2", name="gamma", is_directory=True, size=500, last_modified=datetime(2024, 1, 2)),
            Node(path="/f2", name="aardvark.txt", size=9),
        ]

    def test_by_size_descending(self):
        names = [n.name for n in sort_nodes(self.make_nodes())]
        assert names == ["gamma", "Alpha", "aardvark.txt", "beta.txt"]

    def test_by_name_ascending(self):
        names = [n.name for n in sort_nodes(self.make_nodes(), SortKey.NAME, descending=False)]
        assert names == ["Alpha", "gamma", "aardvark.txt", "beta.txt"]

    def test_by_date_descending(self):
        names = [n.name for n in sort_nodes(self.make_nodes(), SortKey.DATE)]
        assert names == ["gamma", "Alpha", "beta.txt", "aardvark.txt"]

    def test_returns_new_list(self):
        nodes = self.make_nodes()
        assert sort_nodes(nodes) is not nodes
