"""Tests for the in-memory navigation cache."""

from unittest.mock import MagicMock

from diskwise.models import Node
from diskwise.navigation import CacheSource, NavigationCache


def make_tree(root_path: str = "/root") -> Node:
    root = Node(path=root_path, name="root", is_directory=True, size=300, is_scanned=True)
    a = Node(path=f"{root_path}/a", name="a", is_directory=True, size=200, is_scanned=True)
    b = Node(path=f"{root_path}/a/b", name="b", is_directory=True, size=100, is_scanned=True)
    root.add_child(a)
    a.add_child(b)
    return root


class TestNavigationCache:
    def test_store_and_get(self):
        memory = NavigationCache()
        tree = make_tree()
        memory.store("/root", tree)
        assert memory.get("/root") is tree
        assert "/root" in memory
        assert len(memory) == 1

    def test_get_is_case_insensitive(self):
        memory = NavigationCache()
        tree = make_tree()
        memory.store("/Root", tree)
        assert memory.get("/root") is tree

    def test_store_replaces_previous_scan(self):
        memory = NavigationCache()
        memory.store("/root", make_tree())
        newer = make_tree()
        memory.store("/root", newer)
        assert memory.get("/root") is newer
        assert len(memory) == 1

    def test_get_does_not_search_descendants(self):
        memory = NavigationCache()
        memory.store("/root", make_tree())
        assert memory.get("/root/a") is None

    def test_find_descendant(self):
        memory = NavigationCache()
        tree = make_tree()
        memory.store("/root", tree)
        assert memory.find("/root/a/b") is tree.children[0].children[0]

    def test_discard_tree_and_clear(self):
        memory = NavigationCache()
        memory.store("/root", make_tree())
        memory.store("/other", make_tree("/other"))
        memory.discard_tree("/root")
        assert "/root" not in memory
        memory.clear()
        assert len(memory) == 0

    def test_discard_tree_drops_path_and_descendants(self):
        memory = NavigationCache()
        memory.store("/root", make_tree())
        memory.store("/root/a", make_tree("/root/a"))
        memory.store("/Root/a/b/", make_tree("/root/a/b"))
        memory.store("/rootless", make_tree("/rootless"))
        memory.discard_tree("/root/a")
        assert "/root" in memory
        assert "/root/a" not in memory
        assert "/root/a/b" not in memory
        assert "/rootless" in memory

    def test_discard_tree_of_unknown_path(self):
        memory = NavigationCache()
        memory.store("/root", make_tree())
        memory.discard_tree("/elsewhere")
        assert len(memory) == 1


class TestResolve:
    def test_memory_first(self):
        memory = NavigationCache()
        tree = make_tree()
        memory.store("/root", tree)
        scan_cache = MagicMock()

        node, source = memory.resolve("/root", scan_cache)
        assert node is tree
        assert source == CacheSource.MEMORY
        scan_cache.get.assert_not_called()

    def test_disk_hit_is_kept_in_memory(self):
        memory = NavigationCache()
        tree = make_tree()
        scan_cache = MagicMock()
        scan_cache.get.return_value = tree

        node, source = memory.resolve("/root", scan_cache)
        assert node is tree
        assert source == CacheSource.DISK
        assert memory.get("/root") is tree

    def test_ancestor_in_memory(self):
        memory = NavigationCache()
        memory.store("/root", make_tree())
        scan_cache = MagicMock()
        scan_cache.get.return_value = None

        node, source = memory.resolve("/root/a", scan_cache)
        assert node.path == "/root/a"
        assert source == CacheSource.ANCESTOR
        scan_cache.get.assert_called_once_with("/root/a")

    def test_nothing_found(self):
        node, source = NavigationCache().resolve("/root")
        assert node is None
        assert source == CacheSource.NONE

