"""In-memory cache of scanned trees for fast navigation."""

import logging
import threading
from enum import Enum
from typing import Optional

from diskwise.cache import ScanCache
from diskwise.models import Node, is_ancestor_path, path_key

logger = logging.getLogger(__name__)


class CacheSource(str, Enum):
    """Where a resolved node came from."""

    MEMORY = "memory"
    DISK = "disk"
    ANCESTOR = "ancestor"
    NONE = "none"


class NavigationCache:
    """Most recent scanned tree per path, consulted before the disk cache."""

    def __init__(self):
        self._nodes: dict[str, Node] = {}
        self._lock = threading.Lock()

    def __contains__(self, path: str) -> bool:
        with self._lock:
            return path_key(path) in self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def get(self, path: str) -> Optional[Node]:
        with self._lock:
            return self._nodes.get(path_key(path))

    def store(self, path: str, node: Node) -> None:
        """Install ``node`` for ``path``, replacing any earlier scan."""
        with self._lock:
            self._nodes[path_key(path)] = node

    def discard_tree(self, path: str) -> None:
        """Drop ``path`` and every stored path below it."""
        key = path_key(path)
        with self._lock:
            stale = [k for k in self._nodes if k == key or is_ancestor_path(key, k)]
            for k in stale:
                del self._nodes[k]
        if stale:
            logger.debug("Dropped %d in-memory trees at or below %s", len(stale), path)

    def clear(self) -> None:
        with self._lock:
            self._nodes.clear()

    def find(self, path: str) -> Optional[Node]:
        """Direct hit, or the matching descendant of any stored tree."""
        node = self.get(path)
        if node is not None:
            return node
        with self._lock:
            roots = list(self._nodes.values())
        for root in roots:
            found = root.find(path)
            if found is not None:
                return found
        return None

    def resolve(
        self, path: str, scan_cache: Optional[ScanCache] = None
    ) -> tuple[Optional[Node], CacheSource]:
        """
        Find scanned data for a path.

        Order: this cache, then the disk cache (a hit is kept in memory),
        then descendants of trees already held in memory.

        Returns:
            Tuple of (node or None, where it came from)
        """
        node = self.get(path)
        if node is not None:
            return node, CacheSource.MEMORY

        if scan_cache is not None:
            node = scan_cache.get(path)
            if node is not None:
                self.store(path, node)
                return node, CacheSource.DISK

        node = self.find(path)
        if node is not None:
            return node, CacheSource.ANCESTOR
        return None, CacheSource.NONE

