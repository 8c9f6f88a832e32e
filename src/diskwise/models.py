"""Data models for diskwise."""

import os
import weakref
from datetime import datetime
from enum import Enum
from typing import Iterator, Optional

from pydantic import BaseModel, Field, PrivateAttr

# Size of a node whose aggregation has not run yet
UNKNOWN_SIZE = -1


def path_key(path: str) -> str:
    """Normalized, case-insensitive key used for all path comparisons."""
    return os.path.normcase(os.path.normpath(path)).casefold()


def paths_equal(a: str, b: str) -> bool:
    """Compare two paths ignoring case."""
    return path_key(a) == path_key(b)


def is_ancestor_path(ancestor: str, path: str) -> bool:
    """True if ``path`` lies strictly below ``ancestor``."""
    prefix = path_key(ancestor).rstrip(os.sep) + os.sep
    return path_key(path).startswith(prefix)


class SortKey(str, Enum):
    """Ordering used by directory listings."""

    SIZE = "size"
    NAME = "name"
    DATE = "date"


class MatchType(str, Enum):
    """Kind of node matched by a search."""

    FILE = "file"
    FOLDER = "folder"


class Node(BaseModel):
    """A file or directory with aggregated size information.

    ``children`` keep discovery order; display code sorts its own copy.
    The parent link is a weak reference and is never serialized.
    """

    path: str = Field(..., description="Absolute path")
    name: str = Field(..., description="Display name")
    is_directory: bool = Field(False, description="Whether this is a directory")
    is_hidden: bool = Field(False, description="Hidden attribute or dot-name")
    is_system: bool = Field(False, description="System attribute (Windows only)")
    last_modified: Optional[datetime] = Field(None, description="Last write time")
    size: int = Field(UNKNOWN_SIZE, description="Total bytes, -1 while unknown")
    file_count: int = Field(0, description="Number of files directly inside")
    folder_count: int = Field(0, description="Number of descendant folders")
    is_scanned: bool = Field(False, description="Whether totals are final")
    children: list["Node"] = Field(default_factory=list)

    _parent: Optional[weakref.ref] = PrivateAttr(default=None)

    def __eq__(self, other: object) -> bool:
        # Structural equality; parent links are not compared
        if not isinstance(other, Node):
            return NotImplemented
        return self.model_dump() == other.model_dump()

    @property
    def parent(self) -> Optional["Node"]:
        """Parent node, if it is still alive."""
        return self._parent() if self._parent is not None else None

    def add_child(self, child: "Node") -> None:
        """Append a child and point its parent link here."""
        child._parent = weakref.ref(self)
        self.children.append(child)

    def walk(self) -> Iterator["Node"]:
        """Yield this node and every descendant, depth-first pre-order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(reversed(node.children))

    def find(self, path: str) -> Optional["Node"]:
        """Find this node or a descendant by path (case-insensitive)."""
        target = path_key(path)
        for node in self.walk():
            if path_key(node.path) == target:
                return node
        return None

    def node_count(self) -> int:
        """Number of nodes in this subtree, including this one."""
        return sum(1 for _ in self.walk())

    @property
    def icon(self) -> str:
        return "\U0001F4C1" if self.is_directory else "\U0001F4C4"

    @property
    def size_human(self) -> str:
        """Human-readable size string."""
        from diskwise.display import format_size

        return format_size(self.size)


Node.model_rebuild()


class CachedNode(BaseModel):
    """One node of a flattened tree, pointing at its parent by position."""

    path: str
    name: str
    is_directory: bool = False
    is_hidden: bool = False
    is_system: bool = False
    last_modified: Optional[datetime] = None
    size: int = UNKNOWN_SIZE
    file_count: int = 0
    folder_count: int = 0
    is_scanned: bool = False
    parent_index: int = Field(-1, description="Index of the parent in the list, -1 for the root")


class CachedTree(BaseModel):
    """Flat, pre-ordered form of a tree as written to the scan cache.

    Keeping the payload flat means tree depth never turns into JSON nesting.
    """

    nodes: list[CachedNode] = Field(default_factory=list)

    @classmethod
    def from_node(cls, root: Node) -> "CachedTree":
        nodes: list[CachedNode] = []
        stack: list[tuple[Node, int]] = [(root, -1)]
        while stack:
            node, parent_index = stack.pop()
            position = len(nodes)
            stack.extend((child, position) for child in reversed(node.children))
            nodes.append(
                CachedNode(
                    path=node.path,
                    name=node.name,
                    is_directory=node.is_directory,
                    is_hidden=node.is_hidden,
                    is_system=node.is_system,
                    last_modified=node.last_modified,
                    size=node.size,
                    file_count=node.file_count,
                    folder_count=node.folder_count,
                    is_scanned=node.is_scanned,
                    parent_index=parent_index,
                )
            )
        return cls(nodes=nodes)

    def to_node(self) -> Node:
        """Rebuild the tree with parent links in place.

        Raises:
            ValueError: If the list is empty or a parent index is out of order
        """
        if not self.nodes or self.nodes[0].parent_index != -1:
            raise ValueError("cached tree has no root")
        built: list[Node] = []
        for i, cached in enumerate(self.nodes):
            node = Node(**cached.model_dump(exclude={"parent_index"}))
            if i > 0:
                if not 0 <= cached.parent_index < i:
                    raise ValueError(f"bad parent index {cached.parent_index} at {i}")
                built[cached.parent_index].add_child(node)
            built.append(node)
        return built[0]


class ScanProgress(BaseModel):
    """Progress event emitted while a scan runs."""

    scanned_items: int = Field(..., description="Running total of counted items")
    current_path: str = Field(..., description="Directory being processed")


class CacheEntry(BaseModel):
    """Index record pointing at a persisted subtree."""

    path: str = Field(..., description="Root path of the cached scan")
    cached_at: datetime = Field(..., description="When the scan was stored")
    total_size: int = Field(0, description="Root size in bytes")
    file_count: int = Field(0, description="Root file count")
    folder_count: int = Field(0, description="Root folder count")
    cache_file_name: str = Field(..., description="Payload file name")


class CacheIndex(BaseModel):
    """On-disk index of all cache entries."""

    entries: list[CacheEntry] = Field(default_factory=list)


class SearchResult(BaseModel):
    """A node whose name matched a search query."""

    node: Node
    match_type: MatchType

    @classmethod
    def for_node(cls, node: Node) -> "SearchResult":
        match_type = MatchType.FOLDER if node.is_directory else MatchType.FILE
        return cls.model_construct(node=node, match_type=match_type)
