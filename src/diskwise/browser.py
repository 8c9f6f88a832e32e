"""Shallow directory listing for fast navigation."""

import logging
import os
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from diskwise.models import UNKNOWN_SIZE, Node, SortKey, path_key
from diskwise.scanner import node_from_stat

logger = logging.getLogger(__name__)


class Listing(BaseModel):
    """One directory's immediate children, ready for display."""

    path: str = Field(..., description="Directory that was listed")
    items: list[Node] = Field(default_factory=list)

    @property
    def folder_count(self) -> int:
        return sum(1 for i in self.items if i.is_directory)

    @property
    def file_count(self) -> int:
        return sum(1 for i in self.items if not i.is_directory)

    @property
    def total_size(self) -> int:
        """Sum of all known (positive) sizes."""
        return sum(i.size for i in self.items if i.size > 0)

    @property
    def has_scanned_folders(self) -> bool:
        return any(i.is_scanned and i.is_directory for i in self.items)

    def percentage(self, node: Node) -> float:
        """Share of the listing total taken by ``node``."""
        total = self.total_size
        return node.size / total * 100 if total > 0 and node.size > 0 else 0.0


def sort_nodes(nodes: list[Node], sort_by: SortKey = SortKey.SIZE, descending: bool = True) -> list[Node]:
    """Return a new list with folders first, then ordered by ``sort_by``."""
    if sort_by == SortKey.NAME:
        ordered = sorted(nodes, key=lambda n: n.name.casefold(), reverse=descending)
    elif sort_by == SortKey.DATE:
        ordered = sorted(nodes, key=lambda n: n.last_modified or datetime.min, reverse=descending)
    else:
        ordered = sorted(nodes, key=lambda n: n.size, reverse=descending)
    # Stable sort keeps the ordering above within each group
    return sorted(ordered, key=lambda n: not n.is_directory)


def _merge_cached(node: Node, cached_child: Node) -> None:
    node.size = cached_child.size
    node.file_count = cached_child.file_count
    node.folder_count = cached_child.folder_count
    node.is_scanned = cached_child.is_scanned
    # A new list: the cached tree itself is only read, never modified
    node.children = list(cached_child.children)


def list_directory(
    path: str,
    cached_folder: Optional[Node] = None,
    show_hidden: bool = True,
    show_files: bool = True,
    sort_by: SortKey = SortKey.SIZE,
    descending: bool = True,
) -> Listing:
    """
    List a directory's immediate children without recursing.

    Subdirectories get sizes from ``cached_folder`` when it holds a matching
    child, and ``UNKNOWN_SIZE`` otherwise. Files get their own length.

    Args:
        path: Directory to list
        cached_folder: Previously scanned node for the same directory
        show_hidden: Include hidden entries
        show_files: Include files, not just folders
        sort_by: Ordering within folders and files
        descending: Reverse the ordering

    Returns:
        Listing of the directory

    Raises:
        OSError: If the directory itself cannot be listed
    """
    cached_children: dict[str, Node] = {}
    if cached_folder is not None:
        cached_children = {path_key(c.path): c for c in cached_folder.children}

    items: list[Node] = []
    with os.scandir(path) as entries:
        for entry in entries:
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
                if not is_dir and not (show_files and entry.is_file(follow_symlinks=False)):
                    continue
                st = entry.stat(follow_symlinks=False)
                node = node_from_stat(entry.path, entry.name, st, is_directory=is_dir)
                if node.is_hidden and not show_hidden:
                    continue
            except OSError as e:
                logger.debug("Skipping %s: %s", entry.path, e)
                continue

            if is_dir:
                cached_child = cached_children.get(path_key(entry.path))
                if cached_child is not None:
                    _merge_cached(node, cached_child)
                else:
                    node.size = UNKNOWN_SIZE
            else:
                node.size = st.st_size
                node.is_scanned = True
            items.append(node)

    return Listing(path=path, items=sort_nodes(items, sort_by, descending))
