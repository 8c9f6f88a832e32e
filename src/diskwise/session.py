"""Browsing, scanning and searching on top of the scan caches."""

import logging
import os
import threading
from typing import Optional

from pydantic import BaseModel, Field

from diskwise.browser import Listing, list_directory
from diskwise.cache import ScanCache, search_tree
from diskwise.config import Settings, add_recent_folder
from diskwise.display import format_size
from diskwise.models import Node, SearchResult, is_ancestor_path, paths_equal
from diskwise.navigation import CacheSource, NavigationCache
from diskwise.scanner import ProgressCallback, TreeScanner

logger = logging.getLogger(__name__)

MAX_SEARCH_RESULTS = 500


class ScanOutcome(BaseModel):
    """Result of a full scan."""

    root: Node
    cancelled: bool = Field(False, description="Whether the scan was stopped early")
    scanned_items: int = Field(0, description="Files and folders counted")
    status: str = Field("", description="Status line for the user")


class BrowseResult(BaseModel):
    """Result of navigating to a directory."""

    path: str
    listing: Optional[Listing] = None
    source: CacheSource = CacheSource.NONE
    status: str = ""


class SearchOutcome(BaseModel):
    """Result of a name search."""

    query: str
    results: list[SearchResult] = Field(default_factory=list)
    total: int = Field(0, description="Matches before the result limit")
    status: str = ""


def _sort_results(results: list[SearchResult]) -> list[SearchResult]:
    by_size = sorted(results, key=lambda r: r.node.size, reverse=True)
    return sorted(by_size, key=lambda r: not r.node.is_directory)


class ScanSession:
    """
    Ties the scanner and both cache layers together.

    Navigation lists a directory immediately, merging whatever scanned
    sizes the caches hold. A scan replaces the in-memory tree for its path
    and is persisted once it completes.
    """

    def __init__(
        self,
        scan_cache: ScanCache,
        scanner: Optional[TreeScanner] = None,
        settings: Optional[Settings] = None,
        memory: Optional[NavigationCache] = None,
    ):
        self.settings = settings or Settings()
        self.scan_cache = scan_cache
        self.scanner = scanner or TreeScanner(max_workers=self.settings.max_workers)
        self.memory = memory or NavigationCache()

    def browse(self, path: str) -> BrowseResult:
        """List ``path`` at once, using cached sizes where available."""
        path = os.path.abspath(path)
        cached, source = self.memory.resolve(path, self.scan_cache)
        add_recent_folder(self.settings, path)

        try:
            listing = list_directory(
                path,
                cached_folder=cached,
                show_hidden=self.settings.show_hidden,
                show_files=self.settings.show_files,
                sort_by=self.settings.sort_by,
                descending=self.settings.sort_descending,
            )
        except PermissionError:
            return BrowseResult(path=path, source=source, status="Access denied")
        except OSError as e:
            return BrowseResult(path=path, source=source, status=f"Error: {e.strerror or e}")

        status = f"{listing.folder_count} folders, {listing.file_count} files"
        if listing.has_scanned_folders:
            status += f" | Total: {format_size(listing.total_size)} (cached)"
        if source == CacheSource.DISK:
            status = f"Loaded from cache | {status}"
        return BrowseResult(path=path, listing=listing, source=source, status=status)

    def scan(
        self,
        path: str,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> ScanOutcome:
        """
        Run a full scan of ``path``.

        A completed scan replaces the in-memory tree and is written to the
        disk cache. A cancelled scan is returned as-is and cached nowhere.
        """
        path = os.path.abspath(path)
        cancel_event = cancel_event or threading.Event()
        root, scanned_items = self.scanner.scan_counted(path, progress_callback, cancel_event)

        if cancel_event.is_set():
            return ScanOutcome(
                root=root, cancelled=True, scanned_items=scanned_items, status="Scan cancelled"
            )

        # Subfolder entries resolved from the previous scan are now stale
        self.memory.discard_tree(path)
        self.memory.store(path, root)
        self.scan_cache.put(path, root)
        return ScanOutcome(
            root=root,
            scanned_items=scanned_items,
            status=f"Scanned {scanned_items} items | Total: {format_size(root.size)}",
        )

    def search(
        self,
        path: str,
        query: str,
        limit: int = MAX_SEARCH_RESULTS,
        cancel_event: Optional[threading.Event] = None,
    ) -> SearchOutcome:
        """
        Find nodes under ``path`` whose names contain ``query``.

        Searches the cached tree when there is one, otherwise only the
        directory's immediate children. Folders come first, then larger items.
        """
        if not query or not query.strip():
            return SearchOutcome(query=query)

        path = os.path.abspath(path)
        root, source = self.memory.resolve(path, self.scan_cache)
        if root is not None:
            matches = search_tree(root, query, cancel_event)
        else:
            needle = query.casefold()
            try:
                listing = list_directory(path, show_hidden=self.settings.show_hidden)
                matches = [
                    SearchResult.for_node(n) for n in listing.items if needle in n.name.casefold()
                ]
            except OSError as e:
                logger.debug("Cannot list %s for search: %s", path, e)
                matches = []

        logger.debug("Search for %r in %s (%s): %d matches", query, path, source.value, len(matches))
        ordered = _sort_results(matches)
        return SearchOutcome(
            query=query,
            results=ordered[:limit],
            total=len(matches),
            status=f'Found {len(matches)} items matching "{query}"',
        )

    def has_cached_scan(self, path: str) -> bool:
        """True when ``path`` or one of its ancestors has a scan in either cache."""
        path = os.path.abspath(path)
        if self.memory.find(path) is not None:
            return True
        return any(
            paths_equal(e.path, path) or is_ancestor_path(e.path, path)
            for e in self.scan_cache.entries()
        )

    def invalidate(self, path: str) -> None:
        path = os.path.abspath(path)
        self.memory.discard_tree(path)
        self.scan_cache.invalidate(path)

    def clear_cache(self) -> str:
        self.scan_cache.clear()
        self.memory.clear()
        return "Cache cleared"


def open_session(settings: Optional[Settings] = None) -> ScanSession:
    """Create a session whose disk cache is configured from ``settings``."""
    settings = settings or Settings()
    scan_cache = ScanCache(settings.cache_path, expiration=settings.cache_expiration)
    scan_cache.initialize()
    return ScanSession(scan_cache, settings=settings)
