"""Persistent scan cache for diskwise.

Each cached scan root is stored as one JSON payload holding the full
subtree, plus a shared ``index.json`` listing every entry with its totals.
Payloads hold the tree as a flat node list, so deep trees never nest deeply
in JSON. Payload names are derived from the normalized path key so repeated
saves of the same path overwrite the same file.

Every persistence failure is swallowed: a broken cache behaves like an
empty one and never interrupts a scan.
"""

import hashlib
import logging
import os
import threading
from datetime import datetime, timedelta
from pathlib import Path
from typing import Callable, Optional

from diskwise.models import (
    CacheEntry,
    CacheIndex,
    CachedTree,
    Node,
    SearchResult,
    is_ancestor_path,
    path_key,
)

logger = logging.getLogger(__name__)

INDEX_FILE_NAME = "index.json"
DEFAULT_EXPIRATION = timedelta(days=7)
# Hex characters of the SHA-256 digest kept in payload file names
HASH_PREFIX_LENGTH = 16


def cache_file_name(path: str) -> str:
    """Deterministic payload file name for a scan root."""
    digest = hashlib.sha256(path_key(path).encode("utf-8")).hexdigest().upper()
    return digest[:HASH_PREFIX_LENGTH] + ".json"


class ScanCache:
    """Disk-backed cache of scanned trees keyed by root path."""

    def __init__(
        self,
        cache_dir: Path,
        expiration: timedelta = DEFAULT_EXPIRATION,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.cache_dir = Path(cache_dir)
        self.expiration = expiration
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()
        self._save_lock = threading.Lock()

    @property
    def index_file(self) -> Path:
        return self.cache_dir / INDEX_FILE_NAME

    def initialize(self) -> None:
        """Create the cache directory and load the index into memory."""
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            if not self.index_file.exists():
                return
            index = CacheIndex.model_validate_json(self.index_file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.debug("Ignoring unreadable cache index %s: %s", self.index_file, e)
            return

        with self._lock:
            for entry in index.entries:
                if not self._is_expired(entry):
                    self._entries[path_key(entry.path)] = entry
        logger.debug("Loaded %d cache entries from %s", len(self._entries), self.cache_dir)

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.cached_at > self.expiration

    def _fresh_entry(self, path: str) -> Optional[CacheEntry]:
        with self._lock:
            entry = self._entries.get(path_key(path))
        if entry is None or self._is_expired(entry):
            return None
        return entry

    def is_fresh(self, path: str) -> bool:
        """Check the index for an unexpired entry without loading the payload."""
        return self._fresh_entry(path) is not None

    def entries(self) -> list[CacheEntry]:
        """All unexpired index entries."""
        with self._lock:
            entries = list(self._entries.values())
        return [e for e in entries if not self._is_expired(e)]

    def _forget(self, path: str) -> Optional[CacheEntry]:
        with self._lock:
            return self._entries.pop(path_key(path), None)

    def _load_payload(self, entry: CacheEntry) -> Optional[Node]:
        """Rehydrate a payload, or drop the entry when it cannot be read."""
        payload = self.cache_dir / entry.cache_file_name
        try:
            cached = CachedTree.model_validate_json(payload.read_text(encoding="utf-8"))
            node = cached.to_node()
        except FileNotFoundError:
            logger.debug("Cache payload %s is missing, dropping entry", payload)
            self._forget(entry.path)
            self._save_index()
            return None
        except (OSError, ValueError) as e:
            logger.debug("Cannot read cache payload %s: %s", payload, e)
            return None
        return node

    def get_direct(self, path: str) -> Optional[Node]:
        """Return the tree cached for exactly ``path``, if present and fresh."""
        with self._lock:
            entry = self._entries.get(path_key(path))
        if entry is None:
            return None
        if self._is_expired(entry):
            logger.debug("Cache entry for %s expired", path)
            self._forget(path)
            self._save_index()
            return None
        return self._load_payload(entry)

    def get(self, path: str) -> Optional[Node]:
        """
        Look up a cached tree for a path.

        Falls back to the nearest cached ancestor whose tree contains the
        path, and serves that descendant as if it had been cached directly.

        Args:
            path: Directory to look up

        Returns:
            Freshly rehydrated Node, or None on a miss
        """
        node = self.get_direct(path)
        if node is not None:
            return node

        ancestors = [e for e in self.entries() if is_ancestor_path(e.path, path)]
        # Nearest ancestor first
        ancestors.sort(key=lambda e: len(path_key(e.path)), reverse=True)
        for entry in ancestors:
            root = self._load_payload(entry)
            if root is None:
                continue
            found = root.find(path)
            if found is not None:
                logger.debug("Resolved %s from cached ancestor %s", path, entry.path)
                return found
        return None

    def put(self, path: str, node: Node) -> None:
        """Persist a scanned tree and record it in the index."""
        file_name = cache_file_name(path)
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            (self.cache_dir / file_name).write_text(
                CachedTree.from_node(node).model_dump_json(), encoding="utf-8"
            )
        except OSError as e:
            logger.debug("Cannot write cache payload for %s: %s", path, e)
            return

        entry = CacheEntry(
            path=path,
            cached_at=self._clock(),
            total_size=node.size,
            file_count=node.file_count,
            folder_count=node.folder_count,
            cache_file_name=file_name,
        )
        with self._lock:
            self._entries[path_key(path)] = entry
        self._save_index()
        logger.debug("Cached scan of %s as %s", path, file_name)

    def invalidate(self, path: str) -> None:
        """Remove one entry and its payload."""
        entry = self._forget(path)
        if entry is None:
            return
        try:
            (self.cache_dir / entry.cache_file_name).unlink(missing_ok=True)
        except OSError as e:
            logger.debug("Cannot delete cache payload %s: %s", entry.cache_file_name, e)
        self._save_index()

    def clear(self) -> None:
        """Remove every entry and every file in the cache directory."""
        with self._lock:
            self._entries.clear()
        try:
            if not self.cache_dir.exists():
                return
            for child in self.cache_dir.iterdir():
                if child.is_file():
                    child.unlink()
        except OSError as e:
            logger.debug("Cannot clear cache directory %s: %s", self.cache_dir, e)

    def _save_index(self) -> None:
        with self._save_lock:
            with self._lock:
                index = CacheIndex(entries=list(self._entries.values()))
            try:
                self.cache_dir.mkdir(parents=True, exist_ok=True)
                tmp = self.index_file.with_suffix(".tmp")
                tmp.write_text(index.model_dump_json(indent=2), encoding="utf-8")
                os.replace(tmp, self.index_file)
            except OSError as e:
                logger.debug("Cannot save cache index %s: %s", self.index_file, e)

    def search(
        self,
        root_path: str,
        query: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> list[SearchResult]:
        """
        Search node names in the cached tree for ``root_path``.

        Args:
            root_path: Cached scan to search in
            query: Case-insensitive substring to look for
            cancel_event: Optional event that stops the search early

        Returns:
            Matching nodes in tree order; empty on a blank query or cache miss
        """
        if not query or not query.strip():
            return []
        root = self.get(root_path)
        if root is None:
            return []
        return search_tree(root, query, cancel_event)


def search_tree(
    root: Node, query: str, cancel_event: Optional[threading.Event] = None
) -> list[SearchResult]:
    """Collect nodes below ``root`` whose name contains ``query`` (any case)."""
    needle = query.casefold()
    results: list[SearchResult] = []
    for node in root.walk():
        if cancel_event is not None and cancel_event.is_set():
            break
        if needle in node.name.casefold():
            results.append(SearchResult.for_node(node))
    return results
