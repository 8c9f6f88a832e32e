"""Directory tree scanning for diskwise."""

import logging
import os
import queue
import stat
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from datetime import datetime
from typing import Callable, Optional

from diskwise.models import Node, ScanProgress

logger = logging.getLogger(__name__)

# Emit a progress event every N counted items
PROGRESS_INTERVAL = 100

ProgressCallback = Callable[[ScanProgress], None]


def expand_path(path: str) -> str:
    """Expand ~ and environment variables and make the path absolute."""
    return os.path.abspath(os.path.expanduser(os.path.expandvars(path)))


def _display_name(path: str) -> str:
    return os.path.basename(path.rstrip("\\/")) or path


def _attributes(name: str, st: os.stat_result) -> tuple[bool, bool]:
    """Return (is_hidden, is_system) for a stat result."""
    attrs = getattr(st, "st_file_attributes", 0)
    is_hidden = name.startswith(".") or bool(attrs & stat.FILE_ATTRIBUTE_HIDDEN)
    is_system = bool(attrs & stat.FILE_ATTRIBUTE_SYSTEM)
    return is_hidden, is_system


def node_from_stat(path: str, name: str, st: os.stat_result, is_directory: bool) -> Node:
    """Build a node carrying the attributes found in a stat result."""
    is_hidden, is_system = _attributes(name, st)
    return Node(
        path=path,
        name=name,
        is_directory=is_directory,
        is_hidden=is_hidden,
        is_system=is_system,
        last_modified=datetime.fromtimestamp(st.st_mtime),
    )


class ProgressDispatcher:
    """Deliver progress events to a callback on a background thread.

    ``post`` never waits for the callback, so a slow consumer cannot
    stall the scan. ``close`` drains the queue and stops the thread.
    """

    _STOP = object()

    def __init__(self, callback: ProgressCallback):
        self._callback = callback
        self._queue: queue.SimpleQueue = queue.SimpleQueue()
        self._thread = threading.Thread(
            target=self._run, name="diskwise-progress", daemon=True
        )
        self._thread.start()

    def post(self, event: ScanProgress) -> None:
        self._queue.put(event)

    def close(self) -> None:
        self._queue.put(self._STOP)
        self._thread.join()

    def _run(self) -> None:
        while True:
            event = self._queue.get()
            if event is self._STOP:
                return
            try:
                self._callback(event)
            except Exception:
                logger.exception("Progress callback failed")


class ThrottledProgress:
    """Forward at most one progress event per ``min_interval`` seconds.

    Meant to wrap a display callback; the first event always goes through.
    """

    def __init__(
        self,
        callback: ProgressCallback,
        min_interval: float = 0.1,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.callback = callback
        self.min_interval = min_interval
        self._clock = clock
        self._last: Optional[float] = None
        self._lock = threading.Lock()

    def __call__(self, progress: ScanProgress) -> None:
        now = self._clock()
        with self._lock:
            if self._last is not None and now - self._last < self.min_interval:
                return
            self._last = now
        self.callback(progress)


class _ItemCounter:
    """Thread-safe running total of scanned items."""

    def __init__(self):
        self._lock = threading.Lock()
        self._value = 0

    def increment(self) -> int:
        with self._lock:
            self._value += 1
            return self._value

    @property
    def value(self) -> int:
        return self._value


class _ScanRun:
    """State for a single invocation of :meth:`TreeScanner.scan`."""

    def __init__(
        self,
        executor: ThreadPoolExecutor,
        max_workers: int,
        cancel_event: threading.Event,
        dispatcher: Optional[ProgressDispatcher],
    ):
        self.executor = executor
        self.cancel_event = cancel_event
        self.dispatcher = dispatcher
        self.counter = _ItemCounter()
        # One slot per pool thread: a submitted task always gets a thread
        self._slots = threading.BoundedSemaphore(max_workers)

    def emit(self, count: int, path: str) -> None:
        if self.dispatcher is not None:
            self.dispatcher.post(ScanProgress(scanned_items=count, current_path=path))

    def scan_directory(self, root: Node) -> None:
        """
        Fill in ``root`` and its subtree from the filesystem.

        Subdirectories go to the pool while a worker slot is free and onto a
        local stack otherwise, so tree depth never turns into call depth.
        Totals are aggregated bottom-up once every branch has finished.
        """
        listed: list[Node] = []
        interrupted: set[int] = set()
        futures: list[Future] = []
        stack = [root]

        while stack:
            node = stack.pop()
            if self.cancel_event.is_set():
                continue
            subdirs = self._list_directory(node, interrupted)
            if subdirs is None:
                continue
            listed.append(node)
            for child in subdirs:
                if self.cancel_event.is_set():
                    break
                if self._slots.acquire(blocking=False):
                    futures.append(self.executor.submit(self._scan_in_worker, child))
                else:
                    stack.append(child)

        # Join: totals are only valid once every branch has finished
        for future in futures:
            future.result()

        # Reverse pre-order visits every child before its parent
        for node in reversed(listed):
            self._aggregate(node, id(node) in interrupted)

    def _list_directory(self, node: Node, interrupted: set[int]) -> Optional[list[Node]]:
        """
        Record a directory's own files and attach its subdirectories.

        Returns the new child nodes, or None when the directory cannot be
        listed (it is then final with zero totals).
        """
        try:
            entries = os.scandir(node.path)
        except OSError as e:
            logger.debug("Cannot list %s: %s", node.path, e)
            node.size = 0
            node.file_count = 0
            node.folder_count = 0
            node.is_scanned = True
            return None

        subdirs: list[Node] = []
        file_bytes = 0
        file_count = 0

        with entries:
            try:
                for entry in entries:
                    if self.cancel_event.is_set():
                        interrupted.add(id(node))
                        break
                    try:
                        if entry.is_dir(follow_symlinks=False):
                            st = entry.stat(follow_symlinks=False)
                            child = node_from_stat(entry.path, entry.name, st, is_directory=True)
                            child.size = 0
                            node.add_child(child)
                            subdirs.append(child)
                        elif entry.is_file(follow_symlinks=False):
                            file_bytes += entry.stat(follow_symlinks=False).st_size
                            file_count += 1
                            count = self.counter.increment()
                            if count % PROGRESS_INTERVAL == 0:
                                self.emit(count, node.path)
                    except OSError as e:
                        logger.debug("Skipping %s: %s", entry.path, e)
                        continue
            except OSError as e:
                # Directory vanished or became unreadable mid-listing
                logger.debug("Listing of %s interrupted: %s", node.path, e)

        node.size = file_bytes
        node.file_count = file_count
        return subdirs

    def _aggregate(self, node: Node, interrupted: bool) -> None:
        subdirs = node.children
        node.size += sum(max(c.size, 0) for c in subdirs)
        node.folder_count = sum(1 + c.folder_count for c in subdirs)
        node.is_scanned = not interrupted and all(c.is_scanned for c in subdirs)
        self.emit(self.counter.increment(), node.path)

    def _scan_in_worker(self, node: Node) -> None:
        try:
            self.scan_directory(node)
        finally:
            self._slots.release()


class TreeScanner:
    """Concurrent, cancellable directory tree scanner.

    Subdirectories are scanned on a shared thread pool whenever a worker is
    free and from a local stack otherwise, so neither the number of threads
    nor the call depth grows with the tree.
    """

    def __init__(self, max_workers: Optional[int] = None):
        self.max_workers = max_workers or os.cpu_count() or 4
        # Item count of the most recent scan() call on this instance
        self.scanned_items = 0

    def scan(
        self,
        root_path: str,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> Node:
        """
        Scan a directory tree and return its root node.

        Never raises for filesystem errors: unreadable entries count as zero.
        When ``cancel_event`` is set mid-scan the partial tree is returned;
        check the event afterwards to tell a cancelled scan from a finished one.

        Args:
            root_path: Directory to scan
            progress_callback: Optional callback receiving ScanProgress events
            cancel_event: Optional event that stops the scan when set

        Returns:
            Root Node with aggregated size, file and folder counts
        """
        root, self.scanned_items = self.scan_counted(root_path, progress_callback, cancel_event)
        return root

    def scan_counted(
        self,
        root_path: str,
        progress_callback: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> tuple[Node, int]:
        """Like :meth:`scan`, but also return the number of items counted.

        Safe to call from several threads on one scanner.
        """
        cancel_event = cancel_event or threading.Event()
        root_path = os.path.abspath(root_path)
        name = _display_name(root_path)

        try:
            st = os.stat(root_path)
        except OSError as e:
            logger.debug("Cannot stat %s: %s", root_path, e)
            return Node(path=root_path, name=name, is_directory=True, size=0, is_scanned=True), 0

        if not stat.S_ISDIR(st.st_mode):
            node = node_from_stat(root_path, name, st, is_directory=False)
            node.size = st.st_size
            node.is_scanned = True
            return node, 1

        root = node_from_stat(root_path, name, st, is_directory=True)
        root.size = 0

        logger.info("Scanning %s with %d workers", root_path, self.max_workers)
        started = time.monotonic()

        dispatcher = ProgressDispatcher(progress_callback) if progress_callback else None
        try:
            with ThreadPoolExecutor(
                max_workers=self.max_workers, thread_name_prefix="diskwise-scan"
            ) as executor:
                run = _ScanRun(executor, self.max_workers, cancel_event, dispatcher)
                run.scan_directory(root)
        finally:
            if dispatcher is not None:
                dispatcher.close()

        scanned_items = run.counter.value
        elapsed = time.monotonic() - started
        if cancel_event.is_set():
            logger.info("Scan of %s cancelled after %d items", root_path, scanned_items)
        else:
            logger.info(
                "Scanned %s: %d items, %d bytes in %.2fs",
                root_path,
                scanned_items,
                root.size,
                elapsed,
            )
        return root, scanned_items


def scan_directory(
    root_path: str,
    progress_callback: Optional[ProgressCallback] = None,
    cancel_event: Optional[threading.Event] = None,
    max_workers: Optional[int] = None,
) -> Node:
    """Scan ``root_path`` with a fresh :class:`TreeScanner`."""
    return TreeScanner(max_workers=max_workers).scan(root_path, progress_callback, cancel_event)


def get_directory_size(path: str, cancel_event: Optional[threading.Event] = None) -> int:
    """
    Sum the sizes of all files below a directory.

    Uses os.scandir with an explicit stack; unreadable entries are skipped.

    Args:
        path: Directory to measure
        cancel_event: Optional event that stops the walk early

    Returns:
        Total bytes found
    """
    total_size = 0
    stack = [path]
    while stack:
        if cancel_event is not None and cancel_event.is_set():
            break
        current = stack.pop()
        try:
            with os.scandir(current) as entries:
                for entry in entries:
                    try:
                        if entry.is_file(follow_symlinks=False):
                            total_size += entry.stat(follow_symlinks=False).st_size
                        elif entry.is_dir(follow_symlinks=False):
                            stack.append(entry.path)
                    except OSError:
                        continue
        except OSError:
            continue
    return total_size


def quick_scan(path: str, cancel_event: Optional[threading.Event] = None) -> list[Node]:
    """
    List the immediate children of a directory with their sizes.

    Directories are sized with a blocking recursive byte sum, files by their
    length. No progress is reported.

    Args:
        path: Directory to list
        cancel_event: Optional event that stops the listing early

    Returns:
        Child nodes, directories first, in discovery order
    """
    directories: list[Node] = []
    files: list[Node] = []
    try:
        with os.scandir(path) as entries:
            for entry in entries:
                if cancel_event is not None and cancel_event.is_set():
                    break
                try:
                    st = entry.stat(follow_symlinks=False)
                    if entry.is_dir(follow_symlinks=False):
                        node = node_from_stat(entry.path, entry.name, st, is_directory=True)
                        node.size = get_directory_size(entry.path, cancel_event)
                        directories.append(node)
                    elif entry.is_file(follow_symlinks=False):
                        node = node_from_stat(entry.path, entry.name, st, is_directory=False)
                        node.size = st.st_size
                        files.append(node)
                    else:
                        continue
                    node.is_scanned = True
                except OSError as e:
                    logger.debug("Skipping %s: %s", entry.path, e)
                    continue
    except OSError as e:
        logger.debug("Cannot list %s: %s", path, e)
    return directories + files
