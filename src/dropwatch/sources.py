"""Filesystem event sources built on the watchdog library."""

import errno
import logging
import os
import stat
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver
from watchdog.events import (
    FileSystemEvent,
    FileSystemEventHandler,
    DirCreatedEvent,
    DirDeletedEvent,
    DirModifiedEvent,
    DirMovedEvent,
)

from .config import WatcherConfig
from .exceptions import SourceError
from .models import RawEventKind, RawFSEvent, WatchedRoot

logger = logging.getLogger(__name__)

RawCallback = Callable[[RawFSEvent], None]


def is_hidden(path: Path, root: Path) -> bool:
    """Check whether any segment of path below root starts with a dot."""
    try:
        parts = path.relative_to(root).parts
    except ValueError:
        parts = path.parts
    return any(part.startswith(".") for part in parts)


def _decode(path) -> str:
    return os.fsdecode(path)


class FSEventHandler(FileSystemEventHandler):
    """Handler that converts watchdog events to RawFSEvent."""

    def __init__(self, callback: RawCallback, root: WatchedRoot):
        super().__init__()
        self.callback = callback
        self.root = root

    def _emit(self, kind: RawEventKind, path: Path, is_directory: bool = False) -> None:
        """Emit a RawFSEvent to the callback unless the path is hidden."""
        if is_hidden(path, self.root.path):
            return

        raw_event = RawFSEvent(
            kind=kind,
            path=path,
            root=self.root,
            is_directory=is_directory,
            timestamp=time.time(),
        )
        self.callback(raw_event)

    def on_created(self, event: FileSystemEvent):
        is_dir = isinstance(event, DirCreatedEvent)
        self._emit(RawEventKind.CREATED, Path(_decode(event.src_path)), is_directory=is_dir)

    def on_deleted(self, event: FileSystemEvent):
        is_dir = isinstance(event, DirDeletedEvent)
        path = Path(_decode(event.src_path))
        if path == self.root.path:
            # Loss of the root itself is reported by WatchSource.check_health
            return
        self._emit(RawEventKind.REMOVED, path, is_directory=is_dir)

    def on_modified(self, event: FileSystemEvent):
        is_dir = isinstance(event, DirModifiedEvent)
        self._emit(RawEventKind.MODIFIED, Path(_decode(event.src_path)), is_directory=is_dir)

    def on_moved(self, event: FileSystemEvent):
        # A rename is reported as removal of the old name plus a new file.
        is_dir = isinstance(event, DirMovedEvent)
        self._emit(RawEventKind.REMOVED, Path(_decode(event.src_path)), is_directory=is_dir)
        self._emit(RawEventKind.CREATED, Path(_decode(event.dest_path)), is_directory=is_dir)


class WatchSource:
    """
    Watches a single root with a native or polling watchdog observer.

    After start() the source has enumerated the existing tree and emitted
    exactly one SCAN_COMPLETE event. Pre-existing entries never produce
    CREATED events; only changes after start are reported.
    """

    def __init__(
        self,
        root: WatchedRoot,
        callback: RawCallback,
        config: Optional[WatcherConfig] = None,
    ):
        """
        Initialize the source.

        Args:
            root: Root directory to watch
            callback: Receives every raw event, including errors
            config: Watcher configuration (mode, interval, recursion)
        """
        self.root = root
        self.callback = callback
        self.config = config or WatcherConfig()
        self.initial_entries = 0
        self._observer = None
        self._failed = False
        self._device: Optional[int] = None
        self._lock = threading.Lock()

    def _new_observer(self):
        if self.config.use_polling:
            return PollingObserver(timeout=self.config.interval_ms / 1000.0)
        return Observer()

    def _report_error(self, error: SourceError) -> None:
        logger.error(f"[{self.root.id}] {error}")
        self.callback(RawFSEvent(
            kind=RawEventKind.ERROR,
            path=self.root.path,
            root=self.root,
            detail=str(error),
        ))

    def _enumerate(self) -> int:
        """Count non-hidden entries present at start time."""
        count = 0
        for dirpath, dirnames, filenames in os.walk(self.root.path):
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            count += len(dirnames)
            count += sum(1 for f in filenames if not f.startswith("."))
            if not self.config.recursive:
                break
        return count

    def start(self) -> bool:
        """
        Start watching and perform the initial enumeration.

        A root that cannot be watched is reported as an ERROR event;
        SCAN_COMPLETE is emitted either way so overall readiness is not
        held up by one broken root.

        Returns:
            True if the observer is running
        """
        with self._lock:
            if self._observer is not None:
                return True

            started = False
            try:
                if not self.root.path.is_dir():
                    raise FileNotFoundError(errno.ENOENT, "No such directory", str(self.root.path))
                self._device = self.root.path.stat().st_dev
                self._observer = self._new_observer()
                self._observer.schedule(
                    FSEventHandler(self.callback, self.root),
                    str(self.root.path),
                    recursive=self.config.recursive,
                )
                self._observer.start()
                self.initial_entries = self._enumerate()
                started = True
                logger.debug(
                    f"[{self.root.id}] Watching {self.initial_entries} existing entries "
                    f"({'polling' if self.config.use_polling else 'native'} mode)"
                )
            except OSError as e:
                self._failed = True
                self._report_error(SourceError(f"Cannot watch {self.root.path}: {e}"))
                self._stop_observer()

        self.callback(RawFSEvent(
            kind=RawEventKind.SCAN_COMPLETE,
            path=None,
            root=self.root,
            is_directory=True,
        ))
        return started

    def check_health(self) -> bool:
        """
        Verify that the root is still accessible.

        An inaccessible root is reported once as an ERROR and its observer
        is stopped; other sources are unaffected.

        Returns:
            True if the source is healthy
        """
        with self._lock:
            if self._failed:
                return False
            if self._observer is None:
                return True

            detail = None
            try:
                st = self.root.path.stat()
                if not stat.S_ISDIR(st.st_mode):
                    detail = f"Watched folder is no longer accessible: {self.root.path}"
                elif self._device is not None and st.st_dev != self._device:
                    # An unmounted volume leaves its empty mount point behind
                    detail = f"Watched folder was unmounted or replaced: {self.root.path}"
                else:
                    with os.scandir(self.root.path):
                        pass
            except (FileNotFoundError, NotADirectoryError):
                detail = f"Watched folder is no longer accessible: {self.root.path}"
            except OSError as e:
                detail = f"Watched folder is no longer readable: {self.root.path} ({e})"

            if detail is None and not self._observer.is_alive():
                detail = f"Observer for {self.root.path} stopped unexpectedly"

            if detail is None:
                return True

            self._failed = True
            self._stop_observer()

        self._report_error(SourceError(detail))
        return False

    def _stop_observer(self, timeout: float = 5.0) -> None:
        observer, self._observer = self._observer, None
        if observer is None:
            return
        observer.stop()
        if observer.is_alive() and observer is not threading.current_thread():
            observer.join(timeout=timeout)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the observer and release its OS resources."""
        with self._lock:
            self._stop_observer(timeout)

    @property
    def is_running(self) -> bool:
        with self._lock:
            return self._observer is not None

    @property
    def failed(self) -> bool:
        return self._failed


class WatchSourcePool:
    """
    Manages one WatchSource per root.

    Provides a unified interface for starting, health-checking and stopping
    sources for multiple root directories.
    """

    def __init__(
        self,
        event_callback: RawCallback,
        config: Optional[WatcherConfig] = None,
    ):
        """
        Initialize the source pool.

        Args:
            event_callback: Callback function for raw filesystem events
            config: Watcher configuration
        """
        self.event_callback = event_callback
        self.config = config or WatcherConfig()
        self._sources: Dict[Path, WatchSource] = {}
        self._lock = threading.Lock()

    def start_watching(self, root: WatchedRoot) -> bool:
        """
        Start watching a root directory.

        Returns:
            True if watching started, False if already watching or the
            root could not be watched
        """
        with self._lock:
            if root.path in self._sources:
                return False
            source = WatchSource(root, self.event_callback, self.config)
            self._sources[root.path] = source

        return source.start()

    def stop_watching(self, root: WatchedRoot) -> bool:
        """
        Stop watching a root directory.

        Returns:
            True if watching stopped, False if not watching
        """
        with self._lock:
            source = self._sources.pop(root.path, None)

        if source is None:
            return False
        source.stop()
        return True

    def stop_all(self, timeout: float = 5.0) -> int:
        """
        Stop all sources.

        Returns:
            Number of sources stopped
        """
        with self._lock:
            sources = list(self._sources.values())
            self._sources.clear()

        for source in sources:
            source.stop(timeout)
        return len(sources)

    def check_health(self) -> List[WatchedRoot]:
        """
        Health-check every running source.

        Returns:
            Roots that are currently failed
        """
        with self._lock:
            sources = list(self._sources.values())

        return [s.root for s in sources if not s.check_health()]

    def is_watching(self, root: WatchedRoot) -> bool:
        with self._lock:
            source = self._sources.get(root.path)
        return source is not None and source.is_running

    def is_failed(self, root: WatchedRoot) -> bool:
        """Check whether the source for a root could not start or was lost."""
        with self._lock:
            source = self._sources.get(root.path)
        return source is not None and source.failed

    def get_watched_roots(self) -> List[WatchedRoot]:
        """Get the roots with a running source."""
        with self._lock:
            sources = list(self._sources.values())
        return [s.root for s in sources if s.is_running]

    def __len__(self) -> int:
        """Return the number of active sources."""
        with self._lock:
            return sum(1 for s in self._sources.values() if s.is_running)
