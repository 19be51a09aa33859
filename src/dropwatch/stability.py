"""Debounce-by-inactivity tracking of files that are still being written."""

import logging
import os
import threading
import time
from collections import OrderedDict
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from .models import FileState, TrackedFile, WatchedRoot

logger = logging.getLogger(__name__)

Clock = Callable[[], float]
StatFunc = Callable[[Path], os.stat_result]


class StabilityTracker:
    """
    Decides when a file has finished being written.

    A file is settled once its size and mtime have not changed for the
    stability window. Raw events only feed observations; the settle
    decision happens in check(), which the engine calls at the poll
    interval. Ingestion and checking may run on different threads and are
    serialised by a single lock.
    """

    def __init__(
        self,
        stability_window_ms: int = 5000,
        poll_interval_ms: int = 1000,
        binary_interval_ms: Optional[int] = None,
        is_binary: Optional[Callable[[Path], bool]] = None,
        clock: Optional[Clock] = None,
        stat_func: Optional[StatFunc] = None,
        settled_memo_size: int = 4096,
    ):
        """
        Initialize the tracker.

        Args:
            stability_window_ms: Time without changes before a file settles
            poll_interval_ms: Minimum time between checks of one file
            binary_interval_ms: Check interval for binary files (defaults to
                poll_interval_ms; never shorter than it)
            is_binary: Predicate selecting the binary check interval
            clock: Monotonic clock in seconds
            stat_func: Function returning an os.stat_result for a path
            settled_memo_size: How many settled signatures to remember for
                suppressing duplicate notifications
        """
        self.stability_window = stability_window_ms / 1000.0
        self.poll_interval = poll_interval_ms / 1000.0
        self.binary_interval = max(binary_interval_ms or poll_interval_ms, poll_interval_ms) / 1000.0
        self._is_binary = is_binary or (lambda path: False)
        self._clock = clock or time.monotonic
        self._stat = stat_func or os.stat
        self._settled_memo_size = settled_memo_size

        self._files: Dict[Path, TrackedFile] = {}
        self._settled: "OrderedDict[Path, Tuple[int, int]]" = OrderedDict()
        self._lock = threading.Lock()

    def _signature(self, path: Path) -> Optional[Tuple[int, int]]:
        try:
            st = self._stat(path)
        except (FileNotFoundError, NotADirectoryError):
            return None
        except OSError as e:
            logger.debug(f"Could not stat {path}: {e}")
            return None
        return (st.st_size, st.st_mtime_ns)

    def _interval_for(self, tracked: TrackedFile) -> float:
        return self.binary_interval if tracked.binary else self.poll_interval

    def observe(self, path: Path, root: WatchedRoot, now: Optional[float] = None) -> Optional[TrackedFile]:
        """
        Record a create/modify observation for a file.

        Args:
            path: Absolute path of the file
            root: Watched root that contains it
            now: Current clock time (defaults to the tracker clock)

        Returns:
            The tracked entry, or None if the file vanished or the event
            repeats an already settled write
        """
        now = self._clock() if now is None else now
        signature = self._signature(path)

        with self._lock:
            if signature is None:
                if self._files.pop(path, None) is not None:
                    logger.debug(f"File vanished before settling: {path}")
                return None

            tracked = self._files.get(path)
            if tracked is None:
                if self._settled.get(path) == signature:
                    return None
                self._settled.pop(path, None)
                tracked = TrackedFile(
                    path=path,
                    root=root,
                    size=signature[0],
                    mtime_ns=signature[1],
                    first_seen_at=now,
                    last_changed_at=now,
                    last_checked_at=now,
                    binary=self._is_binary(path),
                )
                self._files[path] = tracked
                logger.debug(f"Tracking new file: {path} ({tracked.size} bytes)")
                return tracked

            if tracked.signature != signature:
                tracked.size, tracked.mtime_ns = signature
                tracked.last_changed_at = now
            return tracked

    def check(self, now: Optional[float] = None) -> List[TrackedFile]:
        """
        Re-check in-flight files and return those that settled.

        Files that vanished are dropped silently. Settled files are removed
        from tracking and returned in the order they were first seen.

        Args:
            now: Current clock time (defaults to the tracker clock)

        Returns:
            Files that reached the SETTLED state during this check
        """
        now = self._clock() if now is None else now
        settled = []

        with self._lock:
            due = [
                t for t in self._files.values()
                if now - t.last_checked_at >= self._interval_for(t)
                or now >= t.settles_at(self.stability_window)
            ]

            for tracked in due:
                signature = self._signature(tracked.path)
                tracked.last_checked_at = now

                if signature is None:
                    tracked.state = FileState.REMOVED
                    del self._files[tracked.path]
                    logger.debug(f"File vanished before settling: {tracked.path}")
                    continue

                if signature != tracked.signature:
                    tracked.size, tracked.mtime_ns = signature
                    tracked.last_changed_at = now
                    continue

                if now >= tracked.settles_at(self.stability_window):
                    tracked.state = FileState.SETTLED
                    del self._files[tracked.path]
                    self._remember_settled(tracked.path, signature)
                    settled.append(tracked)

        settled.sort(key=lambda t: t.first_seen_at)
        return settled

    def _remember_settled(self, path: Path, signature: Tuple[int, int]) -> None:
        self._settled[path] = signature
        self._settled.move_to_end(path)
        while len(self._settled) > self._settled_memo_size:
            self._settled.popitem(last=False)

    def forget(self, path: Path) -> bool:
        """
        Stop tracking a path (removed from disk or replaced by a directory).

        Returns:
            True if the path was in flight
        """
        with self._lock:
            self._settled.pop(path, None)
            tracked = self._files.pop(path, None)
            if tracked is None:
                return False
            tracked.state = FileState.REMOVED
            return True

    def get(self, path: Path) -> Optional[TrackedFile]:
        with self._lock:
            return self._files.get(path)

    def clear(self) -> int:
        """
        Drop all in-flight files without settling them.

        Returns:
            Number of files dropped
        """
        with self._lock:
            count = len(self._files)
            self._files.clear()
            self._settled.clear()
            return count

    def __len__(self) -> int:
        with self._lock:
            return len(self._files)

    def __contains__(self, path: Path) -> bool:
        with self._lock:
            return path in self._files
