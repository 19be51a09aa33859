"""Watch engine: sources, stability tracking and filtering into semantic events."""

import logging
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Any, Iterable, List, Optional, Set

from .config import WatcherConfig
from .exceptions import RootAlreadyExistsError, WatcherAlreadyRunningError
from .models import RawEventKind, RawFSEvent, SemanticEvent, WatchedRoot
from .path_resolver import PathResolver
from .router import EventRouter
from .sources import WatchSourcePool
from .stability import Clock, StabilityTracker, StatFunc

logger = logging.getLogger(__name__)

# Directories remembered for suppressing repeated creation reports
ANNOUNCED_DIRS_LIMIT = 4096


class WatchEngine:
    """
    Orchestrates watch sources, the stability tracker and the event router.

    Raw events arrive on watchdog threads through process(); a stability
    loop thread calls tick() and health-checks the sources every poll
    interval. Semantic events are published to the router, whose worker
    thread delivers them to the sinks.
    """

    def __init__(
        self,
        config: WatcherConfig,
        router: Optional[EventRouter] = None,
        sinks: Optional[Iterable[Any]] = None,
        clock: Optional[Clock] = None,
        stat_func: Optional[StatFunc] = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Validated watcher configuration
            router: Event router (a new one is created if omitted)
            sinks: Sinks to register on the router
            clock: Monotonic clock for stability timing
            stat_func: stat() replacement for the stability tracker
        """
        self.config = config
        self.router = router or EventRouter(config.router_queue_size)
        for sink in sinks or ():
            self.router.register(sink)

        self._resolver = PathResolver()
        self._roots: List[WatchedRoot] = []
        for folder in config.watch_folders:
            try:
                self._roots.append(self._resolver.add_root(folder, must_exist=False))
            except RootAlreadyExistsError:
                logger.warning(f"Ignoring duplicate watch folder: {folder}")

        self._tracker = StabilityTracker(
            stability_window_ms=config.stability_threshold_ms,
            poll_interval_ms=config.poll_interval_ms,
            binary_interval_ms=config.binary_interval_ms,
            is_binary=config.is_binary,
            clock=clock,
            stat_func=stat_func,
        )
        self._sources = WatchSourcePool(self.process, config)

        self._running = False
        self._accepting = True
        self._ready = False
        self._pending_scans: Set[Path] = {r.path for r in self._roots}
        self._stop_event = threading.Event()
        self._loop_thread: Optional[threading.Thread] = None
        self._announced_dirs: "OrderedDict[Path, None]" = OrderedDict()
        self._lock = threading.Lock()

    @property
    def resolver(self) -> PathResolver:
        return self._resolver

    @property
    def tracker(self) -> StabilityTracker:
        return self._tracker

    def get_roots(self) -> List[WatchedRoot]:
        """Get the configured roots in configuration order."""
        return list(self._roots)

    def register_sink(self, sink: Any) -> None:
        self.router.register(sink)

    def _emit(self, event: SemanticEvent) -> None:
        self.router.publish(event)

    def _is_directory(self, path: Path, reported: bool) -> bool:
        # The source's flag is only trusted once the path is gone.
        try:
            if path.exists():
                return path.is_dir()
        except OSError:
            pass
        return reported

    def _owning_root(self, raw_event: RawFSEvent) -> Optional[WatchedRoot]:
        """
        Root that owns the event's path, or None if this source should not
        report it. With nested roots every enclosing source sees the event;
        only the source of the longest matching root reports it, unless that
        source has failed, in which case the enclosing root takes over.
        """
        resolution = self._resolver.resolve(raw_event.path)
        if resolution is None:
            if raw_event.root is None:
                logger.warning(f"Event outside of any watched root: {raw_event.path}")
            return raw_event.root
        if raw_event.root is not None and raw_event.root != resolution.root:
            if self._sources.is_failed(resolution.root):
                return raw_event.root
            return None
        return resolution.root

    def process(self, raw_event: RawFSEvent) -> None:
        """
        Process a raw event from a watch source.

        Args:
            raw_event: The raw event
        """
        if not self._accepting:
            return

        logger.debug(f"WatchEngine.process: {raw_event.kind.value} - {raw_event.path}")

        if self.config.enable_debug_logging:
            self._emit(SemanticEvent.raw_observed(raw_event.kind, raw_event.path))

        kind = raw_event.kind
        if kind == RawEventKind.SCAN_COMPLETE:
            self._handle_scan_complete(raw_event)
        elif kind == RawEventKind.ERROR:
            self._emit(SemanticEvent.watch_error(raw_event.detail or "Unknown watcher error", raw_event.root))
        elif kind == RawEventKind.REMOVED:
            if raw_event.path is not None:
                self._tracker.forget(raw_event.path)
                with self._lock:
                    self._announced_dirs.pop(raw_event.path, None)
        elif kind in (RawEventKind.CREATED, RawEventKind.MODIFIED):
            self._handle_change(raw_event)

    def _handle_change(self, raw_event: RawFSEvent) -> None:
        path = raw_event.path
        if path is None:
            return

        root = self._owning_root(raw_event)
        if root is None:
            return

        if self._is_directory(path, raw_event.is_directory):
            if raw_event.kind == RawEventKind.CREATED and self._announce_directory(path):
                self._tracker.forget(path)
                self._emit(SemanticEvent.directory_added(
                    path, root, self._resolver.relative_path_for(path, root)
                ))
            return

        if not self.config.is_watched_file(path):
            return

        self._tracker.observe(path, root)

    def _announce_directory(self, path: Path) -> bool:
        """
        Record a directory creation.

        Returns:
            False if the directory was already announced and not removed
            since (the OS reported its creation twice)
        """
        with self._lock:
            if path in self._announced_dirs:
                self._announced_dirs.move_to_end(path)
                return False
            self._announced_dirs[path] = None
            while len(self._announced_dirs) > ANNOUNCED_DIRS_LIMIT:
                self._announced_dirs.popitem(last=False)
            return True

    def _handle_scan_complete(self, raw_event: RawFSEvent) -> None:
        with self._lock:
            if raw_event.root is not None:
                self._pending_scans.discard(raw_event.root.path)
            if self._ready or self._pending_scans:
                return
            self._ready = True
        self._emit(SemanticEvent.scan_complete())

    def tick(self, now: Optional[float] = None) -> List[SemanticEvent]:
        """
        Run one stability check and emit FILE_READY for settled files.

        Args:
            now: Clock time for the check (defaults to the tracker clock)

        Returns:
            The FILE_READY events emitted
        """
        if not self._accepting:
            return []

        events = []
        for tracked in self._tracker.check(now):
            event = SemanticEvent.file_ready(
                tracked.path,
                tracked.root,
                self._resolver.relative_path_for(tracked.path, tracked.root),
            )
            self._emit(event)
            events.append(event)
        return events

    def _stability_loop(self) -> None:
        """Worker loop that checks in-flight files and source health."""
        interval = self.config.poll_interval_ms / 1000.0
        logger.debug(f"Stability loop started, interval={interval}s")

        while not self._stop_event.wait(timeout=interval):
            try:
                self.tick()
                self._sources.check_health()
            except Exception as e:
                logger.error(f"Stability loop error: {e}")

    def start_async(self) -> None:
        """
        Start watching in the background.

        Returns immediately; the initial scan of every root has completed
        when this returns.

        Raises:
            WatcherAlreadyRunningError: If already running
        """
        with self._lock:
            if self._running:
                raise WatcherAlreadyRunningError("Watcher is already running")

            self._running = True
            self._accepting = True
            self._ready = False
            self._pending_scans = {r.path for r in self._roots}
            self._announced_dirs.clear()
            self._stop_event.clear()

        self.router.start()

        if not self._roots:
            self._handle_scan_complete(RawFSEvent(kind=RawEventKind.SCAN_COMPLETE, path=None))

        for root in self._roots:
            self._sources.start_watching(root)

        self._loop_thread = threading.Thread(target=self._stability_loop, name="StabilityLoop")
        self._loop_thread.daemon = True
        self._loop_thread.start()

    def start(self) -> None:
        """
        Start watching (blocking) until stop() is called.

        Raises:
            WatcherAlreadyRunningError: If already running
        """
        self.start_async()
        try:
            while not self._stop_event.is_set():
                self._stop_event.wait(timeout=0.5)
        except KeyboardInterrupt:
            pass
        finally:
            self._shutdown()

    def stop(self) -> None:
        """
        Stop the engine gracefully.

        Files still inside their stability window are not reported.
        """
        self._stop_event.set()
        self._shutdown()

    def _shutdown(self) -> None:
        """Internal shutdown procedure."""
        with self._lock:
            if not self._running:
                return
            self._running = False
            self._accepting = False

        self._stop_event.set()
        self._sources.stop_all()

        thread, self._loop_thread = self._loop_thread, None
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=2.0)

        dropped = self._tracker.clear()
        if dropped:
            logger.info(f"Discarded {dropped} file(s) still being written")

        self.router.close(timeout=self.config.shutdown_timeout_s)

    def watched_roots(self) -> List[WatchedRoot]:
        """Roots whose source is currently running."""
        return self._sources.get_watched_roots()

    def tracked_count(self) -> int:
        """Number of files currently waiting to settle."""
        return len(self._tracker)

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_ready(self) -> bool:
        with self._lock:
            return self._ready

    def close(self) -> None:
        """Stop the engine and release all resources."""
        self.stop()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
