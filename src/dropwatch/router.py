"""Fan-out delivery of semantic events to registered sinks."""

import logging
import threading
from collections import deque
from typing import Any, Callable, Deque, List, Optional, Union

from .models import SemanticEvent

logger = logging.getLogger(__name__)

SinkCallable = Callable[[SemanticEvent], Any]


def _deliver(sink: Any, event: SemanticEvent) -> None:
    handle = getattr(sink, "handle", None)
    if handle is not None:
        handle(event)
    else:
        sink(event)


def _sink_name(sink: Any) -> str:
    return getattr(sink, "__name__", None) or type(sink).__name__


class EventRouter:
    """
    Delivers each SemanticEvent to every registered sink.

    publish() only enqueues; a worker thread drains the queue and calls
    the sinks in registration order, so a slow sink never blocks the
    watch loop. A failing sink is logged and skipped.

    The queue is bounded. On overflow the oldest debug event is dropped
    first, then the oldest other non-critical event. FILE_READY and
    WATCH_ERROR events are never dropped, even if that means exceeding
    the capacity.
    """

    def __init__(self, max_queue_size: int = 1000):
        """
        Initialize the router.

        Args:
            max_queue_size: Capacity of the dispatch queue
        """
        self.max_queue_size = max_queue_size
        self._sinks: List[Any] = []
        self._queue: Deque[SemanticEvent] = deque()
        self._cond = threading.Condition()
        self._worker: Optional[threading.Thread] = None
        self._closed = False
        self._busy = False
        self.dropped_count = 0

    def register(self, sink: Union[SinkCallable, Any]) -> None:
        """Register a sink: a callable or an object with handle(event)."""
        with self._cond:
            self._sinks.append(sink)

    def unregister(self, sink: Any) -> bool:
        with self._cond:
            try:
                self._sinks.remove(sink)
                return True
            except ValueError:
                return False

    @property
    def sinks(self) -> List[Any]:
        with self._cond:
            return list(self._sinks)

    def start(self) -> None:
        """Start the dispatch worker thread."""
        with self._cond:
            if self._worker is not None:
                return
            self._closed = False
            self._worker = threading.Thread(target=self._dispatch_loop, name="EventRouter", daemon=True)
            self._worker.start()

    def _evict_one(self, incoming: SemanticEvent) -> bool:
        """Make room for one event. Must hold the condition lock."""
        predicates = [lambda e: e.is_debug]
        # A debug event never displaces a real one
        if not incoming.is_debug:
            predicates.append(lambda e: not e.is_critical)

        for predicate in predicates:
            for queued in self._queue:
                if predicate(queued):
                    self._queue.remove(queued)
                    self.dropped_count += 1
                    logger.debug(f"Router queue full, dropped {queued.event_type.value} event")
                    return True
        return incoming.is_critical

    def publish(self, event: SemanticEvent) -> bool:
        """
        Queue an event for delivery without blocking.

        Returns:
            True if the event was queued, False if it was dropped
        """
        with self._cond:
            if self._closed:
                logger.debug(f"Router closed, ignoring {event.event_type.value} event")
                return False

            if len(self._queue) >= self.max_queue_size and not self._evict_one(event):
                self.dropped_count += 1
                logger.debug(f"Router queue full, dropped incoming {event.event_type.value} event")
                return False

            self._queue.append(event)
            self._cond.notify_all()
            return True

    def dispatch(self, event: SemanticEvent) -> int:
        """
        Deliver an event to every sink synchronously.

        Returns:
            Number of sinks that handled the event without error
        """
        delivered = 0
        for sink in self.sinks:
            try:
                _deliver(sink, event)
                delivered += 1
            except Exception:
                logger.exception(f"Sink {_sink_name(sink)} failed on {event.event_type.value} event")
        return delivered

    def _dispatch_loop(self) -> None:
        """Worker loop that drains the queue."""
        logger.debug("Event router started")
        while True:
            with self._cond:
                while not self._queue and not self._closed:
                    self._cond.wait()
                if not self._queue:
                    break
                event = self._queue.popleft()
                self._busy = True

            try:
                self.dispatch(event)
            finally:
                with self._cond:
                    self._busy = False
                    self._cond.notify_all()
        logger.debug("Event router stopped")

    def flush(self, timeout: Optional[float] = None) -> bool:
        """
        Wait until every queued event has been delivered.

        Returns:
            True if the queue drained within the timeout
        """
        with self._cond:
            return self._cond.wait_for(lambda: not self._queue and not self._busy, timeout=timeout)

    def pending_count(self) -> int:
        with self._cond:
            return len(self._queue)

    def close(self, timeout: float = 5.0) -> None:
        """
        Stop accepting events, deliver what is queued and stop the worker.

        Events still queued when the timeout expires are discarded.
        """
        with self._cond:
            if self._closed and self._worker is None:
                return
            self._closed = True
            self._cond.notify_all()
            worker, self._worker = self._worker, None

        if worker is not None:
            worker.join(timeout=timeout)
            if worker.is_alive():
                logger.warning("Event router did not drain before timeout")

        with self._cond:
            if self._queue:
                logger.warning(f"Discarding {len(self._queue)} undelivered event(s)")
                self._queue.clear()

    @property
    def is_running(self) -> bool:
        with self._cond:
            return self._worker is not None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
