"""Publish/subscribe channel for sync progress notifications."""
import logging
import queue
import threading
from collections.abc import Callable
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class ProgressType(str, Enum):
    STATUS = "status"
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"


class ProgressEvent(BaseModel):
    """A single notification about a running sync pass.

    Attributes:
        type: Message kind. ``complete`` and ``error`` end a pass.
        message: Human-readable text for the admin UI.
        progress: Percentage in [0, 100], never decreasing within a pass.
        payload: Optional structured details (counts, durations).
        timestamp: When the event was published.
    """
    type: ProgressType
    message: str
    progress: float = Field(default=0.0, ge=0.0, le=100.0)
    payload: dict[str, Any] | None = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @property
    def is_terminal(self) -> bool:
        return self.type in (ProgressType.COMPLETE, ProgressType.ERROR)


Subscriber = Callable[[ProgressEvent], Any]


class ProgressReporter:
    """Fan progress events out to any number of subscribers.

    ``publish`` only enqueues. A dispatch thread delivers events one at a
    time, in publish order, to the subscribers registered when the event was
    published, so a slow subscriber never stalls the sync pass. A failing
    subscriber is logged and skipped; publishing never raises.

    The dispatch thread is started on demand and exits after
    ``idle_timeout`` seconds without events.
    """

    def __init__(self, idle_timeout: float = 1.0):
        self._subscribers: list[Subscriber] = []
        self._lock = threading.Lock()
        self._last_progress = 0.0

        self._queue: queue.Queue[tuple[ProgressEvent, list[Subscriber]]] = queue.Queue()
        self._idle_timeout = idle_timeout
        self._worker: threading.Thread | None = None
        self._worker_lock = threading.Lock()
        self._pending = 0
        self._delivered = threading.Condition()

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        """Register ``callback``. Returns a function that unregisters it."""
        with self._lock:
            self._subscribers.append(callback)

        def unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def begin_pass(self) -> None:
        """Reset the monotonic progress floor for a new pass."""
        with self._lock:
            self._last_progress = 0.0

    def publish(
        self,
        kind: ProgressType,
        message: str,
        progress: float | None = None,
        payload: dict[str, Any] | None = None,
    ) -> ProgressEvent | None:
        """Build an event and queue it for every current subscriber."""
        try:
            with self._lock:
                value = self._last_progress if progress is None else float(progress)
                value = max(self._last_progress, min(100.0, max(0.0, value)))
                self._last_progress = value
                subscribers = list(self._subscribers)
            event = ProgressEvent(type=kind, message=message, progress=value, payload=payload)
        except Exception as e:
            logger.error(f"Could not build progress event {message!r}: {e}")
            return None

        if subscribers:
            self._enqueue(event, subscribers)
        return event

    def flush(self, timeout: float | None = 5.0) -> bool:
        """Wait until every queued event was delivered. False on timeout."""
        with self._delivered:
            return self._delivered.wait_for(lambda: self._pending == 0, timeout)

    def _enqueue(self, event: ProgressEvent, subscribers: list[Subscriber]) -> None:
        with self._delivered:
            self._pending += 1
        self._queue.put((event, subscribers))

        with self._worker_lock:
            if self._worker is None:
                self._worker = threading.Thread(
                    target=self._dispatch, name="progress-dispatch", daemon=True
                )
                self._worker.start()

    def _dispatch(self) -> None:
        while True:
            try:
                event, subscribers = self._queue.get(timeout=self._idle_timeout)
            except queue.Empty:
                with self._worker_lock:
                    if self._queue.empty():
                        self._worker = None
                        return
                continue

            for callback in subscribers:
                try:
                    callback(event)
                except Exception as e:
                    logger.warning(f"Progress subscriber {callback!r} failed: {e}")

            with self._delivered:
                self._pending -= 1
                if self._pending == 0:
                    self._delivered.notify_all()

    def status(self, message: str, progress: float | None = None, **payload: Any) -> ProgressEvent | None:
        return self.publish(ProgressType.STATUS, message, progress, payload or None)

    def progress(self, message: str, progress: float | None = None, **payload: Any) -> ProgressEvent | None:
        return self.publish(ProgressType.PROGRESS, message, progress, payload or None)

    def complete(self, message: str, **payload: Any) -> ProgressEvent | None:
        return self.publish(ProgressType.COMPLETE, message, 100.0, payload or None)

    def error(self, message: str, **payload: Any) -> ProgressEvent | None:
        return self.publish(ProgressType.ERROR, message, None, payload or None)
