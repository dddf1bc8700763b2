# Overview: In-process, fire-and-forget publisher for group-scoped mutation events.

"""
Mutation Event Publisher

Services call events.publish(topic, group_id) after a successful commit so
live-update subscribers (websocket fan-out, cache invalidation) learn that a
group's data changed.

GUARANTEES:
- publish() never blocks on delivery and never raises
- publish() is a no-op when the publisher is disabled or was never initialised
- each event is delivered to subscribers in publish order by one worker thread
- subscriber failures are logged and isolated from each other
- when the queue is full the oldest pending event is dropped
"""

from __future__ import annotations

import collections
import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Deque, List, Tuple

from .time_utils import utcnow

logger = logging.getLogger(__name__)

TOPIC_LOAN_MUTATION = "loan.mutation"
TOPIC_BORROWER_MUTATION = "borrower.mutation"

WILDCARD = "*"


@dataclass(frozen=True)
class GroupMutationEvent:
    topic: str
    group_id: int
    occurred_at: datetime


Handler = Callable[[GroupMutationEvent], None]


class EventPublisher:
    """Flask extension wrapping a bounded queue and a single dispatch thread."""

    def __init__(self, app=None):
        self._lock = threading.Lock()
        self._cv = threading.Condition(self._lock)
        self._queue: Deque[GroupMutationEvent] = collections.deque()
        self._subs: List[Tuple[str, Handler]] = []
        self._thread: threading.Thread | None = None
        self._running = False
        self._enabled = False
        self._max_queue = 1000
        self._in_flight = 0
        self.published_total = 0
        self.delivered_total = 0
        self.dropped_total = 0
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self._enabled = bool(app.config.get("EVENTS_ENABLED", True))
        self._max_queue = max(1, int(app.config.get("EVENTS_MAX_QUEUE", 1000)))
        app.extensions["loandesk.events"] = self
        if self._enabled:
            self.start()

    # ---- lifecycle ----
    def start(self) -> None:
        with self._lock:
            if self._running:
                return
            self._running = True
            self._thread = threading.Thread(
                target=self._dispatch_loop, name="loandesk-events", daemon=True
            )
            self._thread.start()

    def shutdown(self, grace_seconds: float = 2.0) -> None:
        with self._cv:
            self._running = False
            self._cv.notify_all()
            thread = self._thread
            self._thread = None
        if thread is not None and thread.is_alive():
            thread.join(timeout=grace_seconds)

    @property
    def running(self) -> bool:
        return self._enabled and self._running

    # ---- subscriptions ----
    def subscribe(self, topic: str, handler: Handler) -> None:
        """Register handler for an exact topic, or "*" for every topic."""
        if not callable(handler):
            raise ValueError("handler must be callable")
        with self._lock:
            self._subs.append((str(topic), handler))

    def unsubscribe(self, handler: Handler) -> int:
        with self._lock:
            before = len(self._subs)
            self._subs = [(t, h) for (t, h) in self._subs if h is not handler]
            return before - len(self._subs)

    # ---- publishing ----
    def publish(self, topic: str, group_id: int) -> None:
        try:
            self._enqueue(GroupMutationEvent(topic=topic, group_id=group_id, occurred_at=utcnow()))
        except Exception:
            logger.exception("Failed to enqueue %s event for group %s", topic, group_id)

    def _enqueue(self, event: GroupMutationEvent) -> bool:
        if not self.running:
            return False
        with self._cv:
            if len(self._queue) >= self._max_queue:
                dropped = self._queue.popleft()
                self.dropped_total += 1
                logger.warning(
                    "Event queue full, dropped %s event for group %s",
                    dropped.topic, dropped.group_id,
                )
            self._queue.append(event)
            self.published_total += 1
            self._cv.notify_all()
        return True

    def wait_idle(self, timeout: float = 2.0) -> bool:
        """Block until every queued event has been delivered. Returns False on timeout."""
        deadline = time.monotonic() + timeout
        with self._cv:
            while self._queue or self._in_flight:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cv.wait(remaining)
        return True

    def stats(self) -> dict:
        with self._lock:
            return {
                "enabled": self._enabled,
                "running": self._running,
                "queue_depth": len(self._queue),
                "subscribers": len(self._subs),
                "published_total": self.published_total,
                "delivered_total": self.delivered_total,
                "dropped_total": self.dropped_total,
            }

    # ---- internals ----
    def _dispatch_loop(self) -> None:
        while True:
            with self._cv:
                while self._running and not self._queue:
                    self._cv.wait(timeout=0.5)
                if not self._queue:
                    return
                event = self._queue.popleft()
                self._in_flight += 1
                handlers = [h for (t, h) in self._subs if t == WILDCARD or t == event.topic]
            try:
                for handler in handlers:
                    try:
                        handler(event)
                    except Exception:
                        logger.exception("Event subscriber failed for %s", event.topic)
            finally:
                with self._cv:
                    self._in_flight -= 1
                    self.delivered_total += 1
                    self._cv.notify_all()
