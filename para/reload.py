"""Fan-out of changed-file notifications to connected browser tabs.

One producer (the change watcher) publishes paths; every subscriber owns a
small bounded backlog. A subscriber that falls behind loses its oldest
buffered paths instead of slowing the producer down, and nobody sees events
published before they subscribed.
"""

import logging
import threading
from collections import deque

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 16


class Subscription:

    def __init__(self, channel: "ReloadChannel", capacity: int):
        self._channel = channel
        self._events = deque(maxlen=capacity)
        self._ready = threading.Condition()
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def _push(self, path: str) -> None:
        with self._ready:
            if self._closed:
                return
            if len(self._events) == self._events.maxlen:
                self.dropped += 1
                logger.debug("subscriber lagging, dropped %s", self._events[0])
            self._events.append(path)
            self._ready.notify()

    def get(self, timeout: float | None = None) -> str | None:
        """Return the next published path, or ``None`` on timeout or close."""
        with self._ready:
            self._ready.wait_for(lambda: self._events or self._closed, timeout)
            if self._events:
                return self._events.popleft()
            return None

    def close(self) -> None:
        with self._ready:
            if self._closed:
                return
            self._closed = True
            self._events.clear()
            self._ready.notify_all()
        self._channel._unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()


class ReloadChannel:

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        if capacity < 1:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._lock = threading.Lock()
        self._subscribers: set[Subscription] = set()

    def subscribe(self) -> Subscription:
        sub = Subscription(self, self.capacity)
        with self._lock:
            self._subscribers.add(sub)
        return sub

    def _unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            self._subscribers.discard(sub)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def publish(self, path: str) -> int:
        with self._lock:
            subscribers = list(self._subscribers)
        for sub in subscribers:
            sub._push(path)
        return len(subscribers)
