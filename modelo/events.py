import logging
import threading
from typing import Any, Callable, Dict

logger = logging.getLogger(__name__)


class Subscription:
    """Handle for a live listener; release with unsubscribe() or a with-block."""

    def __init__(self, owner, key: int):
        self._owner = owner
        self._key = key
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self.active = False
            self._owner.remove(self._key)

    def __call__(self) -> None:
        self.unsubscribe()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unsubscribe()


class ListenerSet:
    """Plain synchronous observer list."""

    def __init__(self):
        self._lock = threading.Lock()
        self._listeners: Dict[int, Callable[..., Any]] = {}
        self._next_key = 0

    def __len__(self) -> int:
        return len(self._listeners)

    def add(self, callback: Callable[..., Any]) -> Subscription:
        with self._lock:
            self._next_key += 1
            self._listeners[self._next_key] = callback
            return Subscription(self, self._next_key)

    def remove(self, key: int) -> None:
        with self._lock:
            self._listeners.pop(key, None)

    def notify(self, *args) -> None:
        with self._lock:
            callbacks = list(self._listeners.values())
        for callback in callbacks:
            try:
                callback(*args)
            except Exception:
                logger.exception("Listener raised")
