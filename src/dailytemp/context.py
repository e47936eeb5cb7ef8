# cancellation signal shared by a caller, the daily aggregation and every sample it starts
# a context is cancelled once: explicitly, by its deadline, or when its parent is cancelled

from __future__ import annotations
import threading
from typing import Callable, List, Optional


class Context:
    # thread-safe, one-shot; callbacks run once on the cancelling thread (or at once if already cancelled)

    def __init__(self, timeout: Optional[float] = None, parent: Optional["Context"] = None):
        self._lock = threading.Lock()
        self._event = threading.Event()
        self._callbacks: List[Callable[[], None]] = []
        self._timer: Optional[threading.Timer] = None
        self._detach: Callable[[], None] = _noop
        self.reason: Optional[str] = None

        if parent is not None:
            detach = parent.add_callback(self._parent_cancelled)
            if self.cancelled:
                detach()
            else:
                self._detach = detach

        if timeout is not None and not self.cancelled:
            self._timer = threading.Timer(timeout, self.cancel, kwargs={"reason": "deadline exceeded"})
            self._timer.daemon = True
            self._timer.start()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def child(self, timeout: Optional[float] = None) -> "Context":
        return Context(timeout=timeout, parent=self)

    def cancel(self, reason: str = "cancelled") -> None:
        with self._lock:
            if self._event.is_set():
                return
            self.reason = reason
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []

        if self._timer is not None:
            self._timer.cancel()
        self._detach()
        for callback in callbacks:
            callback()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._event.wait(timeout)

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        # returns a function that unregisters the callback again
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove(callback)
        callback()
        return _noop

    def _remove(self, callback: Callable[[], None]) -> None:
        with self._lock:
            try:
                self._callbacks.remove(callback)
            except ValueError:
                pass  # already fired

    def _parent_cancelled(self) -> None:
        self.cancel(reason="parent cancelled")


def _noop() -> None:
    return None
