"""RoadCron Cancellation - Cooperative Cancellation Signal.

Copyright (c) 2024-2026 BlackRoad OS, Inc. All rights reserved.
"""

from __future__ import annotations

import logging
import threading
import uuid
from typing import Callable, Dict, List, Optional

from roadcron_core.errors import OperationCancelled

logger = logging.getLogger(__name__)


class CancellationToken:
    """Thread-safe, one-way cancellation signal.

    A token starts un-cancelled and can be cancelled exactly once. Waiters
    blocked in :meth:`wait` wake up immediately, and callbacks registered
    with :meth:`register` run on the cancelling thread.

    Example:
        >>> token = CancellationToken()
        >>> token.wait(0.01)
        False
        >>> token.cancel()
        >>> token.is_cancelled
        True
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: Dict[str, Callable[[], None]] = {}
        self._timer: Optional[threading.Timer] = None
        self._links: List[Callable[[], None]] = []

    @classmethod
    def none(cls) -> "CancellationToken":
        """Create a token nobody holds a reference to cancel."""
        return cls()

    @classmethod
    def linked(cls, *tokens: Optional["CancellationToken"]) -> "CancellationToken":
        """Create a token cancelled when any of ``tokens`` is cancelled.

        Call :meth:`close` on the result once it is no longer needed so the
        source tokens drop their reference to it.
        """
        linked = cls()
        for token in tokens:
            if token is not None:
                linked._links.append(token.register(linked.cancel))
        return linked

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation was requested."""
        return self._event.is_set()

    def cancel(self) -> None:
        """Request cancellation and run registered callbacks."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks = list(self._callbacks.values())
            self._callbacks.clear()
            timer, self._timer = self._timer, None

        if timer:
            timer.cancel()

        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                logger.error(f"Cancellation callback failed: {e}")

    def cancel_after(self, seconds: float) -> None:
        """Schedule cancellation after ``seconds``."""
        if seconds <= 0:
            self.cancel()
            return

        timer = threading.Timer(seconds, self.cancel)
        timer.daemon = True
        with self._lock:
            if self._event.is_set():
                return
            if self._timer:
                self._timer.cancel()
            self._timer = timer
        timer.start()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until cancelled or ``timeout`` seconds elapse.

        Returns:
            True if the token was cancelled
        """
        return self._event.wait(timeout)

    def raise_if_cancelled(self) -> None:
        """Raise :class:`OperationCancelled` if cancellation was requested."""
        if self._event.is_set():
            raise OperationCancelled()

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` on cancellation.

        The callback runs immediately when the token is already cancelled.

        Returns:
            A function that removes the registration
        """
        key = uuid.uuid4().hex
        with self._lock:
            if not self._event.is_set():
                self._callbacks[key] = callback
                return lambda: self._unregister(key)

        callback()
        return lambda: None

    def close(self) -> None:
        """Detach from linked source tokens and drop any pending timer."""
        with self._lock:
            links, self._links = self._links, []
            timer, self._timer = self._timer, None

        if timer:
            timer.cancel()
        for unlink in links:
            unlink()

    def _unregister(self, key: str) -> None:
        with self._lock:
            self._callbacks.pop(key, None)

    def __repr__(self) -> str:
        return f"CancellationToken(cancelled={self.is_cancelled})"


def wait_any(*tokens: Optional[CancellationToken], timeout: Optional[float] = None) -> bool:
    """Block until any of ``tokens`` is cancelled.

    Returns:
        True if a token was cancelled, False on timeout
    """
    wakeup = threading.Event()
    unregisters = [token.register(wakeup.set) for token in tokens if token is not None]
    try:
        return wakeup.wait(timeout)
    finally:
        for unregister in unregisters:
            unregister()


__all__ = ["CancellationToken", "wait_any"]
