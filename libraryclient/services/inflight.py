"""
Tracking of outstanding GET requests.

At most one live handle exists per request key. Registering a new request for
a key that is still pending cancels the older one, so the newest request for
a given key is the only one allowed to complete.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field

from libraryclient.core.metrics import record_cancelled_request

logger = logging.getLogger(__name__)


class CancellationToken:
    """Cooperative abort signal shared between a caller and the client."""

    def __init__(self) -> None:
        self._cancelled = False
        self._reason: str | None = None
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str = "Request was cancelled") -> bool:
        """Trip the token. Returns False if it was already cancelled."""
        if self._cancelled:
            return False
        self._cancelled = True
        self._reason = reason
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()
        return True

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run *callback* on cancellation; returns a function that detaches it."""
        if self._cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def detach() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return detach


@dataclass(eq=False)
class InFlightHandle:
    key: str
    task: asyncio.Future
    token: CancellationToken = field(default_factory=CancellationToken)
    _detach_signal: Callable[[], None] | None = None

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def cancel(self, reason: str = "Request was cancelled") -> bool:
        if not self.token.cancel(reason):
            return False
        self.task.cancel()
        return True

    def detach(self) -> None:
        if self._detach_signal is not None:
            self._detach_signal()
            self._detach_signal = None


class InFlightRegistry:
    """Map of request key to the handle of its outstanding request."""

    def __init__(self) -> None:
        self._handles: dict[str, InFlightHandle] = {}
        self._lock = threading.Lock()

    def register(
        self,
        key: str,
        task: asyncio.Future,
        signal: CancellationToken | None = None,
    ) -> InFlightHandle:
        """Track *task* under *key*, superseding any pending request for it."""
        handle = InFlightHandle(key=key, task=task)
        with self._lock:
            previous = self._handles.get(key)
            self._handles[key] = handle
        if previous is not None and previous.cancel("Superseded by a newer request"):
            logger.debug("Cancelled superseded request for %s", key)
            record_cancelled_request("superseded")
        if signal is not None:
            handle._detach_signal = signal.add_callback(
                lambda: self._cancel_handle(handle, signal.reason or "Request was cancelled")
            )
        return handle

    def _cancel_handle(self, handle: InFlightHandle, reason: str) -> None:
        if handle.cancel(reason):
            record_cancelled_request("signal")

    def release(self, handle: InFlightHandle) -> None:
        """Drop *handle* once its request has settled.

        A superseded handle never removes the entry of the request that
        replaced it.
        """
        handle.detach()
        with self._lock:
            if self._handles.get(handle.key) is handle:
                del self._handles[handle.key]

    def cancel(self, key: str) -> bool:
        """Cancel the pending request for *key*; False if nothing was pending."""
        with self._lock:
            handle = self._handles.pop(key, None)
        if handle is None:
            return False
        cancelled = handle.cancel("Request was cancelled")
        if cancelled:
            record_cancelled_request("manual")
        return cancelled

    def cancel_all(self) -> int:
        with self._lock:
            handles = list(self._handles.values())
            self._handles.clear()
        return sum(1 for handle in handles if handle.cancel("Request was cancelled"))

    def get(self, key: str) -> InFlightHandle | None:
        with self._lock:
            return self._handles.get(key)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._handles

    def __len__(self) -> int:
        with self._lock:
            return len(self._handles)


__all__ = ["CancellationToken", "InFlightHandle", "InFlightRegistry"]
