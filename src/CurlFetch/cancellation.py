# === NAVMAP v1 ===
# {
#   "module": "CurlFetch.cancellation",
#   "purpose": "Provide cooperative cancellation tokens that can be awaited by the transport invoker",
#   "sections": [
#     {"id": "token", "name": "CancellationToken", "anchor": "TOK", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
"""Cooperative cancellation primitives shared by callers and the transport invoker.

A fetch runs an external process concurrently with the caller. The caller
holds a :class:`CancellationToken`; the invoker checks it before spawning
and races :meth:`CancellationToken.wait` against process output so a
cancelled request kills its process promptly. Tokens may be cancelled from
any thread; callbacks are delivered to the event loop via
``call_soon_threadsafe``.
"""

from __future__ import annotations

import asyncio
import threading
from typing import Callable, List


class CancellationToken:
    """Thread-safe cancellation token for cooperative request cancellation.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        """Initialize a new cancellation token."""
        self._is_cancelled = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: List[Callable[[], None]] = []

    def cancel(self) -> None:
        """Signal that cancellation has been requested and notify listeners."""
        with self._lock:
            if self._is_cancelled.is_set():
                return
            self._is_cancelled.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested.

        Returns:
            True if cancellation has been requested, False otherwise.
        """
        return self._is_cancelled.is_set()

    def add_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register ``callback`` to run once when the token is cancelled.

        The callback runs immediately when the token is already cancelled.

        Returns:
            A function that unregisters the callback; calling it after the
            callback fired is a no-op.
        """
        with self._lock:
            if not self._is_cancelled.is_set():
                self._callbacks.append(callback)

                def _remove() -> None:
                    with self._lock:
                        try:
                            self._callbacks.remove(callback)
                        except ValueError:
                            pass

                return _remove
        callback()
        return lambda: None

    async def wait(self) -> None:
        """Suspend until the token is cancelled."""
        if self.is_cancelled():
            return
        loop = asyncio.get_running_loop()
        waiter: asyncio.Future[None] = loop.create_future()

        def _wake() -> None:
            if not waiter.done():
                waiter.set_result(None)

        remove = self.add_callback(lambda: loop.call_soon_threadsafe(_wake))
        try:
            await waiter
        finally:
            remove()

    def reset(self) -> None:
        """Reset the cancellation token to its initial state.

        This should only be used for testing or when reusing tokens
        in controlled scenarios.
        """
        with self._lock:
            self._is_cancelled.clear()


__all__ = ["CancellationToken"]
