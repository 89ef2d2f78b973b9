"""Cancellation token threaded through every blocking call of a build.

A single token is created by the caller of ``BuildPipeline.run()`` and
passed down to mixin subprocesses and Docker engine streams.  It trips
either when ``cancel()`` is called (from any thread) or when its deadline
passes.
"""

from __future__ import annotations

import threading
import time

from bundleforge.errors import BuildCancelledError


class CancellationToken:
    """Cooperative cancellation with an optional deadline.

    Parameters
    ----------
    timeout:
        Seconds from construction after which the token counts as
        cancelled.  ``None`` means no deadline.

    Examples
    --------
    >>> token = CancellationToken()
    >>> token.cancelled
    False
    >>> token.cancel()
    >>> token.cancelled
    True
    """

    def __init__(self, timeout: float | None = None) -> None:
        self._event = threading.Event()
        self._deadline = (
            time.monotonic() + timeout if timeout is not None else None
        )

    @classmethod
    def none(cls) -> CancellationToken:
        """A token that is never cancelled unless ``cancel()`` is called."""
        return cls()

    def cancel(self) -> None:
        self._event.set()

    @property
    def expired(self) -> bool:
        return self._deadline is not None and time.monotonic() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.expired

    def remaining(self) -> float | None:
        """Seconds left before the deadline, or ``None`` without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def raise_if_cancelled(self, during: str = "build") -> None:
        """Raise ``BuildCancelledError`` if the token has tripped."""
        if self._event.is_set():
            raise BuildCancelledError(f"{during} cancelled", stage=during)
        if self.expired:
            raise BuildCancelledError(f"{during} timed out", stage=during)
