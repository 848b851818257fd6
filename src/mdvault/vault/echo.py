"""Echo accounting for watch events caused by the application's own writes."""

from __future__ import annotations

import logging

logger = logging.getLogger(__name__)


class EchoCounter:
    """Number of pending watch events already explained by a local operation.

    ``expect`` is called before the file-system call is dispatched so the
    watcher can never observe the echo first. ``consume`` is called by the
    reconciler once per watch event. The value never drops below zero.
    """

    def __init__(self) -> None:
        self._pending = 0

    @property
    def value(self) -> int:
        return self._pending

    def expect(self, count: int = 1) -> None:
        if count < 0:
            raise ValueError(f"Expected echo count must be >= 0, got {count}")
        self._pending += count
        logger.debug("Expecting %d echo(es), pending=%d", count, self._pending)

    def consume(self) -> bool:
        """Account for one watch event. Returns False when no echo was pending."""
        if self._pending == 0:
            return False
        self._pending -= 1
        return True

    def cancel(self, count: int = 1) -> None:
        """Withdraw echoes that will never arrive (the operation failed)."""
        self._pending = max(0, self._pending - count)
        logger.debug("Cancelled %d echo(es), pending=%d", count, self._pending)

    def reset(self) -> None:
        self._pending = 0

    def __repr__(self) -> str:
        return f"EchoCounter(pending={self._pending})"
