"""Watch reconciler — tells the application's own echoes apart from external changes.

Consumes the watcher's ``(kind, path)`` events from a single asyncio queue.
Key properties:

* **Echo suppression** — While the shared ``EchoCounter`` is positive, each
  event is taken as the echo of a local operation: the counter is decremented
  and a granular created/updated/deleted notification is published with fresh
  metadata for the affected entry. No rescan happens.
* **Debounced rescan** — With the counter at zero, the event was caused by
  something else (another program, cloud sync, a second instance). Bursts of
  such events are coalesced: every event restarts a single timer, and only
  when it elapses is the vault re-listed and published as a full replacement.
* **Single consumer** — Watchdog callbacks only enqueue via
  ``call_soon_threadsafe``; the counter, the timer and the state are touched
  exclusively on the event loop, so no locks are needed.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import StrEnum
from typing import TYPE_CHECKING

from mdvault.vault.errors import VaultError, WatcherFailureError
from mdvault.vault.events import (
    EntryCreatedEvent,
    EntryDeletedEvent,
    EntryUpdatedEvent,
    VaultRescannedEvent,
)
from mdvault.vault.scanner import entry_info_async, scan_async
from mdvault.vault.watcher import VaultWatcher, WatchEvent, WatchKind

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from mdvault.config import WatchConfig
    from mdvault.vault.echo import EchoCounter
    from mdvault.vault.events import VaultEventBus
    from mdvault.vault.models import FileSystemEntry, SortOrder

    type WatcherFactory = Callable[[Path, Callable[[WatchEvent], None]], VaultWatcher]

logger = logging.getLogger(__name__)

DEFAULT_DEBOUNCE_MS = 1000


class ReconcilerState(StrEnum):
    IDLE = "idle"
    DEBOUNCE_PENDING = "debounce_pending"


class WatchReconciler:
    """Owns the active watcher, the debounce timer and the event consumer.

    Parameters
    ----------
    echo:
        Counter incremented by ``VaultState`` before each local mutation.
    event_bus:
        Bus receiving granular and full-rescan notifications.
    config:
        Watch settings (debounce delay).
    sort_order:
        Ordering applied to full rescans.
    watcher_factory:
        Builds the watcher for a root; ``VaultWatcher`` unless overridden.
    """

    def __init__(
        self,
        echo: EchoCounter,
        event_bus: VaultEventBus,
        config: WatchConfig | None = None,
        sort_order: SortOrder | None = None,
        watcher_factory: WatcherFactory | None = None,
    ) -> None:
        self._echo = echo
        self._event_bus = event_bus
        debounce_ms = config.debounce_ms if config else DEFAULT_DEBOUNCE_MS
        self._debounce_s = debounce_ms / 1000.0
        self.sort_order = sort_order
        self._watcher_factory = watcher_factory or VaultWatcher

        self._root: Path | None = None
        self._watcher: VaultWatcher | None = None
        self._consumer: asyncio.Task[None] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._rescan_task: asyncio.Task[None] | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @property
    def root(self) -> Path | None:
        return self._root

    @property
    def state(self) -> ReconcilerState:
        if self._timer is not None:
            return ReconcilerState.DEBOUNCE_PENDING
        return ReconcilerState.IDLE

    @property
    def watching(self) -> bool:
        return self._watcher is not None

    async def attach(self, root: Path) -> bool:
        """Replace the current watcher with one rooted at *root*.

        Returns False when the watcher could not attach; the reconciler then
        still serves rescans but no longer detects external changes.
        """
        await self.close()
        self._root = root

        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[WatchEvent] = asyncio.Queue()

        def _enqueue(event: WatchEvent) -> None:
            loop.call_soon_threadsafe(queue.put_nowait, event)

        watcher = self._watcher_factory(root, _enqueue)
        try:
            watcher.start()
        except WatcherFailureError as exc:
            logger.error("External changes will not be detected: %s", exc)
            return False

        self._watcher = watcher
        self._consumer = loop.create_task(self._consume(queue))
        return True

    async def close(self) -> None:
        """Stop the watcher, the consumer and any pending rescan."""
        if self._watcher is not None:
            watcher, self._watcher = self._watcher, None
            await asyncio.to_thread(watcher.stop)
        self._cancel_timer()
        for task in (self._consumer, self._rescan_task):
            if task is not None and not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task
        self._consumer = None
        self._rescan_task = None

    async def process(self, event: WatchEvent) -> None:
        """Classify one watch event as an echo or an external change."""
        if self._echo.consume():
            logger.debug("Echo %s %s (pending=%d)", event.kind, event.path, self._echo.value)
            await self._notify(event)
            return

        logger.info("External change: %s %s", event.kind, event.path)
        self._schedule_rescan()

    async def rescan(self) -> FileSystemEntry:
        """List the whole vault now and publish it as a full replacement."""
        if self._root is None:
            raise VaultError("No vault is open")
        tree = await scan_async(self._root, self.sort_order)
        await self._event_bus.publish(VaultRescannedEvent(path=self._root, tree=tree))
        return tree

    # ------------------------------------------------------------------
    # Internal processing
    # ------------------------------------------------------------------

    async def _consume(self, queue: asyncio.Queue[WatchEvent]) -> None:
        while True:
            event = await queue.get()
            try:
                await self.process(event)
            except Exception:
                logger.exception("Failed to process %s %s", event.kind, event.path)

    async def _notify(self, event: WatchEvent) -> None:
        if event.kind in (WatchKind.UNLINK, WatchKind.UNLINK_DIR):
            await self._event_bus.publish(EntryDeletedEvent(path=event.path))
            return

        try:
            entry = await entry_info_async(event.path)
        except VaultError:
            logger.debug("Entry vanished before it could be reported: %s", event.path)
            return

        if event.kind is WatchKind.CHANGE:
            await self._event_bus.publish(EntryUpdatedEvent(path=event.path, entry=entry))
        else:
            await self._event_bus.publish(EntryCreatedEvent(path=event.path, entry=entry))

    def _schedule_rescan(self) -> None:
        self._cancel_timer()
        loop = asyncio.get_running_loop()
        self._timer = loop.call_later(self._debounce_s, self._fire)

    def _fire(self) -> None:
        self._timer = None
        # A listing still in flight is already stale; only the newest is published
        if self._rescan_task is not None and not self._rescan_task.done():
            self._rescan_task.cancel()
        self._rescan_task = asyncio.get_running_loop().create_task(self._debounced_rescan())

    async def _debounced_rescan(self) -> None:
        logger.info("Vault modified from outside, rescanning %s", self._root)
        try:
            await self.rescan()
        except VaultError as exc:
            logger.error("Rescan failed: %s", exc)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
