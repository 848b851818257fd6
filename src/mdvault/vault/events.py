"""Vault change notifications and the bus that delivers them.

Granular created/updated/deleted notifications describe the application's
own writes; ``VaultRescannedEvent`` carries a complete listing after an
external change and replaces whatever the subscriber rendered before.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from time import time
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Coroutine
    from pathlib import Path
    from typing import Any

    from mdvault.vault.models import FileSystemEntry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class VaultEvent:
    """Base notification emitted by the reconciler."""

    path: Path
    timestamp: float = field(default_factory=time)


@dataclass(frozen=True, slots=True)
class EntryCreatedEvent(VaultEvent):
    """A note or folder was created by the application."""

    entry: FileSystemEntry | None = None


@dataclass(frozen=True, slots=True)
class EntryUpdatedEvent(VaultEvent):
    """A note changed, or an entry's metadata must be re-rendered."""

    entry: FileSystemEntry | None = None


@dataclass(frozen=True, slots=True)
class EntryDeletedEvent(VaultEvent):
    """A note or folder was removed."""


@dataclass(frozen=True, slots=True)
class VaultRescannedEvent(VaultEvent):
    """The whole vault was re-listed; ``tree`` replaces any previous snapshot."""

    tree: FileSystemEntry | None = None


type AnyVaultEvent = EntryCreatedEvent | EntryUpdatedEvent | EntryDeletedEvent | VaultRescannedEvent

type EventCallback = Callable[[AnyVaultEvent], Coroutine[Any, Any, None]]


# ---------------------------------------------------------------------------
# Event bus
# ---------------------------------------------------------------------------


class VaultEventBus:
    """Routes notifications to async callbacks by event class.

    Delivery follows the class hierarchy: a callback registered for
    ``VaultEvent`` sees every notification, one registered for
    ``EntryDeletedEvent`` only deletions. All callbacks matching one event
    run concurrently; a failing callback is logged and never reaches the
    publisher or the other callbacks.
    """

    def __init__(self) -> None:
        self._handlers: dict[type[VaultEvent], list[EventCallback]] = {}

    def subscribe(self, event_type: type[VaultEvent], callback: EventCallback) -> None:
        self._handlers.setdefault(event_type, []).append(callback)
        logger.debug("%s subscribed to %s", callback.__qualname__, event_type.__name__)

    def subscribe_all(self, callback: EventCallback) -> None:
        self.subscribe(VaultEvent, callback)

    def unsubscribe(self, event_type: type[VaultEvent], callback: EventCallback) -> bool:
        """Drop *callback* from *event_type*. Returns False if it was not registered."""
        handlers = self._handlers.get(event_type, [])
        if callback not in handlers:
            return False
        handlers.remove(callback)
        return True

    def handlers_for(self, event: VaultEvent) -> list[EventCallback]:
        """Callbacks interested in *event*, most specific class first, each once."""
        matched: list[EventCallback] = []
        for cls in type(event).__mro__:
            for callback in self._handlers.get(cls, ()):
                if callback not in matched:
                    matched.append(callback)
        return matched

    async def publish(self, event: AnyVaultEvent) -> None:
        handlers = self.handlers_for(event)
        if handlers:
            await asyncio.gather(*(self._deliver(cb, event) for cb in handlers))

    async def _deliver(self, callback: EventCallback, event: AnyVaultEvent) -> None:
        try:
            await callback(event)
        except Exception:
            logger.exception(
                "Subscriber %s failed on %s %s",
                callback.__qualname__,
                type(event).__name__,
                event.path,
            )

    @property
    def subscriber_count(self) -> int:
        return sum(len(handlers) for handlers in self._handlers.values())
