"""Shared fakes for watcher-driven tests."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from mdvault.vault.errors import WatcherFailureError
from mdvault.vault.events import VaultEventBus

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

    from mdvault.vault.events import AnyVaultEvent
    from mdvault.vault.watcher import WatchEvent


class FakeWatcher:
    """VaultWatcher stand-in; tests push raw events through ``emit``."""

    def __init__(
        self, vault_root: Path, on_event: Callable[[WatchEvent], None], fail: bool = False
    ) -> None:
        self.vault_root = vault_root
        self.emit = on_event
        self.fail = fail
        self.started = False
        self.stopped = False

    def start(self) -> None:
        if self.fail:
            raise WatcherFailureError("inotify limit reached", self.vault_root)
        self.started = True

    def stop(self) -> None:
        self.stopped = True


class WatcherFactory:
    """Builds FakeWatchers and remembers them in creation order."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.watchers: list[FakeWatcher] = []

    def __call__(self, root: Path, on_event: Callable[[WatchEvent], None]) -> FakeWatcher:
        watcher = FakeWatcher(root, on_event, fail=self.fail)
        self.watchers.append(watcher)
        return watcher

    @property
    def current(self) -> FakeWatcher:
        return self.watchers[-1]


class Recorder:
    """Collects every notification published on a bus."""

    def __init__(self, bus: VaultEventBus) -> None:
        self.events: list[AnyVaultEvent] = []
        bus.subscribe_all(self._record)

    async def _record(self, event: AnyVaultEvent) -> None:
        self.events.append(event)

    def of(self, event_type: type) -> list[AnyVaultEvent]:
        return [e for e in self.events if isinstance(e, event_type)]


@pytest.fixture
def bus() -> VaultEventBus:
    return VaultEventBus()


@pytest.fixture
def recorder(bus: VaultEventBus) -> Recorder:
    return Recorder(bus)


@pytest.fixture
def factory() -> WatcherFactory:
    return WatcherFactory()


@pytest.fixture
def failing_factory() -> WatcherFactory:
    return WatcherFactory(fail=True)
