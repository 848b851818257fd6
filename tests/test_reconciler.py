"""Tests for WatchReconciler — echo suppression, debounced rescans, event bus."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from mdvault.config import WatchConfig
from mdvault.vault.echo import EchoCounter
from mdvault.vault.errors import VaultError
from mdvault.vault.events import (
    EntryCreatedEvent,
    EntryDeletedEvent,
    EntryUpdatedEvent,
    VaultEventBus,
    VaultRescannedEvent,
)
from mdvault.vault.models import SortOrder
from mdvault.vault.reconciler import ReconcilerState, WatchReconciler
from mdvault.vault.scanner import scan_async
from mdvault.vault.state import VaultState
from mdvault.vault.watcher import WatchEvent, WatchKind

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from conftest import Recorder, WatcherFactory

    from mdvault.vault.events import AnyVaultEvent
    from mdvault.vault.models import FileSystemEntry


async def _drain() -> None:
    """Let the consumer task pick up queued events and finish publishing."""
    for _ in range(5):
        await asyncio.sleep(0.01)


def _slow_scan(started: list[Path]) -> Callable[..., Awaitable[FileSystemEntry]]:
    """A listing that takes 200ms, recording each root it was asked for."""

    async def scan(root: Path, sort_order: SortOrder | None = None) -> FileSystemEntry:
        started.append(root)
        await asyncio.sleep(0.2)
        return await scan_async(root, sort_order)

    return scan


@pytest.fixture
def vault(tmp_path: Path) -> Path:
    vault = tmp_path / "vault"
    vault.mkdir()
    (vault / "note.md").write_text("# Note\n")
    return vault.resolve()


@pytest.fixture
def echo() -> EchoCounter:
    return EchoCounter()


@pytest.fixture
def reconciler(echo: EchoCounter, bus: VaultEventBus, factory: WatcherFactory) -> WatchReconciler:
    return WatchReconciler(
        echo,
        bus,
        config=WatchConfig(debounce_ms=50),
        watcher_factory=factory,  # type: ignore[arg-type]
    )


# ---------------------------------------------------------------------------
# Tests — VaultEventBus
# ---------------------------------------------------------------------------


class TestEventBus:
    @pytest.mark.asyncio
    async def test_subscribe_and_publish(self) -> None:
        bus = VaultEventBus()
        received: list[EntryDeletedEvent] = []

        async def on_deleted(event: EntryDeletedEvent) -> None:
            received.append(event)

        bus.subscribe(EntryDeletedEvent, on_deleted)  # type: ignore[arg-type]
        await bus.publish(EntryDeletedEvent(path=Path("gone.md")))

        assert len(received) == 1
        assert received[0].path == Path("gone.md")

    @pytest.mark.asyncio
    async def test_type_isolation(self) -> None:
        bus = VaultEventBus()
        created_count = 0
        deleted_count = 0

        async def on_created(event: EntryCreatedEvent) -> None:
            nonlocal created_count
            created_count += 1

        async def on_deleted(event: EntryDeletedEvent) -> None:
            nonlocal deleted_count
            deleted_count += 1

        bus.subscribe(EntryCreatedEvent, on_created)  # type: ignore[arg-type]
        bus.subscribe(EntryDeletedEvent, on_deleted)  # type: ignore[arg-type]

        await bus.publish(EntryCreatedEvent(path=Path("a.md")))
        await bus.publish(EntryDeletedEvent(path=Path("b.md")))
        await bus.publish(EntryCreatedEvent(path=Path("c.md")))

        assert created_count == 2
        assert deleted_count == 1

    @pytest.mark.asyncio
    async def test_subscriber_error_isolated(self) -> None:
        bus = VaultEventBus()
        good_received: list[EntryCreatedEvent] = []

        async def bad_subscriber(event: EntryCreatedEvent) -> None:
            raise RuntimeError("boom")

        async def good_subscriber(event: EntryCreatedEvent) -> None:
            good_received.append(event)

        bus.subscribe(EntryCreatedEvent, bad_subscriber)  # type: ignore[arg-type]
        bus.subscribe(EntryCreatedEvent, good_subscriber)  # type: ignore[arg-type]

        await bus.publish(EntryCreatedEvent(path=Path("test.md")))
        assert len(good_received) == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self) -> None:
        bus = VaultEventBus()
        count = 0

        async def handler(event: EntryCreatedEvent) -> None:
            nonlocal count
            count += 1

        bus.subscribe(EntryCreatedEvent, handler)  # type: ignore[arg-type]
        await bus.publish(EntryCreatedEvent(path=Path("a.md")))
        assert count == 1

        bus.unsubscribe(EntryCreatedEvent, handler)  # type: ignore[arg-type]
        await bus.publish(EntryCreatedEvent(path=Path("b.md")))
        assert count == 1

    def test_subscriber_count(self) -> None:
        bus = VaultEventBus()

        async def noop(event: AnyVaultEvent) -> None:
            pass

        assert bus.subscriber_count == 0
        bus.subscribe(EntryCreatedEvent, noop)
        bus.subscribe_all(noop)
        assert bus.subscriber_count == 2

    @pytest.mark.asyncio
    async def test_base_class_subscriber_sees_everything(self) -> None:
        bus = VaultEventBus()
        seen: list[str] = []

        async def on_any(event: AnyVaultEvent) -> None:
            seen.append(type(event).__name__)

        bus.subscribe_all(on_any)
        await bus.publish(EntryCreatedEvent(path=Path("a.md")))
        await bus.publish(VaultRescannedEvent(path=Path(".")))
        assert seen == ["EntryCreatedEvent", "VaultRescannedEvent"]

    @pytest.mark.asyncio
    async def test_callback_runs_once_per_event(self) -> None:
        bus = VaultEventBus()
        count = 0

        async def handler(event: AnyVaultEvent) -> None:
            nonlocal count
            count += 1

        bus.subscribe(EntryDeletedEvent, handler)
        bus.subscribe_all(handler)
        await bus.publish(EntryDeletedEvent(path=Path("a.md")))
        assert count == 1

    def test_unsubscribe_unknown_callback(self) -> None:
        async def handler(event: AnyVaultEvent) -> None:
            pass

        assert not VaultEventBus().unsubscribe(EntryCreatedEvent, handler)


# ---------------------------------------------------------------------------
# Tests — watcher lifecycle
# ---------------------------------------------------------------------------


class TestAttach:
    @pytest.mark.asyncio
    async def test_attach_starts_watcher(
        self, reconciler: WatchReconciler, factory: WatcherFactory, vault: Path
    ) -> None:
        assert await reconciler.attach(vault)
        assert reconciler.watching
        assert reconciler.root == vault
        assert factory.current.started
        await reconciler.close()
        assert factory.current.stopped
        assert not reconciler.watching

    @pytest.mark.asyncio
    async def test_reattach_replaces_watcher(
        self, reconciler: WatchReconciler, factory: WatcherFactory, vault: Path, tmp_path: Path
    ) -> None:
        other = tmp_path / "other"
        other.mkdir()
        await reconciler.attach(vault)
        await reconciler.process(WatchEvent(WatchKind.ADD, vault / "x.md"))
        assert reconciler.state is ReconcilerState.DEBOUNCE_PENDING

        await reconciler.attach(other)
        assert factory.watchers[0].stopped
        assert len(factory.watchers) == 2
        assert reconciler.state is ReconcilerState.IDLE
        await reconciler.close()

    @pytest.mark.asyncio
    async def test_watcher_failure_degrades(
        self,
        echo: EchoCounter,
        bus: VaultEventBus,
        recorder: Recorder,
        failing_factory: WatcherFactory,
        vault: Path,
    ) -> None:
        reconciler = WatchReconciler(echo, bus, watcher_factory=failing_factory)

        assert not await reconciler.attach(vault)
        assert not reconciler.watching

        tree = await reconciler.rescan()
        assert [c.name for c in tree.children] == ["note.md"]
        assert len(recorder.of(VaultRescannedEvent)) == 1

    @pytest.mark.asyncio
    async def test_rescan_without_vault(self, reconciler: WatchReconciler) -> None:
        with pytest.raises(VaultError):
            await reconciler.rescan()


# ---------------------------------------------------------------------------
# Tests — echo suppression
# ---------------------------------------------------------------------------


class TestEchoes:
    @pytest.mark.asyncio
    async def test_echo_becomes_created_event(
        self,
        reconciler: WatchReconciler,
        factory: WatcherFactory,
        echo: EchoCounter,
        recorder: Recorder,
        vault: Path,
    ) -> None:
        await reconciler.attach(vault)
        echo.expect(1)

        factory.current.emit(WatchEvent(WatchKind.ADD, vault / "note.md"))
        await _drain()
        await asyncio.sleep(0.1)

        created = recorder.of(EntryCreatedEvent)
        assert len(created) == 1
        assert created[0].entry is not None
        assert created[0].entry.name == "note.md"
        assert recorder.of(VaultRescannedEvent) == []
        assert echo.value == 0
        await reconciler.close()

    @pytest.mark.asyncio
    async def test_change_echo_becomes_updated_event(
        self, reconciler: WatchReconciler, echo: EchoCounter, recorder: Recorder, vault: Path
    ) -> None:
        await reconciler.attach(vault)
        echo.expect(1)

        await reconciler.process(WatchEvent(WatchKind.CHANGE, vault / "note.md"))

        assert [type(e) for e in recorder.events] == [EntryUpdatedEvent]
        assert reconciler.state is ReconcilerState.IDLE
        await reconciler.close()

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", [WatchKind.UNLINK, WatchKind.UNLINK_DIR])
    async def test_unlink_echo_becomes_deleted_event(
        self,
        reconciler: WatchReconciler,
        echo: EchoCounter,
        recorder: Recorder,
        vault: Path,
        kind: WatchKind,
    ) -> None:
        await reconciler.attach(vault)
        echo.expect(1)

        await reconciler.process(WatchEvent(kind, vault / "gone"))

        deleted = recorder.of(EntryDeletedEvent)
        assert [e.path for e in deleted] == [vault / "gone"]
        await reconciler.close()

    @pytest.mark.asyncio
    async def test_vanished_entry_publishes_nothing(
        self, reconciler: WatchReconciler, echo: EchoCounter, recorder: Recorder, vault: Path
    ) -> None:
        await reconciler.attach(vault)
        echo.expect(1)

        await reconciler.process(WatchEvent(WatchKind.ADD, vault / "ghost.md"))

        assert recorder.events == []
        assert echo.value == 0
        assert reconciler.state is ReconcilerState.IDLE
        await reconciler.close()

    @pytest.mark.asyncio
    async def test_counter_never_negative(
        self, reconciler: WatchReconciler, echo: EchoCounter, recorder: Recorder, vault: Path
    ) -> None:
        await reconciler.attach(vault)
        echo.expect(1)

        for _ in range(3):
            await reconciler.process(WatchEvent(WatchKind.CHANGE, vault / "note.md"))
            assert echo.value >= 0

        assert len(recorder.of(EntryUpdatedEvent)) == 1
        assert reconciler.state is ReconcilerState.DEBOUNCE_PENDING
        await reconciler.close()

    @pytest.mark.asyncio
    async def test_create_folder_round_trip(
        self,
        reconciler: WatchReconciler,
        factory: WatcherFactory,
        echo: EchoCounter,
        recorder: Recorder,
        vault: Path,
    ) -> None:
        state = VaultState(echo)
        state.open_vault(vault)
        await reconciler.attach(vault)

        folder = await state.create_folder(vault, "Untitled")
        assert echo.value == 1
        factory.current.emit(WatchEvent(WatchKind.ADD_DIR, folder))
        await _drain()
        await asyncio.sleep(0.1)

        created = recorder.of(EntryCreatedEvent)
        assert len(created) == 1
        assert created[0].entry is not None
        assert created[0].entry.is_directory
        assert created[0].entry.name == "Untitled"
        assert recorder.of(VaultRescannedEvent) == []
        assert echo.value == 0
        await reconciler.close()


# ---------------------------------------------------------------------------
# Tests — external changes
# ---------------------------------------------------------------------------


class TestDebouncedRescan:
    @pytest.mark.asyncio
    async def test_burst_coalesced_into_one_rescan(
        self,
        reconciler: WatchReconciler,
        factory: WatcherFactory,
        recorder: Recorder,
        vault: Path,
    ) -> None:
        await reconciler.attach(vault)

        for name in ("a.md", "b.md", "c.md"):
            (vault / name).write_text(name)
            factory.current.emit(WatchEvent(WatchKind.ADD, vault / name))
        await _drain()
        assert reconciler.state is ReconcilerState.DEBOUNCE_PENDING
        assert recorder.events == []

        await asyncio.sleep(0.2)

        rescans = recorder.of(VaultRescannedEvent)
        assert len(rescans) == 1
        assert rescans[0].tree is not None
        names = {c.name for c in rescans[0].tree.children}
        assert names == {"a.md", "b.md", "c.md", "note.md"}
        assert recorder.of(EntryCreatedEvent) == []
        assert reconciler.state is ReconcilerState.IDLE
        await reconciler.close()

    @pytest.mark.asyncio
    async def test_each_event_restarts_the_timer(
        self,
        echo: EchoCounter,
        bus: VaultEventBus,
        recorder: Recorder,
        factory: WatcherFactory,
        vault: Path,
    ) -> None:
        reconciler = WatchReconciler(
            echo, bus, config=WatchConfig(debounce_ms=200), watcher_factory=factory
        )
        await reconciler.attach(vault)

        for _ in range(3):
            await reconciler.process(WatchEvent(WatchKind.CHANGE, vault / "note.md"))
            await asyncio.sleep(0.1)
        # Last event was 100ms ago; the timer has 100ms left
        await asyncio.sleep(0.05)
        assert recorder.of(VaultRescannedEvent) == []

        await asyncio.sleep(0.3)
        assert len(recorder.of(VaultRescannedEvent)) == 1
        await reconciler.close()

    @pytest.mark.asyncio
    async def test_close_cancels_pending_rescan(
        self, reconciler: WatchReconciler, recorder: Recorder, vault: Path
    ) -> None:
        await reconciler.attach(vault)
        await reconciler.process(WatchEvent(WatchKind.UNLINK, vault / "x.md"))

        await reconciler.close()
        await asyncio.sleep(0.1)

        assert recorder.events == []
        assert reconciler.state is ReconcilerState.IDLE

    @pytest.mark.asyncio
    async def test_rescan_uses_sort_order(
        self, reconciler: WatchReconciler, vault: Path
    ) -> None:
        (vault / "b.md").write_text("b")
        (vault / "a.md").write_text("a")
        await reconciler.attach(vault)
        reconciler.sort_order = SortOrder.NAME_DESC

        tree = await reconciler.rescan()
        assert [c.name for c in tree.children] == ["note.md", "b.md", "a.md"]
        await reconciler.close()

    @pytest.mark.asyncio
    async def test_newer_rescan_supersedes_one_in_flight(
        self,
        reconciler: WatchReconciler,
        recorder: Recorder,
        vault: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        started: list[Path] = []
        monkeypatch.setattr("mdvault.vault.reconciler.scan_async", _slow_scan(started))
        await reconciler.attach(vault)

        await reconciler.process(WatchEvent(WatchKind.ADD, vault / "a.md"))
        await asyncio.sleep(0.1)
        assert len(started) == 1

        await reconciler.process(WatchEvent(WatchKind.ADD, vault / "b.md"))
        await asyncio.sleep(0.4)

        assert len(started) == 2
        assert len(recorder.of(VaultRescannedEvent)) == 1
        await reconciler.close()

    @pytest.mark.asyncio
    async def test_close_cancels_running_rescan(
        self,
        reconciler: WatchReconciler,
        recorder: Recorder,
        vault: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        started: list[Path] = []
        monkeypatch.setattr("mdvault.vault.reconciler.scan_async", _slow_scan(started))
        await reconciler.attach(vault)

        await reconciler.process(WatchEvent(WatchKind.CHANGE, vault / "note.md"))
        await asyncio.sleep(0.1)
        assert started == [vault]

        await reconciler.close()
        await asyncio.sleep(0.3)
        assert recorder.events == []
