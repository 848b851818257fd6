"""Vault file watcher — translates watchdog events into ``(kind, path)`` watch events."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from watchdog.events import FileSystemEvent, FileSystemEventHandler, FileSystemMovedEvent
from watchdog.observers import Observer

from mdvault.vault.errors import WatcherFailureError
from mdvault.vault.scanner import is_hidden

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)

# Repeated modifications of one file within this window are reported once
CHANGE_THROTTLE_S = 0.05


class WatchKind(StrEnum):
    """Kinds of raw watch events consumed by the reconciler."""

    ADD = "add"
    ADD_DIR = "addDir"
    CHANGE = "change"
    UNLINK = "unlink"
    UNLINK_DIR = "unlinkDir"


@dataclass(frozen=True, slots=True)
class WatchEvent:
    kind: WatchKind
    path: Path


def _decode(path: str | bytes) -> str:
    return path.decode() if isinstance(path, bytes) else path


class _VaultEventHandler(FileSystemEventHandler):
    """Filters hidden entries and maps watchdog callbacks to ``WatchEvent``s.

    Runs on the observer thread; ``emit`` must be thread-safe.
    """

    def __init__(self, vault_root: Path, emit: Callable[[WatchEvent], None]) -> None:
        self.vault_root = vault_root
        self.emit = emit
        self._last_write: dict[Path, float] = {}

    def _should_process(self, path: Path) -> bool:
        try:
            rel = path.relative_to(self.vault_root)
        except ValueError:
            return False
        return bool(rel.parts) and not any(is_hidden(part) for part in rel.parts)

    def dispatch(self, event: FileSystemEvent) -> None:
        # Synthetic events replay the contents of a folder that was moved or
        # created as a whole; its own event already describes the change
        if event.is_synthetic:
            return
        super().dispatch(event)

    def _send(self, kind: WatchKind, raw_path: str | bytes) -> None:
        path = Path(_decode(raw_path))
        if not self._should_process(path):
            return
        if kind in (WatchKind.ADD, WatchKind.CHANGE):
            now = time.monotonic()
            last = self._last_write.get(path)
            self._last_write[path] = now
            if kind is WatchKind.CHANGE and last is not None and now - last < CHANGE_THROTTLE_S:
                return
        elif kind in (WatchKind.UNLINK, WatchKind.UNLINK_DIR):
            self._last_write.pop(path, None)
        logger.debug("Watch event %s %s", kind, path)
        self.emit(WatchEvent(kind, path))

    def on_created(self, event: FileSystemEvent) -> None:
        self._send(WatchKind.ADD_DIR if event.is_directory else WatchKind.ADD, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        # Directory mtime bumps accompany every child add/remove and carry no information
        if not event.is_directory:
            self._send(WatchKind.CHANGE, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._send(WatchKind.UNLINK_DIR if event.is_directory else WatchKind.UNLINK, event.src_path)

    def on_moved(self, event: FileSystemMovedEvent) -> None:  # type: ignore[override]
        if event.is_directory:
            self._send(WatchKind.UNLINK_DIR, event.src_path)
            self._send(WatchKind.ADD_DIR, event.dest_path)
        else:
            self._send(WatchKind.UNLINK, event.src_path)
            self._send(WatchKind.ADD, event.dest_path)


class VaultWatcher:
    """Watches the vault root recursively.

    Usage:
        watcher = VaultWatcher(root, on_event=my_callback)
        watcher.start()  # non-blocking
        ...
        watcher.stop()

    ``on_event`` is invoked on the observer thread. No events are raised for
    entries that already exist when the watcher starts.
    """

    def __init__(self, vault_root: Path, on_event: Callable[[WatchEvent], None]) -> None:
        self.vault_root = vault_root
        self.handler = _VaultEventHandler(vault_root=vault_root, emit=on_event)
        self._observer: Observer | None = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> None:
        """Start watching the vault directory (non-blocking).

        Raises WatcherFailureError if the root cannot be watched.
        """
        if not self.vault_root.is_dir():
            raise WatcherFailureError(
                f"Cannot watch missing folder: {self.vault_root}", self.vault_root
            )
        observer = Observer()
        try:
            observer.schedule(self.handler, str(self.vault_root), recursive=True)
            observer.start()
        except OSError as exc:
            raise WatcherFailureError(
                f"Cannot watch {self.vault_root}: {exc}", self.vault_root
            ) from exc
        self._observer = observer
        logger.info("Watching vault at %s", self.vault_root)

    def stop(self) -> None:
        """Stop the watcher and wait for the observer thread to exit."""
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None
            logger.info("Vault watcher stopped")
