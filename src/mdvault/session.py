"""Vault session — the single context object callers drive.

Wires one ``EchoCounter`` between ``VaultState`` (which declares expected
echoes) and ``WatchReconciler`` (which consumes them), converts documents on
open and save, and turns every mutating request into an ``OperationResult``
acknowledgement instead of an exception.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mdvault.config import Settings
from mdvault.document.codec import (
    DocumentDecodeError,
    document_from_json,
    document_to_markdown,
    markdown_to_document,
)
from mdvault.document.nodes import Document
from mdvault.vault.echo import EchoCounter
from mdvault.vault.errors import VaultError
from mdvault.vault.events import EntryUpdatedEvent, VaultEventBus
from mdvault.vault.reconciler import WatchReconciler
from mdvault.vault.state import VaultState

if TYPE_CHECKING:
    from collections.abc import Coroutine, Mapping

    from mdvault.vault.models import FileSystemEntry, SortOrder
    from mdvault.vault.reconciler import WatcherFactory

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OperationResult:
    """Acknowledgement of a request, with a human-readable status."""

    ok: bool
    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class OpenedNote:
    """A note ready for the editor."""

    name: str
    path: Path
    document: Document


class VaultSession:
    """Explicit state of one application session: at most one open vault."""

    def __init__(
        self,
        settings: Settings | None = None,
        event_bus: VaultEventBus | None = None,
        watcher_factory: WatcherFactory | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.echo = EchoCounter()
        self.event_bus = event_bus or VaultEventBus()
        self.state = VaultState(self.echo, self.settings.watch)
        self.reconciler = WatchReconciler(
            self.echo,
            self.event_bus,
            config=self.settings.watch,
            sort_order=self.settings.view.sort_order,
            watcher_factory=watcher_factory,
        )

    # ------------------------------------------------------------------
    # Vault lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> OperationResult | None:
        """Open the configured vault, if any."""
        if self.settings.vault.path is None:
            logger.info("No vault configured, waiting for one to be chosen")
            return None
        return await self.open_vault(self.settings.vault.path)

    async def open_vault(self, path: Path | str) -> OperationResult:
        logger.info("Request to open vault: %s", path)
        try:
            root = self.state.open_vault(path)
        except VaultError as exc:
            return self._failed(exc)

        # Echoes still pending for the previous root can no longer arrive
        self.echo.reset()
        watching = await self.reconciler.attach(root)
        message = f"Vault opened: {root}"
        if not watching:
            message += " (external changes will not be detected)"
        return OperationResult(True, message, root)

    async def close(self) -> None:
        await self.reconciler.close()
        self.state.close_note()

    async def folder_content(self, sort_order: SortOrder | None = None) -> FileSystemEntry | None:
        """Publish and return the full vault listing."""
        logger.info("Request to get folder content")
        if sort_order is not None:
            self.reconciler.sort_order = sort_order
        try:
            return await self.reconciler.rescan()
        except VaultError as exc:
            logger.error("Cannot list vault: %s", exc)
            return None

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_note(self, parent: Path | str | None = None) -> OperationResult:
        logger.info("Request to add note")
        return await self._apply(self.state.create_note(parent), "Note added")

    async def create_folder(
        self, parent: Path | str | None = None, name: str = "Untitled"
    ) -> OperationResult:
        logger.info("Request to add folder")
        return await self._apply(self.state.create_folder(parent, name), "Folder added")

    async def delete(self, path: Path | str) -> OperationResult:
        logger.info("Request to remove: %s", path)
        return await self._apply(self.state.delete(path), "Removed")

    async def rename(self, path: Path | str, new_name: str) -> OperationResult:
        logger.info("Request to rename: %s", path)
        result = await self._apply(self.state.rename(path, new_name), "Renamed")
        if not result.ok:
            await self._republish(path)
        return result

    async def move(self, path: Path | str, new_parent: Path | str | None = None) -> OperationResult:
        logger.info("Request to move: %s to %s", path, new_parent or "vault root")
        return await self._apply(self.state.move(path, new_parent), "Moved")

    async def copy(self, path: Path | str, new_parent: Path | str | None = None) -> OperationResult:
        logger.info("Request to copy: %s to %s", path, new_parent or "vault root")
        return await self._apply(self.state.copy(path, new_parent), "Copied")

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    async def open_note(self, path: Path | str) -> OpenedNote:
        """Read and parse a note. Raises VaultError on failure."""
        logger.info("Request to open: %s", path)
        opened = await self.state.open_note(path)
        entry = await self.state.entry(opened.path)
        document = markdown_to_document(opened.content)
        logger.info("Opened: %s", opened.path)
        return OpenedNote(name=entry.title, path=opened.path, document=document)

    async def save_note(
        self, payload: Document | str | bytes | Mapping[str, Any]
    ) -> OperationResult:
        """Serialize the editor's document and write it to the opened note."""
        opened = self.state.opened_file
        logger.info("Request to save: %s", opened.path if opened else None)
        try:
            document = payload if isinstance(payload, Document) else document_from_json(payload)
        except DocumentDecodeError as exc:
            logger.error("Save rejected: %s", exc)
            return OperationResult(False, str(exc), opened.path if opened else None)
        return await self._apply(self._write(document_to_markdown(document)), "Saved")

    def close_note(self, is_saved: bool = True, force: bool = False) -> OperationResult:
        """Close the opened note unless that would discard unsaved edits."""
        opened = self.state.opened_file
        if opened is None:
            return OperationResult(True, "No note is open")
        if not is_saved and not force:
            logger.info("Note is not saved: %s", opened.path)
            return OperationResult(False, f"Unsaved changes in {opened.path.name}", opened.path)
        self.state.close_note()
        return OperationResult(True, f"Closed: {opened.path}", opened.path)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _write(self, markdown: str) -> Path:
        opened = await self.state.save_note(markdown)
        return opened.path

    async def _apply(self, operation: Coroutine[Any, Any, Path], success: str) -> OperationResult:
        try:
            path = await operation
        except VaultError as exc:
            return self._failed(exc)
        logger.info("%s: %s", success, path)
        return OperationResult(True, f"{success}: {path}", path)

    def _failed(self, exc: VaultError) -> OperationResult:
        logger.error("%s", exc)
        path = Path(exc.path) if exc.path is not None else None
        return OperationResult(False, str(exc), path)

    async def _republish(self, path: Path | str) -> None:
        """Re-send an entry's unchanged metadata so a caller can revert an optimistic edit."""
        try:
            entry = await self.state.entry(path)
        except VaultError as exc:
            logger.debug("Cannot republish %s: %s", path, exc)
            return
        await self.event_bus.publish(EntryUpdatedEvent(path=entry.path, entry=entry))
