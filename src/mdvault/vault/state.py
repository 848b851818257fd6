"""Vault state — the open vault, the opened note and every mutation of the tree.

``VaultState`` is the only component that writes into the vault and the only
one that declares expected echoes. Each mutating operation:

1. validates its inputs (vault open, paths inside the vault, collisions),
2. increments the shared ``EchoCounter`` by the number of watch events the
   mutation will raise, synchronously and *before* anything is awaited,
3. runs the blocking file-system call in a worker thread,
4. on failure withdraws the declared echoes and raises a ``VaultError``.

Validation errors are raised before step 2, so they never touch the counter.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import uuid
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mdvault.vault.errors import (
    InvalidOperationError,
    NotFoundError,
    translate_os_error,
)
from mdvault.vault.models import NOTE_SUFFIX, FileSystemEntry, OpenedFile, SortOrder
from mdvault.vault.scanner import entry_info_async, is_hidden, scan_async
from mdvault.vault.security import validate_vault_path

if TYPE_CHECKING:
    from collections.abc import Callable

    from mdvault.config import WatchConfig
    from mdvault.vault.echo import EchoCounter

logger = logging.getLogger(__name__)

UNTITLED = "Untitled"

# Watch events raised by single-entry operations on every supported backend
CREATE_ECHOES = 1
DELETE_ECHOES = 1
SAVE_ECHOES = 1
COPY_ECHOES = 1


def _unique_child(parent: Path, stem: str, suffix: str) -> Path:
    """First free ``parent/stem[ N]suffix``; the bare name is tried first."""
    candidate = parent / f"{stem}{suffix}"
    n = 1
    while candidate.exists():
        candidate = parent / f"{stem} {n}{suffix}"
        n += 1
    return candidate


def _copy_target(parent: Path, source: Path) -> Path:
    if source.is_dir():
        stem, suffix = source.name, ""
    else:
        stem, suffix = source.stem, source.suffix
    if not (parent / source.name).exists():
        return parent / source.name
    candidate = parent / f"{stem} copy{suffix}"
    n = 2
    while candidate.exists():
        candidate = parent / f"{stem} copy {n}{suffix}"
        n += 1
    return candidate


def _staging_path(parent: Path) -> Path:
    """Hidden sibling name; the watcher reports nothing below it."""
    return parent / f".mdvault-{uuid.uuid4().hex}"


def _discard(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path, ignore_errors=True)
    else:
        path.unlink(missing_ok=True)


def _remove(path: Path) -> None:
    if path.is_symlink() or not path.is_dir():
        path.unlink()
        return
    # A folder leaves through a hidden name, so only its own unlinkDir is seen
    staged = _staging_path(path.parent)
    path.rename(staged)
    try:
        shutil.rmtree(staged)
    except OSError as exc:
        logger.warning("Deleted %s but could not purge %s: %s", path, staged, exc)


def _copy(source: Path, target: Path) -> None:
    # Built under a hidden name and renamed in, so the copy surfaces as one add
    staged = _staging_path(target.parent)
    try:
        if source.is_dir():
            shutil.copytree(source, staged)
        else:
            shutil.copy2(source, staged)
        staged.rename(target)
    except OSError:
        _discard(staged)
        raise


def _is_within(path: Path, ancestor: Path) -> bool:
    return path == ancestor or path.is_relative_to(ancestor)


class VaultState:
    """Holds the vault root and the opened note; performs all vault mutations.

    Parameters
    ----------
    echo:
        Counter shared with the ``WatchReconciler`` consuming the vault's
        watch events.
    config:
        Echo counts for multi-event operations. Defaults to two events per
        rename and move, one per copy.
    """

    def __init__(self, echo: EchoCounter, config: WatchConfig | None = None) -> None:
        self._echo = echo
        self._rename_echoes = config.rename_echo_count if config else 2
        self._move_echoes = config.move_echo_count if config else 2
        self._copy_echoes = config.copy_echo_count if config else COPY_ECHOES
        self._vault_root: Path | None = None
        self._opened_file: OpenedFile | None = None

    # ------------------------------------------------------------------
    # Vault and opened note
    # ------------------------------------------------------------------

    @property
    def vault_root(self) -> Path | None:
        return self._vault_root

    @property
    def opened_file(self) -> OpenedFile | None:
        return self._opened_file

    def open_vault(self, path: Path | str) -> Path:
        """Make *path* the active vault. Closes any opened note."""
        root = Path(path).expanduser()
        if not root.exists():
            raise NotFoundError(f"Vault folder does not exist: {root}", root)
        if not root.is_dir():
            raise InvalidOperationError(f"Vault path is not a folder: {root}", root)
        self._vault_root = root.resolve()
        self._opened_file = None
        logger.info("Vault opened at %s", self._vault_root)
        return self._vault_root

    def require_root(self) -> Path:
        if self._vault_root is None:
            raise InvalidOperationError("No vault is open")
        return self._vault_root

    def resolve(self, path: Path | str) -> Path:
        """Absolute path inside the vault for an absolute or vault-relative *path*."""
        return validate_vault_path(path, self.require_root())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def tree(self, sort_order: SortOrder | None = None) -> FileSystemEntry:
        """Full listing of the vault."""
        return await scan_async(self.require_root(), sort_order)

    async def entry(self, path: Path | str) -> FileSystemEntry:
        """Metadata for a single note or folder."""
        return await entry_info_async(self.resolve(path))

    async def open_note(self, path: Path | str) -> OpenedFile:
        """Read a note and make it the opened file."""
        target = self.resolve(path)
        if target.is_dir():
            raise InvalidOperationError(f"Cannot open a folder as a note: {target}", target)
        try:
            content = await asyncio.to_thread(target.read_text, encoding="utf-8")
        except OSError as exc:
            raise translate_os_error(exc, target) from exc
        self._opened_file = OpenedFile(path=target, content=content)
        return self._opened_file

    def close_note(self) -> OpenedFile | None:
        """Forget the opened note, returning it."""
        previous, self._opened_file = self._opened_file, None
        return previous

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def create_note(self, parent: Path | str | None = None) -> Path:
        """Create an empty ``Untitled.md`` (``Untitled 1.md``, ...) in *parent*."""
        folder = self._existing_folder(parent)
        target = _unique_child(folder, UNTITLED, NOTE_SUFFIX)
        await self._mutate(CREATE_ECHOES, target, target.touch, exist_ok=False)
        logger.debug("Created note %s", target)
        return target

    async def create_folder(self, parent: Path | str | None = None, name: str = UNTITLED) -> Path:
        """Create folder *name* (suffixed with a number on collision) in *parent*."""
        self._check_name(name)
        folder = self._existing_folder(parent)
        target = _unique_child(folder, name, "")
        await self._mutate(CREATE_ECHOES, target, target.mkdir)
        logger.debug("Created folder %s", target)
        return target

    async def delete(self, path: Path | str) -> Path:
        """Delete a note, or a folder with everything inside it."""
        target = self._existing(path)
        if target == self.require_root():
            raise InvalidOperationError("Cannot delete the vault root", target)
        await self._mutate(DELETE_ECHOES, target, _remove, target)
        if self._opened_file and _is_within(self._opened_file.path, target):
            self._opened_file = None
        logger.debug("Deleted %s", target)
        return target

    async def rename(self, path: Path | str, new_name: str) -> Path:
        """Rename an entry in place. Notes keep their ``.md`` suffix."""
        source = self._existing(path)
        if source == self.require_root():
            raise InvalidOperationError("Cannot rename the vault root", source)
        new_name = new_name.strip()
        is_note = source.is_file() and source.suffix == NOTE_SUFFIX
        if is_note and not new_name.endswith(NOTE_SUFFIX):
            new_name += NOTE_SUFFIX
        self._check_name(new_name)

        target = source.parent / new_name
        if target == source:
            raise InvalidOperationError(f"Name unchanged: {source.name}", source)
        if target.exists():
            raise InvalidOperationError(f"An entry named '{new_name}' already exists", target)

        await self._mutate(self._rename_echoes, source, source.rename, target)
        self._follow(source, target)
        logger.debug("Renamed %s -> %s", source, target)
        return target

    async def move(self, path: Path | str, new_parent: Path | str | None = None) -> Path:
        """Move an entry into *new_parent* (the vault root by default)."""
        source = self._existing(path)
        folder = self._existing_folder(new_parent)
        if source == folder or source.parent == folder:
            raise InvalidOperationError(f"No move needed: {source}", source)
        if _is_within(folder, source):
            raise InvalidOperationError(f"Cannot move {source} into itself", source)
        target = folder / source.name
        if target.exists():
            raise InvalidOperationError(
                f"An entry named '{source.name}' already exists in {folder}", target
            )

        await self._mutate(self._move_echoes, source, shutil.move, source, target)
        self._follow(source, target)
        logger.debug("Moved %s -> %s", source, target)
        return target

    async def copy(self, path: Path | str, new_parent: Path | str | None = None) -> Path:
        """Copy an entry into *new_parent* (the vault root by default)."""
        source = self._existing(path)
        folder = self._existing_folder(new_parent)
        if source.is_dir() and _is_within(folder, source):
            raise InvalidOperationError(f"Cannot copy {source} into itself", source)
        target = _copy_target(folder, source)

        await self._mutate(self._copy_echoes, source, _copy, source, target)
        logger.debug("Copied %s -> %s", source, target)
        return target

    async def save_note(self, content: str) -> OpenedFile:
        """Overwrite the opened note with *content*."""
        if self._opened_file is None:
            raise InvalidOperationError("No note is open")
        target = self._opened_file.path
        await self._mutate(SAVE_ECHOES, target, target.write_text, content, encoding="utf-8")
        self._opened_file = OpenedFile(path=target, content=content)
        return self._opened_file

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _mutate(
        self,
        echoes: int,
        target: Path,
        fn: Callable[..., Any],
        *args: Any,
        **kwargs: Any,
    ) -> None:
        self._echo.expect(echoes)
        try:
            await asyncio.to_thread(fn, *args, **kwargs)
        except OSError as exc:
            # No watch event will ever arrive for a failed call
            self._echo.cancel(echoes)
            raise translate_os_error(exc, target) from exc

    def _existing(self, path: Path | str) -> Path:
        target = self.resolve(path)
        if not target.exists():
            raise NotFoundError(f"No such file or folder: {target}", target)
        return target

    def _existing_folder(self, path: Path | str | None) -> Path:
        folder = self.require_root() if path is None else self._existing(path)
        if not folder.is_dir():
            raise InvalidOperationError(f"Not a folder: {folder}", folder)
        return folder

    def _check_name(self, name: str) -> None:
        if not name or name in {".", ".."} or "/" in name or "\\" in name:
            raise InvalidOperationError(f"Invalid name: '{name}'")
        if is_hidden(name):
            # The watcher ignores hidden entries, the declared echo would never arrive
            raise InvalidOperationError(f"Hidden names are not allowed: '{name}'")

    def _follow(self, source: Path, target: Path) -> None:
        if self._opened_file is None or not _is_within(self._opened_file.path, source):
            return
        moved = target / self._opened_file.path.relative_to(source)
        self._opened_file = self._opened_file.model_copy(update={"path": moved})
