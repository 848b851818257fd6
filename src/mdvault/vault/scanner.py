"""Vault scanner — builds ordered metadata trees of a vault directory.

Pure with respect to the file system: nothing here writes, and failures are
raised as ``VaultError`` subclasses without retry.
"""

from __future__ import annotations

import asyncio
import logging
import os
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

from mdvault.vault.errors import InvalidOperationError, VaultError, translate_os_error
from mdvault.vault.models import FileSystemEntry, SortOrder

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


def is_hidden(name: str) -> bool:
    """Dot-prefixed names (``.obsidian``, ``.git``, ``.DS_Store``) are never listed."""
    return name.startswith(".")


def _timestamps(stat: os.stat_result) -> tuple[datetime, datetime]:
    # st_birthtime exists on macOS/BSD/Windows; Linux only offers st_ctime
    born = getattr(stat, "st_birthtime", None) or stat.st_ctime
    return datetime.fromtimestamp(born), datetime.fromtimestamp(stat.st_mtime)


def _sort_key(order: SortOrder) -> Callable[[FileSystemEntry], tuple[Any, str]]:
    if order.key == "name":
        return lambda e: (e.name.casefold(), e.name)
    attr = order.key
    return lambda e: (getattr(e, attr), e.name)


def sort_entries(entries: list[FileSystemEntry], order: SortOrder) -> list[FileSystemEntry]:
    """Return *entries* ordered by *order*, recursively, as fresh copies."""
    ordered = sorted(entries, key=_sort_key(order), reverse=order.descending)
    return [
        entry.model_copy(update={"children": sort_entries(entry.children, order)})
        for entry in ordered
    ]


def entry_info(path: Path | str) -> FileSystemEntry:
    """Metadata for a single entry, without listing a folder's children."""
    p = Path(path)
    try:
        stat = p.stat()
    except OSError as exc:
        raise translate_os_error(exc, p) from exc
    created, modified = _timestamps(stat)
    return FileSystemEntry(
        name=p.name,
        path=p,
        is_directory=p.is_dir(),
        created=created,
        modified=modified,
    )


def _walk(directory: Path) -> list[FileSystemEntry]:
    entries: list[FileSystemEntry] = []
    try:
        names = sorted(os.listdir(directory))
    except OSError as exc:
        raise translate_os_error(exc, directory) from exc

    for name in names:
        if is_hidden(name):
            continue
        child = directory / name
        try:
            entry = entry_info(child)
        except VaultError:
            # Removed between listdir and stat, or unreadable: not part of the snapshot
            logger.debug("Skipping unreadable entry %s", child)
            continue
        if entry.is_directory:
            entry.children = _walk(child)
        entries.append(entry)
    return entries


def scan(root: Path | str, sort_order: SortOrder | None = None) -> FileSystemEntry:
    """Recursively list *root* into a ``FileSystemEntry`` tree.

    Raises NotFoundError if *root* is missing, InvalidOperationError if it is
    not a directory and PermissionDeniedError if it cannot be read.
    """
    root_entry = entry_info(root)
    if not root_entry.is_directory:
        raise InvalidOperationError(f"Not a folder: {root}", root)

    children = _walk(root_entry.path)
    if sort_order is not None:
        children = sort_entries(children, sort_order)
    root_entry.children = children
    logger.debug("Scanned %s (%d entries)", root, len(root_entry.iter_paths()) - 1)
    return root_entry


async def scan_async(root: Path | str, sort_order: SortOrder | None = None) -> FileSystemEntry:
    """``scan`` in a worker thread."""
    return await asyncio.to_thread(scan, root, sort_order)


async def entry_info_async(path: Path | str) -> FileSystemEntry:
    """``entry_info`` in a worker thread."""
    return await asyncio.to_thread(entry_info, path)
