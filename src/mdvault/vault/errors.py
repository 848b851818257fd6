"""Error taxonomy for vault operations.

All file-system failures surface as a ``VaultError`` subclass carrying a
human-readable message. Nothing here is retried automatically.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path


class VaultError(Exception):
    """Base class for every failure reported by the vault layer."""

    def __init__(self, message: str, path: Path | str | None = None) -> None:
        self.path = path
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)


class NotFoundError(VaultError):
    """The target path does not exist."""


class PermissionDeniedError(VaultError):
    """The OS refused access to the target path."""


class InvalidOperationError(VaultError):
    """The request is well-formed but cannot be applied (collision, no-op move...)."""


class WatcherFailureError(VaultError):
    """The file-system watcher could not attach to the vault root."""


def translate_os_error(exc: OSError, path: Path | str) -> VaultError:
    """Map an ``OSError`` from a file-system call onto the vault taxonomy."""
    reason = exc.strerror or str(exc)
    if isinstance(exc, FileNotFoundError):
        return NotFoundError(f"No such file or folder: {path}", path)
    if isinstance(exc, PermissionError):
        return PermissionDeniedError(f"Permission denied: {path}", path)
    if isinstance(exc, FileExistsError):
        return InvalidOperationError(f"Already exists: {path}", path)
    if isinstance(exc, NotADirectoryError):
        return InvalidOperationError(f"Not a folder: {path}", path)
    if isinstance(exc, IsADirectoryError):
        return InvalidOperationError(f"Is a folder: {path}", path)
    return InvalidOperationError(f"{reason}: {path}", path)
