"""Vault containment: every path a mutation touches must resolve inside the open root.

Paths arrive either absolute (as reported by the watcher and listings) or
relative to the vault root (as a front end addresses entries). Both forms are
resolved against the root, symlinks included, before the check.
"""

from __future__ import annotations

from pathlib import Path

from mdvault.vault.errors import InvalidOperationError


class PathTraversalError(InvalidOperationError, ValueError):
    """A vault-relative or absolute path resolved to somewhere outside the vault root."""

    def __init__(self, requested: str | Path, vault_root: Path) -> None:
        self.requested = str(requested)
        self.vault_root = vault_root
        super().__init__(
            f"Path traversal blocked: '{requested}' escapes vault root '{vault_root}'",
            requested,
        )


def validate_vault_path(path: str | Path, vault_root: Path) -> Path:
    """Return the absolute location of *path* inside *vault_root*.

    *path* may be vault-relative or absolute; an empty path names the root
    itself. Raises PathTraversalError when the resolved location is not the
    root or one of its descendants.
    """
    root = vault_root.resolve()
    resolved = (root / path).resolve()
    if not resolved.is_relative_to(root):
        raise PathTraversalError(path, vault_root)
    return resolved
