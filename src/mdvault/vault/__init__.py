"""Vault operations — scanning, mutating and watching a folder of Markdown notes."""

from mdvault.vault.echo import EchoCounter
from mdvault.vault.errors import (
    InvalidOperationError,
    NotFoundError,
    PermissionDeniedError,
    VaultError,
    WatcherFailureError,
)
from mdvault.vault.events import (
    EntryCreatedEvent,
    EntryDeletedEvent,
    EntryUpdatedEvent,
    VaultEventBus,
    VaultRescannedEvent,
)
from mdvault.vault.models import FileSystemEntry, OpenedFile, SortOrder
from mdvault.vault.reconciler import ReconcilerState, WatchReconciler
from mdvault.vault.scanner import entry_info, scan, sort_entries
from mdvault.vault.security import PathTraversalError, validate_vault_path
from mdvault.vault.state import VaultState
from mdvault.vault.watcher import VaultWatcher, WatchEvent, WatchKind

__all__ = [
    "EchoCounter",
    "EntryCreatedEvent",
    "EntryDeletedEvent",
    "EntryUpdatedEvent",
    "FileSystemEntry",
    "InvalidOperationError",
    "NotFoundError",
    "OpenedFile",
    "PathTraversalError",
    "PermissionDeniedError",
    "ReconcilerState",
    "SortOrder",
    "VaultError",
    "VaultEventBus",
    "VaultRescannedEvent",
    "VaultState",
    "VaultWatcher",
    "WatchEvent",
    "WatchKind",
    "WatchReconciler",
    "WatcherFailureError",
    "entry_info",
    "scan",
    "sort_entries",
    "validate_vault_path",
]
