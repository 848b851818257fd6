"""Data models for vault entries and the opened note."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from pathlib import Path  # noqa: TC003 — Pydantic needs Path at runtime

from pydantic import BaseModel, Field, computed_field

NOTE_SUFFIX = ".md"


class SortOrder(StrEnum):
    """Sibling ordering applied at every level of a scanned tree."""

    NAME_ASC = "name-asc"
    NAME_DESC = "name-desc"
    MODIFIED_ASC = "modified-asc"
    MODIFIED_DESC = "modified-desc"
    CREATED_ASC = "created-asc"
    CREATED_DESC = "created-desc"

    @property
    def key(self) -> str:
        """Attribute compared by this order: ``name``, ``modified`` or ``created``."""
        return self.value.split("-", 1)[0]

    @property
    def descending(self) -> bool:
        return self.value.endswith("-desc")


class FileSystemEntry(BaseModel):
    """A note or folder snapshot. Folders carry their children, notes never do."""

    name: str
    path: Path
    is_directory: bool = False
    created: datetime
    modified: datetime
    children: list[FileSystemEntry] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def title(self) -> str:
        """Display name: notes are shown without their ``.md`` suffix."""
        if not self.is_directory and self.name.endswith(NOTE_SUFFIX):
            return self.name[: -len(NOTE_SUFFIX)]
        return self.name

    def iter_paths(self) -> list[Path]:
        """Depth-first list of every path in this subtree, self included."""
        paths = [self.path]
        for child in self.children:
            paths.extend(child.iter_paths())
        return paths


class OpenedFile(BaseModel):
    """The single note currently open in the editor."""

    path: Path
    content: str = ""
