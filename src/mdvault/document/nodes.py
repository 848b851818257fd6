"""Document tree node types exchanged with the rich-text editor.

The tree is a tagged union discriminated on ``type``: one ``root`` owning
``heading``/``paragraph`` blocks, each owning ``text`` leaves. Field names
follow the editor's serialized state so ``Document.model_dump_json()`` can be
handed to it unchanged. Every node carries a schema ``version``.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field

SCHEMA_VERSION = 1
MAX_HEADING_LEVEL = 6

HeadingTag = Literal["h1", "h2", "h3", "h4", "h5", "h6"]
Direction = Literal["ltr", "rtl"]


class TextFormat(IntEnum):
    """Inline style of a text run."""

    NORMAL = 0
    BOLD = 1
    ITALIC = 2


class TextNode(BaseModel):
    """A run of identically formatted text. Always a leaf."""

    type: Literal["text"] = "text"
    text: str
    format: TextFormat = TextFormat.NORMAL
    detail: int = 0
    mode: str = "normal"
    style: str = ""
    version: int = SCHEMA_VERSION


class _ElementNode(BaseModel):
    direction: Direction | None = "ltr"
    format: str = ""
    indent: int = 0
    version: int = SCHEMA_VERSION


class ParagraphNode(_ElementNode):
    type: Literal["paragraph"] = "paragraph"
    children: list[TextNode] = Field(default_factory=list)


class HeadingNode(_ElementNode):
    type: Literal["heading"] = "heading"
    tag: HeadingTag = "h1"
    children: list[TextNode] = Field(default_factory=list)

    @property
    def level(self) -> int:
        return int(self.tag[1:])

    @classmethod
    def of_level(cls, level: int, children: list[TextNode] | None = None) -> HeadingNode:
        """Heading for *level*, clamped to 1..6."""
        level = max(1, min(level, MAX_HEADING_LEVEL))
        return cls(tag=f"h{level}", children=children or [])  # type: ignore[arg-type]


BlockNode = Annotated[HeadingNode | ParagraphNode, Field(discriminator="type")]


class RootNode(_ElementNode):
    type: Literal["root"] = "root"
    children: list[BlockNode] = Field(default_factory=list)


type DocumentNode = RootNode | HeadingNode | ParagraphNode | TextNode


class Document(BaseModel):
    """Transport envelope: ``{"root": {...}}``."""

    root: RootNode = Field(default_factory=RootNode)
