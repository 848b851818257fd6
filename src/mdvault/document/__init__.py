"""Document tree model and its Markdown codec."""

from mdvault.document.codec import (
    DocumentDecodeError,
    document_from_json,
    document_to_json,
    document_to_markdown,
    markdown_to_document,
    markdown_to_tree,
    tree_to_markdown,
)
from mdvault.document.nodes import (
    Document,
    DocumentNode,
    HeadingNode,
    ParagraphNode,
    RootNode,
    TextFormat,
    TextNode,
)

__all__ = [
    "Document",
    "DocumentDecodeError",
    "DocumentNode",
    "HeadingNode",
    "ParagraphNode",
    "RootNode",
    "TextFormat",
    "TextNode",
    "document_from_json",
    "document_to_json",
    "document_to_markdown",
    "markdown_to_document",
    "markdown_to_tree",
    "tree_to_markdown",
]
