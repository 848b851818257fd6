"""Markdown ⇄ document tree conversion.

Only headings (levels 1-6), paragraphs, and bold/italic words are modeled.
Parsing never fails: anything outside that subset is kept as literal text.
Inline markers are recognised per space-separated word, so the serializer
wraps every word of a styled run individually (``**a** **b**``) and the
parser merges adjacent words of one style back into a single run.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from typing import Any, assert_never

from pydantic import ValidationError

from mdvault.document.nodes import (
    Document,
    HeadingNode,
    ParagraphNode,
    RootNode,
    TextFormat,
    TextNode,
)

logger = logging.getLogger(__name__)

LINE_BREAK = re.compile(r"\r\n?|\n")
# One or more '#' then a single space; the level is capped at 6 by HeadingNode
HEADING_PATTERN = re.compile(r"(#+) (.*)")

_MARKERS = {
    TextFormat.NORMAL: "",
    TextFormat.BOLD: "**",
    TextFormat.ITALIC: "*",
}


class DocumentDecodeError(ValueError):
    """An editor payload is not a valid document tree."""


# ---------------------------------------------------------------------------
# Markdown -> tree
# ---------------------------------------------------------------------------


def _classify(token: str) -> tuple[TextFormat, str]:
    if len(token) > 4 and token.startswith("**") and token.endswith("**"):
        return TextFormat.BOLD, token[2:-2]
    if len(token) > 2 and token[0] == "*" and token[-1] == "*" and token[1] != "*":
        return TextFormat.ITALIC, token[1:-1]
    return TextFormat.NORMAL, token


def parse_inline(line: str) -> list[TextNode]:
    """Split *line* into runs of bold, italic and normal text."""
    if not line:
        return []

    runs: list[TextNode] = []
    words: list[str] = []
    current = TextFormat.NORMAL
    for token in line.split(" "):
        fmt, word = _classify(token)
        if fmt != current and words:
            runs.append(TextNode(text=" ".join(words), format=current))
            words = []
        current = fmt
        words.append(word)

    if words:
        runs.append(TextNode(text=" ".join(words), format=current))
    return runs


def _extend_runs(children: list[TextNode], runs: list[TextNode]) -> None:
    """Append *runs*, merging across the line join when styles match."""
    if children and runs and children[-1].format == runs[0].format:
        head, *runs = runs
        last = children[-1]
        children[-1] = last.model_copy(update={"text": f"{last.text} {head.text}"})
    children.extend(runs)


def markdown_to_tree(markdown: str) -> RootNode:
    """Parse Markdown text into a ``RootNode`` of headings and paragraphs."""
    root = RootNode()
    paragraph: ParagraphNode | None = None

    for line in LINE_BREAK.split(markdown):
        if not line.strip():
            if paragraph is not None:
                root.children.append(paragraph)
                paragraph = None
            continue

        heading = HEADING_PATTERN.match(line)
        if heading:
            if paragraph is not None:
                root.children.append(paragraph)
                paragraph = None
            hashes, text = heading.groups()
            root.children.append(HeadingNode.of_level(len(hashes), parse_inline(text)))
            continue

        if paragraph is None:
            paragraph = ParagraphNode()
        _extend_runs(paragraph.children, parse_inline(line))

    if paragraph is not None:
        root.children.append(paragraph)
    return root


# ---------------------------------------------------------------------------
# Tree -> Markdown
# ---------------------------------------------------------------------------


def _render_run(run: TextNode) -> str:
    marker = _MARKERS[run.format]
    if not marker:
        return run.text
    return " ".join(f"{marker}{word}{marker}" if word else word for word in run.text.split(" "))


def render_inline(children: list[TextNode]) -> str:
    """Inverse of ``parse_inline``."""
    return " ".join(_render_run(run) for run in children if run.text)


def tree_to_markdown(tree: RootNode | Document) -> str:
    """Serialize a document tree to Markdown, one blank line between blocks."""
    root = tree.root if isinstance(tree, Document) else tree
    blocks: list[str] = []

    for node in root.children:
        match node:
            case HeadingNode():
                blocks.append(f"{'#' * node.level} {render_inline(node.children)}")
            case ParagraphNode():
                line = render_inline(node.children)
                if line:
                    blocks.append(line)
            case _:
                assert_never(node)

    return "\n\n".join(blocks) + "\n" if blocks else ""


# ---------------------------------------------------------------------------
# Editor transport
# ---------------------------------------------------------------------------


def document_from_json(payload: str | bytes | Mapping[str, Any]) -> Document:
    """Validate an editor payload (JSON text or decoded mapping)."""
    try:
        if isinstance(payload, (str, bytes)):
            return Document.model_validate_json(payload)
        return Document.model_validate(payload)
    except ValidationError as exc:
        logger.debug("Rejected document payload: %s", exc)
        raise DocumentDecodeError(
            f"Invalid document payload ({exc.error_count()} error(s))"
        ) from exc


def document_to_json(document: Document, indent: int | None = None) -> str:
    return document.model_dump_json(indent=indent)


def markdown_to_document(markdown: str) -> Document:
    return Document(root=markdown_to_tree(markdown))


def document_to_markdown(document: Document) -> str:
    return tree_to_markdown(document.root)
