"""CLI entry point for mdvault.

Commands:
    mdvault tree         — Print the vault listing
    mdvault to-json      — Convert a Markdown note to the editor's document JSON
    mdvault to-markdown  — Convert document JSON back to Markdown
    mdvault watch        — Watch a vault and print every notification
"""

from __future__ import annotations

import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.tree import Tree

from mdvault import __version__

if TYPE_CHECKING:
    from mdvault.vault.events import AnyVaultEvent
    from mdvault.vault.models import FileSystemEntry

console = Console()

SORT_CHOICES = click.Choice(
    ["name-asc", "name-desc", "modified-asc", "modified-desc", "created-asc", "created-desc"]
)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


def _render_tree(entry: FileSystemEntry, branch: Tree | None = None) -> Tree:
    name = escape(entry.name)
    label = f"[bold blue]{name}/[/bold blue]" if entry.is_directory else escape(entry.title)
    node = Tree(label) if branch is None else branch.add(label)
    for child in entry.children:
        _render_tree(child, node)
    return node


@click.group()
@click.version_option(__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option("-c", "--config", type=click.Path(exists=True), help="Config file path")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config: str | None) -> None:
    """mdvault — Markdown vault synchronization and document conversion."""
    _setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = Path(config) if config else None


@cli.command()
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--sort", "sort_order", type=SORT_CHOICES, default=None, help="Sibling ordering")
@click.pass_context
def tree(ctx: click.Context, path: Path, sort_order: str | None) -> None:
    """Print the notes and folders of a vault."""
    from mdvault.config import load_settings
    from mdvault.vault import SortOrder, VaultError, scan

    settings = load_settings(ctx.obj.get("config_path"))
    order = SortOrder(sort_order) if sort_order else settings.view.sort_order
    try:
        root = scan(path, order)
    except VaultError as exc:
        console.print(f"[red]✗[/red] {exc}")
        sys.exit(1)
    console.print(_render_tree(root))


@cli.command("to-json")
@click.argument("note", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--indent", type=int, default=None, help="Pretty-print with this indent")
def to_json(note: Path, indent: int | None) -> None:
    """Convert a Markdown note into document JSON."""
    from mdvault.document import document_to_json, markdown_to_document

    document = markdown_to_document(note.read_text(encoding="utf-8"))
    click.echo(document_to_json(document, indent=indent))


@cli.command("to-markdown")
@click.argument("payload", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def to_markdown(payload: Path) -> None:
    """Convert document JSON into Markdown."""
    from mdvault.document import DocumentDecodeError, document_from_json, document_to_markdown

    try:
        document = document_from_json(payload.read_bytes())
    except DocumentDecodeError as exc:
        console.print(f"[red]✗[/red] {exc}")
        sys.exit(1)
    click.echo(document_to_markdown(document), nl=False)


@cli.command()
@click.argument("path", required=False, type=click.Path(file_okay=False, path_type=Path))
@click.pass_context
def watch(ctx: click.Context, path: Path | None) -> None:
    """Watch a vault and print every notification until interrupted."""
    from mdvault.config import load_settings
    from mdvault.session import VaultSession
    from mdvault.vault.events import (
        EntryCreatedEvent,
        EntryDeletedEvent,
        EntryUpdatedEvent,
        VaultRescannedEvent,
    )

    settings = load_settings(ctx.obj.get("config_path"))
    target = path or settings.vault.path
    if target is None:
        console.print("[red]✗[/red] No vault given. Pass a PATH or set MDVAULT_VAULT__PATH.")
        sys.exit(1)

    session = VaultSession(settings)

    async def _print(event: AnyVaultEvent) -> None:
        match event:
            case EntryCreatedEvent():
                console.print(f"[green]+[/green] {escape(str(event.path))}")
            case EntryUpdatedEvent():
                console.print(f"[yellow]~[/yellow] {escape(str(event.path))}")
            case EntryDeletedEvent():
                console.print(f"[red]-[/red] {escape(str(event.path))}")
            case VaultRescannedEvent() if event.tree is not None:
                console.print(_render_tree(event.tree))

    session.event_bus.subscribe_all(_print)

    async def _run_watch() -> None:
        result = await session.open_vault(target)
        if not result.ok:
            console.print(f"[red]✗[/red] {result.message}")
            return
        console.print(f"[green]✓[/green] {result.message}")
        console.print(f"  Debounce: {settings.watch.debounce_ms}ms")
        try:
            while True:
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            pass
        finally:
            await session.close()

    try:
        asyncio.run(_run_watch())
    except KeyboardInterrupt:
        console.print("\n[yellow]Watcher stopped.[/yellow]")


def main() -> None:
    cli()


if __name__ == "__main__":
    main()
