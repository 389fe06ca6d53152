#!/usr/bin/env python3
"""
Ridi Library Tool

Decrypt the reader's locally cached library into plain PDF, EPUB and image
folders.

Library layout:
- Book folders named by numeric id
- Each holds {id}.pdf, {id}.epub or {id}.zip (probed in that order)
- PDF and EPUB books carry a {id}.dat key file

Keys come from the device id stored (wrapped) in the reader's binary
preference list. Every path is given explicitly; no accounts are searched.

Usage:
    python ridi_library_tool.py scan ~/RIDI/alice/library
    python ridi_library_tool.py decrypt ~/RIDI/alice/library -o out/ -a alice
    python ridi_library_tool.py decrypt-book ~/RIDI/alice/library 1234567 -o out/
"""
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import BarColumn, Progress, SpinnerColumn, TextColumn
from rich.table import Table

from rs.assets import classify_book
from rs.config import Settings, load_settings
from rs.errors import ResolutionError
from rs.keys import resolve_device_id
from rs.library import BookStatus, LibrarySummary, decrypt_library, list_books, process_book
from rs.utils import hexdump

console = Console()
log_console = Console(stderr=True)

STATUS_STYLES = {
    BookStatus.DECRYPTED: 'green',
    BookStatus.SKIPPED: 'yellow',
    BookStatus.FAILED: 'red',
}


def setup_logging(verbose: bool) -> None:
    """Route library logging to standard error through rich."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=log_console, show_path=False)],
        force=True,
    )


def build_settings(config: Optional[str], prefs: Optional[str], timeout: Optional[float]) -> Settings:
    """Config file first, then command line overrides."""
    try:
        settings = load_settings(config)
        return settings.with_overrides(prefs_path=prefs, io_timeout=timeout)
    except FileNotFoundError:
        console.print(f"[red]Config file not found: {config}[/]")
        raise SystemExit(1)
    except ValueError as e:
        console.print(f"[red]Invalid config: {e}[/]")
        raise SystemExit(1)


def show_summary(summary: LibrarySummary) -> None:
    """Print the per-book results table."""
    table = Table(title="Library Results")
    table.add_column("Book", style="cyan")
    table.add_column("Format", style="magenta")
    table.add_column("Status")
    table.add_column("Detail", style="dim")

    for result in summary.results:
        style = STATUS_STYLES[result.status]
        table.add_row(
            result.book_id,
            result.format.extension if result.format else "-",
            f"[{style}]{result.status.value}[/]",
            str(result.output) if result.output else result.reason,
        )

    console.print(table)
    console.print(
        f"[green]{summary.decrypted} decrypted[/], "
        f"[yellow]{summary.skipped} skipped[/], "
        f"[red]{summary.failed} failed[/]"
    )


# CLI Commands
@click.group()
def cli():
    """Ridi Library Tool - Local library decryption."""
    pass


@cli.command()
@click.argument('library', type=click.Path(exists=True, file_okay=False))
@click.option('-v', '--verbose', is_flag=True, help='Hex dump the start of each asset')
def scan(library: str, verbose: bool):
    """List books in a library and their detected formats."""
    console.print("[bold blue]Ridi Library Scanner[/]")
    console.print()

    settings = Settings()
    book_ids = list_books(library, settings.ignored_folders)

    table = Table(title=f"Library: {library}")
    table.add_column("Book", style="cyan")
    table.add_column("Format", style="magenta")
    table.add_column("Size", style="green")
    table.add_column("Key File", style="blue")

    assets = []
    for book_id in book_ids:
        asset = classify_book(library, book_id)
        if asset is None:
            table.add_row(book_id, "[yellow]unsupported[/]", "-", "-")
            continue
        assets.append(asset)
        if asset.key_path is None:
            key_state = "n/a"
        else:
            key_state = "yes" if asset.key_path.is_file() else "[red]missing[/]"
        table.add_row(
            book_id,
            asset.format.extension,
            f"{asset.path.stat().st_size:,} bytes",
            key_state,
        )

    console.print(table)

    if verbose:
        for asset in assets:
            with open(asset.path, 'rb') as f:
                head = f.read(64)
            console.print()
            console.print(f"[bold]{asset.path.name}:[/]")
            console.print(hexdump(head))


@cli.command()
@click.argument('library', type=click.Path(exists=True, file_okay=False))
@click.option('-o', '--output', required=True, help='Output directory')
@click.option('-p', '--prefs', default=None, help='Reader preference list (binary plist)')
@click.option('-a', '--account', default=None, help='Account name used as output subdirectory')
@click.option('-c', '--config', default=None, help='JSON settings file')
@click.option('--timeout', type=float, default=None, help='Seconds allowed per I/O call')
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
def decrypt(library: str, output: str, prefs: Optional[str], account: Optional[str],
            config: Optional[str], timeout: Optional[float], verbose: bool):
    """Decrypt every book in a library."""
    setup_logging(verbose)
    console.print("[bold blue]Ridi Library Decryptor[/]")
    console.print()

    settings = build_settings(config, prefs, timeout)
    total = len(list_books(library, settings.ignored_folders))

    console.print(f"Library: {library}")
    console.print(f"Output: {output}")
    console.print(f"Preferences: {settings.prefs_path}")
    console.print()

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total}"),
        console=console,
    ) as progress:
        task = progress.add_task("Decrypting...", total=total)

        def on_result(result):
            progress.update(task, advance=1)

        try:
            summary = asyncio.run(decrypt_library(library, output, settings, account, on_result))
        except ResolutionError as e:
            progress.stop()
            console.print(f"[red]Cannot resolve device id: {e}[/]")
            raise SystemExit(1)

    console.print()
    show_summary(summary)


@cli.command(name='decrypt-book')
@click.argument('library', type=click.Path(exists=True, file_okay=False))
@click.argument('book_id')
@click.option('-o', '--output', required=True, help='Output directory')
@click.option('-p', '--prefs', default=None, help='Reader preference list (binary plist)')
@click.option('--timeout', type=float, default=None, help='Seconds allowed per I/O call')
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
def decrypt_book(library: str, book_id: str, output: str, prefs: Optional[str],
                 timeout: Optional[float], verbose: bool):
    """Decrypt a single book."""
    setup_logging(verbose)
    settings = build_settings(None, prefs, timeout)

    try:
        device_id = resolve_device_id(settings.prefs_path)
    except ResolutionError as e:
        console.print(f"[red]Cannot resolve device id: {e}[/]")
        raise SystemExit(1)

    Path(output).mkdir(parents=True, exist_ok=True)
    result = asyncio.run(process_book(device_id, library, book_id, output, settings))

    if result.status is BookStatus.DECRYPTED:
        console.print(f"[green]✓ Decrypted to {result.output}[/]")
    elif result.status is BookStatus.SKIPPED:
        console.print(f"[yellow]Skipped {book_id}: {result.reason}[/]")
    else:
        console.print(f"[red]✗ {book_id} failed: {result.reason}[/]")
        raise SystemExit(1)


def main():
    cli()


if __name__ == '__main__':
    main()
