"""``bundleforge stamp``: show the provenance stamp of a built bundle."""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from bundleforge.config import ProdConfig
from bundleforge.core.stamp import load_stamp
from bundleforge.errors import BundleForgeError
from bundleforge.models.bundle import Bundle

console = Console()


def stamp_cmd(
    directory: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Build directory containing bundle.json.",
    ),
    show_manifest: bool = typer.Option(
        False,
        "--manifest",
        "-m",
        help="Also print the manifest embedded in the stamp.",
    ),
) -> None:
    """Show where a bundle came from."""
    config = ProdConfig()
    bundle_path = directory / config.bundle_file
    if not bundle_path.exists():
        console.print(f"[bold red]Bundle not found:[/bold red] {bundle_path}")
        raise typer.Exit(code=1)

    try:
        bundle = Bundle.from_json_bytes(bundle_path.read_bytes())
        stamp = load_stamp(bundle)
        manifest_text = (
            stamp.decode_manifest().decode("utf-8", errors="replace")
            if show_manifest
            else ""
        )
    except BundleForgeError as exc:
        console.print(f"[bold red]Stamp error:[/bold red] {exc.message}")
        raise typer.Exit(code=1)
    except ValidationError as exc:
        console.print(f"[bold red]Invalid bundle descriptor:[/bold red] {exc}")
        raise typer.Exit(code=1)

    table = Table(title=f"Stamp: {bundle.name} v{bundle.version}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Manifest digest", stamp.manifest_digest)
    table.add_row("Mixins", ", ".join(stamp.mixins) or "[dim]none[/dim]")
    table.add_row("Tool version", stamp.version or "[dim]unset[/dim]")
    table.add_row("Tool commit", stamp.commit or "[dim]unset[/dim]")
    console.print(table)

    if show_manifest:
        console.print(Syntax(manifest_text, "yaml"))
