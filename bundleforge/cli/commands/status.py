"""``bundleforge status``: is ``bundle.json`` up to date with the manifest?

Compares the manifest digest stamped into the existing bundle against the
digest of the current manifest under the current tool build.  Exits 0 when
up to date, 1 when a rebuild is needed.
"""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console

from bundleforge.config import ProdConfig
from bundleforge.core.stamp import is_bundle_stale
from bundleforge.errors import BundleForgeError
from bundleforge.models.bundle import Bundle
from bundleforge.models.manifest import load_manifest

console = Console()


def status_cmd(
    directory: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Build directory containing the manifest and bundle.json.",
    ),
) -> None:
    """Report whether the bundle must be rebuilt."""
    config = ProdConfig()
    bundle_path = directory / config.bundle_file
    if not bundle_path.exists():
        console.print(f"[bold yellow]No bundle found:[/bold yellow] {bundle_path}")
        raise typer.Exit(code=1)

    try:
        manifest = load_manifest(directory / config.manifest_name)
        bundle = Bundle.from_json_bytes(bundle_path.read_bytes())
    except BundleForgeError as exc:
        console.print(f"[bold red]Error:[/bold red] {exc.message}")
        raise typer.Exit(code=1)
    except ValidationError as exc:
        console.print(f"[bold red]Invalid bundle descriptor:[/bold red] {exc}")
        raise typer.Exit(code=1)

    if is_bundle_stale(manifest, bundle, config.build_version, config.build_commit):
        console.print(
            f"[bold yellow]{bundle.name} is out of date[/bold yellow]: run [cyan]bundleforge build[/cyan]"
        )
        raise typer.Exit(code=1)

    console.print(f"[bold green]{bundle.name} v{bundle.version} is up to date.[/bold green]")
