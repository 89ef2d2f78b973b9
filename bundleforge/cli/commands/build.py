"""``bundleforge build``: build, push and stamp the bundle in a directory.

Runs the full pipeline: stage the build context, generate the Dockerfile,
build and push the invocation image, then write ``bundle.json``.  Ctrl-C
cancels the build cleanly; no descriptor is written for a cancelled build.
"""

from __future__ import annotations

import signal
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from bundleforge.config import ProdConfig
from bundleforge.core.cancellation import CancellationToken
from bundleforge.core.pipeline import BuildPipeline
from bundleforge.errors import BundleForgeError

console = Console()
err_console = Console(stderr=True)


def build_cmd(
    directory: Path = typer.Option(
        Path("."),
        "--dir",
        "-d",
        help="Build directory containing the manifest.",
    ),
    timeout: float = typer.Option(
        0,
        "--timeout",
        "-t",
        help="Abort the build after this many seconds (0 = no limit).",
    ),
) -> None:
    """Build the invocation image and write the bundle descriptor."""
    config = ProdConfig()
    token = CancellationToken(timeout or None)
    pipeline = BuildPipeline(
        directory,
        config,
        out=console.file,
        err=err_console.file,
    )

    def _cancel(signum, frame) -> None:
        console.print("\n[bold yellow]Cancelling build...[/bold yellow]")
        token.cancel()

    previous = signal.signal(signal.SIGINT, _cancel)
    try:
        result = pipeline.run(token)
    except BundleForgeError as exc:
        console.print(
            f"[bold red]Build failed in stage {exc.stage}:[/bold red] {exc.message}"
        )
        raise typer.Exit(code=1)
    finally:
        signal.signal(signal.SIGINT, previous)

    console.print()
    console.print(
        Panel(
            "\n".join([
                "[bold green]Bundle built![/bold green]",
                "",
                f"[bold]Bundle:[/bold] {result.bundle_path}",
                f"[bold]Image:[/bold]  {result.image}",
                f"[bold]Manifest digest:[/bold] {result.stamp.manifest_digest}",
            ]),
            title="[bold]Build Complete[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
