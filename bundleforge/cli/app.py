"""Main Typer application: imports and registers all CLI commands.

Entry point: ``bundleforge`` (configured via pyproject.toml scripts).
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from bundleforge.cli.commands.build import build_cmd
from bundleforge.cli.commands.stamp import stamp_cmd
from bundleforge.cli.commands.status import status_cmd
from bundleforge.config import ProdConfig

app = typer.Typer(
    name="bundleforge",
    help="BundleForge: build digest-pinned invocation images and stamped bundles.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

app.command(name="build", help="Build and push the invocation image, then write bundle.json.")(build_cmd)
app.command(name="status", help="Check whether bundle.json is up to date.")(status_cmd)
app.command(name="stamp", help="Show the provenance stamp of bundle.json.")(stamp_cmd)


def configure_logging(level: str) -> None:
    """Route library logging through Rich on stderr."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@app.callback()
def main_callback(
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
) -> None:
    """Configure logging before any command runs."""
    config = ProdConfig()
    configure_logging("DEBUG" if verbose or config.debug else config.log_level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
