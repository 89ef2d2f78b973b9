"""BundleForge CLI: Typer-based command-line interface.

Provides the ``bundleforge`` command with subcommands for building a
bundle, checking whether it is up to date, and inspecting its stamp.

All output uses Rich for formatted terminal display.
"""
