"""Command-line interface for mediaplan.

- app: The Typer application object with every command registered.
- main: Console-script entry point.
"""

from mediaplan.cli.commands import app, main

__all__ = ["app", "main"]
