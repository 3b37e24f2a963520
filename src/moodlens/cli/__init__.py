"""Command line entry points for moodlens."""

import logging

import typer
from typer import Typer

from ..configuration.cli import config_app
from .analysis import analyze_command, cluster_command, deltas_command


cli = Typer(help="Mood scoring, delta detection and tone clustering for conversational memories")


@cli.callback()
def main(verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging")) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


cli.command("analyze")(analyze_command)
cli.command("deltas")(deltas_command)
cli.command("cluster")(cluster_command)
cli.add_typer(config_app, name="config")

__all__ = ["cli", "config_app"]
