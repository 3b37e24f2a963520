"""CLI commands for managing moodlens settings."""

from __future__ import annotations

import json
from pathlib import Path

import typer

from moodlens.configuration.settings import (
    DEFAULT_CONFIG_PATH,
    AnalysisSettings,
    default_settings,
    load_settings,
    save_settings,
)
from moodlens.errors import ConfigurationError


config_app = typer.Typer(help="Manage moodlens configuration")


def _summarize_settings(settings: AnalysisSettings) -> str:
    clustering = settings.clustering
    lines = [
        f"Mood weights: {settings.scoring.weights}",
        f"Delta thresholds: gradual {settings.deltas.gradual_threshold}, sudden {settings.deltas.sudden_threshold}",
        f"Cluster size: {clustering.min_cluster_size}-{clustering.max_cluster_size}",
        f"Coherence threshold: {clustering.coherence_threshold}",
        f"Meaningfulness threshold: {clustering.meaningfulness_threshold}",
        f"Review policy: {settings.dynamic.review_policy.value}",
        f"Workers: {settings.max_workers}, re-cluster timeout: {settings.recluster_timeout_seconds}s",
    ]
    return "\n".join(lines)


@config_app.command("init")
def init_config(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file"),
) -> None:
    """Write the default settings file."""

    if config_path.exists() and not force:
        typer.echo(f"Configuration already exists at {config_path} (use --force to overwrite)", err=True)
        raise typer.Exit(code=1)
    settings = default_settings()
    save_settings(settings, config_path)
    typer.echo(f"Configuration initialized at {config_path}")
    typer.echo(_summarize_settings(settings))


@config_app.command("show")
def show_config(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
    json_output: bool = typer.Option(False, "--json", help="Emit JSON output"),
) -> None:
    """Display the effective configuration."""

    settings = load_settings(config_path) if config_path.exists() else default_settings()
    if json_output:
        typer.echo(json.dumps(settings.model_dump(mode="json"), indent=2))
    else:
        typer.echo(_summarize_settings(settings))


@config_app.command("validate")
def validate_config(
    config_path: Path = typer.Option(DEFAULT_CONFIG_PATH, help="Path to config file"),
) -> None:
    """Validate configuration file for correctness."""

    try:
        settings = load_settings(config_path)
    except (ConfigurationError, FileNotFoundError) as exc:
        typer.echo(f"Configuration invalid: {exc}", err=True)
        raise typer.Exit(code=1)
    typer.echo(f"Configuration valid at {config_path}")
    typer.echo(_summarize_settings(settings))
