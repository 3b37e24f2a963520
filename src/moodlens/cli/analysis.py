"""Analysis CLI commands: mood scores, deltas and clusters.

Every command reads a JSON file holding a list of memory records (or an
object with a ``memories`` list) and prints a rich table, or JSON with
``--json``.

Examples:
    moodlens analyze memories.json
    moodlens deltas memories.json --timeline
    moodlens cluster memories.json --set clustering.min_cluster_size=2 --json
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, NoReturn, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from moodlens.configuration.settings import (
    DEFAULT_CONFIG_PATH,
    AnalysisSettings,
    apply_overrides,
    default_settings,
    load_settings,
)
from moodlens.deltas.timeline import TimelineAnalyzer
from moodlens.errors import InvalidConfigError, InvalidInputError, MoodlensError
from moodlens.errors.user_messages import format_error_for_cli
from moodlens.models.memory import Memory
from moodlens.pipeline.batch import BatchAnalysisPipeline

logger = logging.getLogger(__name__)

console = Console()


# ============================================================================
# Helpers
# ============================================================================


def _parse_override(raw: str) -> Tuple[str, Any]:
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise InvalidConfigError(f"Override must look like key=value, got '{raw}'")
    try:
        return key.strip(), json.loads(value)
    except json.JSONDecodeError:
        return key.strip(), value


def _settings(config_path: Path, overrides: Optional[List[str]], workers: Optional[int]) -> AnalysisSettings:
    settings = load_settings(config_path) if config_path.exists() else default_settings()
    parsed: Dict[str, Any] = dict(_parse_override(o) for o in overrides or [])
    if workers is not None:
        parsed["max_workers"] = workers
    return apply_overrides(settings, parsed) if parsed else settings


def _load_memories(path: Path) -> Tuple[List[Memory], List[InvalidInputError]]:
    """Parse memory records, isolating malformed ones."""
    try:
        payload = json.loads(path.read_text())
    except json.JSONDecodeError as exc:
        raise InvalidInputError(f"{path} is not valid JSON: {exc}", field="input") from exc
    records = payload.get("memories", []) if isinstance(payload, dict) else payload
    if not isinstance(records, list):
        raise InvalidInputError(f"{path} must hold a list of memory records", field="input")

    memories: List[Memory] = []
    errors: List[InvalidInputError] = []
    for record in records:
        try:
            memories.append(Memory.from_dict(record))
        except InvalidInputError as exc:
            logger.warning(f"Skipping malformed record: {exc.message}")
            errors.append(exc)
    return memories, errors


def _fail(error: MoodlensError) -> NoReturn:
    typer.echo(format_error_for_cli(error), err=True)
    raise typer.Exit(code=1)


def _print_errors(errors: List[MoodlensError]) -> None:
    if not errors:
        return
    console.print(f"\n[yellow]{len(errors)} issue(s):[/yellow]")
    for error in errors:
        subject = getattr(error, "memory_id", None)
        prefix = f"{subject}: " if subject else ""
        console.print(f"  [dim]{error.code}[/dim] {prefix}{error.message}")


def _emit_json(payload: Dict[str, Any]) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


INPUT_ARGUMENT = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="JSON file of memory records")
CONFIG_OPTION = typer.Option(DEFAULT_CONFIG_PATH, "--config", help="Path to config file")
SET_OPTION = typer.Option(None, "--set", help="Override a setting, e.g. clustering.min_cluster_size=2")
WORKERS_OPTION = typer.Option(None, "--workers", min=1, help="Worker threads")
JSON_OPTION = typer.Option(False, "--json", help="Output as JSON")


# ============================================================================
# Commands
# ============================================================================


def analyze_command(
    input_path: Path = INPUT_ARGUMENT,
    config_path: Path = CONFIG_OPTION,
    overrides: Optional[List[str]] = SET_OPTION,
    workers: Optional[int] = WORKERS_OPTION,
    output_json: bool = JSON_OPTION,
) -> None:
    """Score the mood of every memory."""
    try:
        pipeline = BatchAnalysisPipeline(_settings(config_path, overrides, workers))
        memories, errors = _load_memories(input_path)
        analyzed, analysis_errors = pipeline.analyze_memories(memories)
    except MoodlensError as exc:
        _fail(exc)
    errors = errors + analysis_errors

    if output_json:
        _emit_json(
            {
                "scores": [a.mood_score.to_dict() for a in analyzed],
                "errors": [e.to_dict() for e in errors],
            }
        )
        return

    table = Table(title=f"Mood Scores ({len(analyzed)} memories)")
    table.add_column("Memory", style="cyan", no_wrap=True)
    table.add_column("Score", justify="right")
    table.add_column("Confidence", justify="right")
    table.add_column("Band", style="magenta")
    table.add_column("Descriptors", style="green")
    for item in analyzed:
        mood = item.mood_score
        table.add_row(
            item.memory_id,
            f"{mood.score:.1f}",
            f"{mood.confidence:.2f}",
            mood.confidence_band.value if mood.confidence_band else "-",
            ", ".join(mood.descriptors),
        )
    console.print(table)
    _print_errors(errors)


def deltas_command(
    input_path: Path = INPUT_ARGUMENT,
    config_path: Path = CONFIG_OPTION,
    overrides: Optional[List[str]] = SET_OPTION,
    workers: Optional[int] = WORKERS_OPTION,
    timeline: bool = typer.Option(False, "--timeline", help="Add trend and turning points per conversation"),
    output_json: bool = JSON_OPTION,
) -> None:
    """Detect mood deltas within each conversation."""
    try:
        settings = _settings(config_path, overrides, workers)
        pipeline = BatchAnalysisPipeline(settings)
        memories, errors = _load_memories(input_path)
        analyzed, analysis_errors = pipeline.analyze_memories(memories)
        deltas, delta_errors = pipeline.detect_deltas(analyzed)
        timelines = {}
        if timeline:
            analyzer = TimelineAnalyzer(settings.deltas)
            series = pipeline.conversation_observations(analyzed)
            timelines = {key: analyzer.analyze(series[key], weekly=False) for key in sorted(deltas)}
    except MoodlensError as exc:
        _fail(exc)
    errors = errors + analysis_errors + delta_errors

    if output_json:
        _emit_json(
            {
                "deltas": {key: [d.to_dict() for d in items] for key, items in sorted(deltas.items())},
                "timelines": {key: report.to_dict() for key, report in timelines.items()},
                "errors": [e.to_dict() for e in errors],
            }
        )
        return

    total = sum(len(items) for items in deltas.values())
    table = Table(title=f"Mood Deltas ({total} across {len(deltas)} conversations)")
    table.add_column("Conversation", style="cyan", no_wrap=True)
    table.add_column("Type", style="magenta")
    table.add_column("Change")
    table.add_column("Magnitude", justify="right")
    table.add_column("Significance", justify="right")
    table.add_column("Confidence", justify="right")
    for key in sorted(deltas):
        for delta in deltas[key]:
            table.add_row(
                key,
                delta.type.value,
                f"{delta.from_score:.1f} -> {delta.to_score:.1f}",
                f"{delta.magnitude:.2f}",
                f"{delta.significance:.2f}",
                f"{delta.confidence:.2f}",
            )
    console.print(table)

    for key, report in timelines.items():
        console.print(
            f"[bold]{key}[/bold]: {report.trend.direction.value} "
            f"(net {report.trend.net_change:+.2f}), {len(report.turning_points)} turning points"
        )
    _print_errors(errors)


def cluster_command(
    input_path: Path = INPUT_ARGUMENT,
    config_path: Path = CONFIG_OPTION,
    overrides: Optional[List[str]] = SET_OPTION,
    workers: Optional[int] = WORKERS_OPTION,
    timeout: Optional[float] = typer.Option(None, "--timeout", min=0.001, help="Re-cluster budget in seconds"),
    output_json: bool = JSON_OPTION,
) -> None:
    """Cluster memories by emotional tone and report recurring patterns."""
    try:
        settings = _settings(config_path, overrides, workers)
        if timeout is not None:
            settings = apply_overrides(settings, {"recluster_timeout_seconds": timeout})
        pipeline = BatchAnalysisPipeline(settings)
        memories, errors = _load_memories(input_path)
        report = pipeline.run(memories)
    except MoodlensError as exc:
        _fail(exc)
    report.errors[:0] = errors

    if output_json:
        _emit_json(report.to_dict())
        return

    snapshot = report.snapshot
    clusters = snapshot.clusters if snapshot else ()
    table = Table(title=f"Tone Clusters ({len(clusters)} total)")
    table.add_column("Cluster", style="cyan", no_wrap=True)
    table.add_column("Theme", style="green")
    table.add_column("Tone", style="magenta")
    table.add_column("Size", justify="right")
    table.add_column("Coherence", justify="right")
    table.add_column("Significance", justify="right")
    for cluster in clusters:
        table.add_row(
            cluster.cluster_id,
            ", ".join(cluster.theme.labels()),
            cluster.theme.dominant_tone,
            str(cluster.size),
            f"{cluster.coherence:.2f}",
            f"{cluster.psychological_significance:.2f}",
        )
    console.print(table)

    if snapshot and snapshot.outliers:
        console.print("\n[bold yellow]Flagged for review:[/bold yellow]")
        for outlier in snapshot.outliers:
            console.print(f"  {', '.join(sorted(outlier.members))} (best similarity {outlier.best_similarity:.2f})")

    if report.patterns:
        patterns = Table(title=f"Patterns ({len(report.patterns)})")
        patterns.add_column("Type", style="magenta")
        patterns.add_column("Label", style="green")
        patterns.add_column("Clusters", justify="right")
        patterns.add_column("Strength", justify="right")
        patterns.add_column("Confidence", justify="right")
        patterns.add_column("Trend")
        for pattern in report.patterns:
            patterns.add_row(
                pattern.type.value,
                pattern.label,
                str(pattern.frequency),
                f"{pattern.strength:.2f}",
                f"{pattern.confidence:.2f}",
                pattern.evolution.trend if pattern.evolution else "",
            )
        console.print(patterns)

    if report.timed_out:
        console.print(
            f"[red]Re-cluster timed out; previous clusters kept, "
            f"{len(report.unprocessed_ids)} memories not reprocessed[/red]"
        )
    _print_errors(report.errors)
