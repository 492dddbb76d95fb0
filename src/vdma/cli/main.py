"""CLI application using Typer for the vitamin D in pregnancy meta-analysis."""

from pathlib import Path
from typing import Dict, Optional

import typer
from rich.console import Console
from rich.table import Table

from .. import __version__
from ..config.settings import settings
from ..core.exceptions import DatasetError, DegenerateEffectError, InsufficientDataError
from ..core.models import NoteKind, PooledEstimate, StudyDataset, StudyRecord
from ..io.export import results_to_frame, save_results
from ..io.loader import load_studies, records_to_frame
from ..io.paths import create_output_dir
from ..meta.catalog import OUTCOMES, SUBGROUPS, outcome_by_key
from ..meta.descriptives import outcomes_per_trial, participants_summary, tabulate
from ..meta.orchestrator import PRIMARY, OutcomeBatchRunner
from ..plots import (
    create_contribution_heatmap,
    create_forest_plot,
    create_funnel_plot,
    create_traffic_light,
)
from ..utils.logging import configure_logging, get_logger

app = typer.Typer(
    name="vdma",
    help="Vitamin D in pregnancy - random-effects meta-analysis of trial outcomes",
    add_completion=False,
)

console = Console()
logger = get_logger(__name__)


def _load(path: Path, dataset: StudyDataset = StudyDataset.TRIALS) -> Dict[str, StudyRecord]:
    try:
        studies = load_studies(path, dataset=dataset)
    except DatasetError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]Loaded {len(studies)} {dataset.value} records from {path}[/green]")
    return studies


def _output_path(output: Optional[Path], name: str) -> Path:
    if output is not None:
        return output
    return create_output_dir("figures") / name


# ---------------------------------------------------------------------------
# Analysis
# ---------------------------------------------------------------------------


@app.command()
def run(
    trials_csv: Path = typer.Argument(..., exists=True, help="Trial-level extraction sheet (CSV)"),
    pairs_csv: Optional[Path] = typer.Option(None, "--pairs", exists=True, help="Pair-level sheet for dose subgroups"),
    output_dir: Optional[Path] = typer.Option(None, "--output", "-o", help="Output directory (default: timestamped)"),
    workers: int = typer.Option(settings.max_workers, "--workers", "-w", min=1, help="Worker threads"),
    min_studies: int = typer.Option(settings.min_studies, "--min-studies", min=1, help="Minimum studies per analysis"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
    log_format: Optional[str] = typer.Option(None, "--log-format", help="json or text"),
) -> None:
    """Pool every outcome: primary, sensitivity and subgroup analyses."""
    configure_logging("DEBUG" if verbose else None, log_format)
    console.print("[bold blue]Starting meta-analysis batch[/bold blue]")
    trials = _load(trials_csv)
    pairs = _load(pairs_csv, StudyDataset.PAIRS) if pairs_csv else None

    runner = OutcomeBatchRunner(min_studies=min_studies, max_workers=workers)
    try:
        batch = runner.run(trials, pairs)
    except DatasetError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)

    if output_dir is None:
        output_dir = create_output_dir("meta")
    paths = save_results(batch, output_dir)

    frame = results_to_frame(batch)
    table = Table(title="Primary analyses")
    table.add_column("Outcome", style="cyan")
    table.add_column("k", justify="right")
    table.add_column("Estimate [95% CI]", style="green")
    table.add_column("p", justify="right")
    table.add_column("I²", justify="right", style="magenta")
    for row in frame[(frame["variant"] == PRIMARY)].itertuples():
        table.add_row(
            row.outcome,
            str(row.k),
            f"{row.measure} {row.estimate:.2f} [{row.ci_lower:.2f}, {row.ci_upper:.2f}]",
            f"{row.p_value:.3f}",
            f"{row.i2:.0f}%",
        )
    console.print(table)

    excluded = sum(1 for n in batch.notes if n.kind is NoteKind.EXCLUDED_STUDY)
    console.print(f"Results: {len(batch.results)} | Skipped: {len(batch.skipped)} | Excluded studies: {excluded}")
    for path in paths.values():
        console.print(f"[green]✓ Saved: {path}[/green]")
    console.print("\n[bold green]✓ Meta-analysis complete![/bold green]")


@app.command()
def describe(
    trials_csv: Path = typer.Argument(..., exists=True, help="Trial-level extraction sheet (CSV)"),
    by: str = typer.Option("pop_type,inter_type,supp_form,dose_freq,ini_trimester", "--by", help="Comma-separated characteristics"),
) -> None:
    """Describe the included trials by characteristic and control type."""
    frame = records_to_frame(_load(trials_csv))
    for column in [c.strip() for c in by.split(",") if c.strip()]:
        if column not in frame.columns:
            console.print(f"[yellow]⚠ Unknown characteristic: {column}[/yellow]")
            continue
        counts = tabulate(frame, column)
        table = Table(title=column)
        table.add_column(column, style="cyan")
        for name in counts.columns:
            table.add_column(str(name), justify="right")
        for level, values in counts.iterrows():
            table.add_row(str(level), *[f"{v:g}" for v in values])
        console.print(table)

    summary = participants_summary(frame)
    table = Table(title="Participants randomised")
    table.add_column("Trials", style="cyan")
    for name in summary.columns:
        table.add_column(name, justify="right")
    for name, values in summary.iterrows():
        table.add_row(str(name), *[f"{v:g}" for v in values])
    console.print(table)

    per_trial = outcomes_per_trial(frame)
    console.print(f"Outcomes per trial: median {per_trial.median():g}, range {per_trial.min()}-{per_trial.max()}")


@app.command()
def outcomes() -> None:
    """List the outcome catalog and the subgroups run for each outcome."""
    table = Table(title="Outcomes")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Group")
    table.add_column("Measure", style="green")
    table.add_column("Subgroups", style="magenta")
    for outcome in OUTCOMES:
        table.add_row(
            outcome.key,
            outcome.name,
            outcome.group.value,
            outcome.measure.value,
            str(sum(1 for s in SUBGROUPS if s.applies_to(outcome))),
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Figures
# ---------------------------------------------------------------------------


def _single_result(trials_csv: Path, pairs_csv: Optional[Path], outcome_key: str, variant: str):
    try:
        outcome = outcome_by_key(outcome_key)
    except KeyError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)
    runner = OutcomeBatchRunner(outcomes=[outcome])
    cells = [c for c in runner.plan() if c.variant == variant]
    if not cells:
        console.print(f"[red]Error: variant {variant!r} does not apply to {outcome_key}[/red]")
        raise typer.Exit(1)
    trials = _load(trials_csv)
    pairs = _load(pairs_csv, StudyDataset.PAIRS) if pairs_csv else None
    result, notes = runner.run_cell(cells[0], trials, pairs)
    if result is None:
        reason = "; ".join(n.message for n in notes if n.kind is not NoteKind.EXCLUDED_STUDY)
        console.print(f"[yellow]⚠ No pooled result for {outcome_key}/{variant}: {reason}[/yellow]")
        raise typer.Exit(1)
    return outcome, result


@app.command()
def forest(
    trials_csv: Path = typer.Argument(..., exists=True, help="Trial-level extraction sheet (CSV)"),
    outcome: str = typer.Option(..., "--outcome", help="Outcome key, e.g. gdm"),
    variant: str = typer.Option(PRIMARY, "--variant", help="primary, sensitivity or subgroup:<covariate>"),
    pairs_csv: Optional[Path] = typer.Option(None, "--pairs", exists=True, help="Pair-level sheet"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Image path"),
) -> None:
    """Draw the forest plot of one outcome and variant."""
    spec, result = _single_result(trials_csv, pairs_csv, outcome, variant)
    path = _output_path(output, f"forest_{outcome}_{variant.replace(':', '_')}.png")
    title = spec.name if isinstance(result, PooledEstimate) else f"{spec.name} by {result.title.lower()}"
    create_forest_plot(result, path, title=title)
    console.print(f"[green]✓ Saved: {path}[/green]")


@app.command()
def funnel(
    trials_csv: Path = typer.Argument(..., exists=True, help="Trial-level extraction sheet (CSV)"),
    outcome: str = typer.Option(..., "--outcome", help="Outcome key, e.g. gdm"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Image path"),
) -> None:
    """Draw the funnel plot of a primary analysis and run Egger's test."""
    spec, result = _single_result(trials_csv, None, outcome, PRIMARY)
    path = _output_path(output, f"funnel_{outcome}.png")
    create_funnel_plot(result, path, title=spec.name)
    console.print(f"[green]✓ Saved: {path}[/green]")
    try:
        egger = OutcomeBatchRunner().analyzer.publication_bias_test(result)
    except (InsufficientDataError, DegenerateEffectError) as exc:
        console.print(f"[yellow]Egger's test not run: {exc}[/yellow]")
        return
    flag = "[red]asymmetry detected[/red]" if egger.bias_detected else "[green]no asymmetry[/green]"
    console.print(f"Egger's test: intercept {egger.intercept:.3f} (t = {egger.t_value:.2f}, p = {egger.p_value:.3f}) {flag}")


@app.command()
def rob(
    trials_csv: Path = typer.Argument(..., exists=True, help="Trial-level extraction sheet (CSV)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Image path"),
) -> None:
    """Draw the risk-of-bias traffic light figure."""
    frame = records_to_frame(_load(trials_csv))
    path = _output_path(output, "risk_of_bias.png")
    try:
        create_traffic_light(frame, path)
    except ValueError as exc:
        console.print(f"[red]Error: {exc}[/red]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Saved: {path}[/green]")


@app.command()
def heatmap(
    trials_csv: Path = typer.Argument(..., exists=True, help="Trial-level extraction sheet (CSV)"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Image path"),
) -> None:
    """Draw the heatmap of trial contributions to each outcome."""
    frame = records_to_frame(_load(trials_csv))
    path = _output_path(output, "contributions.png")
    create_contribution_heatmap(frame, path)
    console.print(f"[green]✓ Saved: {path}[/green]")


@app.command()
def version() -> None:
    """Show version information."""
    console.print(f"vdma version {__version__}")


if __name__ == "__main__":
    app()
