"""Validate CLI command -- check backtest metrics for overfitting."""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape
from rich.table import Table

from ..config import StatisticsConfig
from ..exceptions import InvalidMetricsError, QuantGuardError
from ..report import assemble
from ..rules.models import Severity
from ..stats.evaluator import evaluate_metrics
from ..stats.models import BacktestMetrics, ValidationVerdict
from . import app
from ._common import EXIT_BLOCKING, EXIT_ERROR, console, fail, read_text, resolve_config


@app.command()
def validate(
    metrics_file: Path = typer.Argument(
        ...,
        help="JSON object with returns, sharpe, max_drawdown, win_rate, ...",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
    blocks: Optional[int] = typer.Option(
        None,
        "--blocks",
        help="PBO block count S (even, must divide the number of periods)",
        min=2,
    ),
    seed: Optional[int] = typer.Option(
        None,
        "--seed",
        help="Seed for sampled PBO splits",
    ),
    config: Optional[Path] = typer.Option(
        None,
        "-c",
        "--config",
        help="Configuration file (TOML)",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Exit 1 when the verdict fails",
    ),
):
    """
    Evaluate backtest metrics against multiple-testing corrected thresholds.

    [bold cyan]Examples:[/bold cyan]

      quantguard validate metrics.json

      quantguard validate metrics.json --blocks 8 --json --strict
    """
    statistics = {}
    if blocks is not None:
        statistics["pbo_blocks"] = blocks
    if seed is not None:
        statistics["pbo_seed"] = seed
    overrides = {"statistics": statistics} if statistics else {}
    settings = resolve_config(config=config, **overrides)

    try:
        try:
            data = json.loads(read_text(metrics_file))
        except json.JSONDecodeError as e:
            raise InvalidMetricsError("metrics", f"invalid JSON at line {e.lineno}: {e.msg}")
        if not isinstance(data, dict):
            raise InvalidMetricsError("metrics", "expected a JSON object")
        metrics = BacktestMetrics.from_dict(data)
        verdict = evaluate_metrics(metrics, settings)
    except QuantGuardError as e:
        fail(e, json_output)
    except KeyboardInterrupt:
        console.print("\n[yellow]Validation interrupted[/yellow]")
        raise typer.Exit(EXIT_ERROR)

    report = assemble(verdict=verdict)
    if json_output:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        _output_rich(verdict, settings.statistics)

    if strict and not report.passed:
        raise typer.Exit(EXIT_BLOCKING)


def _output_rich(verdict: ValidationVerdict, stats: StatisticsConfig) -> None:
    table = Table(show_header=True, pad_edge=True)
    table.add_column("Check", min_width=20)
    table.add_column("Observed", justify="right")
    table.add_column("Required", justify="right")

    table.add_row("t-statistic", f"{verdict.observed_tstat:.2f}", f">= {verdict.required_tstat:.2f}")
    table.add_row(
        "Deflated Sharpe",
        f"{verdict.deflated_sharpe:.3f}",
        f">= {stats.dsr_pass_threshold:.2f} (Sharpe > {stats.dsr_sharpe_trigger:g})",
    )
    table.add_row(
        "PBO",
        "n/a" if verdict.pbo is None else f"{verdict.pbo:.3f}",
        f"< {stats.pbo_pass_threshold:.2f}",
    )
    console.print(table)

    for flag in verdict.red_flags:
        style = "bold red" if flag.severity is Severity.STOP else "yellow"
        console.print(f"[{style}]{flag.code}[/{style}] {escape(flag.rationale)}")
    for note in verdict.notes:
        console.print(f"[dim]note: {escape(note)}[/dim]")
    for failure in verdict.failures:
        console.print(f"[red]failed:[/red] {escape(failure)}")

    if verdict.passed:
        console.print("[bold green]PASSED[/bold green]")
    else:
        console.print("[bold red]FAILED[/bold red]")
    if verdict.low_confidence:
        console.print("[yellow]low confidence: too few returns for higher moments[/yellow]")
