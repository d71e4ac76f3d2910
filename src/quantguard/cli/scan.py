"""Scan CLI command -- detect temporal bias in strategy source files."""

import json
from pathlib import Path
from typing import List, Optional

import typer
from rich.markup import escape

from ..logging_config import get_logger
from ..report import AuditSession, assemble
from ..rules.engine import analyze_units
from . import app
from ._common import (
    EXIT_BLOCKING,
    EXIT_ERROR,
    console,
    findings_table,
    iter_sources,
    read_text,
    resolve_config,
)

logger = get_logger(__name__)


@app.command()
def scan(
    paths: List[Path] = typer.Argument(
        ...,
        help="Python files or directories to scan",
        exists=True,
        readable=True,
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
    workers: Optional[int] = typer.Option(
        None,
        "-w",
        "--workers",
        help="Parallel workers (default: auto-detect)",
        min=1,
        max=32,
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
    disable: Optional[List[str]] = typer.Option(
        None,
        "--disable",
        help="Rule id to skip (repeatable)",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Exit 1 when any STOP finding is reported",
    ),
):
    """
    Scan strategy code for lookahead bias, data leakage and code smells.

    [bold cyan]Examples:[/bold cyan]

      quantguard scan strategy.py

      quantguard scan src/strategies --json

      quantguard scan strategy.py --strict --disable SEC002
    """
    overrides = {"disabled_rules": tuple(disable)} if disable else {}
    settings = resolve_config(config=config, workers=workers, **overrides)

    files = iter_sources(paths)
    units: list[tuple[str, str]] = []
    errors: list[dict] = []
    for path in files:
        try:
            units.append((str(path), read_text(path)))
        except (OSError, UnicodeDecodeError) as e:
            errors.append(
                {"name": str(path), "error": type(e).__name__, "message": str(e), "details": {}}
            )

    session = AuditSession()
    for result in analyze_units(units, config=settings, workers=workers):
        if result.ok:
            session = session.add(result.name, assemble(result.findings))
        else:
            errors.append({"name": result.name, **result.error.to_dict()})
    logger.info(f"scanned {len(session)} unit(s), {len(errors)} error(s)")

    if json_output:
        print(json.dumps({**session.to_dict(), "errors": errors}, indent=2))
    else:
        _output_rich(session, errors)

    if errors:
        raise typer.Exit(EXIT_ERROR)
    if strict and session.has_blocking:
        raise typer.Exit(EXIT_BLOCKING)


def _output_rich(session: AuditSession, errors: list[dict]) -> None:
    total = 0
    for name, report in session.reports:
        if not report.findings:
            continue
        total += len(report.findings)
        console.print(findings_table(name, report.findings))
        console.print()

    for error in errors:
        console.print(f"[red]Error:[/red] {escape(error['name'])}: {escape(error['message'])}")

    if total == 0 and not errors:
        console.print(f"[green]No findings[/green] in {len(session)} file(s)")
        return

    blocking = sum(len(report.stop_findings) for _, report in session.reports)
    summary = f"{total} finding(s) in {len(session)} file(s)"
    if blocking:
        summary += f", [bold red]{blocking} STOP[/bold red]"
    console.print(summary)
