"""Fix CLI command -- apply available rewrites to a strategy file."""

import json
from pathlib import Path
from typing import Optional

import typer
from rich.markup import escape

from ..autofix import apply_fixes, disjoint_fixes
from ..exceptions import QuantGuardError
from ..flow.models import SourceUnit
from ..logging_config import get_logger
from ..rules.engine import analyze_unit, blocking
from . import app
from ._common import EXIT_BLOCKING, console, fail, findings_table, read_text, resolve_config

logger = get_logger(__name__)


@app.command()
def fix(
    path: Path = typer.Argument(
        ...,
        help="Python file to fix",
        exists=True,
        file_okay=True,
        dir_okay=False,
        readable=True,
    ),
    write: bool = typer.Option(
        False,
        "--write",
        help="Write the fixed text back to PATH instead of printing it",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
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
        help="Exit 1 when STOP findings remain after fixing",
    ),
):
    """
    Apply every available fix in one verified pass.

    Each rewrite is re-analyzed; a fix that does not clear its finding is
    rejected and the file is left untouched.

    [bold cyan]Examples:[/bold cyan]

      quantguard fix strategy.py

      quantguard fix strategy.py --write
    """
    settings = resolve_config(config=config)

    try:
        unit = SourceUnit.parse(read_text(path), str(path))
        findings = analyze_unit(unit, settings)
        selected, deferred = disjoint_fixes(findings)
        if selected:
            result = apply_fixes(unit, selected, settings)
            fixed, remaining = result.unit, list(result.remaining)
        else:
            fixed, remaining = unit, findings
    except QuantGuardError as e:
        fail(e, json_output)

    if deferred:
        logger.info(f"{path}: {len(deferred)} overlapping fix(es) left for another pass")

    changed = fixed.text != unit.text
    if write and changed:
        path.write_text(fixed.text, encoding="utf-8")

    if json_output:
        print(
            json.dumps(
                {
                    "name": str(path),
                    "applied": [f.to_dict() for f in selected],
                    "remaining": [f.to_dict() for f in remaining],
                    "written": write and changed,
                    "text": None if write else fixed.text,
                },
                indent=2,
            )
        )
    elif write:
        if changed:
            console.print(f"[green]Fixed[/green] {len(selected)} finding(s) in {escape(str(path))}")
        else:
            console.print(f"No fixable findings in {escape(str(path))}")
        if remaining:
            console.print(findings_table(f"{path} (remaining)", remaining))
    else:
        # Fixed text goes to stdout untouched so it can be redirected
        print(fixed.text, end="")

    if strict and blocking(remaining):
        raise typer.Exit(EXIT_BLOCKING)
