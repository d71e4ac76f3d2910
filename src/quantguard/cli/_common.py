"""Shared CLI helpers."""

import json
from pathlib import Path
from typing import Iterable, Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..config import QuantGuardConfig, load_config
from ..exceptions import QuantGuardError
from ..rules.models import Finding, Severity

console = Console()

# Exit codes
EXIT_OK = 0
EXIT_BLOCKING = 1
EXIT_ERROR = 2

SEVERITY_STYLE = {
    Severity.STOP: "bold red",
    Severity.WARN: "yellow",
    Severity.AUTO_FIX: "cyan",
}


def resolve_config(
    config: Optional[Path] = None,
    workers: Optional[int] = None,
    **overrides,
) -> QuantGuardConfig:
    """Build config from CLI options, exiting with EXIT_ERROR when invalid."""
    if workers is not None:
        overrides["workers"] = workers
    try:
        return load_config(config_file=config, **overrides)
    except QuantGuardError as e:
        fail(e)


def fail(error: QuantGuardError, json_output: bool = False) -> None:
    """Report an error and exit with EXIT_ERROR."""
    if json_output:
        print(json.dumps(error.to_dict(), indent=2))
    else:
        console.print(f"[red]Error:[/red] {escape(str(error))}")
    raise typer.Exit(EXIT_ERROR)


def read_text(path: Path) -> str:
    """Read a source or metrics file as UTF-8."""
    return path.read_text(encoding="utf-8")


def iter_sources(paths: Iterable[Path]) -> list[Path]:
    """Expand directories to their *.py files; keep explicit files as given."""
    files: list[Path] = []
    for path in paths:
        if path.is_dir():
            files.extend(sorted(p for p in path.rglob("*.py") if p.is_file()))
        else:
            files.append(path)
    return files


def findings_table(name: str, findings: Iterable[Finding]) -> Table:
    table = Table(title=name, title_justify="left", show_header=True, pad_edge=True)
    table.add_column("Line", justify="right")
    table.add_column("Rule")
    table.add_column("Severity")
    table.add_column("Code", overflow="fold")
    table.add_column("Message", overflow="fold")
    table.add_column("Fix", justify="center")
    for finding in findings:
        start, end = finding.location
        line = str(start) if start == end else f"{start}-{end}"
        style = SEVERITY_STYLE[finding.severity]
        table.add_row(
            line,
            finding.rule_id,
            f"[{style}]{finding.severity.value}[/{style}]",
            escape(finding.snippet),
            escape(finding.message),
            "yes" if finding.fix_available else "",
        )
    return table
