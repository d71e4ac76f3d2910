"""Rules CLI command -- list the built-in rule catalog."""

import json

import typer
from rich.markup import escape
from rich.table import Table

from ..rules.catalog import ALL_RULES
from . import app
from ._common import SEVERITY_STYLE, console


@app.command()
def rules(
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output in machine-readable JSON format",
    ),
):
    """List every built-in rule with its category, severity and fix support."""
    if json_output:
        print(
            json.dumps(
                [
                    {
                        "id": rule.id,
                        "category": rule.category.value,
                        "severity": rule.severity.value,
                        "title": rule.title,
                        "fixable": rule.fixer is not None,
                    }
                    for rule in ALL_RULES
                ],
                indent=2,
            )
        )
        return

    table = Table(show_header=True, pad_edge=True)
    table.add_column("Id")
    table.add_column("Category")
    table.add_column("Severity")
    table.add_column("Fix", justify="center")
    table.add_column("Title", overflow="fold")
    for rule in ALL_RULES:
        style = SEVERITY_STYLE[rule.severity]
        table.add_row(
            rule.id,
            rule.category.value,
            f"[{style}]{rule.severity.value}[/{style}]",
            "yes" if rule.fixer is not None else "",
            escape(rule.title),
        )
    console.print(table)
