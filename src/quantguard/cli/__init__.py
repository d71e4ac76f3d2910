"""CLI entry point, registers all subcommands."""

import typer

from .. import __version__
from ..logging_config import setup_logging
from ._common import console

app = typer.Typer(
    name="quantguard",
    help="quantguard - Temporal-Bias Detector and Backtest Validator",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold cyan]quantguard[/bold cyan] version [green]{__version__}[/green]")
        raise typer.Exit(0)


@app.callback()
def main(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable debug logging",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Only log errors",
    ),
    version: bool = typer.Option(
        False,
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    ),
):
    """
    Detect lookahead bias and data leakage in strategy code and check
    backtest results for overfitting.
    """
    setup_logging(verbose=verbose, quiet=quiet)


# Import subcommands to register them
from .scan import scan as _scan  # noqa: F401, E402
from .fix import fix as _fix  # noqa: F401, E402
from .validate import validate as _validate  # noqa: F401, E402
from .rules import rules as _rules  # noqa: F401, E402
