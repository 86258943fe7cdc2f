# Copyright (c) Syntropy Systems
"""Main CLI entry point for coursebench."""

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from coursebench.cli.init_cmd import init
from coursebench.cli.rank import rank
from coursebench.cli.retry import retry
from coursebench.cli.run import run
from coursebench.cli.runs import runs, summary
from coursebench.cli.score import score

app = typer.Typer(
    name="coursebench",
    help=(
        "Benchmark course-generation models. Run the grid, score every "
        "artifact, rank the models."
    ),
    no_args_is_help=True,
    add_completion=False,
)


def configure_logging(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show debug logs",
    ),
) -> None:
    """Benchmark course-generation models."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


# Register commands
_ = app.callback()(configure_logging)
_ = app.command()(init)
_ = app.command()(run)
_ = app.command()(retry)
_ = app.command()(score)
_ = app.command()(rank)
_ = app.command()(runs)
_ = app.command()(summary)


if __name__ == "__main__":
    app()
