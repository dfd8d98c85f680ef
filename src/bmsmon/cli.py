"""Command line interface for the bmsmon package."""
from __future__ import annotations

import logging

import typer

from .jk.display import format_report
from .jk.frames import POLL_COMMAND, FrameError
from .jk.processing import decode_and_report
from .jk.runner import app as jk_app
from .smoothing import CurrentHistory

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

app = typer.Typer(context_settings={"help_option_names": ["-h", "--help"]})
app.add_typer(jk_app, name="jk")


@app.callback()
def main(
    log_level: str = typer.Option("INFO", "--log-level", help="DEBUG, INFO, WARNING or ERROR."),
) -> None:
    """Decode and monitor JK-style BMS telemetry."""

    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise typer.BadParameter(f"Unknown log level '{log_level}'", param_hint="--log-level")
    logging.basicConfig(level=level, format=LOG_FORMAT)


@app.command()
def decode(
    frame_hex: str = typer.Argument(..., help="One response frame as hex (spaces allowed)."),
) -> None:
    """Decode a single captured frame and print the report."""

    try:
        frame = bytes.fromhex(frame_hex)
    except ValueError as exc:
        raise typer.BadParameter("Frame must be hex text") from exc
    try:
        report = decode_and_report(frame, CurrentHistory())
    except FrameError as exc:
        typer.echo(f"Invalid frame ({exc.kind.value}): {exc}")
        raise typer.Exit(code=1) from exc
    for line in format_report(report):
        typer.echo(line)


@app.command()
def command() -> None:
    """Print the poll command sent to the BMS."""

    typer.echo(POLL_COMMAND.hex(" ").upper())


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
