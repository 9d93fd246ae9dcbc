"""shipdag CLI - Main entrypoint."""

from pathlib import Path

import typer
from rich.console import Console

from shipdag import __version__
from shipdag.cli.commands import config_cmd, pipeline_cmd, release_cmd
from shipdag.core.config import load_config
from shipdag.core.exceptions import ShipDAGError
from shipdag.core.logging import configure_logging

# Create the main Typer app
app = typer.Typer(
    name="shipdag",
    help="shipdag - release pipelines as DAGs: test, publish, scan, verify.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    pretty_exceptions_enable=False,
)

console = Console()

app.command("tags")(pipeline_cmd.tags)
app.command("plan")(pipeline_cmd.plan)
app.command("run")(release_cmd.run)
app.command("verify")(release_cmd.verify)
app.add_typer(config_cmd.app, name="config", help="Configuration management")


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"[bold blue]shipdag[/bold blue] version [green]{__version__}[/green]")
        raise typer.Exit()


@app.callback()
def callback(
    ctx: typer.Context,
    *,
    config_path: Path | None = typer.Option(
        None, "--config", help="Configuration file (default: search the working directory)"
    ),
    quiet: bool = typer.Option(False, "-q", "--quiet", help="Only log errors"),
    verbose: bool = typer.Option(False, "-V", "--verbose", help="Enable debug logging"),
    log_level: str | None = typer.Option(
        None, "--log-level", help="Log level: debug|info|warning|error"
    ),
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
) -> None:
    """shipdag CLI.

    Global flags are parsed here and stored on `ctx.obj` for subcommands.
    """
    if ctx.obj is None:
        ctx.obj = {}
    ctx.obj["config_path"] = config_path

    try:
        logging_config = load_config(config_path).logging
    except (ShipDAGError, FileNotFoundError):
        # reported by the subcommand that needs the configuration
        logging_config = None

    effective_level = (log_level or (logging_config.level if logging_config else "INFO")).upper()
    if quiet:
        effective_level = "ERROR"
    elif verbose:
        effective_level = "DEBUG"

    if logging_config is None:
        configure_logging(level=effective_level, force_reconfigure=True)  # type: ignore[arg-type]
        return
    configure_logging(
        level=effective_level,  # type: ignore[arg-type]
        format=logging_config.format,  # type: ignore[arg-type]
        output_file=logging_config.output_file,
        use_color=logging_config.use_color,
        include_timestamp=logging_config.include_timestamp,
        force_reconfigure=True,
        enable_stdlib_bridge=logging_config.enable_stdlib_bridge,
        backtrace=logging_config.backtrace,
        diagnose=logging_config.diagnose,
    )


def main() -> None:
    """Main CLI entrypoint."""
    app()


if __name__ == "__main__":
    main()
