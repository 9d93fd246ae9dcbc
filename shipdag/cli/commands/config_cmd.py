"""Configuration inspection commands."""

from __future__ import annotations

import dataclasses
from typing import Annotated, Any

import typer
from rich.table import Table

from shipdag.cli.utils import console, load_cli_config, print_json

app = typer.Typer(help="Configuration management commands")

_SECRET_FIELDS = frozenset({"token"})


def _masked(section: Any) -> dict[str, Any]:
    values = dataclasses.asdict(section)
    return {
        key: ("***" if key in _SECRET_FIELDS and value else value) for key, value in values.items()
    }


@app.command("show")
def show_config(
    ctx: typer.Context,
    section: Annotated[
        str | None,
        typer.Argument(help="Only show one section (logging, repository, pipeline, ...)"),
    ] = None,
    json_out: Annotated[bool, typer.Option("--json", help="Output JSON")] = False,
) -> None:
    """Show the effective configuration (secrets masked)."""
    config = load_cli_config(ctx)
    sections = {f.name: _masked(getattr(config, f.name)) for f in dataclasses.fields(config)}
    if section is not None:
        if section not in sections:
            console.print(f"[red]Unknown section '{section}'. Choose from: {', '.join(sections)}")
            raise typer.Exit(1)
        sections = {section: sections[section]}

    if json_out:
        print_json(sections)
        return

    for name, values in sections.items():
        table = Table(title=f"[bold]{name}[/bold]", show_header=True, header_style="bold cyan")
        table.add_column("Key", style="green")
        table.add_column("Value")
        for key, value in values.items():
            table.add_row(key, "" if value is None else str(value))
        console.print(table)
