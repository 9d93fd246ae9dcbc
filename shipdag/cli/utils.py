"""CLI helper utilities for shipdag commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Protocol

import typer
from rich.console import Console

from shipdag.core.config import ShipDAGConfig, load_config
from shipdag.core.exceptions import ShipDAGError


class ContextProtocol(Protocol):
    """Protocol for common interface between Click and Typer contexts."""

    @property
    def obj(self) -> dict[str, Any] | None: ...


console = Console()
err_console = Console(stderr=True)


def context_value(ctx: ContextProtocol | None, key: str, default: Any = None) -> Any:
    obj = getattr(ctx, "obj", None)
    if isinstance(obj, dict):
        return obj.get(key, default)
    return default


def load_cli_config(ctx: ContextProtocol | None) -> ShipDAGConfig:
    """Load configuration from ``--config`` (or the usual search path).

    Exits with status 2 when the configuration cannot be loaded.
    """
    path: Path | None = context_value(ctx, "config_path")
    try:
        return load_config(path)
    except (ShipDAGError, FileNotFoundError) as e:
        err_console.print(f"[red]Error loading configuration: {e}[/red]")
        raise typer.Exit(2) from e


def print_json(obj: Any) -> None:
    typer.echo(json.dumps(obj, default=str, indent=2))
