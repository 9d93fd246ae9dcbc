"""Inspection commands: derived tags and pipeline plans. Nothing is executed."""

from __future__ import annotations

from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.table import Table

from shipdag.builtin.pipelines import build_cd_graph, build_ci_graph
from shipdag.cli.utils import console, err_console, load_cli_config, print_json
from shipdag.core.domain.tags import artifact_tags
from shipdag.core.pipeline_builder import YamlPipelineBuilderError, load_pipeline_yaml

if TYPE_CHECKING:
    from shipdag.core.config import ShipDAGConfig
    from shipdag.core.domain.dag import DirectedGraph


class PipelineChoice(StrEnum):
    CI = "ci"
    CD = "cd"


def resolve_graph(
    config: ShipDAGConfig, pipeline: PipelineChoice, file: Path | None
) -> DirectedGraph:
    """Graph from ``file`` if given, else the built-in pipeline."""
    if file is None:
        return build_ci_graph(config) if pipeline == PipelineChoice.CI else build_cd_graph(config)
    try:
        return load_pipeline_yaml(file)
    except YamlPipelineBuilderError as e:
        err_console.print(f"[red]{e}[/red]")
        raise typer.Exit(1) from e


def tags(
    ctx: typer.Context,
    ref_name: Annotated[str, typer.Argument(metavar="REF", help="Branch or ref name")],
    commit_id: Annotated[str, typer.Argument(metavar="COMMIT", help="Commit identifier")],
    json_out: Annotated[bool, typer.Option("--json", help="Output JSON")] = False,
) -> None:
    """Show the mutable and immutable image tags for a ref and commit."""
    config = load_cli_config(ctx)
    mutable, immutable = artifact_tags(
        ref_name,
        commit_id,
        config.repository,
        max_length=config.pipeline.max_tag_length,
        placeholder=config.pipeline.placeholder_tag,
    )
    if json_out:
        print_json(
            {
                "mutable": mutable.model_dump(mode="json") | {"reference": mutable.reference},
                "immutable": immutable.model_dump(mode="json") | {"reference": immutable.reference},
            }
        )
        return
    console.print(f"[cyan]mutable  [/cyan] {mutable.reference}")
    console.print(f"[cyan]immutable[/cyan] {immutable.reference}")


def plan(
    ctx: typer.Context,
    pipeline: Annotated[
        PipelineChoice, typer.Option("--pipeline", "-p", help="Built-in pipeline to show")
    ] = PipelineChoice.CI,
    file: Annotated[
        Path | None,
        typer.Option("--file", "-f", help="Pipeline manifest (YAML) instead of a built-in"),
    ] = None,
    json_out: Annotated[bool, typer.Option("--json", help="Output JSON")] = False,
) -> None:
    """Show the stages of a pipeline, grouped into waves that may run concurrently."""
    config = load_cli_config(ctx)
    graph = resolve_graph(config, pipeline, file)
    waves = graph.waves()

    if json_out:
        print_json(
            {
                "pipeline": graph.name,
                "order": graph.topological_order(),
                "waves": waves,
                "stages": {
                    name: {
                        "kind": spec.kind.value,
                        "policy": spec.policy.value,
                        "depends_on": sorted(spec.deps),
                        "timeout": spec.timeout,
                    }
                    for name, spec in graph.stages.items()
                },
            }
        )
        return

    table = Table(title=f"Pipeline [bold]{graph.name}[/bold]", header_style="bold cyan")
    table.add_column("Wave", justify="right")
    table.add_column("Stage", style="green")
    table.add_column("Kind")
    table.add_column("Policy")
    table.add_column("Depends on", style="dim")
    for index, wave in enumerate(waves, start=1):
        for name in wave:
            spec = graph.stages[name]
            policy = spec.policy.value
            table.add_row(
                str(index),
                name,
                spec.kind.value,
                policy if spec.is_blocking else f"[yellow]{policy}[/yellow]",
                ", ".join(sorted(spec.deps)) or "-",
            )
    console.print(table)
