"""Execution commands: run the release pipelines or verify a published artifact."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING, Annotated

import typer
from rich.markdown import Markdown

from shipdag.cli.commands.pipeline_cmd import PipelineChoice, resolve_graph
from shipdag.cli.utils import console, err_console, load_cli_config, print_json
from shipdag.core.domain.tags import artifact_tags
from shipdag.core.exceptions import ShipDAGError
from shipdag.core.reporting import render
from shipdag.core.service import Collaborators, ReleaseOutcome, ReleaseService

if TYPE_CHECKING:
    from shipdag.core.config import ShipDAGConfig
    from shipdag.core.domain.models import DeploymentCheck

DryRunOption = Annotated[
    bool,
    typer.Option("--dry-run", help="Use in-memory collaborators; nothing leaves this process"),
]
JsonOption = Annotated[bool, typer.Option("--json", help="Output JSON")]


def _collaborators(config: ShipDAGConfig, dry_run: bool) -> Collaborators:
    return Collaborators.in_memory() if dry_run else Collaborators.from_config(config)


async def _run_release(
    service: ReleaseService, ref_name: str, commit_id: str, change_request: int | None
) -> ReleaseOutcome:
    try:
        return await service.run_ci(ref_name, commit_id, change_request)
    finally:
        await service.aclose()


async def _verify(
    service: ReleaseService, ref_name: str, commit_id: str, seed: bool
) -> DeploymentCheck:
    try:
        if seed:
            # in-memory registry starts empty: publish what CI would have published
            pipeline = service.config.pipeline
            await service.collaborators.registry.publish(
                artifact_tags(
                    ref_name,
                    commit_id,
                    service.config.repository,
                    max_length=pipeline.max_tag_length,
                    placeholder=pipeline.placeholder_tag,
                ),
                context_dir=pipeline.build_context,
                dockerfile=pipeline.dockerfile,
            )
        return await service.verify(ref_name, commit_id)
    finally:
        await service.aclose()


def run(
    ctx: typer.Context,
    ref_name: Annotated[str, typer.Argument(metavar="REF", help="Branch or ref name")],
    commit_id: Annotated[str, typer.Argument(metavar="COMMIT", help="Commit identifier")],
    change_request: Annotated[
        int | None,
        typer.Option("--change-request", "-c", help="Change request to report on"),
    ] = None,
    file: Annotated[
        Path | None, typer.Option("--file", "-f", help="CI pipeline manifest (YAML)")
    ] = None,
    dry_run: DryRunOption = False,
    json_out: JsonOption = False,
) -> None:
    """Run CI for a commit; CD starts automatically when CI succeeds.

    Exits 0 only when both the CI run and the CD run it triggered succeeded.
    """
    config = load_cli_config(ctx)
    ci_graph = resolve_graph(config, PipelineChoice.CI, file)
    try:
        service = ReleaseService(config, _collaborators(config, dry_run), ci_graph=ci_graph)
        outcome = asyncio.run(_run_release(service, ref_name, commit_id, change_request))
    except ShipDAGError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(2) from e

    if json_out:
        print_json(outcome.to_dict())
    else:
        console.print(Markdown(render(outcome.ci)))
        if outcome.cd is not None:
            console.print(Markdown(render(outcome.cd)))

    if not outcome.succeeded:
        raise typer.Exit(1)


def verify(
    ctx: typer.Context,
    ref_name: Annotated[str, typer.Argument(metavar="REF", help="Branch or ref name")],
    commit_id: Annotated[str, typer.Argument(metavar="COMMIT", help="Commit identifier")],
    dry_run: DryRunOption = False,
    json_out: JsonOption = False,
) -> None:
    """Pull the artifact published for a ref, run it and check its answer."""
    config = load_cli_config(ctx)
    try:
        service = ReleaseService(config, _collaborators(config, dry_run))
        check = asyncio.run(_verify(service, ref_name, commit_id, seed=dry_run))
    except ShipDAGError as e:
        err_console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(2) from e

    if json_out:
        print_json(check.model_dump(mode="json"))
    else:
        console.print(Markdown(render(check)))

    if not check.passed:
        raise typer.Exit(1)
