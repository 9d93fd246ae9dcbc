"""Status reporting: render runs as Markdown and post them on the change request."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from shipdag.core.domain.models import (
    DeploymentCheck,
    PipelineRun,
    StageKind,
    StageResult,
    StageStatus,
)
from shipdag.core.exceptions import CollaboratorError
from shipdag.core.logging import get_logger
from shipdag.core.orchestration.events.events import Event, PipelineCompleted

if TYPE_CHECKING:
    from shipdag.core.ports.change_request import ChangeRequestHost

logger = get_logger(__name__)

_STATUS_ICONS = {
    StageStatus.SUCCESS: "✅",
    StageStatus.FAILURE: "❌",
    StageStatus.SKIPPED: "⏭️",
}


def render(subject: PipelineRun | DeploymentCheck) -> str:
    """Render a finished run or a deployment check as a Markdown comment body.

    Pure: the same input always yields the same text.
    """
    if isinstance(subject, DeploymentCheck):
        return _render_check(subject)
    return _render_run(subject)


def _render_run(run: PipelineRun) -> str:
    verdict = "passed" if run.succeeded else "failed"
    icon = "✅" if run.succeeded else "❌"
    lines = [
        f"### {icon} `{run.pipeline_name}` pipeline {verdict}",
        "",
        f"Ref `{run.ref_name}` at commit `{run.commit_id}`.",
        "",
        "| Stage | Status | Policy | Failure | Details |",
        "| --- | --- | --- | --- | --- |",
    ]
    for result in run.ordered_results():
        failure = result.failure_kind.value if result.failure_kind else ""
        lines.append(
            f"| `{result.stage}` | {_STATUS_ICONS[result.status]} {result.status.value} "
            f"| {result.policy.value} | {failure} | {_cell(summarize(result))} |"
        )

    if tags := run.artifact_tags:
        lines += ["", "**Artifact tags**", ""]
        lines += [f"- `{tag.reference}` ({tag.kind.value})" for tag in tags]

    for result in run.ordered_results():
        if result.kind == StageKind.DEPLOY_VERIFY and "check" in result.payload:
            check = DeploymentCheck.model_validate(result.payload["check"])
            lines += ["", _render_check(check, heading="####")]

    lines += ["", f"Run: {_run_link(run)}"]
    return "\n".join(lines)


def _render_check(check: DeploymentCheck, heading: str = "###") -> str:
    icon = "✅" if check.passed else "❌"
    verdict = "passed" if check.passed else "failed"
    pulled = f"`{check.tag.reference}`" if check.tag else "nothing (no tag could be pulled)"
    lines = [
        f"{heading} {icon} Deployment check {verdict}",
        "",
        f"- Pulled: {pulled}",
        f"- Tried: {', '.join(f'`{t}`' for t in check.attempted_tags) or 'none'}",
        f"- Inputs: `{' '.join(check.inputs)}`, expected output `{check.expected_output}`",
    ]
    if check.exit_code is not None:
        lines.append(f"- Exit status: {check.exit_code}, output: `{check.stdout.strip()}`")
    if check.failure_kind:
        lines.append(f"- Failure: {check.failure_kind.value}: {check.message}")
    return "\n".join(lines)


def summarize(result: StageResult) -> str:
    """One-line summary of a stage's payload for the breakdown table."""
    payload: dict[str, Any] = result.payload
    if result.status == StageStatus.SKIPPED:
        return result.message
    match result.kind:
        case StageKind.COVERAGE_CHECK if "coverage" in payload:
            return f"coverage {payload['coverage']:g}% (threshold {payload['threshold']:g}%)"
        case StageKind.TEST if "passed" in payload:
            return (
                f"{payload['passed']} passed, {payload['failed']} failed, "
                f"{payload['errors']} errors, {payload['skipped']} skipped"
            )
        case StageKind.BUILD_AND_PUBLISH if payload.get("digest"):
            return f"digest `{payload['digest']}`"
        case StageKind.SECURITY_SCAN if "advisory" in payload:
            return (
                f"{payload['advisory']['total']} finding(s) reported, "
                f"{payload['blocking']['total']} at or above {payload['severity_threshold']}"
            )
    return result.message


def _cell(text: str) -> str:
    return text.replace("|", "\\|").replace("\n", " ")


def _run_link(run: PipelineRun) -> str:
    return f"[{run.run_id}]({run.run_url})" if run.run_url else f"`{run.run_id}`"


class StatusReporter:
    """Observer posting one comment per completed run on its change request.

    The change request comes from the run's trigger, else from a lookup by
    head commit. No change request means no comment. Delivery errors are
    logged and swallowed so reporting can never fail a run.
    """

    def __init__(self, host: ChangeRequestHost | None) -> None:
        self.host = host
        self.posted: list[tuple[int, str]] = []

    async def handle(self, event: Event) -> None:
        if not isinstance(event, PipelineCompleted) or self.host is None:
            return
        run = event.run
        number = await self._resolve(self.host, run)
        if number is None:
            logger.info(f"No change request for {run.commit_id}; not reporting run {run.run_id}")
            return
        try:
            await self.host.post_comment(number, render(run))
        except CollaboratorError as e:
            logger.warning(f"Could not report run {run.run_id} on change request #{number}: {e}")
            return
        self.posted.append((number, run.run_id))
        logger.info(f"Reported run {run.run_id} on change request #{number}")

    @staticmethod
    async def _resolve(host: ChangeRequestHost, run: PipelineRun) -> int | None:
        if run.trigger.change_request is not None:
            return run.trigger.change_request
        try:
            return await host.find_open_change_request(run.commit_id)
        except CollaboratorError as e:
            logger.warning(f"Change request lookup for {run.commit_id} failed: {e}")
            return None
