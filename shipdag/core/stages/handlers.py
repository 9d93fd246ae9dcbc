"""Built-in stage handlers, one per stage kind.

Each handler performs one side effect through a port and converts the
collaborator's answer into a ``StageResult``. Collaborator errors are left
to propagate; ``StageRunner`` records them as infrastructure failures.
"""

from __future__ import annotations

import re
import shlex
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from shipdag.core.domain.models import FailureKind, Severity, StageKind, StageResult
from shipdag.core.exceptions import ConfigurationError
from shipdag.core.logging import get_logger
from shipdag.core.orchestration.gate import meets_threshold

if TYPE_CHECKING:
    from shipdag.core.domain.dag import StageSpec
    from shipdag.core.ports.command_runner import CommandResult, CommandRunner
    from shipdag.core.ports.registry import ArtifactRegistry
    from shipdag.core.ports.scanner import Scanner, ScanReport
    from shipdag.core.stages.runner import StageContext, StageHandler
    from shipdag.core.stages.verifier import DeploymentVerifier

logger = get_logger(__name__)

OUTPUT_TAIL_LINES = 40

_PERCENT = re.compile(r"(\d+(?:\.\d+)?)\s*%")
_NUMBER = re.compile(r"\d+(?:\.\d+)?")
_SUMMARY_LINE = re.compile(r"^\d+ [A-Za-z_-]+(?:, \d+ [A-Za-z_-]+)* in .+$")
_SUMMARY_CHUNK = re.compile(r"(?P<count>\d+) (?P<label>[A-Za-z_-]+)")
_LABEL_ALIASES = {
    "passed": "passed",
    "passes": "passed",
    "failed": "failed",
    "failures": "failed",
    "error": "errors",
    "errors": "errors",
    "skipped": "skipped",
}


# ============================================================================
# Output parsing
# ============================================================================


def parse_pytest_summary(output: str) -> dict[str, int] | None:
    """Extract counts from the final pytest summary line.

    Returns None when the output carries no summary line.

    >>> parse_pytest_summary("..F\\n==== 1 failed, 2 passed in 0.12s ====")
    {'passed': 2, 'failed': 1, 'errors': 0, 'skipped': 0}
    >>> parse_pytest_summary("All checks passed!") is None
    True
    """
    summary_line: str | None = None
    for line in reversed(output.splitlines()):
        stripped = line.strip()
        if not stripped:
            continue
        if stripped.startswith("===") and " in " in stripped:
            summary_line = stripped.strip("= ").strip()
            break
        if _SUMMARY_LINE.match(stripped):
            summary_line = stripped
            break

    if summary_line is None:
        return None

    counts = {"passed": 0, "failed": 0, "errors": 0, "skipped": 0}
    for chunk in summary_line.split(" in ", 1)[0].split(","):
        if match := _SUMMARY_CHUNK.match(chunk.strip()):
            label = _LABEL_ALIASES.get(match.group("label").lower())
            if label:
                counts[label] += int(match.group("count"))
    return counts


def parse_coverage_percentage(output: str) -> float | None:
    """Return the coverage percentage reported in ``output``.

    The last number followed by ``%`` wins; without any, the last bare
    number is used. None when the output holds no number at all.

    >>> parse_coverage_percentage("TOTAL    120     18    85%\\n3 passed in 0.40s")
    85.0
    >>> parse_coverage_percentage("79.99")
    79.99
    >>> parse_coverage_percentage("no data") is None
    True
    """
    if percents := _PERCENT.findall(output):
        return float(percents[-1])
    if numbers := _NUMBER.findall(output):
        return float(numbers[-1])
    return None


def output_tail(result: CommandResult, lines: int = OUTPUT_TAIL_LINES) -> str:
    combined = "\n".join(part for part in (result.stdout, result.stderr) if part)
    return "\n".join(combined.splitlines()[-lines:])


def resolve_command(
    params: Mapping[str, Any], default: Sequence[str] | None, python_version: str = ""
) -> list[str]:
    """Build an argument vector from ``params["command"]`` or ``default``.

    A string command is split shell-style; ``{python}`` is replaced by the
    stage's interpreter version.

    >>> resolve_command({}, ("python{python}", "-m", "pytest"), "3.12")
    ['python3.12', '-m', 'pytest']
    >>> resolve_command({"command": "ruff check src"}, None)
    ['ruff', 'check', 'src']
    """
    command = params.get("command", default)
    if not command:
        raise ConfigurationError("stage", "no command configured")
    argv = shlex.split(command) if isinstance(command, str) else [str(a) for a in command]
    return [arg.replace("{python}", python_version) for arg in argv]


# ============================================================================
# Handlers
# ============================================================================


class CommandStageHandler:
    """Shared plumbing for handlers that run a local command."""

    default_command_attr = "test_command"

    def __init__(self, command_runner: CommandRunner) -> None:
        self.command_runner = command_runner

    async def run_command(self, stage: StageSpec, context: StageContext) -> CommandResult:
        settings = context.settings
        default = getattr(settings, self.default_command_attr, None)
        argv = resolve_command(stage.params, default, str(stage.params.get("python_version", "")))
        env = stage.params.get("env")
        logger.debug(f"Stage '{stage.name}' running: {shlex.join(argv)}")
        return await self.command_runner.run(
            argv,
            timeout=float(stage.params.get("command_timeout", settings.command_timeout)),
            cwd=stage.params.get("cwd"),
            env=dict(env) if env else None,
        )


class TestHandler(CommandStageHandler):
    """Run a test (or lint) command; success iff it exits 0."""

    __test__ = False  # not a pytest class

    async def __call__(self, stage: StageSpec, context: StageContext) -> StageResult:
        result = await self.run_command(stage, context)
        payload: dict[str, Any] = {
            "exit_code": result.exit_code,
            "command": result.argv,
            "output_tail": output_tail(result),
        }
        if python_version := stage.params.get("python_version"):
            payload["python_version"] = str(python_version)
        if counts := parse_pytest_summary(f"{result.stdout}\n{result.stderr}"):
            payload.update(counts)

        if result.ok:
            return StageResult.success(
                stage.name, stage.kind, stage.policy, payload, message="command succeeded"
            )
        return StageResult.failure(
            stage.name,
            stage.kind,
            stage.policy,
            FailureKind.ASSERTION,
            f"command exited with status {result.exit_code}",
            payload,
        )


class CoverageHandler(CommandStageHandler):
    """Run the coverage tool and compare its percentage with the threshold."""

    default_command_attr = "coverage_command"

    async def __call__(self, stage: StageSpec, context: StageContext) -> StageResult:
        threshold = float(stage.params.get("threshold", context.settings.coverage_threshold))
        result = await self.run_command(stage, context)
        payload: dict[str, Any] = {
            "threshold": threshold,
            "exit_code": result.exit_code,
            "output_tail": output_tail(result),
        }

        if not result.ok:
            return StageResult.failure(
                stage.name,
                stage.kind,
                stage.policy,
                FailureKind.ASSERTION,
                f"coverage command exited with status {result.exit_code}",
                payload,
            )

        measured = parse_coverage_percentage(result.stdout)
        if measured is None:
            return StageResult.failure(
                stage.name,
                stage.kind,
                stage.policy,
                FailureKind.INFRASTRUCTURE,
                "coverage output contained no percentage",
                payload,
            )

        payload["coverage"] = measured
        if meets_threshold(measured, threshold):
            return StageResult.success(
                stage.name, stage.kind, stage.policy, payload, f"coverage {measured:g}%"
            )
        return StageResult.failure(
            stage.name,
            stage.kind,
            stage.policy,
            FailureKind.ASSERTION,
            f"coverage {measured:g}% is below the {threshold:g}% threshold",
            payload,
        )


class PublishHandler:
    """Build once and publish under both the mutable and the immutable tag."""

    def __init__(self, registry: ArtifactRegistry) -> None:
        self.registry = registry

    async def __call__(self, stage: StageSpec, context: StageContext) -> StageResult:
        tags = context.derived_tags()
        receipt = await self.registry.publish(
            tags,
            context_dir=str(stage.params.get("context_dir", context.settings.build_context)),
            dockerfile=str(stage.params.get("dockerfile", context.settings.dockerfile)),
        )
        references = [t.reference for t in tags]
        payload: dict[str, Any] = {
            "tags": references,
            "digest": receipt.digest,
            "artifact_tags": [t.model_dump(mode="json") for t in tags],
        }

        missing = [ref for ref in references if ref not in receipt.references]
        if missing or not receipt.digest:
            payload.pop("artifact_tags")
            reason = f"registry did not confirm {missing}" if missing else "no content digest"
            return StageResult.failure(
                stage.name, stage.kind, stage.policy, FailureKind.ASSERTION, reason, payload
            )

        return StageResult.success(
            stage.name,
            stage.kind,
            stage.policy,
            payload,
            f"published {', '.join(t.tag for t in tags)} at {receipt.digest}",
        )


class ScanHandler:
    """Scan the commit-bound image twice: a full advisory report and a blocking gate."""

    def __init__(self, scanner: Scanner) -> None:
        self.scanner = scanner

    async def __call__(self, stage: StageSpec, context: StageContext) -> StageResult:
        threshold = Severity.parse(
            str(stage.params.get("severity_threshold", context.settings.severity_threshold))
        )
        target = context.immutable_tag().reference
        timeout = float(stage.params.get("command_timeout", context.settings.command_timeout))

        advisory = await self.scanner.scan(target, severities=list(Severity), timeout=timeout)
        blocking = await self.scanner.scan(
            target, severities=Severity.threshold_and_above(threshold), timeout=timeout
        )
        offending = blocking.at_or_above(threshold)

        payload: dict[str, Any] = {
            "target": target,
            "severity_threshold": threshold.value,
            "advisory": _summarize(advisory),
            "blocking": _summarize(blocking),
        }
        if offending:
            return StageResult.failure(
                stage.name,
                stage.kind,
                stage.policy,
                FailureKind.ASSERTION,
                f"{len(offending)} finding(s) at or above {threshold.value}",
                payload,
            )
        return StageResult.success(
            stage.name,
            stage.kind,
            stage.policy,
            payload,
            f"no findings at or above {threshold.value}",
        )


def _summarize(report: ScanReport) -> dict[str, Any]:
    return {
        "total": len(report.findings),
        "counts": report.counts,
        "findings": [f"{f.id} ({f.severity.value}) {f.package}".strip() for f in report.findings],
    }


class DeployVerifyHandler:
    """Delegate to the deployment verifier and record its check."""

    def __init__(self, verifier: DeploymentVerifier) -> None:
        self.verifier = verifier

    async def __call__(self, stage: StageSpec, context: StageContext) -> StageResult:
        check = await self.verifier.verify(context.ref_name, context.commit_id)
        payload = {"check": check.model_dump(mode="json")}
        if check.passed:
            return StageResult.success(stage.name, stage.kind, stage.policy, payload, check.message)
        return StageResult.failure(
            stage.name,
            stage.kind,
            stage.policy,
            check.failure_kind or FailureKind.ASSERTION,
            check.message,
            payload,
        )


def default_handlers(
    *,
    command_runner: CommandRunner,
    registry: ArtifactRegistry,
    scanner: Scanner,
    verifier: DeploymentVerifier,
) -> dict[StageKind, StageHandler]:
    """Handler table wiring every built-in stage kind to its port."""
    return {
        StageKind.TEST: TestHandler(command_runner),
        StageKind.COVERAGE_CHECK: CoverageHandler(command_runner),
        StageKind.BUILD_AND_PUBLISH: PublishHandler(registry),
        StageKind.SECURITY_SCAN: ScanHandler(scanner),
        StageKind.DEPLOY_VERIFY: DeployVerifyHandler(verifier),
    }
