"""Tests for Markdown rendering and the StatusReporter observer."""

import pytest

from shipdag.builtin.adapters.mock import InMemoryChangeRequestHost
from shipdag.core.domain.models import (
    ArtifactTag,
    DeploymentCheck,
    FailureKind,
    GatePolicy,
    PipelineRun,
    StageKind,
    StageResult,
    TagKind,
    TriggerEvent,
)
from shipdag.core.orchestration.events import PipelineCompleted, StageSkipped
from shipdag.core.reporting import StatusReporter, render, summarize

IMMUTABLE = ArtifactTag(
    registry="ghcr.io",
    namespace="acme",
    repository="app",
    tag="abc123",
    kind=TagKind.IMMUTABLE,
)


def _ci_run(change_request: int | None = None, run_url: str | None = None) -> PipelineRun:
    run = PipelineRun(
        run_id="ci-1",
        pipeline_name="ci",
        trigger=TriggerEvent(ref_name="2/merge", commit_id="abc123", change_request=change_request),
        stage_order=["coverage", "publish", "scan"],
        run_url=run_url,
    )
    run.record(
        StageResult.success(
            "coverage",
            StageKind.COVERAGE_CHECK,
            GatePolicy.BLOCKING,
            {"coverage": 91.5, "threshold": 80.0},
        )
    )
    run.record(
        StageResult.success(
            "publish",
            StageKind.BUILD_AND_PUBLISH,
            GatePolicy.BLOCKING,
            {"digest": "sha256:feed", "artifact_tags": [IMMUTABLE.model_dump(mode="json")]},
        )
    )
    run.record(
        StageResult.failure(
            "scan",
            StageKind.SECURITY_SCAN,
            GatePolicy.ADVISORY,
            FailureKind.ASSERTION,
            "1 finding(s) at or above HIGH",
        )
    )
    run.finalize()
    return run


class TestRender:
    def test_run_breakdown(self) -> None:
        body = render(_ci_run())

        assert body.startswith("### ✅ `ci` pipeline passed")
        assert "Ref `2/merge` at commit `abc123`." in body
        assert "| `coverage` | ✅ success | blocking |  | coverage 91.5% (threshold 80%) |" in body
        assert (
            "| `scan` | ❌ failure | advisory | assertion | 1 finding(s) at or above HIGH |"
        ) in body
        assert "- `ghcr.io/acme/app:abc123` (immutable)" in body
        assert body.endswith("Run: `ci-1`")

    def test_run_link(self) -> None:
        body = render(_ci_run(run_url="https://ci.example/runs/1"))
        assert body.endswith("Run: [ci-1](https://ci.example/runs/1)")

    def test_pure(self) -> None:
        run = _ci_run()
        assert render(run) == render(run)

    def test_failed_deployment_check(self) -> None:
        check = DeploymentCheck(
            tag=IMMUTABLE,
            attempted_tags=["ghcr.io/acme/app:2-merge", IMMUTABLE.reference],
            inputs=("2", "3"),
            expected_output="5",
            stdout="6\n",
            exit_code=0,
            passed=False,
            failure_kind=FailureKind.ASSERTION,
            message="printed '6', expected '5'",
        )

        body = render(check)

        assert body.startswith("### ❌ Deployment check failed")
        assert "- Pulled: `ghcr.io/acme/app:abc123`" in body
        assert "- Inputs: `2 3`, expected output `5`" in body
        assert "- Exit status: 0, output: `6`" in body
        assert "- Failure: assertion: printed '6', expected '5'" in body

    def test_check_embedded_in_cd_run(self) -> None:
        check = DeploymentCheck(tag=IMMUTABLE, passed=True, exit_code=0, stdout="5\n")
        run = PipelineRun(
            run_id="cd-1",
            pipeline_name="cd",
            trigger=TriggerEvent(ref_name="main", commit_id="abc123"),
            stage_order=["deploy-verify"],
        )
        run.record(
            StageResult.success(
                "deploy-verify",
                StageKind.DEPLOY_VERIFY,
                GatePolicy.BLOCKING,
                {"check": check.model_dump(mode="json")},
            )
        )
        run.finalize()

        assert "#### ✅ Deployment check passed" in render(run)


class TestSummarize:
    def test_skipped_uses_reason(self) -> None:
        result = StageResult.skipped(
            "publish", StageKind.BUILD_AND_PUBLISH, GatePolicy.BLOCKING, "x"
        )
        assert summarize(result) == "x"

    def test_test_counts(self) -> None:
        result = StageResult.success(
            "test-3.12",
            StageKind.TEST,
            GatePolicy.BLOCKING,
            {"passed": 3, "failed": 0, "errors": 0, "skipped": 1},
        )
        assert summarize(result) == "3 passed, 0 failed, 0 errors, 1 skipped"

    def test_falls_back_to_message(self) -> None:
        result = StageResult.success("lint", StageKind.TEST, GatePolicy.BLOCKING, message="ok")
        assert summarize(result) == "ok"


class TestStatusReporter:
    @pytest.mark.asyncio
    async def test_posts_on_trigger_change_request(self) -> None:
        host = InMemoryChangeRequestHost()
        reporter = StatusReporter(host)
        run = _ci_run(change_request=2)

        await reporter.handle(PipelineCompleted(run=run))

        assert host.comments_on(2) == [render(run)]
        assert reporter.posted == [(2, "ci-1")]
        assert host.lookups == []

    @pytest.mark.asyncio
    async def test_looks_up_change_request(self) -> None:
        host = InMemoryChangeRequestHost({"abc123": 7})
        await StatusReporter(host).handle(PipelineCompleted(run=_ci_run()))
        assert len(host.comments_on(7)) == 1

    @pytest.mark.asyncio
    async def test_no_change_request_no_comment(self) -> None:
        host = InMemoryChangeRequestHost()
        reporter = StatusReporter(host)
        await reporter.handle(PipelineCompleted(run=_ci_run()))
        assert host.comments == []
        assert reporter.posted == []

    @pytest.mark.asyncio
    async def test_delivery_errors_are_swallowed(self) -> None:
        host = InMemoryChangeRequestHost({"abc123": 7})
        host.fail_post = True
        reporter = StatusReporter(host)

        await reporter.handle(PipelineCompleted(run=_ci_run()))

        assert reporter.posted == []

    @pytest.mark.asyncio
    async def test_lookup_errors_are_swallowed(self) -> None:
        host = InMemoryChangeRequestHost({"abc123": 7})
        host.fail_lookup = True
        await StatusReporter(host).handle(PipelineCompleted(run=_ci_run()))
        assert host.comments == []

    @pytest.mark.asyncio
    async def test_ignores_other_events(self) -> None:
        host = InMemoryChangeRequestHost({"abc123": 7})
        await StatusReporter(host).handle(StageSkipped(run_id="ci-1", name="scan"))
        assert host.lookups == []

    @pytest.mark.asyncio
    async def test_without_host_does_nothing(self) -> None:
        await StatusReporter(None).handle(PipelineCompleted(run=_ci_run()))
