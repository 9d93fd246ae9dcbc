"""Built-in release pipelines.

CI::

    lint, test-<python> (one per version) -> coverage -> publish -> scan

CD::

    deploy-verify
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from shipdag.core.domain.dag import DirectedGraph, StageSpec, build_graph
from shipdag.core.domain.models import GatePolicy, StageKind

if TYPE_CHECKING:
    from shipdag.core.config.models import ShipDAGConfig

CI_PIPELINE = "ci"
CD_PIPELINE = "cd"


def matrix_stage_name(python_version: str) -> str:
    return f"test-{python_version}"


def ci_stages(config: ShipDAGConfig) -> list[StageSpec]:
    settings = config.pipeline
    lint = StageSpec("lint", StageKind.TEST, params={"command": list(settings.lint_command)})
    tests = [
        StageSpec(
            matrix_stage_name(version),
            StageKind.TEST,
            params={"command": list(settings.test_command), "python_version": version},
        )
        for version in settings.python_versions
    ]
    upstream = [lint.name, *(t.name for t in tests)]
    coverage = StageSpec(
        "coverage",
        StageKind.COVERAGE_CHECK,
        params={
            "command": list(settings.coverage_command),
            "python_version": settings.python_versions[-1],
            "threshold": settings.coverage_threshold,
        },
    ).after(*upstream)
    publish = coverage >> StageSpec(
        "publish",
        StageKind.BUILD_AND_PUBLISH,
        params={"context_dir": settings.build_context, "dockerfile": settings.dockerfile},
    )
    scan = publish >> StageSpec(
        "scan",
        StageKind.SECURITY_SCAN,
        params={"severity_threshold": settings.severity_threshold},
    )
    return [lint, *tests, coverage, publish, scan]


def build_ci_graph(config: ShipDAGConfig) -> DirectedGraph:
    """Lint and the test matrix gate coverage, which gates publish, then scan."""
    return build_graph(ci_stages(config), name=CI_PIPELINE)


def build_cd_graph(config: ShipDAGConfig) -> DirectedGraph:
    """A single blocking deployment smoke test."""
    verify = StageSpec("deploy-verify", StageKind.DEPLOY_VERIFY, policy=GatePolicy.BLOCKING)
    return build_graph([verify], name=CD_PIPELINE)
