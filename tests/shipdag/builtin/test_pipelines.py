"""Tests for the built-in CI and CD pipelines."""

from pathlib import Path

import pytest

from shipdag.builtin.pipelines import (
    CD_PIPELINE,
    CI_PIPELINE,
    build_cd_graph,
    build_ci_graph,
    matrix_stage_name,
)
from shipdag.core.config.models import PipelineSettings, ShipDAGConfig
from shipdag.core.domain.models import GatePolicy, StageKind
from shipdag.core.pipeline_builder import load_pipeline_yaml

MANIFESTS = Path(__file__).resolve().parents[3] / "pipelines"


def test_ci_graph_shape() -> None:
    graph = build_ci_graph(ShipDAGConfig())

    assert graph.name == CI_PIPELINE
    assert graph.waves() == [
        ["lint", "test-3.11", "test-3.12"],
        ["coverage"],
        ["publish"],
        ["scan"],
    ]
    assert all(stage.policy is GatePolicy.BLOCKING for stage in graph)


def test_ci_graph_follows_settings() -> None:
    config = ShipDAGConfig(
        pipeline=PipelineSettings(
            python_versions=("3.13",), coverage_threshold=90, severity_threshold="CRITICAL"
        )
    )
    graph = build_ci_graph(config)

    assert matrix_stage_name("3.13") in graph
    assert graph.get_dependencies("coverage") == frozenset({"lint", "test-3.13"})
    coverage = graph.stages["coverage"]
    assert coverage.kind is StageKind.COVERAGE_CHECK
    assert coverage.params["threshold"] == 90
    assert coverage.params["python_version"] == "3.13"
    assert graph.stages["scan"].params["severity_threshold"] == "CRITICAL"
    assert graph.stages["test-3.13"].params["python_version"] == "3.13"


def test_cd_graph() -> None:
    graph = build_cd_graph(ShipDAGConfig())
    assert graph.name == CD_PIPELINE
    assert [(s.name, s.kind, s.policy) for s in graph] == [
        ("deploy-verify", StageKind.DEPLOY_VERIFY, GatePolicy.BLOCKING)
    ]


@pytest.mark.parametrize(
    ("manifest", "builder"), [("ci.yaml", build_ci_graph), ("cd.yaml", build_cd_graph)]
)
def test_shipped_manifests_match_builtins(manifest, builder) -> None:
    graph = load_pipeline_yaml(MANIFESTS / manifest)
    builtin = builder(ShipDAGConfig())

    assert graph.name == builtin.name
    assert graph.waves() == builtin.waves()
    for stage in builtin:
        assert graph.get_dependencies(stage.name) == stage.deps
        assert graph.stages[stage.name].kind is stage.kind
