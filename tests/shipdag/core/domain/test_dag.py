"""Tests for StageSpec and DirectedGraph."""

import pytest

from shipdag.core.domain.dag import (
    CycleDetectedError,
    DirectedGraph,
    DuplicateStageError,
    MissingDependencyError,
    StageSpec,
    build_graph,
)
from shipdag.core.domain.models import GatePolicy, StageKind


def _stage(name: str, *deps: str, kind: StageKind = StageKind.TEST) -> StageSpec:
    return StageSpec(name, kind, deps=frozenset(deps))


class TestStageSpec:
    """Tests for StageSpec."""

    def test_defaults(self) -> None:
        spec = StageSpec("lint", StageKind.TEST)
        assert spec.deps == frozenset()
        assert spec.policy == GatePolicy.BLOCKING
        assert spec.is_blocking
        assert dict(spec.params) == {}
        assert spec.timeout is None

    def test_string_enums_are_coerced(self) -> None:
        spec = StageSpec("scan", "security-scan", policy="advisory")  # type: ignore[arg-type]
        assert spec.kind is StageKind.SECURITY_SCAN
        assert spec.policy is GatePolicy.ADVISORY
        assert not spec.is_blocking

    def test_invalid_kind_rejected(self) -> None:
        with pytest.raises(ValueError):
            StageSpec("x", "compile")  # type: ignore[arg-type]

    def test_params_are_read_only(self) -> None:
        spec = StageSpec("cov", StageKind.COVERAGE_CHECK, params={"threshold": 80})
        with pytest.raises(TypeError):
            spec.params["threshold"] = 50  # type: ignore[index]

    def test_params_copied_from_caller(self) -> None:
        params = {"threshold": 80}
        spec = StageSpec("cov", StageKind.COVERAGE_CHECK, params=params)
        params["threshold"] = 10
        assert spec.params["threshold"] == 80

    def test_after_adds_dependencies(self) -> None:
        spec = StageSpec("coverage", StageKind.COVERAGE_CHECK).after("lint", "test-3.12")
        assert spec.deps == frozenset({"lint", "test-3.12"})

    def test_rshift_chains(self) -> None:
        lint = StageSpec("lint", StageKind.TEST)
        publish = lint >> StageSpec("publish", StageKind.BUILD_AND_PUBLISH)
        assert publish.deps == frozenset({"lint"})
        assert lint.deps == frozenset()

    def test_frozen(self) -> None:
        spec = StageSpec("lint", StageKind.TEST)
        with pytest.raises(AttributeError):
            spec.name = "other"  # type: ignore[misc]

    def test_repr(self) -> None:
        assert "deps=['lint']" in repr(_stage("cov", "lint"))


class TestDirectedGraph:
    """Tests for DirectedGraph structure and ordering."""

    def test_add_and_lookup(self) -> None:
        graph = DirectedGraph([_stage("a"), _stage("b", "a")])
        assert len(graph) == 2
        assert "a" in graph
        assert graph.get_dependencies("b") == frozenset({"a"})
        assert graph.get_dependents("a") == {"b"}
        assert [s.name for s in graph] == ["a", "b"]

    def test_empty_graph_is_falsy(self) -> None:
        assert not DirectedGraph()

    def test_unknown_stage_lookup_raises(self) -> None:
        with pytest.raises(KeyError):
            DirectedGraph().get_dependencies("missing")

    def test_duplicate_stage_rejected(self) -> None:
        graph = DirectedGraph([_stage("a")])
        with pytest.raises(DuplicateStageError):
            graph.add(_stage("a"))

    def test_duplicates_within_batch_rejected(self) -> None:
        with pytest.raises(DuplicateStageError, match="'a'"):
            DirectedGraph([_stage("a"), _stage("a")])

    def test_iadd(self) -> None:
        graph = DirectedGraph()
        graph += _stage("a")
        graph += [_stage("b", "a"), _stage("c", "a")]
        assert graph.topological_order() == ["a", "b", "c"]

    def test_missing_dependency(self) -> None:
        graph = DirectedGraph([_stage("b", "ghost")])
        with pytest.raises(MissingDependencyError, match="ghost"):
            graph.validate()

    def test_cycle_detected(self) -> None:
        graph = DirectedGraph([_stage("a", "c"), _stage("b", "a"), _stage("c", "b")])
        with pytest.raises(CycleDetectedError, match="Cycle detected"):
            graph.validate()

    def test_self_dependency_is_a_cycle(self) -> None:
        with pytest.raises(CycleDetectedError):
            build_graph([_stage("a", "a")])

    def test_detect_cycle_static(self) -> None:
        assert DirectedGraph.detect_cycle({"a": {"b"}, "b": {"a"}}) == "Cycle detected: a -> b -> a"
        assert DirectedGraph.detect_cycle({"a": set(), "b": {"a"}}) is None

    def test_topological_order_respects_dependencies(self) -> None:
        graph = build_graph(
            [
                _stage("scan", "publish"),
                _stage("publish", "coverage"),
                _stage("coverage", "lint", "test"),
                _stage("lint"),
                _stage("test"),
            ]
        )
        order = graph.topological_order()
        for stage in graph:
            for dep in stage.deps:
                assert order.index(dep) < order.index(stage.name)

    def test_topological_order_breaks_ties_by_declaration(self) -> None:
        graph = build_graph([_stage("z"), _stage("a"), _stage("m")])
        assert graph.topological_order() == ["z", "a", "m"]

    def test_topological_order_is_a_copy(self) -> None:
        graph = build_graph([_stage("a"), _stage("b")])
        graph.topological_order().append("x")
        assert graph.topological_order() == ["a", "b"]

    def test_adding_invalidates_cached_order(self) -> None:
        graph = build_graph([_stage("a")])
        assert graph.topological_order() == ["a"]
        graph.add(_stage("b", "a"))
        assert graph.topological_order() == ["a", "b"]

    def test_waves(self) -> None:
        graph = build_graph(
            [
                _stage("lint"),
                _stage("test-3.11"),
                _stage("test-3.12"),
                _stage("coverage", "lint", "test-3.11", "test-3.12"),
                _stage("publish", "coverage"),
                _stage("scan", "publish"),
            ]
        )
        assert graph.waves() == [
            ["lint", "test-3.11", "test-3.12"],
            ["coverage"],
            ["publish"],
            ["scan"],
        ]

    def test_waves_use_longest_path(self) -> None:
        graph = build_graph([_stage("a"), _stage("b", "a"), _stage("c", "a", "b")])
        assert graph.waves() == [["a"], ["b"], ["c"]]

    def test_build_graph_name(self) -> None:
        assert build_graph([_stage("a")], name="ci").name == "ci"
