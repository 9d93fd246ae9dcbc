"""DAG primitives: StageSpec and DirectedGraph.

Stages are declared as nodes with explicit upstream-name lists; the graph
validates structure (dangling references, cycles) at construction time and
computes a deterministic execution order in which ties are broken by
declaration order.
"""

import sys
from collections import defaultdict
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum, auto
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

from shipdag.core.domain.models import GatePolicy, StageKind

if TYPE_CHECKING:
    from collections.abc import Iterator

_EMPTY_SET: frozenset[str] = frozenset()


class Color(Enum):
    """Colors for DFS cycle detection algorithm."""

    WHITE = auto()  # Unvisited
    GRAY = auto()  # In recursion stack
    BLACK = auto()  # Completely processed


@dataclass(frozen=True, slots=True)
class StageSpec:
    """Immutable declaration of one pipeline stage.

    A StageSpec defines:
    - A unique name within the pipeline
    - The side-effect kind the stage runner dispatches on
    - Upstream stage names it depends on
    - Its gating policy (blocking or advisory)
    - Kind-specific parameters (command line, threshold, ...)

    Supports fluent chaining via ``.after()`` and ``>>``.
    """

    name: str
    kind: StageKind
    deps: frozenset[str] = field(default_factory=frozenset)
    policy: GatePolicy = GatePolicy.BLOCKING
    params: Mapping[str, Any] = field(default_factory=dict)
    timeout: float | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "name", sys.intern(self.name))
        object.__setattr__(self, "kind", StageKind(self.kind))
        object.__setattr__(self, "policy", GatePolicy(self.policy))
        object.__setattr__(self, "deps", frozenset(sys.intern(d) for d in self.deps))
        object.__setattr__(self, "params", MappingProxyType(dict(self.params)))

    @property
    def is_blocking(self) -> bool:
        return self.policy == GatePolicy.BLOCKING

    def after(self, *stage_names: str) -> "StageSpec":
        """Create a new StageSpec that depends on the specified stages.

        Examples
        --------
            publish = StageSpec("publish", StageKind.BUILD_AND_PUBLISH).after("coverage")
        """
        return replace(self, deps=self.deps | frozenset(stage_names))

    def __rshift__(self, other: "StageSpec") -> "StageSpec":
        """``a >> b`` returns ``b`` depending on ``a``.

        >>> lint = StageSpec("lint", StageKind.TEST)
        >>> cov = lint >> StageSpec("coverage", StageKind.COVERAGE_CHECK)
        >>> sorted(cov.deps)
        ['lint']
        """
        return replace(other, deps=other.deps | frozenset([self.name]))

    def __repr__(self) -> str:
        deps_str = f", deps={sorted(self.deps)}" if self.deps else ""
        return f"StageSpec('{self.name}', {self.kind.value}, {self.policy.value}{deps_str})"


class DirectedGraphError(Exception):
    """Base exception for DirectedGraph errors."""

    __slots__ = ()


class CycleDetectedError(DirectedGraphError):
    """Raised when a cycle is detected in the DAG."""

    __slots__ = ()


class MissingDependencyError(DirectedGraphError):
    """Raised when a stage depends on a non-existent stage."""

    __slots__ = ()


class DuplicateStageError(DirectedGraphError):
    """Raised when attempting to add a stage with an existing name."""

    __slots__ = ()


class DirectedGraph:
    """A directed acyclic graph of StageSpec instances.

    Provides:
    - Stage management with duplicate detection
    - Dependency and cycle validation
    - Deterministic topological order (declaration order breaks ties)
    - Grouping into waves of mutually independent stages
    """

    def __init__(self, stages: Iterable[StageSpec] | None = None, name: str = "pipeline") -> None:
        self.name = name
        self.stages: dict[str, StageSpec] = {}
        self._forward_edges: defaultdict[str, set[str]] = defaultdict(set)  # stage -> dependents
        self._order_cache: list[str] | None = None
        self._validated = False

        if stages:
            self.add_many(*stages)

    @staticmethod
    def detect_cycle(graph: Mapping[str, set[str] | frozenset[str]]) -> str | None:
        """Detect cycles in a dependency graph using DFS with three-state coloring.

        Parameters
        ----------
        graph : Mapping[str, set[str] | frozenset[str]]
            Keys are stage names and values are sets of dependencies

        Returns
        -------
        str | None
            Cycle description if found, None otherwise

        Examples
        --------
        >>> DirectedGraph.detect_cycle({"a": {"b"}, "b": {"c"}, "c": {"a"}})
        'Cycle detected: a -> b -> c -> a'
        >>> DirectedGraph.detect_cycle({"a": {"b"}, "b": set()}) is None
        True
        """
        colors = dict.fromkeys(graph, Color.WHITE)

        def dfs(node: str, path: list[str]) -> str | None:
            if colors[node] == Color.GRAY:
                cycle_start = path.index(node)
                cycle = path[cycle_start:] + [node]
                return f"Cycle detected: {' -> '.join(cycle)}"

            if colors[node] == Color.BLACK:
                return None

            colors[node] = Color.GRAY
            path.append(node)

            for dep in sorted(graph.get(node, _EMPTY_SET)):
                if dep in colors and (result := dfs(dep, path)):
                    return result

            path.pop()
            colors[node] = Color.BLACK
            return None

        for node in graph:
            if colors[node] == Color.WHITE and (result := dfs(node, [])):
                return result

        return None

    def add(self, stage: StageSpec) -> "DirectedGraph":
        """Add a stage. Dependencies may be declared before their targets exist.

        Raises
        ------
        DuplicateStageError
            If a stage with the same name already exists.
        """
        if stage.name in self.stages:
            raise DuplicateStageError(f"Stage '{stage.name}' already exists in the graph")

        self.stages[stage.name] = stage
        self._forward_edges[stage.name]  # Ensure key exists
        for dep in stage.deps:
            self._forward_edges[dep].add(stage.name)

        self._order_cache = None
        self._validated = False
        return self

    def add_many(self, *stages: StageSpec) -> "DirectedGraph":
        names = [s.name for s in stages]
        duplicates = sorted({n for n in names if names.count(n) > 1 or n in self.stages})
        if duplicates:
            raise DuplicateStageError(f"Duplicate stage name(s): {duplicates}")
        for stage in stages:
            self.add(stage)
        return self

    def get_dependencies(self, stage_name: str) -> frozenset[str]:
        if stage_name not in self.stages:
            raise KeyError(f"Stage '{stage_name}' not found in graph")
        return self.stages[stage_name].deps

    def get_dependents(self, stage_name: str) -> set[str]:
        if stage_name not in self.stages:
            raise KeyError(f"Stage '{stage_name}' not found in graph")
        return set(self._forward_edges.get(stage_name, _EMPTY_SET))

    def validate(self) -> None:
        """Validate the DAG structure (cached until the graph changes).

        Raises
        ------
        MissingDependencyError
            If any stage depends on a non-existent stage.
        CycleDetectedError
            If a cycle is detected in the graph.
        """
        if self._validated:
            return

        missing_deps = [
            f"Stage '{name}' depends on missing stage '{dep}'"
            for name, stage in self.stages.items()
            for dep in sorted(stage.deps)
            if dep not in self.stages
        ]
        if missing_deps:
            raise MissingDependencyError("; ".join(missing_deps))

        graph = {name: stage.deps for name, stage in self.stages.items()}
        if cycle_message := DirectedGraph.detect_cycle(graph):
            raise CycleDetectedError(cycle_message)

        self._validated = True

    def topological_order(self) -> list[str]:
        """Kahn's algorithm; among ready stages the earliest declared goes first.

        Examples
        --------
        >>> g = DirectedGraph([
        ...     StageSpec("scan", StageKind.SECURITY_SCAN, deps=frozenset({"build"})),
        ...     StageSpec("test", StageKind.TEST),
        ...     StageSpec("build", StageKind.BUILD_AND_PUBLISH, deps=frozenset({"test"})),
        ...     StageSpec("lint", StageKind.TEST),
        ... ])
        >>> g.topological_order()
        ['test', 'build', 'scan', 'lint']
        """
        if self._order_cache is not None:
            return list(self._order_cache)

        self.validate()
        declared = list(self.stages)
        in_degrees = {name: len(self.stages[name].deps) for name in declared}
        order: list[str] = []

        while in_degrees:
            ready = next((name for name in declared if in_degrees.get(name) == 0), None)
            if ready is None:
                raise CycleDetectedError(
                    f"No stages with zero in-degree found. Remaining stages: {list(in_degrees)}"
                )
            order.append(ready)
            del in_degrees[ready]
            for dependent in self._forward_edges.get(ready, _EMPTY_SET):
                if dependent in in_degrees:
                    in_degrees[dependent] -= 1

        self._order_cache = order
        return list(order)

    def waves(self) -> list[list[str]]:
        """Group stages into waves of mutually independent stages.

        Each wave lists stages in declaration order. Used for planning output;
        the executor itself starts each stage as soon as its own upstreams
        are done rather than waiting for the whole previous wave.

        Examples
        --------
            # For DAG: lint, test -> coverage -> publish
            # Returns: [["lint", "test"], ["coverage"], ["publish"]]
        """
        self.validate()
        depth: dict[str, int] = {}
        for name in self.topological_order():
            deps = self.stages[name].deps
            depth[name] = 1 + max((depth[d] for d in deps), default=-1)

        waves: list[list[str]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
        for name in self.stages:
            waves[depth[name]].append(name)
        return waves

    def __repr__(self) -> str:
        return f"DirectedGraph(name={self.name!r}, stages={list(self.stages)})"

    def __len__(self) -> int:
        return len(self.stages)

    def __bool__(self) -> bool:
        return bool(self.stages)

    def __contains__(self, stage_name: object) -> bool:
        return stage_name in self.stages

    def __iter__(self) -> "Iterator[StageSpec]":
        return iter(self.stages.values())

    def __iadd__(self, other: StageSpec | list[StageSpec]) -> "DirectedGraph":
        """Add stage(s) in-place using ``+=``."""
        if isinstance(other, list):
            return self.add_many(*other)
        return self.add(other)


def build_graph(stages: Iterable[StageSpec], name: str = "pipeline") -> DirectedGraph:
    """Build and validate a graph in one step.

    Configuration errors (duplicates, dangling references, cycles) surface
    here, before any stage can run.
    """
    graph = DirectedGraph(stages, name=name)
    graph.validate()
    return graph
