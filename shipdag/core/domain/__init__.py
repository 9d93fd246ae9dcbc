"""Domain models and graph primitives."""

from shipdag.core.domain.dag import (
    CycleDetectedError,
    DirectedGraph,
    DirectedGraphError,
    DuplicateStageError,
    MissingDependencyError,
    StageSpec,
    build_graph,
)
from shipdag.core.domain.models import (
    ArtifactTag,
    DeploymentCheck,
    FailureKind,
    GatePolicy,
    PipelineRun,
    RunStatus,
    Severity,
    StageKind,
    StageResult,
    StageStatus,
    TagKind,
    TriggerEvent,
)
from shipdag.core.domain.tags import artifact_tags, derive_tags, sanitize, short_ref_name

__all__ = [
    "ArtifactTag",
    "CycleDetectedError",
    "DeploymentCheck",
    "DirectedGraph",
    "DirectedGraphError",
    "DuplicateStageError",
    "FailureKind",
    "GatePolicy",
    "MissingDependencyError",
    "PipelineRun",
    "RunStatus",
    "Severity",
    "StageKind",
    "StageResult",
    "StageSpec",
    "StageStatus",
    "TagKind",
    "TriggerEvent",
    "artifact_tags",
    "build_graph",
    "derive_tags",
    "sanitize",
    "short_ref_name",
]
