"""shipdag - release pipelines as stage DAGs.

Test a commit against several interpreter versions, enforce a coverage
floor, publish the container image under a mutable and an immutable tag,
scan it, then pull it back and smoke-test it in a downstream pipeline.
"""

from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING, Any

try:
    __version__ = version("shipdag")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"  # running from a source checkout

from shipdag.core.domain import DirectedGraph, StageSpec
from shipdag.core.domain.models import (
    GatePolicy,
    PipelineRun,
    StageKind,
    StageResult,
    TriggerEvent,
)
from shipdag.core.domain.tags import derive_tags, sanitize
from shipdag.core.orchestration import CrossPipelineTrigger, PipelineExecutor

if TYPE_CHECKING:
    from shipdag.core.service import Collaborators, ReleaseOutcome, ReleaseService

_LAZY_MAP: dict[str, tuple[str, str]] = {
    "Collaborators": ("shipdag.core.service", "Collaborators"),
    "ReleaseOutcome": ("shipdag.core.service", "ReleaseOutcome"),
    "ReleaseService": ("shipdag.core.service", "ReleaseService"),
}


def __getattr__(name: str) -> Any:
    """Lazy import for the service layer, which pulls in every adapter.

    Raises
    ------
    AttributeError
        If the attribute does not exist
    """
    if name in _LAZY_MAP:
        import importlib

        module_name, attr = _LAZY_MAP[name]
        return getattr(importlib.import_module(module_name), attr)
    raise AttributeError(f"module 'shipdag' has no attribute {name!r}")


__all__ = [
    "Collaborators",
    "CrossPipelineTrigger",
    "DirectedGraph",
    "GatePolicy",
    "PipelineExecutor",
    "PipelineRun",
    "ReleaseOutcome",
    "ReleaseService",
    "StageKind",
    "StageResult",
    "StageSpec",
    "TriggerEvent",
    "__version__",
    "derive_tags",
    "sanitize",
]
