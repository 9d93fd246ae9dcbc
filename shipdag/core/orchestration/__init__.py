"""Gate evaluation, execution, events and cross-pipeline triggering."""

from shipdag.core.orchestration.executor import PipelineExecutor
from shipdag.core.orchestration.gate import GateDecision, evaluate, meets_threshold
from shipdag.core.orchestration.trigger import CrossPipelineTrigger

__all__ = [
    "CrossPipelineTrigger",
    "GateDecision",
    "PipelineExecutor",
    "evaluate",
    "meets_threshold",
]
