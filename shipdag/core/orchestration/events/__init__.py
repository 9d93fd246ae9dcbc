"""Lifecycle events and the observer manager that delivers them."""

from shipdag.core.orchestration.events.events import (
    EVENT_TYPES,
    Event,
    PipelineCompleted,
    PipelineStarted,
    StageCompleted,
    StageFailed,
    StageSkipped,
    StageStarted,
)
from shipdag.core.orchestration.events.observer_manager import (
    FunctionObserver,
    LocalObserverManager,
    LoggingObserver,
    Observer,
)

__all__ = [
    "EVENT_TYPES",
    "Event",
    "FunctionObserver",
    "LocalObserverManager",
    "LoggingObserver",
    "Observer",
    "PipelineCompleted",
    "PipelineStarted",
    "StageCompleted",
    "StageFailed",
    "StageSkipped",
    "StageStarted",
]
