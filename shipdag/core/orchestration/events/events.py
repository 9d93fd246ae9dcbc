"""Pipeline lifecycle event data classes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shipdag.core.domain.models import PipelineRun, StageResult


@dataclass
class Event:
    """Base class for all events - provides timestamp."""

    timestamp: datetime = field(default_factory=datetime.now, init=False)

    def log_message(self) -> str:
        """Get a formatted log message for this event.

        Override in subclasses to provide custom formatting.
        """
        return f"{self.__class__.__name__} at {self.timestamp.isoformat()}"


# Stage events
@dataclass(slots=True)
class StageStarted(Event):
    """A stage passed its gate and its side effect has begun."""

    run_id: str
    name: str
    dependencies: list[str]

    def log_message(self) -> str:
        return f"🚀 Stage '{self.name}' started"


@dataclass(slots=True)
class StageCompleted(Event):
    """A stage finished successfully."""

    run_id: str
    name: str
    result: StageResult
    duration_ms: float

    def log_message(self) -> str:
        return f"✅ Stage '{self.name}' completed in {self.duration_ms / 1000:.2f}s"


@dataclass(slots=True)
class StageFailed(Event):
    """A stage finished with a failure result."""

    run_id: str
    name: str
    result: StageResult

    def log_message(self) -> str:
        kind = self.result.failure_kind.value if self.result.failure_kind else "unknown"
        advisory = "" if self.result.is_blocking else " (advisory)"
        return f"❌ Stage '{self.name}' failed{advisory} [{kind}]: {self.result.message}"


@dataclass(slots=True)
class StageSkipped(Event):
    """A stage was not run; its skipped result has been recorded."""

    run_id: str
    name: str
    reason: str | None = None

    def log_message(self) -> str:
        return f"⏭️ Stage '{self.name}' skipped: {self.reason or 'unknown'}"


# Pipeline events
@dataclass(slots=True)
class PipelineStarted(Event):
    """Pipeline execution has started."""

    run_id: str
    name: str
    ref_name: str
    commit_id: str
    total_stages: int

    def log_message(self) -> str:
        return (
            f"🎬 Pipeline '{self.name}' started for {self.ref_name}@{self.commit_id} "
            f"({self.total_stages} stages)"
        )


@dataclass(slots=True)
class PipelineCompleted(Event):
    """Pipeline execution has finished and the run is final."""

    run: PipelineRun

    @property
    def name(self) -> str:
        return self.run.pipeline_name

    @property
    def succeeded(self) -> bool:
        return self.run.succeeded

    def log_message(self) -> str:
        icon = "🎉" if self.run.succeeded else "💥"
        duration = (self.run.duration_ms or 0.0) / 1000
        return (
            f"{icon} Pipeline '{self.name}' {self.run.status.value} in {duration:.2f}s "
            f"(run {self.run.run_id})"
        )


EVENT_TYPES: dict[str, type[Event]] = {
    cls.__name__: cls
    for cls in (
        StageStarted,
        StageCompleted,
        StageFailed,
        StageSkipped,
        PipelineStarted,
        PipelineCompleted,
    )
}
