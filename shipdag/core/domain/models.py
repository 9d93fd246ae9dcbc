"""Domain models for pipeline runs, stage results, tags and deployment checks."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from shipdag.core.exceptions import OrchestratorError


def _utcnow() -> datetime:
    return datetime.now(UTC)


class StageKind(StrEnum):
    """Side effect a stage performs."""

    TEST = "test"
    COVERAGE_CHECK = "coverage-check"
    BUILD_AND_PUBLISH = "build-and-publish"
    SECURITY_SCAN = "security-scan"
    DEPLOY_VERIFY = "deploy-verify"


class GatePolicy(StrEnum):
    """Whether a stage's failure halts the run."""

    BLOCKING = "blocking"
    ADVISORY = "advisory"


class StageStatus(StrEnum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class RunStatus(StrEnum):
    """Lifecycle status of a pipeline run."""

    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


class FailureKind(StrEnum):
    """Distinguishes operational problems from policy violations.

    Attributes
    ----------
    INFRASTRUCTURE : str
        A collaborator could not be reached or started (auth, network,
        missing artifact, timeout)
    ASSERTION : str
        A collaborator ran but its result failed a policy check
    """

    INFRASTRUCTURE = "infrastructure"
    ASSERTION = "assertion"


class TagKind(StrEnum):
    MUTABLE = "mutable"
    IMMUTABLE = "immutable"


class Severity(StrEnum):
    """Vulnerability severity, ordered from least to most severe."""

    UNKNOWN = "UNKNOWN"
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def at_or_above(self, threshold: Severity) -> bool:
        return self.rank >= threshold.rank

    @classmethod
    def parse(cls, value: str) -> Severity:
        """Parse a scanner severity string, mapping unrecognized values to UNKNOWN."""
        try:
            return cls(value.strip().upper())
        except ValueError:
            return cls.UNKNOWN

    @classmethod
    def threshold_and_above(cls, threshold: Severity) -> list[Severity]:
        return [s for s in _SEVERITY_ORDER if s.at_or_above(threshold)]


_SEVERITY_ORDER = (
    Severity.UNKNOWN,
    Severity.LOW,
    Severity.MEDIUM,
    Severity.HIGH,
    Severity.CRITICAL,
)


class ArtifactTag(BaseModel):
    """Immutable pointer to a published image: ``registry/namespace/repository:tag``."""

    model_config = ConfigDict(frozen=True)

    registry: str
    namespace: str
    repository: str
    tag: str
    kind: TagKind = TagKind.MUTABLE

    @property
    def reference(self) -> str:
        prefix = "/".join(part for part in (self.registry, self.namespace) if part)
        name = f"{self.repository}:{self.tag}"
        return f"{prefix}/{name}" if prefix else name

    def __str__(self) -> str:
        return self.reference


class StageResult(BaseModel):
    """Outcome of running one stage within one pipeline run.

    Attributes
    ----------
    stage : str
        Stage name
    kind : StageKind
        Side effect of the stage
    policy : GatePolicy
        Gating policy the stage was declared with
    status : StageStatus
        success, failure or skipped
    payload : dict[str, Any]
        Structured output (coverage percentage, findings, produced tags, ...)
    failure_kind : FailureKind | None
        Set on failures only
    message : str
        Human readable summary
    duration_ms : float
        Wall time of the side effect
    """

    model_config = ConfigDict(frozen=True)

    stage: str
    kind: StageKind
    policy: GatePolicy = GatePolicy.BLOCKING
    status: StageStatus
    payload: dict[str, Any] = Field(default_factory=dict)
    failure_kind: FailureKind | None = None
    message: str = ""
    duration_ms: float = 0.0
    timestamp: datetime = Field(default_factory=_utcnow)

    @property
    def succeeded(self) -> bool:
        return self.status == StageStatus.SUCCESS

    @property
    def is_blocking(self) -> bool:
        return self.policy == GatePolicy.BLOCKING

    @property
    def is_blocking_failure(self) -> bool:
        """True when a blocking stage did not succeed (failed or was skipped)."""
        return self.is_blocking and not self.succeeded

    @classmethod
    def success(
        cls,
        stage: str,
        kind: StageKind,
        policy: GatePolicy,
        payload: dict[str, Any] | None = None,
        message: str = "",
    ) -> StageResult:
        return cls(
            stage=stage,
            kind=kind,
            policy=policy,
            status=StageStatus.SUCCESS,
            payload=payload or {},
            message=message,
        )

    @classmethod
    def failure(
        cls,
        stage: str,
        kind: StageKind,
        policy: GatePolicy,
        failure_kind: FailureKind,
        message: str,
        payload: dict[str, Any] | None = None,
    ) -> StageResult:
        # failure_kind is mirrored into the payload for consumers that only see payloads
        return cls(
            stage=stage,
            kind=kind,
            policy=policy,
            status=StageStatus.FAILURE,
            payload={**(payload or {}), "failure_kind": failure_kind.value},
            failure_kind=failure_kind,
            message=message,
        )

    @classmethod
    def skipped(cls, stage: str, kind: StageKind, policy: GatePolicy, reason: str) -> StageResult:
        return cls(
            stage=stage,
            kind=kind,
            policy=policy,
            status=StageStatus.SKIPPED,
            message=reason,
        )


class DeploymentCheck(BaseModel):
    """Result of pulling, running and asserting a published artifact.

    Attributes
    ----------
    tag : ArtifactTag | None
        The tag actually pulled (None when no pull succeeded)
    attempted_tags : list[str]
        References tried, in order
    stdout : str
        Captured standard output
    exit_code : int | None
        Process exit status (None when the artifact never ran)
    passed : bool
        Exit status 0 and trimmed stdout equal to the expected output
    failure_kind : FailureKind | None
        Set when ``passed`` is False
    """

    model_config = ConfigDict(frozen=True)

    tag: ArtifactTag | None = None
    attempted_tags: list[str] = Field(default_factory=list)
    inputs: tuple[str, ...] = ()
    expected_output: str = ""
    stdout: str = ""
    exit_code: int | None = None
    passed: bool = False
    failure_kind: FailureKind | None = None
    message: str = ""
    timestamp: datetime = Field(default_factory=_utcnow)


class TriggerEvent(BaseModel):
    """Event that starts a pipeline run.

    A commit event from the change-request host has no ``source_pipeline``;
    a run started by another pipeline's completion names it.
    """

    model_config = ConfigDict(frozen=True)

    ref_name: str
    commit_id: str
    source_pipeline: str | None = None
    source_run_id: str | None = None
    change_request: int | None = None


@dataclass(slots=True)
class PipelineRun:
    """Record of a single pipeline execution.

    Mutated only by the executor through :meth:`record`; frozen once
    :meth:`finalize` sets the overall status.
    """

    run_id: str
    pipeline_name: str
    trigger: TriggerEvent
    stage_order: list[str] = field(default_factory=list)
    results: dict[str, StageResult] = field(default_factory=dict)
    status: RunStatus = RunStatus.PENDING
    started_at: datetime = field(default_factory=_utcnow)
    finished_at: datetime | None = None
    run_url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ref_name(self) -> str:
        return self.trigger.ref_name

    @property
    def commit_id(self) -> str:
        return self.trigger.commit_id

    @property
    def is_final(self) -> bool:
        return self.status != RunStatus.PENDING

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCESS

    def record(self, result: StageResult) -> None:
        """Attach a completed stage result to this run."""
        if self.is_final:
            raise OrchestratorError(
                f"Run '{self.run_id}' is already {self.status}; cannot record '{result.stage}'"
            )
        if result.stage in self.results:
            raise OrchestratorError(
                f"Stage '{result.stage}' already has a result in run '{self.run_id}'"
            )
        self.results[result.stage] = result

    def compute_status(self) -> RunStatus:
        """Success iff every blocking stage succeeded."""
        missing = [name for name in self.stage_order if name not in self.results]
        if missing or self.blocking_failures:
            return RunStatus.FAILED
        return RunStatus.SUCCESS

    def finalize(self) -> RunStatus:
        if self.is_final:
            raise OrchestratorError(f"Run '{self.run_id}' is already finalized")
        self.status = self.compute_status()
        self.finished_at = _utcnow()
        return self.status

    @property
    def blocking_failures(self) -> list[StageResult]:
        return [r for r in self.ordered_results() if r.is_blocking_failure]

    def ordered_results(self) -> list[StageResult]:
        """Results in stage declaration order (stages without a result are omitted)."""
        ordered = [self.results[name] for name in self.stage_order if name in self.results]
        extra = [r for name, r in self.results.items() if name not in self.stage_order]
        return ordered + extra

    @property
    def artifact_tags(self) -> list[ArtifactTag]:
        """Tags produced by build stages of this run, de-duplicated in order."""
        seen: dict[str, ArtifactTag] = {}
        for result in self.ordered_results():
            for raw in result.payload.get("artifact_tags", []):
                tag = raw if isinstance(raw, ArtifactTag) else ArtifactTag.model_validate(raw)
                seen.setdefault(tag.reference, tag)
        return list(seen.values())

    @property
    def duration_ms(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds() * 1000

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "pipeline": self.pipeline_name,
            "ref_name": self.ref_name,
            "commit_id": self.commit_id,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "run_url": self.run_url,
            "artifact_tags": [t.reference for t in self.artifact_tags],
            "stages": [r.model_dump(mode="json") for r in self.ordered_results()],
        }
