"""Stage runner: dispatches a stage to the handler for its kind.

Handlers perform exactly one side effect and return a ``StageResult``.
The runner turns anything a handler raises into a failed result, so a stage
never propagates an exception into the executor:

- ``CollaboratorError`` (and any other ``ShipDAGError``) becomes an
  infrastructure failure;
- unexpected exceptions are logged with their traceback and also recorded
  as infrastructure failures.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Protocol

from shipdag.core.config.models import PipelineSettings, RepositoryIdentity
from shipdag.core.domain.models import ArtifactTag, FailureKind, StageKind, StageResult, TagKind
from shipdag.core.domain.tags import artifact_tags
from shipdag.core.exceptions import ShipDAGError
from shipdag.core.logging import get_logger
from shipdag.core.utils.timer import stage_timer

if TYPE_CHECKING:
    from shipdag.core.domain.dag import StageSpec

logger = get_logger(__name__)


@dataclass(frozen=True, slots=True)
class StageContext:
    """Read-only view of a run handed to a stage handler.

    Attributes
    ----------
    upstream_results : Mapping[str, StageResult]
        Results of the stage's direct upstreams
    produced_tags : tuple[ArtifactTag, ...]
        Tags published by stages that already completed in this run
    """

    run_id: str
    pipeline_name: str
    ref_name: str
    commit_id: str
    settings: PipelineSettings = field(default_factory=PipelineSettings)
    repository: RepositoryIdentity = field(default_factory=RepositoryIdentity)
    upstream_results: Mapping[str, StageResult] = field(default_factory=dict)
    produced_tags: tuple[ArtifactTag, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "upstream_results", MappingProxyType(dict(self.upstream_results)))

    def derived_tags(self) -> tuple[ArtifactTag, ArtifactTag]:
        """``(mutable, immutable)`` tags for this run's ref and commit."""
        return artifact_tags(
            self.ref_name,
            self.commit_id,
            self.repository,
            max_length=self.settings.max_tag_length,
            placeholder=self.settings.placeholder_tag,
        )

    def immutable_tag(self) -> ArtifactTag:
        """The commit-bound tag, preferring one an upstream stage actually published."""
        for tag in self.produced_tags:
            if tag.kind == TagKind.IMMUTABLE:
                return tag
        return self.derived_tags()[1]


class StageHandler(Protocol):
    async def __call__(self, stage: StageSpec, context: StageContext) -> StageResult: ...


class StageRunner:
    """Runs a single stage through the handler registered for its kind.

    Examples
    --------
        runner = StageRunner({StageKind.TEST: TestHandler(command_runner)})
        runner.register(StageKind.SECURITY_SCAN, ScanHandler(scanner))
        result = await runner.run(stage, context)
    """

    def __init__(self, handlers: Mapping[StageKind, StageHandler] | None = None) -> None:
        self._handlers: dict[StageKind, StageHandler] = dict(handlers or {})

    def register(self, kind: StageKind | str, handler: StageHandler) -> None:
        """Register (or replace) the handler for a stage kind."""
        self._handlers[StageKind(kind)] = handler

    def handler_for(self, kind: StageKind) -> StageHandler | None:
        return self._handlers.get(kind)

    @property
    def kinds(self) -> frozenset[StageKind]:
        return frozenset(self._handlers)

    async def run(self, stage: StageSpec, context: StageContext) -> StageResult:
        """Execute ``stage`` and return its result; never raises for stage errors."""
        handler = self._handlers.get(stage.kind)
        if handler is None:
            return StageResult.failure(
                stage.name,
                stage.kind,
                stage.policy,
                FailureKind.INFRASTRUCTURE,
                f"No handler registered for stage kind '{stage.kind.value}'",
            )

        with stage_timer() as t:
            try:
                result = await handler(stage, context)
            except ShipDAGError as e:
                logger.warning(f"Stage '{stage.name}' could not complete: {e}")
                result = StageResult.failure(
                    stage.name, stage.kind, stage.policy, FailureKind.INFRASTRUCTURE, str(e)
                )
            except Exception as e:
                logger.opt(exception=e).error(f"Stage '{stage.name}' raised unexpectedly: {e}")
                result = StageResult.failure(
                    stage.name,
                    stage.kind,
                    stage.policy,
                    FailureKind.INFRASTRUCTURE,
                    f"Unexpected {type(e).__name__}: {e}",
                )

        # Identity fields always come from the declaration, never the handler
        return result.model_copy(
            update={
                "stage": stage.name,
                "kind": stage.kind,
                "policy": stage.policy,
                "duration_ms": t.duration_ms,
            }
        )
