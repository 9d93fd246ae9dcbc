"""Pipeline graph executor.

Runs a validated stage DAG for one trigger and returns a finalized
``PipelineRun``. Each stage starts as soon as all of its direct upstream
results are recorded and its gate says PROCEED; independent stages run
concurrently, bounded by a semaphore.

Once a blocking stage fails, stages already in flight are allowed to
finish but no new stage starts; everything left is recorded as skipped.
Stage failures never escape as exceptions.
"""

from __future__ import annotations

import asyncio
import uuid
from typing import TYPE_CHECKING

from shipdag.core.config.models import PipelineSettings, RepositoryIdentity
from shipdag.core.domain.dag import DirectedGraphError
from shipdag.core.domain.models import (
    FailureKind,
    PipelineRun,
    StageResult,
    StageStatus,
    TriggerEvent,
)
from shipdag.core.exceptions import OrchestratorError
from shipdag.core.logging import get_logger, reset_correlation_id, set_correlation_id
from shipdag.core.orchestration.events.events import (
    Event,
    PipelineCompleted,
    PipelineStarted,
    StageCompleted,
    StageFailed,
    StageSkipped,
    StageStarted,
)
from shipdag.core.orchestration.gate import GateDecision, blocking_reason, evaluate
from shipdag.core.stages.runner import StageContext

if TYPE_CHECKING:
    from shipdag.core.domain.dag import DirectedGraph, StageSpec
    from shipdag.core.orchestration.events.observer_manager import LocalObserverManager
    from shipdag.core.stages.runner import StageRunner

logger = get_logger(__name__)

HALTED_REASON = "pipeline halted"


class _RunState:
    """Mutable bookkeeping for one execution; never shared between runs."""

    __slots__ = ("graph", "run", "pending", "in_flight", "halt", "semaphore")

    def __init__(self, graph: DirectedGraph, run: PipelineRun, max_concurrent: int) -> None:
        self.graph = graph
        self.run = run
        self.pending: list[str] = graph.topological_order()
        self.in_flight: dict[asyncio.Task[StageResult], str] = {}
        self.halt = asyncio.Event()
        self.semaphore = asyncio.Semaphore(max_concurrent)


class PipelineExecutor:
    """Executes stage graphs.

    Examples
    --------
    Basic usage::

        executor = PipelineExecutor(runner, settings=config.pipeline)
        run = await executor.execute(build_ci_graph(config), TriggerEvent(...))
        assert run.is_final
    """

    def __init__(
        self,
        runner: StageRunner,
        settings: PipelineSettings | None = None,
        repository: RepositoryIdentity | None = None,
        observer_manager: LocalObserverManager | None = None,
    ) -> None:
        self.runner = runner
        self.settings = settings or PipelineSettings()
        self.repository = repository or RepositoryIdentity()
        self.observer_manager = observer_manager

    async def execute(
        self, graph: DirectedGraph, trigger: TriggerEvent, *, run_id: str | None = None
    ) -> PipelineRun:
        """Run ``graph`` for ``trigger``.

        Raises
        ------
        OrchestratorError
            If the graph is invalid (nothing has run at that point)
        """
        try:
            graph.validate()
        except DirectedGraphError as e:
            raise OrchestratorError(f"Invalid DAG: {e}") from e

        run_id = run_id or str(uuid.uuid4())
        run = PipelineRun(
            run_id=run_id,
            pipeline_name=graph.name,
            trigger=trigger,
            stage_order=list(graph.stages),
            run_url=self.settings.run_url(run_id, graph.name, trigger.commit_id),
        )
        if trigger.source_run_id:
            run.metadata["source_run_id"] = trigger.source_run_id

        token = set_correlation_id(run_id)
        try:
            await self._notify(
                PipelineStarted(
                    run_id=run_id,
                    name=graph.name,
                    ref_name=trigger.ref_name,
                    commit_id=trigger.commit_id,
                    total_stages=len(graph),
                )
            )
            state = _RunState(graph, run, self.settings.max_concurrent_stages)
            try:
                await self._drive(state)
            except BaseException:
                for task in state.in_flight:
                    task.cancel()
                raise

            run.finalize()
            await self._notify(PipelineCompleted(run=run))
        finally:
            reset_correlation_id(token)

        return run

    async def _drive(self, state: _RunState) -> None:
        await self._start_ready(state)
        while state.in_flight:
            done, _ = await asyncio.wait(state.in_flight, return_when=asyncio.FIRST_COMPLETED)
            # Record in declaration order when several finish together
            position = state.run.stage_order.index
            for task in sorted(done, key=lambda t: position(state.in_flight[t])):
                name = state.in_flight.pop(task)
                await self._record(state, self._task_result(state.graph.stages[name], task))
            await self._start_ready(state)

        # Only reachable with stages left after a halt; topological order
        # guarantees each one's upstreams are recorded before it is gated.
        for name in list(state.pending):
            stage = state.graph.stages[name]
            state.pending.remove(name)
            upstream = {dep: state.run.results[dep] for dep in stage.deps}
            if evaluate(stage, upstream) == GateDecision.PROCEED:
                reason = HALTED_REASON
            else:
                reason = blocking_reason(stage, upstream)
            await self._record(
                state, StageResult.skipped(stage.name, stage.kind, stage.policy, reason)
            )

    async def _start_ready(self, state: _RunState) -> None:
        """Gate every stage whose upstreams are all recorded and start those that may run.

        Skipping a stage can make others ready, so scan until nothing changes.
        After a halt, stages cleared to run stay pending instead of starting.
        """
        progressed = True
        while progressed:
            progressed = False
            for name in list(state.pending):
                stage = state.graph.stages[name]
                if not all(dep in state.run.results for dep in stage.deps):
                    continue

                upstream = {dep: state.run.results[dep] for dep in stage.deps}
                decision = evaluate(stage, upstream)

                if decision == GateDecision.PROCEED:
                    if state.halt.is_set():
                        continue
                    state.pending.remove(name)
                    task = asyncio.create_task(
                        self._run_stage(state, stage, upstream),
                        name=f"{state.run.pipeline_name}:{stage.name}",
                    )
                    state.in_flight[task] = name
                else:
                    state.pending.remove(name)
                    progressed = True
                    reason = blocking_reason(stage, upstream)
                    logger.debug(f"Gate for '{stage.name}': {decision.value} ({reason})")
                    await self._record(
                        state, StageResult.skipped(stage.name, stage.kind, stage.policy, reason)
                    )

        if state.pending and not state.in_flight and not state.halt.is_set():
            raise OrchestratorError(
                f"Stages {state.pending} can never become ready in run '{state.run.run_id}'"
            )

    async def _run_stage(
        self, state: _RunState, stage: StageSpec, upstream: dict[str, StageResult]
    ) -> StageResult:
        async with state.semaphore:
            if state.halt.is_set():
                return StageResult.skipped(stage.name, stage.kind, stage.policy, HALTED_REASON)

            run = state.run
            await self._notify(
                StageStarted(run_id=run.run_id, name=stage.name, dependencies=sorted(stage.deps))
            )
            context = StageContext(
                run_id=run.run_id,
                pipeline_name=run.pipeline_name,
                ref_name=run.ref_name,
                commit_id=run.commit_id,
                settings=self.settings,
                repository=self.repository,
                upstream_results=upstream,
                produced_tags=tuple(run.artifact_tags),
            )
            timeout = stage.timeout or self.settings.stage_timeout
            try:
                async with asyncio.timeout(timeout):
                    result = await self.runner.run(stage, context)
            except TimeoutError:
                result = StageResult.failure(
                    stage.name,
                    stage.kind,
                    stage.policy,
                    FailureKind.INFRASTRUCTURE,
                    f"stage timed out after {timeout:g}s",
                ).model_copy(update={"duration_ms": timeout * 1000})
            # Halt while still holding the slot so a queued stage cannot slip in
            self._halt_on(state, result)
            return result

    @staticmethod
    def _task_result(stage: StageSpec, task: asyncio.Task[StageResult]) -> StageResult:
        if (error := task.exception()) is not None:
            logger.opt(exception=error).error(f"Stage task '{stage.name}' crashed: {error}")
            return StageResult.failure(
                stage.name,
                stage.kind,
                stage.policy,
                FailureKind.INFRASTRUCTURE,
                f"Unexpected {type(error).__name__}: {error}",
            )
        return task.result()

    async def _record(self, state: _RunState, result: StageResult) -> None:
        run = state.run
        run.record(result)

        if result.status == StageStatus.SUCCESS:
            event: Event = StageCompleted(
                run_id=run.run_id, name=result.stage, result=result, duration_ms=result.duration_ms
            )
        elif result.status == StageStatus.FAILURE:
            event = StageFailed(run_id=run.run_id, name=result.stage, result=result)
        else:
            event = StageSkipped(run_id=run.run_id, name=result.stage, reason=result.message)

        self._halt_on(state, result)
        await self._notify(event)

    @staticmethod
    def _halt_on(state: _RunState, result: StageResult) -> None:
        if result.is_blocking_failure and not state.halt.is_set():
            logger.info(
                f"Blocking stage '{result.stage}' did not succeed; "
                "no further stages will start in this run"
            )
            state.halt.set()

    async def _notify(self, event: Event) -> None:
        if self.observer_manager is not None:
            await self.observer_manager.notify(event)
