"""Cross-pipeline trigger: start the downstream pipeline when the upstream one succeeds.

Registered as an observer of ``PipelineCompleted``. The upstream executor
knows nothing about the downstream pipeline; this observer is the only link.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from shipdag.core.domain.models import PipelineRun, TriggerEvent
from shipdag.core.exceptions import CollaboratorError
from shipdag.core.logging import get_logger
from shipdag.core.orchestration.events.events import Event, PipelineCompleted

if TYPE_CHECKING:
    from shipdag.core.ports.change_request import ChangeRequestHost

logger = get_logger(__name__)

PipelineLauncher = Callable[[TriggerEvent], Awaitable[PipelineRun]]


class CrossPipelineTrigger:
    """Observer that launches ``downstream`` after every successful ``upstream`` run.

    Parameters
    ----------
    upstream : str
        Pipeline whose successful completion fires the trigger
    downstream : str
        Pipeline to start; its own completions never fire the trigger
    launcher : PipelineLauncher
        Coroutine function that executes the downstream pipeline for a trigger
    change_requests : ChangeRequestHost | None
        Used to resolve the change request of the commit; None disables lookup
    history : int
        How many triggers, completed runs and errors are remembered; older
        entries are dropped (default: 100)
    """

    def __init__(
        self,
        upstream: str,
        downstream: str,
        launcher: PipelineLauncher,
        change_requests: ChangeRequestHost | None = None,
        history: int = 100,
    ) -> None:
        if upstream == downstream:
            raise ValueError(f"Pipeline '{upstream}' cannot trigger itself")
        if history < 1:
            raise ValueError(f"history must be at least 1, got {history}")
        self.upstream = upstream
        self.downstream = downstream
        self._launcher = launcher
        self._change_requests = change_requests
        self.history = history
        self._tasks: set[asyncio.Task[None]] = set()
        self.triggered: list[TriggerEvent] = []
        self.completed: list[PipelineRun] = []
        self.errors: list[BaseException] = []

    async def handle(self, event: Event) -> None:
        if not isinstance(event, PipelineCompleted):
            return
        run = event.run
        if run.pipeline_name != self.upstream or run.pipeline_name == self.downstream:
            return
        if not run.succeeded:
            logger.info(
                f"Not starting '{self.downstream}': '{run.pipeline_name}' run "
                f"{run.run_id} finished {run.status.value}"
            )
            return

        trigger = TriggerEvent(
            ref_name=run.ref_name,
            commit_id=run.commit_id,
            source_pipeline=run.pipeline_name,
            source_run_id=run.run_id,
            change_request=await self._resolve_change_request(run),
        )
        self._remember(self.triggered, trigger)
        logger.info(
            f"Starting '{self.downstream}' for {trigger.ref_name}@{trigger.commit_id} "
            f"(change request: {trigger.change_request or 'none'})"
        )
        task = asyncio.create_task(
            self._launch(trigger), name=f"{self.downstream}:{trigger.commit_id}"
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _resolve_change_request(self, run: PipelineRun) -> int | None:
        if run.trigger.change_request is not None:
            return run.trigger.change_request
        if self._change_requests is None:
            return None
        try:
            return await self._change_requests.find_open_change_request(run.commit_id)
        except CollaboratorError as e:
            logger.warning(f"Change request lookup for {run.commit_id} failed: {e}")
            return None

    async def _launch(self, trigger: TriggerEvent) -> None:
        try:
            self._remember(self.completed, await self._launcher(trigger))
        except Exception as e:
            logger.opt(exception=e).error(f"Downstream pipeline '{self.downstream}' crashed: {e}")
            self._remember(self.errors, e)

    def _remember(self, entries: list[Any], item: Any) -> None:
        entries.append(item)
        del entries[: -self.history]

    @property
    def busy(self) -> bool:
        return bool(self._tasks)

    async def wait_idle(self) -> list[PipelineRun]:
        """Wait for every launched downstream run; returns the remembered completed runs."""
        while self._tasks:
            await asyncio.gather(*self._tasks)
        return list(self.completed)
