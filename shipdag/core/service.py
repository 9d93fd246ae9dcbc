"""Application service wiring configuration, ports, executor and observers.

``ReleaseService`` is the single entry point used by the CLI: it runs CI for
a commit, lets the cross-pipeline trigger start CD when CI succeeds, and
reports both runs on the commit's change request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from shipdag.builtin.adapters.mock import (
    DRY_RUN_RESPONSES,
    InMemoryChangeRequestHost,
    InMemoryRegistry,
    MockCommandRunner,
    MockSandbox,
    MockScanner,
)
from shipdag.builtin.pipelines import build_cd_graph, build_ci_graph
from shipdag.core.config import ShipDAGConfig, get_default_config
from shipdag.core.domain.models import DeploymentCheck, PipelineRun, TriggerEvent
from shipdag.core.logging import get_logger
from shipdag.core.orchestration.events import LocalObserverManager, LoggingObserver
from shipdag.core.orchestration.events.events import PipelineCompleted
from shipdag.core.orchestration.executor import PipelineExecutor
from shipdag.core.orchestration.trigger import CrossPipelineTrigger
from shipdag.core.reporting import StatusReporter
from shipdag.core.stages import DeploymentVerifier, StageRunner, default_handlers

if TYPE_CHECKING:
    from shipdag.core.domain.dag import DirectedGraph
    from shipdag.core.ports import (
        ArtifactRegistry,
        ChangeRequestHost,
        CommandRunner,
        ExecutionSandbox,
        Scanner,
    )

logger = get_logger(__name__)


@dataclass(slots=True)
class Collaborators:
    """The port implementations a service runs against."""

    command_runner: CommandRunner
    registry: ArtifactRegistry
    scanner: Scanner
    sandbox: ExecutionSandbox
    change_requests: ChangeRequestHost | None = None

    @classmethod
    def from_config(cls, config: ShipDAGConfig) -> Collaborators:
        """Real drivers: subprocesses, docker, trivy and (if configured) GitHub."""
        from shipdag.drivers import (
            DockerRegistry,
            DockerSandbox,
            GitHubChangeRequestHost,
            SubprocessCommandRunner,
            TrivyScanner,
        )

        runner = SubprocessCommandRunner()
        cr = config.change_requests
        host = (
            GitHubChangeRequestHost(cr.repository, cr.token, cr.api_url, cr.timeout)
            if cr.repository
            else None
        )
        return cls(
            command_runner=runner,
            registry=DockerRegistry(runner, timeout=config.pipeline.command_timeout),
            scanner=TrivyScanner(runner),
            sandbox=DockerSandbox(runner),
            change_requests=host,
        )

    @classmethod
    def in_memory(cls) -> Collaborators:
        """Mock ports whose canned answers make every built-in stage pass."""
        return cls(
            command_runner=MockCommandRunner(responses=DRY_RUN_RESPONSES),
            registry=InMemoryRegistry(),
            scanner=MockScanner(),
            sandbox=MockSandbox(),
            change_requests=InMemoryChangeRequestHost(),
        )


@dataclass(frozen=True, slots=True)
class ReleaseOutcome:
    """CI run plus the CD run it triggered (None when CD never started)."""

    ci: PipelineRun
    cd: PipelineRun | None = None

    @property
    def succeeded(self) -> bool:
        return self.ci.succeeded and self.cd is not None and self.cd.succeeded

    def to_dict(self) -> dict[str, object]:
        return {
            "succeeded": self.succeeded,
            "ci": self.ci.to_dict(),
            "cd": self.cd.to_dict() if self.cd is not None else None,
        }


class ReleaseService:
    """Run CI, hand off to CD on success, and report both.

    Parameters
    ----------
    config : ShipDAGConfig | None
        Loaded configuration (default: built-in defaults)
    collaborators : Collaborators | None
        Port implementations (default: real drivers from ``config``)
    ci_graph, cd_graph : DirectedGraph | None
        Override the built-in pipelines, e.g. with graphs loaded from YAML

    Examples
    --------
    Dry run against in-memory ports::

        service = ReleaseService(collaborators=Collaborators.in_memory())
        outcome = await service.run_ci("2/merge", "abc123")
        assert outcome.succeeded
    """

    def __init__(
        self,
        config: ShipDAGConfig | None = None,
        collaborators: Collaborators | None = None,
        *,
        ci_graph: DirectedGraph | None = None,
        cd_graph: DirectedGraph | None = None,
    ) -> None:
        self.config = config or get_default_config()
        self.collaborators = collaborators or Collaborators.from_config(self.config)
        self.ci_graph = ci_graph or build_ci_graph(self.config)
        self.cd_graph = cd_graph or build_cd_graph(self.config)

        ports = self.collaborators
        self.verifier = DeploymentVerifier(
            ports.registry, ports.sandbox, self.config.repository, self.config.pipeline
        )
        self.runner = StageRunner(
            default_handlers(
                command_runner=ports.command_runner,
                registry=ports.registry,
                scanner=ports.scanner,
                verifier=self.verifier,
            )
        )
        self.observers = LocalObserverManager()
        self.executor = PipelineExecutor(
            self.runner,
            settings=self.config.pipeline,
            repository=self.config.repository,
            observer_manager=self.observers,
        )
        self.reporter = StatusReporter(ports.change_requests)
        self.trigger = CrossPipelineTrigger(
            self.ci_graph.name, self.cd_graph.name, self.run_cd, ports.change_requests
        )

        self.observers.register(LoggingObserver(), observer_id="logging")
        self.observers.register(
            self.reporter, observer_id="status-reporter", event_types=[PipelineCompleted]
        )
        self.observers.register(
            self.trigger,
            observer_id=f"{self.ci_graph.name}-to-{self.cd_graph.name}",
            event_types=[PipelineCompleted],
        )

    async def run_ci(
        self, ref_name: str, commit_id: str, change_request: int | None = None
    ) -> ReleaseOutcome:
        """Run CI for a commit event; waits for the CD run it triggers."""
        trigger = TriggerEvent(
            ref_name=ref_name, commit_id=commit_id, change_request=change_request
        )
        ci = await self.executor.execute(self.ci_graph, trigger)
        downstream = await self.trigger.wait_idle()
        cd = next((r for r in downstream if r.trigger.source_run_id == ci.run_id), None)
        if ci.succeeded and cd is None:
            logger.error(f"'{self.cd_graph.name}' did not complete for run {ci.run_id}")
        return ReleaseOutcome(ci=ci, cd=cd)

    async def run_cd(self, trigger: TriggerEvent) -> PipelineRun:
        return await self.executor.execute(self.cd_graph, trigger)

    async def verify(self, ref_name: str, commit_id: str) -> DeploymentCheck:
        """Verify an already published artifact without running a pipeline."""
        return await self.verifier.verify(ref_name, commit_id)

    async def aclose(self) -> None:
        host = self.collaborators.change_requests
        aclose = getattr(host, "aclose", None)
        if aclose is not None:
            await aclose()


__all__ = ["Collaborators", "ReleaseOutcome", "ReleaseService"]
