"""Stage execution: the runner, built-in handlers and the deployment verifier."""

from shipdag.core.stages.handlers import default_handlers
from shipdag.core.stages.runner import StageContext, StageRunner
from shipdag.core.stages.verifier import DeploymentVerifier

__all__ = ["DeploymentVerifier", "StageContext", "StageRunner", "default_handlers"]
