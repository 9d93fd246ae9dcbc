"""Configuration data models for shipdag."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from shipdag.core.domain.models import Severity
from shipdag.core.exceptions import ValidationError

_LOG_LEVELS = frozenset({"TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
_LOG_FORMATS = frozenset({"console", "json", "structured", "rich"})


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Logging configuration for shipdag.

    Attributes
    ----------
    level : str, default="INFO"
        Log level (TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL)
    format : str, default="structured"
        Output format (console, json, structured, rich)
    output_file : str | None, default=None
        Optional file path to write JSON logs to
    use_color : bool, default=True
        Use ANSI color codes (auto-disabled for non-TTY)
    include_timestamp : bool, default=True
        Include timestamp in log output
    enable_stdlib_bridge : bool, default=False
        Route stdlib logging from httpx/asyncio through loguru
    backtrace : bool, default=True
        Enable extended backtraces
    diagnose : bool, default=False
        Show variable values in tracebacks (may leak tokens into CI logs)

    Examples
    --------
    TOML configuration:

    ```toml
    [tool.shipdag.logging]
    level = "DEBUG"
    format = "rich"
    ```

    Environment variable overrides:

    ```bash
    export SHIPDAG_LOG_LEVEL=DEBUG
    export SHIPDAG_LOG_FORMAT=json
    export SHIPDAG_LOG_FILE=/tmp/shipdag.log
    ```
    """

    level: Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "structured", "rich"] = "structured"
    output_file: str | None = None
    use_color: bool = True
    include_timestamp: bool = True
    enable_stdlib_bridge: bool = False
    backtrace: bool = True
    diagnose: bool = False

    def __post_init__(self) -> None:
        if self.level not in _LOG_LEVELS:
            raise ValidationError(
                "logging.level", f"must be one of {sorted(_LOG_LEVELS)}", self.level
            )
        if self.format not in _LOG_FORMATS:
            raise ValidationError(
                "logging.format", f"must be one of {sorted(_LOG_FORMATS)}", self.format
            )


@dataclass(frozen=True, slots=True)
class RepositoryIdentity:
    """Registry coordinates images are published under.

    ``registry/namespace/repository:tag``, e.g. ``ghcr.io/acme/sample-app``.
    """

    registry: str = "ghcr.io"
    namespace: str = "local"
    repository: str = "sample-app"

    def __post_init__(self) -> None:
        if not self.repository:
            raise ValidationError("repository.repository", "cannot be empty")
        if ":" in self.namespace or ":" in self.repository:
            raise ValidationError(
                "repository",
                "namespace and repository cannot contain ':'",
                f"{self.namespace}/{self.repository}",
            )


@dataclass(frozen=True, slots=True)
class PipelineSettings:
    """Knobs for the CI and CD pipelines.

    Attributes
    ----------
    coverage_threshold : float
        Minimum line coverage percentage (inclusive)
    severity_threshold : str
        Lowest severity that fails the blocking scan
    stage_timeout : float
        Upper bound on a single stage, seconds
    command_timeout : float
        Upper bound on a single collaborator call, seconds
    pull_timeout : float
        Upper bound on a registry pull, seconds
    max_concurrent_stages : int
        Concurrent stage limit for one run
    python_versions : tuple[str, ...]
        Interpreter versions for the test matrix
    test_command, coverage_command : tuple[str, ...]
        Argument vectors; ``{python}`` is replaced by the interpreter version
        of the stage (empty when the stage has none)
    run_url_template : str | None
        ``str.format`` template with ``{run_id}``, ``{pipeline}``,
        ``{commit_id}``, linking reports back to the CI run
    """

    coverage_threshold: float = 80.0
    severity_threshold: str = "HIGH"
    stage_timeout: float = 1800.0
    command_timeout: float = 900.0
    pull_timeout: float = 300.0
    max_concurrent_stages: int = 4
    max_tag_length: int = 128
    placeholder_tag: str = "unknown-ref"
    python_versions: tuple[str, ...] = ("3.11", "3.12")
    lint_command: tuple[str, ...] = ("ruff", "check", ".")
    test_command: tuple[str, ...] = ("python{python}", "-m", "pytest", "-q")
    coverage_command: tuple[str, ...] = (
        "python{python}",
        "-m",
        "pytest",
        "-q",
        "--cov=sample_app",
        "--cov-report=term",
    )
    dockerfile: str = "Dockerfile"
    build_context: str = "."
    run_url_template: str | None = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.coverage_threshold <= 100.0:
            raise ValidationError(
                "coverage_threshold", "must be between 0 and 100", self.coverage_threshold
            )
        if self.severity_threshold.upper() not in Severity.__members__:
            raise ValidationError(
                "severity_threshold",
                f"must be one of {list(Severity.__members__)}",
                self.severity_threshold,
            )
        for name in ("stage_timeout", "command_timeout", "pull_timeout"):
            if getattr(self, name) <= 0:
                raise ValidationError(name, "must be positive", getattr(self, name))
        if self.max_concurrent_stages < 1:
            raise ValidationError(
                "max_concurrent_stages", "must be at least 1", self.max_concurrent_stages
            )
        if self.max_tag_length < 1:
            raise ValidationError("max_tag_length", "must be at least 1", self.max_tag_length)
        if not self.python_versions:
            raise ValidationError("python_versions", "cannot be empty")

    @property
    def severity(self) -> Severity:
        return Severity(self.severity_threshold.upper())

    def run_url(self, run_id: str, pipeline: str, commit_id: str) -> str | None:
        if not self.run_url_template:
            return None
        return self.run_url_template.format(run_id=run_id, pipeline=pipeline, commit_id=commit_id)


@dataclass(frozen=True, slots=True)
class ChangeRequestConfig:
    """Where change requests live and how to authenticate.

    ``repository`` is ``owner/name`` on the hosting service.
    """

    api_url: str = "https://api.github.com"
    repository: str | None = None
    token: str | None = None
    timeout: float = 30.0

    def __post_init__(self) -> None:
        if self.repository is not None and self.repository.count("/") != 1:
            raise ValidationError(
                "change_requests.repository", "must look like 'owner/name'", self.repository
            )


@dataclass(frozen=True, slots=True)
class ShipDAGConfig:
    """Complete shipdag configuration.

    Examples
    --------
    TOML configuration in pyproject.toml:

    ```toml
    [tool.shipdag.repository]
    registry = "ghcr.io"
    namespace = "acme"
    repository = "sample-app"

    [tool.shipdag.pipeline]
    coverage_threshold = 85
    python_versions = ["3.11", "3.12"]

    [tool.shipdag.change_requests]
    repository = "acme/sample-app"
    token = "${GITHUB_TOKEN}"
    ```
    """

    logging: LoggingConfig = field(default_factory=LoggingConfig)
    repository: RepositoryIdentity = field(default_factory=RepositoryIdentity)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)
    change_requests: ChangeRequestConfig = field(default_factory=ChangeRequestConfig)
