"""Core exception hierarchy for shipdag.

All shipdag exceptions inherit from ShipDAGError for easy exception handling.
The hierarchy mirrors the pipeline's error taxonomy:

- configuration/logic errors (``ConfigurationError``, ``ValidationError``)
  fail fast, before any stage runs;
- collaborator infrastructure errors (``CollaboratorError`` and subclasses)
  are caught by stage handlers and recorded as infrastructure failures;
- ``OrchestratorError`` signals misuse of the executor or an invalid DAG.

Assertion failures (a collaborator ran but its result violates a policy) are
not exceptions; they are ``StageResult`` values.
"""

from __future__ import annotations

# ============================================================================
# Base Exception
# ============================================================================


class ShipDAGError(Exception):
    """Base exception for all shipdag errors.

    Catch this to handle all shipdag errors.
    """

    pass


# ============================================================================
# Configuration & Validation Errors
# ============================================================================


class ConfigurationError(ShipDAGError):
    """Raised when configuration is invalid or missing.

    Examples
    --------
    Example usage::

        raise ConfigurationError("registry", "namespace must not be empty")
    """

    def __init__(self, component: str, reason: str) -> None:
        """Initialize configuration error.

        Args
        ----
            component: Name of the component with invalid configuration
            reason: Explanation of what's wrong
        """
        super().__init__(f"Configuration error in '{component}': {reason}")
        self.component = component
        self.reason = reason


class ValidationError(ShipDAGError):
    """Raised when data validation fails.

    Examples
    --------
    Example usage::

        raise ValidationError("coverage_threshold", "must be between 0 and 100", value=120)
    """

    def __init__(self, field: str, constraint: str, value: object = None) -> None:
        """Initialize validation error.

        Args
        ----
            field: Name of the field that failed validation
            constraint: Description of the validation constraint
            value: The invalid value (optional)
        """
        if value is not None:
            msg = f"Validation failed for '{field}': {constraint} (got {value!r})"
        else:
            msg = f"Validation failed for '{field}': {constraint}"
        super().__init__(msg)
        self.field = field
        self.constraint = constraint
        self.value = value


# ============================================================================
# Collaborator (infrastructure) Errors
# ============================================================================


class CollaboratorError(ShipDAGError):
    """Raised when an external collaborator cannot be reached or started.

    Stage handlers translate this into a failed ``StageResult`` whose
    ``failure_kind`` is ``infrastructure``.

    Examples
    --------
    Example usage::

        raise CollaboratorError("registry", "authentication required")
    """

    def __init__(self, collaborator: str, reason: str) -> None:
        """Initialize collaborator error.

        Args
        ----
            collaborator: Name of the collaborator (e.g. "registry", "scanner")
            reason: What went wrong
        """
        super().__init__(f"Collaborator '{collaborator}' failed: {reason}")
        self.collaborator = collaborator
        self.reason = reason


class CollaboratorUnavailableError(CollaboratorError):
    """Raised when a collaborator process or service cannot be started."""

    pass


class CollaboratorTimeoutError(CollaboratorError):
    """Raised when a collaborator invocation exceeds its timeout."""

    def __init__(self, collaborator: str, timeout: float) -> None:
        super().__init__(collaborator, f"timed out after {timeout:g}s")
        self.timeout = timeout


class ArtifactNotFoundError(CollaboratorError):
    """Raised when the registry has no artifact under the requested reference.

    Examples
    --------
    Example usage::

        raise ArtifactNotFoundError("ghcr.io/acme/app:2-merge")
    """

    def __init__(self, reference: str, reason: str = "artifact not found") -> None:
        super().__init__("registry", f"{reason}: {reference}")
        self.reference = reference


# ============================================================================
# Orchestration Errors
# ============================================================================


class OrchestratorError(ShipDAGError):
    """Raised when the executor is misused or handed an invalid graph.

    Stage failures never raise this; they are recorded on the run.

    Examples
    --------
    Example usage::

        raise OrchestratorError("Invalid DAG: Cycle detected: a -> b -> a")
    """

    pass


__all__ = [
    "ShipDAGError",
    "ConfigurationError",
    "ValidationError",
    "CollaboratorError",
    "CollaboratorUnavailableError",
    "CollaboratorTimeoutError",
    "ArtifactNotFoundError",
    "OrchestratorError",
]
