"""Gate evaluation: decide whether a ready stage may run.

Pure functions over a stage declaration and its direct upstream results.
"""

from __future__ import annotations

from collections.abc import Mapping
from enum import StrEnum
from typing import TYPE_CHECKING

from shipdag.core.domain.models import StageResult, StageStatus
from shipdag.core.exceptions import OrchestratorError

if TYPE_CHECKING:
    from shipdag.core.domain.dag import StageSpec


class GateDecision(StrEnum):
    PROCEED = "proceed"
    SKIP = "skip"
    FAIL_PIPELINE = "fail-pipeline"


def evaluate(stage: StageSpec, upstream_results: Mapping[str, StageResult]) -> GateDecision:
    """Decide what to do with ``stage`` given its direct upstream results.

    Rules, in priority order:

    1. any blocking upstream that failed or was skipped -> ``FAIL_PIPELINE``
    2. any advisory upstream that was skipped -> ``SKIP``
    3. otherwise -> ``PROCEED`` (advisory failures never stop a stage)

    Parameters
    ----------
    stage : StageSpec
        Stage about to be scheduled
    upstream_results : Mapping[str, StageResult]
        Results keyed by stage name; must cover every name in ``stage.deps``

    Raises
    ------
    OrchestratorError
        If a declared upstream has no recorded result
    """
    missing = sorted(dep for dep in stage.deps if dep not in upstream_results)
    if missing:
        raise OrchestratorError(
            f"Stage '{stage.name}' evaluated before upstream result(s) {missing} were recorded"
        )

    direct = [upstream_results[dep] for dep in sorted(stage.deps)]
    if any(r.is_blocking_failure for r in direct):
        return GateDecision.FAIL_PIPELINE
    if any(r.status == StageStatus.SKIPPED for r in direct):
        return GateDecision.SKIP
    return GateDecision.PROCEED


def blocking_reason(stage: StageSpec, upstream_results: Mapping[str, StageResult]) -> str:
    """Human readable reason for a non-PROCEED decision."""
    culprits = [
        name
        for name in sorted(stage.deps)
        if name in upstream_results and not upstream_results[name].succeeded
    ]
    return f"upstream not successful: {', '.join(culprits)}" if culprits else "upstream skipped"


def meets_threshold(measured: float, threshold: float) -> bool:
    """Inclusive threshold check.

    >>> meets_threshold(80.0, 80)
    True
    >>> meets_threshold(79.99, 80)
    False
    """
    return measured >= threshold
