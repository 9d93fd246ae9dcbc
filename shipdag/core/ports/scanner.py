"""Port interface for vulnerability scanners."""

from abc import abstractmethod
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from shipdag.core.domain.models import Severity


class Finding(BaseModel):
    """One vulnerability reported against an image."""

    model_config = ConfigDict(frozen=True)

    id: str
    severity: Severity
    package: str = ""
    installed_version: str = ""
    fixed_version: str = ""
    title: str = ""


class ScanReport(BaseModel):
    """Findings for one image reference, filtered to the requested severities."""

    model_config = ConfigDict(frozen=True)

    reference: str
    severities: list[Severity] = Field(default_factory=list)
    findings: list[Finding] = Field(default_factory=list)

    @property
    def counts(self) -> dict[str, int]:
        """Number of findings per severity, most severe first."""
        counts: dict[str, int] = {}
        for severity in sorted(Severity, key=lambda s: s.rank, reverse=True):
            n = sum(1 for f in self.findings if f.severity == severity)
            if n:
                counts[severity.value] = n
        return counts

    def at_or_above(self, threshold: Severity) -> list[Finding]:
        return [f for f in self.findings if f.severity.at_or_above(threshold)]


@runtime_checkable
class Scanner(Protocol):
    """Scan an image reference, reporting findings of the given severities."""

    @abstractmethod
    async def scan(
        self,
        reference: str,
        *,
        severities: Sequence[Severity],
        timeout: float,
    ) -> ScanReport: ...
