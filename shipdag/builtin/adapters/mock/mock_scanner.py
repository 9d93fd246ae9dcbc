"""Mock vulnerability scanner."""

from collections.abc import Sequence

from shipdag.core.domain.models import Severity
from shipdag.core.exceptions import CollaboratorTimeoutError
from shipdag.core.ports.scanner import Finding, ScanReport


class MockScanner:
    """Reports a fixed list of findings, filtered to the requested severities."""

    def __init__(self, findings: Sequence[Finding] | None = None) -> None:
        self.findings = list(findings or [])
        self.calls: list[tuple[str, tuple[Severity, ...]]] = []
        self.should_raise = False

    async def scan(
        self,
        reference: str,
        *,
        severities: Sequence[Severity],
        timeout: float,
    ) -> ScanReport:
        self.calls.append((reference, tuple(severities)))
        if self.should_raise:
            raise CollaboratorTimeoutError("scanner", timeout)
        wanted = set(severities)
        return ScanReport(
            reference=reference,
            severities=list(severities),
            findings=[f for f in self.findings if f.severity in wanted],
        )
