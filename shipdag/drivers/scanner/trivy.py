"""Vulnerability scanner driver for Trivy."""

from __future__ import annotations

import json
from collections.abc import Sequence
from typing import TYPE_CHECKING, Any

from shipdag.core.domain.models import Severity
from shipdag.core.exceptions import CollaboratorError
from shipdag.core.logging import get_logger
from shipdag.core.ports.scanner import Finding, ScanReport

if TYPE_CHECKING:
    from shipdag.core.ports.command_runner import CommandRunner

logger = get_logger(__name__)


def parse_trivy_report(
    reference: str, document: dict[str, Any], severities: Sequence[Severity]
) -> ScanReport:
    """Convert Trivy's JSON report into a :class:`ScanReport`.

    Findings outside ``severities`` are dropped; Trivy normally filters them
    already but older releases ignore ``--severity`` for ``UNKNOWN``.
    """
    wanted = set(severities)
    findings: list[Finding] = []
    for target in document.get("Results") or []:
        for vuln in target.get("Vulnerabilities") or []:
            severity = Severity.parse(str(vuln.get("Severity", "")))
            if severity not in wanted:
                continue
            findings.append(
                Finding(
                    id=str(vuln.get("VulnerabilityID", "")),
                    severity=severity,
                    package=str(vuln.get("PkgName", "")),
                    installed_version=str(vuln.get("InstalledVersion", "")),
                    fixed_version=str(vuln.get("FixedVersion", "")),
                    title=str(vuln.get("Title", "")),
                )
            )
    return ScanReport(reference=reference, severities=list(severities), findings=findings)


class TrivyScanner:
    """Scanner running ``trivy image --format json``.

    Trivy is run with ``--exit-code 0`` so findings never surface as a
    process failure; a nonzero status therefore means the scan itself broke.
    """

    def __init__(self, runner: CommandRunner, trivy: str = "trivy") -> None:
        self.runner = runner
        self.trivy = trivy

    async def scan(
        self,
        reference: str,
        *,
        severities: Sequence[Severity],
        timeout: float,
    ) -> ScanReport:
        argv = [
            self.trivy,
            "image",
            "--quiet",
            "--format",
            "json",
            "--exit-code",
            "0",
            "--severity",
            ",".join(s.value for s in severities),
            reference,
        ]
        result = await self.runner.run(argv, timeout=timeout)
        if not result.ok:
            raise CollaboratorError(
                "scanner", f"trivy exited {result.exit_code}: {result.stderr.strip()}"
            )
        try:
            document = json.loads(result.stdout or "{}")
        except json.JSONDecodeError as e:
            raise CollaboratorError("scanner", f"unreadable trivy report: {e}") from e

        report = parse_trivy_report(reference, document, severities)
        logger.debug(f"Trivy found {len(report.findings)} finding(s) in {reference}")
        return report
