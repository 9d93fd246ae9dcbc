"""Tests for the docker-backed registry and sandbox drivers and the Trivy scanner."""

import json

import pytest

from shipdag.builtin.adapters.mock import MockCommandRunner
from shipdag.core.domain.models import ArtifactTag, Severity, TagKind
from shipdag.core.exceptions import (
    ArtifactNotFoundError,
    CollaboratorError,
    CollaboratorUnavailableError,
)
from shipdag.drivers import DockerRegistry, DockerSandbox, TrivyScanner
from shipdag.drivers.scanner.trivy import parse_trivy_report

MUTABLE = ArtifactTag(registry="ghcr.io", namespace="acme", repository="app", tag="2-merge")
IMMUTABLE = ArtifactTag(
    registry="ghcr.io", namespace="acme", repository="app", tag="abc123", kind=TagKind.IMMUTABLE
)

TRIVY_REPORT = {
    "Results": [
        {
            "Target": "ghcr.io/acme/app:abc123 (debian 12.5)",
            "Vulnerabilities": [
                {
                    "VulnerabilityID": "CVE-2024-0001",
                    "PkgName": "openssl",
                    "InstalledVersion": "3.0.11",
                    "FixedVersion": "3.0.13",
                    "Severity": "HIGH",
                    "Title": "openssl: overflow",
                },
                {"VulnerabilityID": "CVE-2024-0002", "PkgName": "zlib", "Severity": "LOW"},
            ],
        },
        {"Target": "app/requirements.txt", "Vulnerabilities": None},
    ]
}


class TestDockerRegistry:
    @pytest.mark.asyncio
    async def test_publish_builds_once_and_pushes_each_tag(self) -> None:
        runner = MockCommandRunner(responses={"inspect": (0, "sha256:feed\n")})
        registry = DockerRegistry(runner, timeout=60)

        receipt = await registry.publish(
            [MUTABLE, IMMUTABLE], context_dir=".", dockerfile="Dockerfile"
        )

        assert receipt.digest == "sha256:feed"
        assert receipt.references == [IMMUTABLE.reference, MUTABLE.reference]
        assert runner.calls[0] == [
            "docker",
            "build",
            "-f",
            "Dockerfile",
            "-t",
            MUTABLE.reference,
            "-t",
            IMMUTABLE.reference,
            ".",
        ]
        assert runner.commands_matching("docker push") == [
            ["docker", "push", IMMUTABLE.reference],
            ["docker", "push", MUTABLE.reference],
        ]

    @pytest.mark.asyncio
    async def test_failed_push_raises(self) -> None:
        runner = MockCommandRunner(
            responses={"push": (1, "denied: requested access to the resource is denied")}
        )
        with pytest.raises(CollaboratorError, match="docker push .* failed: denied"):
            await DockerRegistry(runner).publish([MUTABLE], context_dir=".", dockerfile="D")

    @pytest.mark.asyncio
    async def test_failed_immutable_push_leaves_mutable_tag_alone(self) -> None:
        runner = MockCommandRunner(responses={"push ghcr.io/acme/app:abc123": (1, "denied")})

        with pytest.raises(CollaboratorError, match="abc123 failed: denied"):
            await DockerRegistry(runner).publish(
                [MUTABLE, IMMUTABLE], context_dir=".", dockerfile="D"
            )

        assert runner.commands_matching("docker push") == [["docker", "push", IMMUTABLE.reference]]

    @pytest.mark.asyncio
    async def test_failed_build_without_output(self) -> None:
        runner = MockCommandRunner(responses={"build": (2, "")})
        with pytest.raises(CollaboratorError, match="exit status 2"):
            await DockerRegistry(runner).publish([MUTABLE], context_dir=".", dockerfile="D")

    @pytest.mark.asyncio
    async def test_pull(self) -> None:
        runner = MockCommandRunner()
        assert await DockerRegistry(runner).pull(MUTABLE) == MUTABLE.reference
        assert runner.calls == [["docker", "pull", MUTABLE.reference]]

    @pytest.mark.asyncio
    async def test_pull_missing_tag(self) -> None:
        runner = MockCommandRunner(default=(1, "Error response from daemon: manifest unknown"))
        with pytest.raises(ArtifactNotFoundError):
            await DockerRegistry(runner).pull(MUTABLE)

    @pytest.mark.asyncio
    async def test_pull_other_failure(self) -> None:
        runner = MockCommandRunner(default=(1, "dial tcp: connection refused"))
        with pytest.raises(CollaboratorError) as excinfo:
            await DockerRegistry(runner).pull(MUTABLE)
        assert not isinstance(excinfo.value, ArtifactNotFoundError)


class TestDockerSandbox:
    @pytest.mark.asyncio
    async def test_runs_isolated_container(self) -> None:
        runner = MockCommandRunner(default=(0, "5\n"))

        result = await DockerSandbox(runner).run(IMMUTABLE.reference, ["2", "3"], timeout=30)

        assert result.stdout == "5\n"
        assert result.exit_code == 0
        assert runner.calls == [
            ["docker", "run", "--rm", "--network", "none", IMMUTABLE.reference, "2", "3"]
        ]

    @pytest.mark.asyncio
    async def test_application_exit_code_is_a_result(self) -> None:
        runner = MockCommandRunner(default=(1, ""))
        result = await DockerSandbox(runner, network=None).run("ref", [], timeout=30)
        assert result.exit_code == 1
        assert "--network" not in runner.calls[0]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("exit_code", [125, 126, 127])
    async def test_container_start_failure(self, exit_code: int) -> None:
        runner = MockCommandRunner(default=(exit_code, ""))
        with pytest.raises(CollaboratorUnavailableError, match="container did not start"):
            await DockerSandbox(runner).run("ref", [], timeout=30)


class TestTrivyScanner:
    def test_parse_report(self) -> None:
        report = parse_trivy_report(
            IMMUTABLE.reference, TRIVY_REPORT, [Severity.HIGH, Severity.CRITICAL]
        )
        assert [f.id for f in report.findings] == ["CVE-2024-0001"]
        finding = report.findings[0]
        assert (finding.package, finding.installed_version, finding.fixed_version) == (
            "openssl",
            "3.0.11",
            "3.0.13",
        )

    def test_parse_empty_report(self) -> None:
        assert parse_trivy_report("ref", {}, list(Severity)).findings == []

    @pytest.mark.asyncio
    async def test_scan(self) -> None:
        runner = MockCommandRunner(default=(0, json.dumps(TRIVY_REPORT)))

        report = await TrivyScanner(runner).scan(
            IMMUTABLE.reference, severities=list(Severity), timeout=120
        )

        assert report.counts == {"HIGH": 1, "LOW": 1}
        argv = runner.calls[0]
        assert argv[:2] == ["trivy", "image"]
        assert argv[argv.index("--severity") + 1] == "UNKNOWN,LOW,MEDIUM,HIGH,CRITICAL"
        assert argv[-1] == IMMUTABLE.reference

    @pytest.mark.asyncio
    async def test_scanner_failure(self) -> None:
        runner = MockCommandRunner(default=(1, ""))
        with pytest.raises(CollaboratorError, match="trivy exited 1"):
            await TrivyScanner(runner).scan("ref", severities=[Severity.HIGH], timeout=1)

    @pytest.mark.asyncio
    async def test_unreadable_report(self) -> None:
        runner = MockCommandRunner(default=(0, "not json"))
        with pytest.raises(CollaboratorError, match="unreadable trivy report"):
            await TrivyScanner(runner).scan("ref", severities=[Severity.HIGH], timeout=1)
