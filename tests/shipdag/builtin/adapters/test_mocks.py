"""Tests for the in-memory port implementations."""

import pytest

from shipdag.builtin.adapters.mock import (
    DRY_RUN_RESPONSES,
    InMemoryChangeRequestHost,
    InMemoryRegistry,
    MockCommandRunner,
    MockSandbox,
    MockScanner,
)
from shipdag.core.domain.models import ArtifactTag, Severity, TagKind
from shipdag.core.exceptions import (
    ArtifactNotFoundError,
    CollaboratorTimeoutError,
    CollaboratorUnavailableError,
)
from shipdag.core.ports import (
    ArtifactRegistry,
    ChangeRequestHost,
    CommandRunner,
    ExecutionSandbox,
    Finding,
    Scanner,
)


def _tag(tag: str, kind: TagKind = TagKind.MUTABLE) -> ArtifactTag:
    return ArtifactTag(registry="ghcr.io", namespace="acme", repository="app", tag=tag, kind=kind)


def test_mocks_satisfy_ports() -> None:
    assert isinstance(MockCommandRunner(), CommandRunner)
    assert isinstance(InMemoryRegistry(), ArtifactRegistry)
    assert isinstance(MockScanner(), Scanner)
    assert isinstance(MockSandbox(), ExecutionSandbox)
    assert isinstance(InMemoryChangeRequestHost(), ChangeRequestHost)


class TestMockCommandRunner:
    @pytest.mark.asyncio
    async def test_first_matching_response_wins(self) -> None:
        runner = MockCommandRunner(responses=DRY_RUN_RESPONSES)

        coverage = await runner.run(["pytest", "--cov=app"], timeout=5)
        tests = await runner.run(["python3.12", "-m", "pytest"], timeout=5)
        other = await runner.run(["make"], timeout=5)

        assert "90%" in coverage.stdout
        assert tests.stdout == "12 passed in 0.42s"
        assert other.ok and other.stdout == ""
        assert runner.commands_matching("pytest") == [
            ["pytest", "--cov=app"],
            ["python3.12", "-m", "pytest"],
        ]

    @pytest.mark.asyncio
    async def test_unavailable_program(self) -> None:
        runner = MockCommandRunner(unavailable=["ruff"])
        with pytest.raises(CollaboratorUnavailableError, match="cannot start 'ruff'"):
            await runner.run(["ruff", "check"], timeout=5)
        assert runner.calls == [["ruff", "check"]]


class TestInMemoryRegistry:
    @pytest.mark.asyncio
    async def test_publish_is_deterministic(self) -> None:
        tags = [_tag("main"), _tag("abc123", TagKind.IMMUTABLE)]
        first = await InMemoryRegistry().publish(tags, context_dir=".", dockerfile="Dockerfile")
        second = await InMemoryRegistry().publish(tags, context_dir=".", dockerfile="Dockerfile")
        assert first.digest == second.digest
        assert first.references == [t.reference for t in tags]

    @pytest.mark.asyncio
    async def test_pull(self) -> None:
        registry = InMemoryRegistry(images={_tag("main").reference: "sha256:1"})
        assert await registry.pull(_tag("main")) == _tag("main").reference
        registry.remove(_tag("main").reference)
        with pytest.raises(ArtifactNotFoundError):
            await registry.pull(_tag("main"))


class TestMockScanner:
    @pytest.mark.asyncio
    async def test_filters_by_severity(self) -> None:
        scanner = MockScanner(
            [
                Finding(id="CVE-1", severity=Severity.CRITICAL),
                Finding(id="CVE-2", severity=Severity.MEDIUM),
            ]
        )
        report = await scanner.scan("ref", severities=[Severity.CRITICAL], timeout=1)
        assert [f.id for f in report.findings] == ["CVE-1"]
        assert report.counts == {"CRITICAL": 1}

    @pytest.mark.asyncio
    async def test_should_raise(self) -> None:
        scanner = MockScanner()
        scanner.should_raise = True
        with pytest.raises(CollaboratorTimeoutError):
            await scanner.scan("ref", severities=[], timeout=1)


class TestMockSandbox:
    @pytest.mark.asyncio
    async def test_adds_operands(self) -> None:
        result = await MockSandbox().run("ref", ["2", "3"], timeout=1)
        assert (result.stdout, result.exit_code) == ("5\n", 0)

    @pytest.mark.asyncio
    async def test_non_integer_operands(self) -> None:
        result = await MockSandbox().run("ref", ["two"], timeout=1)
        assert result.exit_code == 2


class TestInMemoryChangeRequestHost:
    @pytest.mark.asyncio
    async def test_lookup_and_comment(self) -> None:
        host = InMemoryChangeRequestHost({"abc123": 2})
        assert await host.find_open_change_request("abc123") == 2
        assert await host.find_open_change_request("other") is None
        await host.post_comment(2, "hello")
        assert host.comments_on(2) == ["hello"]
        assert host.lookups == ["abc123", "other"]
