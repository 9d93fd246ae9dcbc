"""Tests for the TOML configuration loader."""

from pathlib import Path

import pytest

from shipdag.core.config.loader import (
    ConfigLoader,
    _parse_bool_env,
    clear_config_cache,
    get_default_config,
    load_config,
)
from shipdag.core.config.models import ShipDAGConfig
from shipdag.core.domain.models import Severity
from shipdag.core.exceptions import ConfigurationError, ValidationError

FULL_CONFIG = """
[repository]
registry = "ghcr.io"
namespace = "acme"
repository = "sample-app"

[pipeline]
coverage_threshold = 85
severity_threshold = "critical"
python_versions = ["3.12", "3.13"]
lint_command = "ruff check src"
max_concurrent_stages = 2

[change_requests]
repository = "acme/sample-app"
token = "${SHIPDAG_TEST_TOKEN}"

[logging]
level = "DEBUG"
format = "json"
"""


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch):
    for name in (
        "SHIPDAG_CONFIG_PATH",
        "SHIPDAG_LOG_LEVEL",
        "SHIPDAG_LOG_FORMAT",
        "SHIPDAG_LOG_FILE",
        "SHIPDAG_LOG_COLOR",
    ):
        monkeypatch.delenv(name, raising=False)
    clear_config_cache()
    yield
    clear_config_cache()


def _write(tmp_path: Path, name: str, content: str) -> Path:
    path = tmp_path / name
    path.write_text(content)
    return path


class TestLoadFromToml:
    def test_full_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SHIPDAG_TEST_TOKEN", "ghp_secret")
        config = load_config(_write(tmp_path, "shipdag.toml", FULL_CONFIG))

        assert config.repository.namespace == "acme"
        assert config.pipeline.coverage_threshold == 85
        assert config.pipeline.severity is Severity.CRITICAL
        assert config.pipeline.python_versions == ("3.12", "3.13")
        assert config.pipeline.lint_command == ("ruff", "check", "src")
        assert config.pipeline.max_concurrent_stages == 2
        assert config.change_requests.repository == "acme/sample-app"
        assert config.change_requests.token == "ghp_secret"
        assert config.logging.level == "DEBUG"
        assert config.logging.format == "json"

    def test_unset_variable_keeps_placeholder(self, tmp_path: Path) -> None:
        config = load_config(_write(tmp_path, "shipdag.toml", FULL_CONFIG))
        assert config.change_requests.token == "${SHIPDAG_TEST_TOKEN}"

    def test_pyproject_tool_table(self, tmp_path: Path) -> None:
        path = _write(
            tmp_path,
            "pyproject.toml",
            '[project]\nname = "x"\n\n[tool.shipdag.pipeline]\ncoverage_threshold = 70\n',
        )
        assert load_config(path).pipeline.coverage_threshold == 70

    def test_pyproject_without_table_uses_defaults(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "pyproject.toml", '[project]\nname = "x"\n')
        assert load_config(path) == ShipDAGConfig()

    def test_results_are_cached_until_cleared(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "shipdag.toml", "[pipeline]\ncoverage_threshold = 60\n")
        first = load_config(path)
        path.write_text("[pipeline]\ncoverage_threshold = 65\n")

        assert load_config(path) is first
        clear_config_cache()
        assert load_config(path).pipeline.coverage_threshold == 65

    def test_invalid_toml(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="invalid TOML"):
            load_config(_write(tmp_path, "shipdag.toml", "[pipeline\n"))

    def test_unknown_setting(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="unknown setting"):
            load_config(_write(tmp_path, "shipdag.toml", "[pipeline]\ncoverage = 1\n"))

    def test_section_must_be_table(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigurationError, match="expected a table"):
            load_config(_write(tmp_path, "shipdag.toml", 'pipeline = "fast"\n'))

    @pytest.mark.parametrize(
        "body",
        [
            "[pipeline]\ncoverage_threshold = 101\n",
            '[pipeline]\nseverity_threshold = "severe"\n',
            "[pipeline]\nmax_concurrent_stages = 0\n",
            "[pipeline]\npython_versions = []\n",
            "[pipeline]\npython_versions = 3\n",
            '[change_requests]\nrepository = "no-slash"\n',
            '[logging]\nlevel = "LOUD"\n',
        ],
    )
    def test_invalid_values(self, tmp_path: Path, body: str) -> None:
        with pytest.raises(ValidationError):
            load_config(_write(tmp_path, "shipdag.toml", body))

    def test_explicit_missing_path_raises(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "nope.toml")


class TestDiscovery:
    def test_defaults_when_nothing_found(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.chdir(tmp_path)
        assert load_config() == get_default_config()

    def test_finds_shipdag_toml(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        _write(tmp_path, "shipdag.toml", "[pipeline]\ncoverage_threshold = 50\n")
        monkeypatch.chdir(tmp_path)
        assert load_config().pipeline.coverage_threshold == 50

    def test_skips_pyproject_without_table(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        _write(tmp_path, "pyproject.toml", '[project]\nname = "x"\n')
        _write(tmp_path, ".shipdag.toml", "[pipeline]\ncoverage_threshold = 40\n")
        monkeypatch.chdir(tmp_path)
        assert load_config().pipeline.coverage_threshold == 40

    def test_config_path_env(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = _write(tmp_path, "custom.toml", "[pipeline]\ncoverage_threshold = 30\n")
        monkeypatch.setenv("SHIPDAG_CONFIG_PATH", str(path))
        monkeypatch.chdir(tmp_path)
        assert load_config().pipeline.coverage_threshold == 30


class TestLoggingOverrides:
    def test_env_overrides_file(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SHIPDAG_LOG_LEVEL", "warning")
        monkeypatch.setenv("SHIPDAG_LOG_FORMAT", "RICH")
        monkeypatch.setenv("SHIPDAG_LOG_COLOR", "off")

        config = ConfigLoader().from_dict({"logging": {"level": "DEBUG"}})

        assert config.logging.level == "WARNING"
        assert config.logging.format == "rich"
        assert config.logging.use_color is False

    def test_invalid_bool_is_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SHIPDAG_LOG_COLOR", "maybe")
        assert ConfigLoader().from_dict({}).logging.use_color is True

    @pytest.mark.parametrize(
        ("raw", "expected"), [("TRUE", True), (" yes ", True), ("0", False), ("disabled", False)]
    )
    def test_parse_bool_env(self, raw: str, expected: bool) -> None:
        assert _parse_bool_env(raw) is expected

    def test_parse_bool_env_rejects_garbage(self) -> None:
        with pytest.raises(ValueError, match="Invalid boolean value"):
            _parse_bool_env("maybe")
