"""YAML pipeline manifests -> DirectedGraph.

A manifest declares stages and their upstream edges; it is not a workflow
language (no conditionals, loops or expressions). ``${VAR}`` and
``${VAR:default}`` placeholders in string values are resolved from the
environment before validation.

Example manifest::

    apiVersion: shipdag/v1
    kind: Pipeline
    metadata:
      name: ci
    spec:
      stages:
        - name: lint
          kind: test
          params:
            command: ruff check .
        - name: coverage
          kind: coverage-check
          depends_on: [lint]
          params:
            threshold: 80
"""

from __future__ import annotations

import os
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Literal

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field

from shipdag.core.domain.dag import DirectedGraph, DirectedGraphError, StageSpec
from shipdag.core.domain.models import GatePolicy, StageKind
from shipdag.core.exceptions import ShipDAGError
from shipdag.core.logging import get_logger

logger = get_logger(__name__)

API_VERSION = "shipdag/v1"

_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(?::([^}]*))?\}")


class YamlPipelineBuilderError(ShipDAGError):
    """YAML pipeline building errors."""

    pass


# ============================================================================
# Manifest schema
# ============================================================================


class StageManifest(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str = Field(min_length=1)
    kind: StageKind
    depends_on: list[str] = Field(default_factory=list)
    policy: GatePolicy = GatePolicy.BLOCKING
    timeout: float | None = Field(default=None, gt=0)
    params: dict[str, Any] = Field(default_factory=dict)

    def to_spec(self) -> StageSpec:
        return StageSpec(
            name=self.name,
            kind=self.kind,
            deps=frozenset(self.depends_on),
            policy=self.policy,
            params=self.params,
            timeout=self.timeout,
        )


class PipelineMetadata(BaseModel):
    model_config = ConfigDict(extra="allow", frozen=True)

    name: str = Field(min_length=1)
    description: str = ""


class PipelineSpecBody(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    stages: list[StageManifest] = Field(min_length=1)


class PipelineManifest(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    api_version: Literal["shipdag/v1"] = Field(alias="apiVersion")
    kind: Literal["Pipeline"]
    metadata: PipelineMetadata
    spec: PipelineSpecBody


# ============================================================================
# Builder
# ============================================================================


def _substitute_env(value: Any) -> Any:
    if isinstance(value, str):

        def replacer(match: re.Match[str]) -> str:
            name, default = match.group(1), match.group(2)
            resolved = os.environ.get(name, default)
            if resolved is None:
                logger.debug(f"Environment variable ${{{name}}} not set, keeping placeholder")
                return match.group(0)
            return resolved

        return _ENV_PATTERN.sub(replacer, value)
    if isinstance(value, dict):
        return {k: _substitute_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_substitute_env(v) for v in value]
    return value


@lru_cache(maxsize=32)
def _parse_yaml_cached(yaml_content: str) -> Any:
    return yaml.safe_load(yaml_content)


def parse_manifest(yaml_content: str) -> PipelineManifest:
    """Parse and validate a manifest document.

    Raises
    ------
    YamlPipelineBuilderError
        On YAML syntax errors or schema violations
    """
    try:
        raw = _parse_yaml_cached(yaml_content)
    except yaml.YAMLError as e:
        raise YamlPipelineBuilderError(f"Invalid YAML: {e}") from e

    if not isinstance(raw, dict):
        raise YamlPipelineBuilderError(
            f"YAML document must be a dictionary, got {type(raw).__name__}"
        )
    if raw.get("apiVersion") != API_VERSION or raw.get("kind") != "Pipeline":
        raise YamlPipelineBuilderError(
            "YAML must use the manifest format. Example:\n"
            f"apiVersion: {API_VERSION}\n"
            "kind: Pipeline\n"
            "metadata:\n"
            "  name: ci\n"
            "spec:\n"
            "  stages: [...]"
        )

    try:
        return PipelineManifest.model_validate(_substitute_env(raw))
    except pydantic.ValidationError as e:
        errors = "\n".join(
            f"  ERROR: {'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise YamlPipelineBuilderError(f"YAML validation failed:\n{errors}") from e


def build_from_yaml_string(yaml_content: str) -> DirectedGraph:
    """Build and validate a DirectedGraph from manifest text."""
    manifest = parse_manifest(yaml_content)
    try:
        graph = DirectedGraph(
            (stage.to_spec() for stage in manifest.spec.stages), name=manifest.metadata.name
        )
        graph.validate()
    except DirectedGraphError as e:
        raise YamlPipelineBuilderError(f"Invalid pipeline '{manifest.metadata.name}': {e}") from e

    logger.info(
        "Built pipeline '{name}' with {stages} stages",
        name=graph.name,
        stages=len(graph),
    )
    return graph


def load_pipeline_yaml(path: str | Path) -> DirectedGraph:
    """Load a pipeline manifest from a file."""
    yaml_file = Path(path)
    try:
        content = yaml_file.read_text(encoding="utf-8")
    except OSError as e:
        raise YamlPipelineBuilderError(f"Cannot read pipeline file {yaml_file}: {e}") from e
    return build_from_yaml_string(content)
