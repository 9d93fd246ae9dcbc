"""Pipeline definitions from YAML manifests."""

from shipdag.core.pipeline_builder.yaml_builder import (
    PipelineManifest,
    YamlPipelineBuilderError,
    build_from_yaml_string,
    load_pipeline_yaml,
    parse_manifest,
)

__all__ = [
    "PipelineManifest",
    "YamlPipelineBuilderError",
    "build_from_yaml_string",
    "load_pipeline_yaml",
    "parse_manifest",
]
