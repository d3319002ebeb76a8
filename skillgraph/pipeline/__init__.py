"""Pipeline bootstrap utilities for SkillGraph."""

from __future__ import annotations

from .bootstrap import bootstrap_pipeline
from .context import PipelineContext, PipelinePaths
from .runtime import PipelineComponents, PipelineRunArtifacts, build_components, run_pipeline

__all__ = [
    "PipelineComponents",
    "PipelineContext",
    "PipelinePaths",
    "PipelineRunArtifacts",
    "bootstrap_pipeline",
    "build_components",
    "run_pipeline",
]
