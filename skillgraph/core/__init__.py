"""
Foundational configuration, error, and logging utilities for SkillGraph.

Higher-level modules (pipeline runner, API app, CLI) depend on these without
needing DSPy programs to be importable.
"""

from .config import (
    ChunkingConfig,
    CourseStructureConfig,
    DagConfig,
    ModelConfig,
    PipelineConfig,
    StoreConfig,
    load_pipeline_config,
)
from .errors import (
    ActivityError,
    ActivityNotFoundError,
    CourseStructureError,
    CurriculumError,
    DocumentNotFoundError,
    EmptyDocumentError,
    SkillNotFoundError,
)
from .provenance import ProvenanceEvent, ProvenanceLogger

__all__ = [
    "ActivityError",
    "ActivityNotFoundError",
    "ChunkingConfig",
    "CourseStructureConfig",
    "CourseStructureError",
    "CurriculumError",
    "DagConfig",
    "DocumentNotFoundError",
    "EmptyDocumentError",
    "ModelConfig",
    "PipelineConfig",
    "ProvenanceEvent",
    "ProvenanceLogger",
    "SkillNotFoundError",
    "StoreConfig",
    "load_pipeline_config",
]
