"""Shared context objects for the SkillGraph pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from skill_store import SkillGraphAdapter
from skillgraph.core.config import PipelineConfig
from skillgraph.core.dspy_runtime import DSPyModelHandles
from skillgraph.core.provenance import ProvenanceLogger


class PipelinePaths(BaseModel):
    """Canonical directories used during a pipeline run."""

    repo_root: Path
    output_dir: Path
    artifacts_dir: Path
    logs_dir: Path

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @field_validator("repo_root", "output_dir", "artifacts_dir", "logs_dir", mode="before")
    @classmethod
    def _expand(cls, value: Path | str) -> Path:
        return Path(value).expanduser().resolve()

    def ensure_directories(self) -> None:
        """Create directories if they do not yet exist."""
        for path in (self.output_dir, self.artifacts_dir, self.logs_dir):
            path.mkdir(parents=True, exist_ok=True)


class PipelineContext(BaseModel):
    """Aggregated runtime context for the CLI, API app, and runner."""

    config: PipelineConfig
    paths: PipelinePaths
    env: Dict[str, str] = Field(default_factory=dict)
    provenance: ProvenanceLogger
    dspy_handles: Optional[DSPyModelHandles] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    def adapter(self) -> SkillGraphAdapter:
        return SkillGraphAdapter(self.config.store.sqlite_path)
