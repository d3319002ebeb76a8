"""
Typed configuration helpers for the SkillGraph pipeline.

Every tunable of the document-to-curriculum flow lives here so the CLI, the
API app, and tests share one source of defaults. Values are loaded from YAML
and validated with pydantic.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Literal

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)


class RoleModelConfig(BaseModel):
    """Provider-specific configuration for a single LM role."""

    model_config = ConfigDict(extra="allow")

    provider: Literal["openai"] = "openai"
    model: str
    temperature: float | None = Field(default=None, ge=0.0, le=2.0)
    max_tokens: int | None = Field(default=None, ge=64)
    api_key_env: str | None = None
    api_base: str | None = None
    api_base_env: str | None = None

    @property
    def extra_kwargs(self) -> Dict[str, Any]:
        return getattr(self, "model_extra", None) or {}


class EmbeddingConfig(BaseModel):
    """Embedding model used for objective similarity."""

    model: str = "openai/text-embedding-3-small"
    batch_size: int = Field(default=200, ge=1)
    caching: bool = True
    api_key_env: str | None = None


class ModelConfig(BaseModel):
    """LLM defaults for the generator (curriculum) and grader (activities) roles."""

    model_config = ConfigDict(extra="ignore")

    generator: RoleModelConfig = Field(default_factory=lambda: RoleModelConfig(model="gpt-4o-mini"))
    grader: RoleModelConfig = Field(default_factory=lambda: RoleModelConfig(model="gpt-4o-mini"))
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    default_temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    default_max_tokens: int = Field(default=16000, ge=256)

    @model_validator(mode="before")
    @classmethod
    def coerce_flat_format(cls, data: Any) -> Any:
        if data is None or isinstance(data, ModelConfig):
            return data
        if not isinstance(data, dict):
            return data

        payload = dict(data)
        # Accept `generator_model: gpt-4o` style shorthands.
        for role in ("generator", "grader"):
            flat_key = f"{role}_model"
            if flat_key in payload and role not in payload:
                payload[role] = {"provider": "openai", "model": payload.pop(flat_key)}
        if "embedding_model" in payload and "embedding" not in payload:
            payload["embedding"] = {"model": payload.pop("embedding_model")}
        if "temperature" in payload:
            payload.setdefault("default_temperature", payload.pop("temperature"))
        if "max_tokens" in payload:
            payload.setdefault("default_max_tokens", payload.pop("max_tokens"))
        return payload

    @property
    def generator_model(self) -> str:
        return self.generator.model

    @property
    def grader_model(self) -> str:
        return self.grader.model

    def get_role(self, role: Literal["generator", "grader"]) -> RoleModelConfig:
        return getattr(self, role)


class StoreConfig(BaseModel):
    """Location of the SQLite skill graph store."""

    sqlite_path: Path = Field(default=Path("outputs/skillgraph.sqlite"))

    @field_validator("sqlite_path", mode="before")
    @classmethod
    def coerce_path(cls, value: Any) -> Path:
        return Path(value).expanduser().resolve()


class ChunkingConfig(BaseModel):
    """Sliding-window chunking of uploaded documents."""

    chunk_size: int = Field(default=2000, ge=1)
    overlap: int = Field(default=200, ge=0)

    @model_validator(mode="after")
    def overlap_smaller_than_chunk(self) -> "ChunkingConfig":
        if self.overlap >= self.chunk_size:
            raise ValueError("chunking.overlap must be smaller than chunking.chunk_size")
        return self


class DagConfig(BaseModel):
    """Knobs for DocumentToDag clustering and prompting."""

    threshold: float = Field(default=0.6, ge=0.0, le=1.0)
    max_cluster_size: int = Field(default=20, ge=1)
    threshold_increment: float = Field(default=0.05, gt=0.0, le=1.0)
    lesson_threshold: float = Field(default=0.4, ge=0.0, le=1.0)
    lesson_max_cluster_size: int = Field(default=5, ge=1)
    lesson_threshold_increment: float = Field(default=0.02, gt=0.0, le=1.0)
    lesson_max_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    max_prerequisites: int = Field(default=5, ge=0)
    max_cycle_passes: int = Field(default=5, ge=1)
    token_limit: int = Field(default=100000, ge=1000)
    max_workers: int = Field(default=8, ge=1)


class CourseStructureConfig(BaseModel):
    """Knobs for grouping lessons into modules and submodules."""

    chunk_size: int = Field(default=20, ge=1)
    max_submodule_size: int = Field(default=7, ge=1)
    max_extra_iterations: int = Field(default=5, ge=0)


class ApiConfig(BaseModel):
    """Settings consumed by the FastAPI route handlers."""

    batch_size: int = Field(default=25, ge=1)
    suggest_max_doc_tokens: int = Field(default=10000, ge=100)


class PipelineConfig(BaseModel):
    """Top-level configuration for the curriculum pipeline."""

    models: ModelConfig = Field(default_factory=ModelConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    dag: DagConfig = Field(default_factory=DagConfig)
    course_structure: CourseStructureConfig = Field(default_factory=CourseStructureConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)


def read_yaml_file(path: Path) -> Dict[str, Any]:
    """Load a YAML file and return a dictionary."""
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Expected mapping at root of {path}, received {type(data)}")
    return data


def _resolve_config_path(value: Any, base_dir: Path) -> str:
    path = Path(value).expanduser()
    if not path.is_absolute():
        path = (base_dir / path).resolve()
    else:
        path = path.resolve()
    return str(path)


def _absolutize_pipeline_paths(data: Dict[str, Any], base_dir: Path) -> None:
    store = data.get("store")
    if isinstance(store, dict) and store.get("sqlite_path"):
        store["sqlite_path"] = _resolve_config_path(store["sqlite_path"], base_dir)


def load_pipeline_config(path: Path, *, base_dir: Path | None = None) -> PipelineConfig:
    """Load the pipeline config used by the CLI and API app."""
    path = path.expanduser().resolve()
    data = read_yaml_file(path)
    _absolutize_pipeline_paths(data, base_dir=(base_dir or path.parent).resolve())
    try:
        return PipelineConfig.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid pipeline config in {path}") from exc


def merge_dag_overrides(base: DagConfig, overrides: Dict[str, Any]) -> DagConfig:
    """Return a new DagConfig with non-null overrides applied (CLI/API knobs)."""
    payload = base.model_dump()
    payload.update({key: value for key, value in overrides.items() if value is not None})
    try:
        return DagConfig.model_validate(payload)
    except ValidationError as exc:
        raise ValueError("Invalid overrides for DagConfig") from exc
