"""Bootstrap helpers for the SkillGraph pipeline."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict

from dotenv import load_dotenv

from skillgraph.core.config import PipelineConfig, load_pipeline_config
from skillgraph.core.dspy_runtime import DSPyConfigurationError, configure_dspy_models
from skillgraph.core.provenance import ProvenanceEvent, ProvenanceLogger

from .context import PipelineContext, PipelinePaths

DEFAULT_CONFIG_PATH = Path("config/pipeline.yaml")
DEFAULT_OUTPUT_DIR = Path("outputs")
LOGGER = logging.getLogger(__name__)


def _capture_env(keys: tuple[str, ...]) -> Dict[str, str]:
    """Return a snapshot of which environment variables are set, with secrets masked."""
    snapshot: Dict[str, str] = {}
    for key in keys:
        value = os.getenv(key)
        if value is not None:
            snapshot[key] = "***" if "KEY" in key else value
    return snapshot


def bootstrap_pipeline(
    config_path: Path | None = None,
    *,
    repo_root: Path | None = None,
    output_dir: Path | None = None,
    store_override: Path | None = None,
    configure_models: bool = True,
    env_keys: tuple[str, ...] = (
        "OPENAI_API_KEY",
        "OPENAI_API_KEY_GENERATOR",
        "OPENAI_API_KEY_GRADER",
        "OPENAI_API_BASE",
    ),
) -> PipelineContext:
    """
    Load configuration, environment variables, and construct the pipeline context.

    Parameters
    ----------
    config_path:
        Path to the pipeline YAML. Defaults to ``config/pipeline.yaml``; when
        the file does not exist the built-in defaults are used.
    repo_root:
        Root of the repository. Defaults to ``Path.cwd()``.
    output_dir:
        Directory for artifacts and logs. Defaults to ``repo_root / 'outputs'``.
    store_override:
        Optional SQLite path that replaces ``store.sqlite_path``.
    configure_models:
        Build the DSPy LMs and embedder. Disable for store-only commands.
    """

    repo_root = (repo_root or Path.cwd()).resolve()
    load_dotenv(repo_root / ".env")
    config_path = (config_path or repo_root / DEFAULT_CONFIG_PATH).expanduser().resolve()
    output_dir = (output_dir or (repo_root / DEFAULT_OUTPUT_DIR)).resolve()

    if config_path.exists():
        config = load_pipeline_config(config_path, base_dir=repo_root)
    else:
        LOGGER.info("Pipeline config %s not found; using defaults.", config_path)
        config = PipelineConfig.model_validate({"store": {"sqlite_path": str(output_dir / "skillgraph.sqlite")}})

    if store_override is not None:
        store_cfg = config.store.model_copy(update={"sqlite_path": store_override.expanduser().resolve()})
        config = config.model_copy(update={"store": store_cfg})

    paths = PipelinePaths(
        repo_root=repo_root,
        output_dir=output_dir,
        artifacts_dir=output_dir / "artifacts",
        logs_dir=output_dir / "logs",
    )
    paths.ensure_directories()
    ctx = PipelineContext(
        config=config,
        paths=paths,
        env=_capture_env(env_keys),
        provenance=ProvenanceLogger(paths.logs_dir / "provenance.jsonl"),
    )

    if configure_models:
        try:
            ctx.dspy_handles = configure_dspy_models(config.models)
        except DSPyConfigurationError as exc:
            raise RuntimeError("Unable to configure DSPy/OpenAI models") from exc
        ctx.provenance.log(
            ProvenanceEvent(
                stage="bootstrap",
                message="DSPy models configured",
                agent="skillgraph.pipeline",
                payload={
                    "generator_model": config.models.generator_model,
                    "grader_model": config.models.grader_model,
                    "embedding_model": config.models.embedding.model,
                },
            )
        )
    return ctx


__all__ = ["DEFAULT_CONFIG_PATH", "bootstrap_pipeline"]
