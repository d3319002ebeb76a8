"""Wire DSPy programs to the store and run the document-to-curriculum pipeline end to end."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Sequence

from numpy.typing import ArrayLike

from apps.activities.registry import GradeProgram, build_grade_program
from apps.curriculum import service
from apps.curriculum.document_to_dag import DocumentToDag
from apps.curriculum.programs import CurriculumPrograms, build_curriculum_programs
from skillgraph.core.provenance import ProvenanceEvent

from .context import PipelineContext

LOGGER = logging.getLogger(__name__)

EmbedFn = Callable[[Sequence[str]], ArrayLike]


@dataclass
class PipelineComponents:
    """LLM-facing collaborators resolved from a context (or injected by tests)."""

    programs: CurriculumPrograms
    embed: EmbedFn
    grade_program: GradeProgram | None = None

    def dag_builder(self, ctx: PipelineContext, *, skill_id: str | None = None) -> DocumentToDag:
        return DocumentToDag(
            self.programs,
            self.embed,
            config=ctx.config.dag,
            provenance=ctx.provenance.bind(skill_id=skill_id),
        )


def build_components(ctx: PipelineContext) -> PipelineComponents:
    handles = ctx.dspy_handles
    if handles is None:
        raise RuntimeError("DSPy models are not configured; bootstrap with configure_models=True")
    return PipelineComponents(
        programs=build_curriculum_programs(lm=handles.generator),
        embed=handles.embed,
        grade_program=build_grade_program(lm=handles.grader),
    )


@dataclass
class PipelineRunArtifacts:
    document_id: str
    skill_id: str
    lesson_ids: List[str]
    modules: List[Dict[str, Any]]
    manifest_path: Path
    provenance_path: Path
    stats: Dict[str, Any] = field(default_factory=dict)


def _log(ctx: PipelineContext, stage: str, message: str, **payload: Any) -> None:
    ctx.provenance.log(ProvenanceEvent(stage=stage, message=message, agent="skillgraph.runtime", payload=payload))


def run_pipeline(
    ctx: PipelineContext,
    document_path: Path,
    *,
    user_input: str | None = None,
    components: PipelineComponents | None = None,
) -> PipelineRunArtifacts:
    """Ingest a text document, suggest a root skill, build its DAG, then its modules."""

    components = components or build_components(ctx)
    adapter = ctx.adapter()
    content = document_path.read_text(encoding="utf-8")

    document = service.ingest_document(
        adapter,
        content,
        file_name=document_path.name,
        metadata={"source_path": str(document_path)},
        chunking=ctx.config.chunking,
    )
    _log(ctx, "ingest", f"Stored {document_path.name}", document_id=document["id"], chunks=document["chunk_count"])

    suggestion = service.suggest_partial_skill(
        adapter,
        components.programs,
        user_input=user_input,
        document_ids=[document["id"]],
        max_doc_tokens=ctx.config.api.suggest_max_doc_tokens,
    )
    skill_id = suggestion["skill_id"]
    _log(ctx, "suggest", f"Suggested skill {suggestion['skill_name']}", skill_id=skill_id)

    lesson_ids = service.generate_root_dag(adapter, components.dag_builder(ctx, skill_id=skill_id), skill_id)
    _log(ctx, "root_dag", "Root DAG generated", skill_id=skill_id, lessons=len(lesson_ids))

    modules = service.generate_skill_modules(
        adapter,
        components.programs,
        skill_id,
        config=ctx.config.course_structure,
        batch_size=ctx.config.api.batch_size,
    )["modules"]
    _log(ctx, "modules", "Skill modules generated", skill_id=skill_id, modules=len(modules))

    graph = service.fetch_skill_graph(adapter, skill_id, batch_size=ctx.config.api.batch_size)
    stats = {
        "objectives": sum(1 for node in graph["nodes"] if node["skill_type"] == service.OBJECTIVE_SKILL_TYPE),
        "lessons": len(lesson_ids),
        "links": len(graph["links"]),
        "modules": len(modules),
    }
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d-%H%M%S")
    manifest_path = ctx.paths.artifacts_dir / f"run-{timestamp}-manifest.json"
    manifest = {
        "created_at": datetime.now(timezone.utc).isoformat(),
        "document": document,
        "skill": suggestion,
        "lesson_ids": lesson_ids,
        "modules": modules,
        "stats": stats,
        "store": str(ctx.config.store.sqlite_path),
        "env": ctx.env,
    }
    manifest_path.write_text(json.dumps(manifest, indent=2, ensure_ascii=False), encoding="utf-8")
    LOGGER.info("Pipeline run complete: %s", manifest_path)

    return PipelineRunArtifacts(
        document_id=document["id"],
        skill_id=skill_id,
        lesson_ids=lesson_ids,
        modules=modules,
        manifest_path=manifest_path,
        provenance_path=ctx.provenance.output_path,
        stats=stats,
    )


__all__ = ["PipelineComponents", "PipelineRunArtifacts", "build_components", "run_pipeline"]
