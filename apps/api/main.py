from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Iterator, List

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from apps.activities import submission
from apps.activities.registry import ActivityType, GradeProgram, build_grade_program
from apps.activities.submission import GradeProgramProvider
from apps.curriculum import service
from skill_store import SkillGraphAdapter
from skillgraph.core.config import merge_dag_overrides
from skillgraph.core.dspy_runtime import DSPyConfigurationError, configure_dspy_models
from skillgraph.core.errors import ActivityError, CurriculumError, EmptyDocumentError
from skillgraph.pipeline.bootstrap import bootstrap_pipeline
from skillgraph.pipeline.context import PipelineContext
from skillgraph.pipeline.runtime import PipelineComponents, build_components

LOGGER = logging.getLogger(__name__)


@lru_cache
def get_context() -> PipelineContext:
    config_path = os.getenv("SKILLGRAPH_CONFIG")
    repo_root = os.getenv("SKILLGRAPH_REPO_ROOT")
    return bootstrap_pipeline(
        Path(config_path) if config_path else None,
        repo_root=Path(repo_root) if repo_root else None,
        configure_models=False,
    )


def get_adapter(ctx: PipelineContext = Depends(get_context)) -> SkillGraphAdapter:
    return ctx.adapter()


@lru_cache
def _default_components() -> PipelineComponents:
    ctx = get_context()
    if ctx.dspy_handles is None:
        ctx.dspy_handles = configure_dspy_models(ctx.config.models)
    return build_components(ctx)


def get_components() -> PipelineComponents:
    return _default_components()


def get_grade_program_provider(ctx: PipelineContext = Depends(get_context)) -> GradeProgramProvider:
    """Defer building the grading LM until an LLM-graded answer arrives."""

    def _provide() -> GradeProgram | None:
        if ctx.dspy_handles is None:
            try:
                ctx.dspy_handles = configure_dspy_models(ctx.config.models)
            except DSPyConfigurationError as exc:
                LOGGER.warning("Grading model unavailable: %s", exc)
                return None
        return build_grade_program(lm=ctx.dspy_handles.grader)

    return _provide


@contextmanager
def translate_errors() -> Iterator[None]:
    """Map domain exceptions onto HTTP status codes."""

    try:
        yield
    except HTTPException:
        raise
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except (EmptyDocumentError, ActivityError, ValueError) as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except CurriculumError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    except Exception as exc:
        LOGGER.exception("Unhandled pipeline failure")
        raise HTTPException(status_code=500, detail=str(exc)) from exc


class HealthResponse(BaseModel):
    status: str
    store_path: str


class DocumentRequest(BaseModel):
    content: str
    file_name: str | None = None
    metadata: Dict[str, Any] = Field(default_factory=dict)


class DocumentResponse(BaseModel):
    id: str
    file_name: str | None = None
    chunk_count: int


class SuggestPartialSkillRequest(BaseModel):
    user_input: str | None = None
    document_ids: List[str] = Field(default_factory=list)
    user_level: str | None = None
    user_id: str | None = None


class SuggestPartialSkillResponse(BaseModel):
    skill_id: str
    partial_skill_id: str
    skill_name: str
    description: str | None = None
    emoji: str | None = None
    level: str | None = None
    goals: List[str] = Field(default_factory=list)


class GenerateRootDagRequest(BaseModel):
    skill_id: str
    threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    max_cluster_size: int | None = Field(default=None, ge=1)
    threshold_increment: float | None = Field(default=None, gt=0.0, le=1.0)


class GenerateRootDagResponse(BaseModel):
    skill_id: str
    lesson_skill_ids: List[str]


class GenerateSkillModulesRequest(BaseModel):
    skill_id: str


class CreateActivityRequest(BaseModel):
    activity_type: ActivityType
    type_config: Dict[str, Any]
    skill_id: str | None = None


class SubmitActivityRequest(BaseModel):
    activity_id: str
    user_answer: Any = None
    skipped: bool = False
    user_id: str | None = None
    lesson_session_id: str | None = None


app = FastAPI(title="SkillGraph API", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health", response_model=HealthResponse)
def health(ctx: PipelineContext = Depends(get_context)) -> HealthResponse:
    return HealthResponse(status="ok", store_path=str(ctx.config.store.sqlite_path))


@app.post("/documents", response_model=DocumentResponse)
def create_document(
    request: DocumentRequest,
    ctx: PipelineContext = Depends(get_context),
    adapter: SkillGraphAdapter = Depends(get_adapter),
) -> DocumentResponse:
    with translate_errors():
        document = service.ingest_document(
            adapter,
            request.content,
            file_name=request.file_name,
            metadata=request.metadata,
            chunking=ctx.config.chunking,
        )
    return DocumentResponse(**document)


@app.post("/skills/suggest_partial_skill", response_model=SuggestPartialSkillResponse)
def suggest_partial_skill(
    request: SuggestPartialSkillRequest,
    ctx: PipelineContext = Depends(get_context),
    adapter: SkillGraphAdapter = Depends(get_adapter),
    components: PipelineComponents = Depends(get_components),
) -> SuggestPartialSkillResponse:
    with translate_errors():
        result = service.suggest_partial_skill(
            adapter,
            components.programs,
            user_input=request.user_input,
            document_ids=request.document_ids,
            user_level=request.user_level,
            created_by=request.user_id,
            max_doc_tokens=ctx.config.api.suggest_max_doc_tokens,
        )
    return SuggestPartialSkillResponse(**result)


@app.post("/skills/generate_root_dag", response_model=GenerateRootDagResponse)
def generate_root_dag(
    request: GenerateRootDagRequest,
    ctx: PipelineContext = Depends(get_context),
    adapter: SkillGraphAdapter = Depends(get_adapter),
    components: PipelineComponents = Depends(get_components),
) -> GenerateRootDagResponse:
    with translate_errors():
        dag_config = merge_dag_overrides(
            ctx.config.dag,
            {
                "threshold": request.threshold,
                "max_cluster_size": request.max_cluster_size,
                "threshold_increment": request.threshold_increment,
            },
        )
        builder = components.dag_builder(ctx, skill_id=request.skill_id)
        builder.config = dag_config
        lesson_ids = service.generate_root_dag(adapter, builder, request.skill_id)
    return GenerateRootDagResponse(skill_id=request.skill_id, lesson_skill_ids=lesson_ids)


@app.post("/skills/generate_skill_modules")
def generate_skill_modules(
    request: GenerateSkillModulesRequest,
    ctx: PipelineContext = Depends(get_context),
    adapter: SkillGraphAdapter = Depends(get_adapter),
    components: PipelineComponents = Depends(get_components),
) -> Dict[str, Any]:
    with translate_errors():
        return service.generate_skill_modules(
            adapter,
            components.programs,
            request.skill_id,
            config=ctx.config.course_structure,
            batch_size=ctx.config.api.batch_size,
        )


@app.get("/skills/{skill_id}")
def get_skill(skill_id: str, adapter: SkillGraphAdapter = Depends(get_adapter)) -> Dict[str, Any]:
    skill = adapter.get_skill(skill_id)
    if skill is None:
        raise HTTPException(status_code=404, detail=f"Skill not found: {skill_id}")
    return skill


@app.get("/skills/{skill_id}/graph")
def get_skill_graph(
    skill_id: str,
    ctx: PipelineContext = Depends(get_context),
    adapter: SkillGraphAdapter = Depends(get_adapter),
) -> Dict[str, Any]:
    with translate_errors():
        return service.fetch_skill_graph(adapter, skill_id, batch_size=ctx.config.api.batch_size)


@app.post("/activities")
def create_activity(
    request: CreateActivityRequest,
    adapter: SkillGraphAdapter = Depends(get_adapter),
) -> Dict[str, Any]:
    with translate_errors():
        return submission.create_activity(
            adapter,
            activity_type=request.activity_type,
            type_config=request.type_config,
            skill_id=request.skill_id,
        )


@app.post("/activity/submit")
def submit_activity(
    request: SubmitActivityRequest,
    adapter: SkillGraphAdapter = Depends(get_adapter),
    grade_program_provider: GradeProgramProvider = Depends(get_grade_program_provider),
) -> Dict[str, Any]:
    with translate_errors():
        return submission.submit_activity(
            adapter,
            request.activity_id,
            user_answer=request.user_answer,
            skipped=request.skipped,
            user_id=request.user_id,
            lesson_session_id=request.lesson_session_id,
            grade_program_provider=grade_program_provider,
        )


@app.exception_handler(HTTPException)
async def http_error_handler(_: Any, exc: HTTPException) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.detail})
