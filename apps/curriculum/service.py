"""Store-backed operations shared by the API routes and the CLI."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

from skill_store import LinkType, ProcessingState, SkillGraphAdapter
from skill_store.chunking import fit_to_token_budget
from skillgraph.core.config import ChunkingConfig, CourseStructureConfig
from skillgraph.core.errors import (
    CurriculumError,
    DocumentNotFoundError,
    EmptyDocumentError,
    SkillNotFoundError,
)

from .course_structure import generate_course_structure
from .document_to_dag import DocumentToDag
from .models import CourseLesson, DagResult
from .programs import CurriculumPrograms

LOGGER = logging.getLogger(__name__)

ROOT_SKILL_TYPE = "root"
LESSON_SKILL_TYPE = "lesson"
OBJECTIVE_SKILL_TYPE = "learning_objective"


def _require_skill(adapter: SkillGraphAdapter, skill_id: str) -> Dict[str, Any]:
    skill = adapter.get_skill(skill_id)
    if skill is None:
        raise SkillNotFoundError(f"Skill not found: {skill_id}")
    return skill


# ----------------------------------------------------------------------
# Documents & suggestions


def ingest_document(
    adapter: SkillGraphAdapter,
    content: str,
    *,
    file_name: str | None = None,
    metadata: Dict[str, Any] | None = None,
    chunking: ChunkingConfig | None = None,
) -> Dict[str, Any]:
    if not content or not content.strip():
        raise EmptyDocumentError("Document content is empty")
    cfg = chunking or ChunkingConfig()
    document = adapter.add_document(
        content,
        file_name=file_name,
        metadata=metadata,
        chunk_size=cfg.chunk_size,
        overlap=cfg.overlap,
    )
    LOGGER.info("Stored document %s (%d chunks)", document["id"], document["chunk_count"])
    return document


def suggest_partial_skill(
    adapter: SkillGraphAdapter,
    programs: CurriculumPrograms,
    *,
    user_input: str | None = None,
    document_ids: Sequence[str] | None = None,
    user_level: str | None = None,
    created_by: str | None = None,
    max_doc_tokens: int = 10000,
) -> Dict[str, Any]:
    """Create a root skill and partial-skill record from a request and/or documents."""

    text = (user_input or "").strip()
    doc_ids = [doc_id for doc_id in document_ids or [] if doc_id]
    if not text and not doc_ids:
        raise ValueError("No user input provided and no documents provided")

    excerpt = ""
    if doc_ids:
        chunks, documents = adapter.get_all_chunks(doc_ids)
        missing = [doc_id for doc_id in doc_ids if doc_id not in documents]
        if missing:
            raise DocumentNotFoundError(f"Document not found: {', '.join(missing)}")
        usable = [chunk for chunk in chunks if chunk.content.strip()]
        excerpt = "\n\n".join(chunk.content for chunk in fit_to_token_budget(usable, max_doc_tokens))

    enhanced = f"Based on these documents, I want to learn about: {text}" if text and doc_ids else text
    prediction = programs.suggest_skill(user_input=enhanced, document_excerpt=excerpt)
    goals = [str(goal).strip() for goal in prediction.goals or [] if str(goal).strip()]
    level = user_level or getattr(prediction, "level", None)

    skill = adapter.create_skill(
        name=str(prediction.skill_name),
        description=str(prediction.description).strip(),
        emoji=str(prediction.emoji).strip(),
        skill_type=ROOT_SKILL_TYPE,
        metadata={"level": level, "learningObjectives": goals},
    )
    partial_skill_id = adapter.create_partial_skill(
        skill_id=skill["id"],
        skill_name=skill["name"],
        skill_description=skill["description"],
        emoji=skill["emoji"],
        user_input=text,
        user_level=level,
        goals=goals,
        pages=doc_ids,
        created_by=created_by,
    )
    if doc_ids:
        adapter.create_resource(parent_skill_id=skill["id"], document_id=doc_ids[0])
    LOGGER.info("Suggested skill %s (%s)", skill["id"], skill["name"])
    return {
        "skill_id": skill["id"],
        "partial_skill_id": partial_skill_id,
        "skill_name": skill["name"],
        "description": skill["description"],
        "emoji": skill["emoji"],
        "level": level,
        "goals": goals,
    }


# ----------------------------------------------------------------------
# Root DAG


def build_skill_summary(skill: Dict[str, Any]) -> str:
    parts = []
    if skill.get("description"):
        parts.append(str(skill["description"]).strip())
    objectives = (skill.get("metadata") or {}).get("learningObjectives") or []
    if objectives:
        parts.append("Learning objectives:\n" + "\n".join(f"- {item}" for item in objectives))
    return "\n\n".join(parts)


def persist_dag(adapter: SkillGraphAdapter, root_skill_id: str, result: DagResult) -> List[str]:
    """Write references, objectives, lessons, and links; return lesson skill ids."""

    reference_ids = adapter.insert_references(
        (ref.sentence, ref.is_exact_match, ref.source_chunk_id, ref.source_document_id)
        for objective in result.objectives
        for ref in objective.references
    )

    def _refs(objective) -> List[str]:
        return list(dict.fromkeys(reference_ids[(ref.sentence, ref.source_chunk_id)] for ref in objective.references))

    objective_skill_ids = adapter.insert_skills(
        [
            {
                "name": objective.text,
                "skill_type": OBJECTIVE_SKILL_TYPE,
                "root_skill_id": root_skill_id,
                "metadata": {"allSubObjectives": objective.all_sub_objectives, "objectiveIds": objective.ids},
                "reference_ids": _refs(objective),
                "chunk_ids": objective.chunk_ids,
            }
            for objective in result.objectives
        ]
    )
    skill_id_of = {id(objective): skill_id for objective, skill_id in zip(result.objectives, objective_skill_ids)}

    lesson_skill_ids = adapter.insert_skills(
        [
            {
                "name": lesson.lesson_name,
                "skill_type": LESSON_SKILL_TYPE,
                "root_skill_id": root_skill_id,
                "metadata": {"expected_duration_minutes": lesson.expected_duration_minutes},
                "reference_ids": list(
                    dict.fromkeys(ref_id for objective in lesson.cluster for ref_id in _refs(objective))
                ),
                "chunk_ids": lesson.chunk_ids,
            }
            for lesson in result.lessons
        ]
    )
    lesson_id_of = {lesson.lesson_name: skill_id for lesson, skill_id in zip(result.lessons, lesson_skill_ids)}

    links = []
    required = {name for lesson in result.lessons for name in lesson.prerequisites}
    for lesson, lesson_id in zip(result.lessons, lesson_skill_ids):
        for objective in lesson.cluster:
            if id(objective) in skill_id_of:
                links.append((skill_id_of[id(objective)], lesson_id, LinkType.LESSON_OBJECTIVE))
        for name in lesson.prerequisites:
            if name in lesson_id_of:
                links.append((lesson_id_of[name], lesson_id, LinkType.LESSON_LINK))
        if lesson.lesson_name not in required:
            links.append((lesson_id, root_skill_id, LinkType.LESSON_ROOT_SKILL))
    inserted = adapter.insert_links(links)
    LOGGER.info(
        "Persisted DAG for %s: %d objectives, %d lessons, %d links",
        root_skill_id,
        len(objective_skill_ids),
        len(lesson_skill_ids),
        inserted,
    )
    return lesson_skill_ids


def generate_root_dag(
    adapter: SkillGraphAdapter,
    dag_builder: DocumentToDag,
    skill_id: str,
    *,
    threshold: float | None = None,
    max_cluster_size: int | None = None,
    threshold_increment: float | None = None,
) -> List[str]:
    skill = _require_skill(adapter, skill_id)
    adapter.set_processing_state(skill_id, ProcessingState.CREATING_DAG)
    try:
        resources = adapter.list_resources(skill_id)
        if not resources:
            raise DocumentNotFoundError(f"No document resource found for skill {skill_id}")
        document_id = resources[0]["child_document_id"]

        summary = build_skill_summary(skill)
        if not summary:
            chunks, _ = adapter.get_all_chunks([document_id])
            summary = dag_builder.generate_learning_summary(chunks).as_text()

        result = dag_builder.create_dag(
            document_id,
            adapter,
            summary,
            threshold=threshold,
            max_cluster_size=max_cluster_size,
            threshold_increment=threshold_increment,
        )
        lesson_ids = persist_dag(adapter, skill_id, result)
    except Exception:
        LOGGER.exception("Root DAG generation failed for %s", skill_id)
        adapter.set_processing_state(skill_id, ProcessingState.DAG_CREATION_FAILED)
        raise
    adapter.set_processing_state(skill_id, ProcessingState.DAG_GENERATED)
    return lesson_ids


# ----------------------------------------------------------------------
# Modules


def load_course_lessons(
    adapter: SkillGraphAdapter,
    root_skill_id: str,
    *,
    batch_size: int = 25,
) -> tuple[List[CourseLesson], Dict[str, str]]:
    """Rebuild lessons (with objective and prerequisite names) from stored links."""

    lessons = adapter.list_skills(root_skill_id=root_skill_id, skill_type=LESSON_SKILL_TYPE)
    lesson_ids = [lesson["id"] for lesson in lessons]
    name_of = {lesson["id"]: lesson["name"] for lesson in lessons}

    objective_links = adapter.list_links(
        downstream_ids=lesson_ids, link_type=LinkType.LESSON_OBJECTIVE, batch_size=batch_size
    )
    prerequisite_links = adapter.list_links(
        downstream_ids=lesson_ids, link_type=LinkType.LESSON_LINK, batch_size=batch_size
    )
    objectives = adapter.fetch_skills_by_ids(
        [link["upstream_skill"] for link in objective_links], batch_size=batch_size
    )
    objective_name = {objective["id"]: objective["name"] for objective in objectives}

    by_id: Dict[str, CourseLesson] = {}
    for lesson in lessons:
        by_id[lesson["id"]] = CourseLesson(name=lesson["name"])
    for link in objective_links:
        if link["upstream_skill"] in objective_name:
            by_id[link["downstream_skill"]].objectives.append(objective_name[link["upstream_skill"]])
    for link in prerequisite_links:
        if link["upstream_skill"] in name_of:
            by_id[link["downstream_skill"]].prerequisites.append(name_of[link["upstream_skill"]])

    id_of_name: Dict[str, str] = {}
    for lesson_id, name in name_of.items():
        id_of_name.setdefault(name, lesson_id)
    return [by_id[lesson_id] for lesson_id in lesson_ids], id_of_name


def generate_skill_modules(
    adapter: SkillGraphAdapter,
    programs: CurriculumPrograms,
    skill_id: str,
    *,
    config: CourseStructureConfig | None = None,
    batch_size: int = 25,
) -> Dict[str, Any]:
    cfg = config or CourseStructureConfig()
    skill = _require_skill(adapter, skill_id)
    adapter.set_processing_state(skill_id, ProcessingState.CREATING_MODULES)
    try:
        lessons, id_of_name = load_course_lessons(adapter, skill_id, batch_size=batch_size)
        if not lessons:
            raise CurriculumError(f"Skill {skill_id} has no lessons; generate the root DAG first")
        structure = generate_course_structure(
            programs,
            build_skill_summary(skill) or skill["name"],
            lessons,
            chunk_size=cfg.chunk_size,
            max_submodule_size=cfg.max_submodule_size,
            max_extra_iterations=cfg.max_extra_iterations,
        )
        modules = []
        for module in structure:
            module_id = adapter.create_module(
                name=module.name,
                position=module.position,
                root_skill_id=skill_id,
                module_type="module",
            )
            submodule_ids = []
            for submodule in module.submodules:
                submodule_ids.append(
                    adapter.create_module(
                        name=submodule.name,
                        position=submodule.position,
                        root_skill_id=skill_id,
                        module_type="submodule",
                        children_ids=[id_of_name[name] for name in submodule.lessons],
                    )
                )
            adapter.update_module_children(module_id, submodule_ids)
            modules.append({"id": module_id, "name": module.name, "position": module.position, "submodule_ids": submodule_ids})
    except Exception:
        LOGGER.exception("Module generation failed for %s", skill_id)
        adapter.set_processing_state(skill_id, ProcessingState.MODULE_CREATION_FAILED)
        raise
    adapter.set_processing_state(skill_id, ProcessingState.SUCCESS)
    LOGGER.info("Created %d modules for %s", len(modules), skill_id)
    return {"skill_id": skill_id, "modules": modules}


# ----------------------------------------------------------------------
# Reads


def fetch_skill_graph(adapter: SkillGraphAdapter, skill_id: str, *, batch_size: int = 25) -> Dict[str, Any]:
    """Return the root skill, its DAG nodes and links, and its modules."""

    root = _require_skill(adapter, skill_id)
    nodes = adapter.list_skills(root_skill_id=skill_id)
    node_ids = [node["id"] for node in nodes]
    links = adapter.list_links(downstream_ids=[*node_ids, skill_id], batch_size=batch_size)
    return {
        "skill": root,
        "nodes": nodes,
        "links": links,
        "modules": adapter.list_modules(skill_id),
    }


__all__ = [
    "build_skill_summary",
    "fetch_skill_graph",
    "generate_root_dag",
    "generate_skill_modules",
    "ingest_document",
    "load_course_lessons",
    "persist_dag",
    "suggest_partial_skill",
]
