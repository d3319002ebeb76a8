from pathlib import Path

import pytest

from apps.curriculum import service
from apps.curriculum.document_to_dag import DocumentToDag
from skill_store import LinkType, ProcessingState, SkillGraphAdapter
from skillgraph.core.config import ChunkingConfig, DagConfig
from skillgraph.core.errors import CurriculumError, DocumentNotFoundError, EmptyDocumentError, SkillNotFoundError
from tests.mocks.curriculum import SAMPLE_DOCUMENT, keyword_embed, make_programs


@pytest.fixture()
def adapter(tmp_path: Path) -> SkillGraphAdapter:
    return SkillGraphAdapter(tmp_path / "graph.sqlite")


def _seed_skill(adapter: SkillGraphAdapter, programs=None) -> dict:
    document = service.ingest_document(adapter, SAMPLE_DOCUMENT, file_name="db.md", chunking=ChunkingConfig())
    return service.suggest_partial_skill(
        adapter,
        programs or make_programs(),
        user_input="databases",
        document_ids=[document["id"]],
    )


def _dag_builder() -> DocumentToDag:
    return DocumentToDag(make_programs(), keyword_embed, config=DagConfig(max_workers=1))


def test_ingest_rejects_blank_documents(adapter: SkillGraphAdapter) -> None:
    with pytest.raises(EmptyDocumentError):
        service.ingest_document(adapter, "   \n ")


def test_suggest_creates_root_skill_and_resource(adapter: SkillGraphAdapter) -> None:
    seen = {}

    def suggest_skill(*, user_input, document_excerpt):
        seen.update(user_input=user_input, excerpt=document_excerpt)
        return make_programs().suggest_skill(user_input=user_input, document_excerpt=document_excerpt)

    result = _seed_skill(adapter, make_programs(suggest_skill=suggest_skill))

    assert seen["user_input"] == "Based on these documents, I want to learn about: databases"
    assert "Locks serialize writers." in seen["excerpt"]
    skill = adapter.get_skill(result["skill_id"])
    assert skill["skill_type"] == service.ROOT_SKILL_TYPE
    assert skill["metadata"] == {"level": "beginner", "learningObjectives": ["Explain indexes", "Explain transactions"]}
    assert len(adapter.list_resources(result["skill_id"])) == 1
    partial = adapter.get_partial_skill(result["partial_skill_id"])
    assert partial["user_input"] == "databases"
    assert partial["skill_id"] == result["skill_id"]


def test_suggest_requires_input_or_documents(adapter: SkillGraphAdapter) -> None:
    with pytest.raises(ValueError):
        service.suggest_partial_skill(adapter, make_programs(), user_input="  ", document_ids=[])
    with pytest.raises(DocumentNotFoundError):
        service.suggest_partial_skill(adapter, make_programs(), document_ids=["doc_missing"])


def test_user_level_overrides_suggested_level(adapter: SkillGraphAdapter) -> None:
    result = service.suggest_partial_skill(adapter, make_programs(), user_input="sql", user_level="expert")

    assert result["level"] == "expert"
    assert adapter.list_resources(result["skill_id"]) == []


def test_root_dag_persists_nodes_and_links(adapter: SkillGraphAdapter) -> None:
    skill_id = _seed_skill(adapter)["skill_id"]

    lesson_ids = service.generate_root_dag(adapter, _dag_builder(), skill_id)

    assert len(lesson_ids) == 3
    assert adapter.get_skill(skill_id)["processing_state"] == ProcessingState.DAG_GENERATED.value
    objectives = adapter.list_skills(root_skill_id=skill_id, skill_type=service.OBJECTIVE_SKILL_TYPE)
    assert len(objectives) == 3
    merged = next(o for o in objectives if len(o["metadata"]["allSubObjectives"]) == 2)
    assert len(merged["metadata"]["objectiveIds"]) == 2
    assert merged["reference_ids"]

    lessons = adapter.list_skills(root_skill_id=skill_id, skill_type=service.LESSON_SKILL_TYPE)
    assert [lesson["name"] for lesson in lessons] == ["Indexes", "Transactions", "Locks"]
    assert lessons[0]["metadata"]["expected_duration_minutes"] == 7

    links = adapter.list_links(downstream_ids=[*lesson_ids, skill_id])
    by_type = {}
    for link in links:
        by_type.setdefault(link["link_type"], []).append(link)
    assert len(by_type[LinkType.LESSON_OBJECTIVE.value]) == 3
    assert len(by_type[LinkType.LESSON_LINK.value]) == 2
    assert by_type[LinkType.LESSON_ROOT_SKILL.value] == [
        {"upstream_skill": lesson_ids[2], "downstream_skill": skill_id, "link_type": "lesson_root_skill"}
    ]


def test_root_dag_marks_failures(adapter: SkillGraphAdapter) -> None:
    skill = adapter.create_skill(name="Orphan", skill_type=service.ROOT_SKILL_TYPE)

    with pytest.raises(DocumentNotFoundError):
        service.generate_root_dag(adapter, _dag_builder(), skill["id"])
    assert adapter.get_skill(skill["id"])["processing_state"] == ProcessingState.DAG_CREATION_FAILED.value
    with pytest.raises(SkillNotFoundError):
        service.generate_root_dag(adapter, _dag_builder(), "skill_missing")


def test_summary_falls_back_to_the_document(adapter: SkillGraphAdapter) -> None:
    document = service.ingest_document(adapter, SAMPLE_DOCUMENT)
    skill = adapter.create_skill(name="Bare", skill_type=service.ROOT_SKILL_TYPE)
    adapter.create_resource(parent_skill_id=skill["id"], document_id=document["id"])
    summaries = []

    def extract_objectives(*, summary, chunk):
        summaries.append(summary)
        return make_programs().extract_objectives(summary=summary, chunk=chunk)

    builder = DocumentToDag(make_programs(extract_objectives=extract_objectives), keyword_embed, config=DagConfig(max_workers=1))
    service.generate_root_dag(adapter, builder, skill["id"])

    assert summaries[0].startswith("A short tour of database internals.")


def test_modules_group_generated_lessons(adapter: SkillGraphAdapter) -> None:
    skill_id = _seed_skill(adapter)["skill_id"]
    lesson_ids = service.generate_root_dag(adapter, _dag_builder(), skill_id)

    result = service.generate_skill_modules(adapter, make_programs(), skill_id)

    assert adapter.get_skill(skill_id)["processing_state"] == ProcessingState.SUCCESS.value
    [module] = result["modules"]
    assert module["name"] == "Foundations"
    stored = {row["id"]: row for row in adapter.list_modules(skill_id)}
    assert stored[module["id"]]["children_ids"] == module["submodule_ids"]
    [submodule_id] = module["submodule_ids"]
    assert stored[submodule_id]["children_ids"] == lesson_ids

    graph = service.fetch_skill_graph(adapter, skill_id)
    assert graph["skill"]["id"] == skill_id
    assert len(graph["nodes"]) == 6
    assert len(graph["links"]) == 6
    assert len(graph["modules"]) == 2


def test_modules_require_lessons(adapter: SkillGraphAdapter) -> None:
    skill_id = _seed_skill(adapter)["skill_id"]

    with pytest.raises(CurriculumError):
        service.generate_skill_modules(adapter, make_programs(), skill_id)
    assert adapter.get_skill(skill_id)["processing_state"] == ProcessingState.MODULE_CREATION_FAILED.value


def test_load_course_lessons_rebuilds_prerequisites(adapter: SkillGraphAdapter) -> None:
    skill_id = _seed_skill(adapter)["skill_id"]
    service.generate_root_dag(adapter, _dag_builder(), skill_id)

    lessons, id_of_name = service.load_course_lessons(adapter, skill_id, batch_size=1)

    by_name = {lesson.name: lesson for lesson in lessons}
    assert by_name["Locks"].prerequisites == ["Transactions"]
    assert by_name["Indexes"].objectives == ["Indexes speed up lookups."]
    assert set(id_of_name) == {"Indexes", "Transactions", "Locks"}
