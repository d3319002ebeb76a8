"""Data types passed between the DocumentToDag stages."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


@dataclass
class LearningObjective:
    text: str
    chunk_ids: List[str] = field(default_factory=list)
    ids: List[str] = field(default_factory=list)
    all_sub_objectives: List[str] = field(default_factory=list)
    vector: Optional[List[float]] = None


@dataclass
class ReferenceSentence:
    sentence: str
    is_exact_match: bool
    source_chunk_id: Optional[str] = None
    source_document_id: Optional[str] = None


@dataclass
class LearningObjectiveWithReferences(LearningObjective):
    references: List[ReferenceSentence] = field(default_factory=list)


@dataclass
class LessonGroup:
    lesson_name: str
    cluster: List[LearningObjectiveWithReferences]
    chunk_ids: List[str] = field(default_factory=list)
    expected_duration_minutes: int = 0
    prerequisites: List[str] = field(default_factory=list)


@dataclass
class LearningSummary:
    summary: str
    learning_objectives: List[str] = field(default_factory=list)

    def as_text(self) -> str:
        if not self.learning_objectives:
            return self.summary
        bullets = "\n".join(f"- {item}" for item in self.learning_objectives)
        return f"{self.summary}\n\nLearning objectives:\n{bullets}"


@dataclass
class DagResult:
    summary: str
    objectives: List[LearningObjectiveWithReferences]
    lessons: List[LessonGroup]
    stats: Dict[str, Any] = field(default_factory=dict)


# Structured LLM outputs -------------------------------------------------


def coerce_models(items: Any, model: type[BaseModel]) -> List[Any]:
    """Validate LLM output items (models, dicts, or attribute objects) into ``model``."""

    parsed = []
    for item in items or []:
        if isinstance(item, model):
            parsed.append(item)
        elif isinstance(item, dict):
            parsed.append(model.model_validate(item))
        else:
            parsed.append(model.model_validate(item, from_attributes=True))
    return parsed


class ObjectiveGroup(BaseModel):
    representative: str = Field(description="One learning objective that covers the whole group.")
    group: List[str] = Field(default_factory=list, description="The original objectives merged into it.")


class LessonDraft(BaseModel):
    lesson_name: str
    expected_duration_minutes: Optional[int] = None
    learning_objectives: List[str] = Field(default_factory=list)


class LessonAssignment(BaseModel):
    lesson: str
    needs_new_submodule: bool = False
    submodule: str


class SubModuleAssignment(BaseModel):
    submodule: str
    needs_new_module: bool = False
    module: str


# Course structure --------------------------------------------------------


@dataclass
class CourseLesson:
    name: str
    prerequisites: List[str] = field(default_factory=list)
    objectives: List[str] = field(default_factory=list)


@dataclass
class SubModule:
    name: str
    lessons: List[str] = field(default_factory=list)
    position: int = 0


@dataclass
class Module:
    name: str
    submodules: List[SubModule] = field(default_factory=list)
    position: int = 0


__all__ = [
    "CourseLesson",
    "DagResult",
    "LearningObjective",
    "LearningObjectiveWithReferences",
    "LearningSummary",
    "LessonAssignment",
    "LessonDraft",
    "LessonGroup",
    "Module",
    "ObjectiveGroup",
    "ReferenceSentence",
    "SubModule",
    "SubModuleAssignment",
    "coerce_models",
]
