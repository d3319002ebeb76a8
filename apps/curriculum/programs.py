"""Factory helpers for the curriculum DSPy programs."""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, Callable

import dspy

from .signatures import (
    AssignLessonsToStructure,
    AssignSubModulesToModules,
    ExtractChunkLearningObjectives,
    ExtractReferenceSentences,
    FindPrerequisites,
    GenerateLearningSummary,
    GenerateLessonGroups,
    GenerateSkillName,
    GroupLearningObjectives,
    RankLessons,
    SuggestSkill,
)

Program = Callable[..., Any]


@dataclass
class CurriculumPrograms:
    """Callables for every LLM step; tests substitute plain functions."""

    summarize: Program
    name_skill: Program
    extract_objectives: Program
    group_objectives: Program
    extract_references: Program
    group_lessons: Program
    find_prerequisites: Program
    rank_lessons: Program
    assign_lessons: Program
    assign_submodules: Program
    suggest_skill: Program


_SIGNATURES = {
    "summarize": GenerateLearningSummary,
    "name_skill": GenerateSkillName,
    "extract_objectives": ExtractChunkLearningObjectives,
    "group_objectives": GroupLearningObjectives,
    "extract_references": ExtractReferenceSentences,
    "group_lessons": GenerateLessonGroups,
    "find_prerequisites": FindPrerequisites,
    "rank_lessons": RankLessons,
    "assign_lessons": AssignLessonsToStructure,
    "assign_submodules": AssignSubModulesToModules,
    "suggest_skill": SuggestSkill,
}


def build_curriculum_programs(*, lm: object | None = None) -> CurriculumPrograms:
    """Return one ``dspy.Predict`` per pipeline step, optionally pinned to ``lm``."""

    programs = {
        field.name: wrap_with_lm(dspy.Predict(_SIGNATURES[field.name]), lm)
        for field in fields(CurriculumPrograms)
    }
    return CurriculumPrograms(**programs)


def wrap_with_lm(program: Program, lm_handle: object | None) -> Program:
    if lm_handle is None:
        return program
    return LMScopedProgram(program, lm_handle)


class LMScopedProgram:
    """Wrapper that runs a program under a specific LM.

    Uses ``dspy.context`` so the override is thread-local and programs can run
    inside worker threads.
    """

    def __init__(self, program: Program, lm_handle: object) -> None:
        self._program = program
        self._lm = lm_handle

    def __call__(self, *args, **kwargs):
        with dspy.context(lm=self._lm):
            return self._program(*args, **kwargs)


__all__ = ["CurriculumPrograms", "LMScopedProgram", "build_curriculum_programs", "wrap_with_lm"]
