"""Deterministic stand-ins for the curriculum DSPy programs and the embedder."""

from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Sequence

import numpy as np

from apps.curriculum.programs import CurriculumPrograms

VOCABULARY = ("index", "transaction", "lock", "join", "query")

SAMPLE_DOCUMENT = (
    "Indexes speed up lookups. "
    "Indexes speed up lookups quickly. "
    "Transactions keep data consistent. "
    "Locks serialize writers."
)


def keyword_embed(texts: Sequence[str]) -> np.ndarray:
    """One dimension per vocabulary word, plus a small constant so no vector is zero."""
    return np.array([[float(text.lower().count(word)) for word in VOCABULARY] + [0.01] for text in texts])


def _sentences(text: str) -> List[str]:
    return [part.strip() + "." for part in text.split(".") if part.strip()]


def _lesson_name(description: str) -> str:
    return description.split(" | ", 1)[0].split(":", 1)[0].strip()


def summarize(*, content: str) -> SimpleNamespace:
    return SimpleNamespace(summary="A short tour of database internals.", learning_objectives=_sentences(content)[:2])


def name_skill(*, first_chunk: str, summary: str, learning_objectives: List[str]) -> SimpleNamespace:
    return SimpleNamespace(skill_name="Database Internals", emoji="🗄️")


def extract_objectives(*, summary: str, chunk: str) -> SimpleNamespace:
    return SimpleNamespace(learning_objectives=_sentences(chunk))


def group_objectives(*, objectives: List[str]) -> SimpleNamespace:
    return SimpleNamespace(groups=[{"representative": objectives[0], "group": list(objectives)}])


def extract_references(*, learning_objective: str, source_text: str) -> SimpleNamespace:
    return SimpleNamespace(sentences=[learning_objective])


def group_lessons(*, objectives: List[str]) -> SimpleNamespace:
    return SimpleNamespace(
        lessons=[
            {
                "lesson_name": objective.split()[0],
                "expected_duration_minutes": 10,
                "learning_objectives": [objective],
            }
            for objective in objectives
        ]
    )


def chain_prerequisites(order: Sequence[str]) -> Callable[..., SimpleNamespace]:
    """Each lesson in ``order`` requires the one before it."""

    def find_prerequisites(*, lesson: str, other_lessons: List[str], max_prerequisites: int) -> SimpleNamespace:
        name = _lesson_name(lesson)
        if name in order and order.index(name) > 0:
            return SimpleNamespace(prerequisites=[order[order.index(name) - 1]])
        return SimpleNamespace(prerequisites=[])

    return find_prerequisites


def no_prerequisites(**_: Any) -> SimpleNamespace:
    return SimpleNamespace(prerequisites=[])


def rank_lessons(*, lessons: List[str]) -> SimpleNamespace:
    return SimpleNamespace(ranking=list(lessons))


def single_module(module: str = "Foundations", submodule: str = "Core") -> Callable[..., SimpleNamespace]:
    def assign_lessons(*, course_summary: str, lessons: List[str], existing_structure: str) -> SimpleNamespace:
        return SimpleNamespace(
            lesson_assignments=[
                {"lesson": lesson, "needs_new_submodule": True, "submodule": submodule} for lesson in lessons
            ],
            submodule_assignments=[{"submodule": submodule, "needs_new_module": True, "module": module}],
        )

    return assign_lessons


def assign_submodules(*, course_summary: str, submodules: List[str], modules: List[str]) -> SimpleNamespace:
    return SimpleNamespace(submodule_assignments=[])


def suggest_skill(*, user_input: str, document_excerpt: str) -> SimpleNamespace:
    return SimpleNamespace(
        skill_name="Database Internals",
        description="How databases store and protect data.",
        level="beginner",
        goals=["Explain indexes", "Explain transactions"],
        emoji="🗄️",
    )


def make_programs(**overrides: Any) -> CurriculumPrograms:
    defaults: Dict[str, Any] = {
        "summarize": summarize,
        "name_skill": name_skill,
        "extract_objectives": extract_objectives,
        "group_objectives": group_objectives,
        "extract_references": extract_references,
        "group_lessons": group_lessons,
        "find_prerequisites": chain_prerequisites(["Indexes", "Transactions", "Locks"]),
        "rank_lessons": rank_lessons,
        "assign_lessons": single_module(),
        "assign_submodules": assign_submodules,
        "suggest_skill": suggest_skill,
    }
    defaults.update(overrides)
    return CurriculumPrograms(**defaults)
