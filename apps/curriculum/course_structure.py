"""Group ordered lessons into modules and submodules."""

from __future__ import annotations

import logging
import math
from typing import Dict, List, Mapping, Sequence, Set

from skillgraph.core.errors import CourseStructureError

from .graph_utils import topological_order
from .models import CourseLesson, LessonAssignment, Module, SubModule, SubModuleAssignment, coerce_models
from .programs import CurriculumPrograms
from .references import normalize_text

LOGGER = logging.getLogger(__name__)


def _find_module(structure: Sequence[Module], name: str) -> Module | None:
    key = normalize_text(name)
    return next((module for module in structure if normalize_text(module.name) == key), None)


def _find_submodule(structure: Sequence[Module], name: str) -> tuple[Module, SubModule] | None:
    key = normalize_text(name)
    for module in structure:
        for submodule in module.submodules:
            if normalize_text(submodule.name) == key:
                return module, submodule
    return None


def placed_lessons(structure: Sequence[Module]) -> Set[str]:
    return {lesson for module in structure for submodule in module.submodules for lesson in submodule.lessons}


def render_structure(structure: Sequence[Module], max_submodule_size: int) -> str:
    if not structure:
        return "(empty)"
    lines: List[str] = []
    for module in structure:
        lines.append(f"Module: {module.name}")
        for submodule in module.submodules:
            remaining = max(max_submodule_size - len(submodule.lessons), 0)
            lines.append(f"  SubModule: {submodule.name} (remaining capacity: {remaining})")
            lines.extend(f"    - {lesson}" for lesson in submodule.lessons)
    return "\n".join(lines)


def assignments_to_structure(
    lesson_assignments: Sequence[LessonAssignment],
    submodule_assignments: Sequence[SubModuleAssignment],
    lesson_names: Sequence[str],
) -> tuple[List[Module], Dict[str, List[str]]]:
    """Convert LLM assignments into modules plus submodules that still lack a module."""

    by_key = {normalize_text(name): name for name in lesson_names}
    submodule_lessons: Dict[str, List[str]] = {}
    for assignment in lesson_assignments:
        lesson = by_key.get(normalize_text(assignment.lesson.split(" | ", 1)[0]))
        submodule = assignment.submodule.strip()
        if lesson is None or not submodule:
            continue
        bucket = submodule_lessons.setdefault(submodule, [])
        if lesson not in bucket:
            bucket.append(lesson)

    module_of: Dict[str, str] = {}
    for assignment in submodule_assignments:
        if assignment.submodule.strip() and assignment.module.strip():
            module_of.setdefault(normalize_text(assignment.submodule), assignment.module.strip())

    modules: List[Module] = []
    orphans: Dict[str, List[str]] = {}
    for submodule, lessons in submodule_lessons.items():
        module_name = module_of.get(normalize_text(submodule))
        if module_name is None:
            orphans[submodule] = lessons
            continue
        module = _find_module(modules, module_name)
        if module is None:
            module = Module(name=module_name)
            modules.append(module)
        module.submodules.append(SubModule(name=submodule, lessons=list(lessons)))
    return modules, orphans


def merge_structures(structure: List[Module], addition: Sequence[Module]) -> None:
    """Merge ``addition`` into ``structure`` without placing any lesson twice."""

    placed = placed_lessons(structure)
    for module in addition:
        target = _find_module(structure, module.name)
        if target is None:
            target = Module(name=module.name)
            structure.append(target)
        for submodule in module.submodules:
            existing = _find_submodule(structure, submodule.name)
            if existing is None:
                destination = SubModule(name=submodule.name)
                target.submodules.append(destination)
            else:
                destination = existing[1]
            for lesson in submodule.lessons:
                if lesson not in placed:
                    destination.lessons.append(lesson)
                    placed.add(lesson)


def _attach_to_existing(structure: List[Module], orphans: Dict[str, List[str]]) -> Dict[str, List[str]]:
    remaining: Dict[str, List[str]] = {}
    for name, lessons in orphans.items():
        existing = _find_submodule(structure, name)
        if existing is None:
            remaining[name] = lessons
        else:
            merge_structures(structure, [Module(name=existing[0].name, submodules=[SubModule(name, list(lessons))])])
    return remaining


def cleanup_structure(structure: Sequence[Module], valid_lessons: Set[str]) -> List[Module]:
    cleaned: List[Module] = []
    for module in structure:
        submodules = []
        for submodule in module.submodules:
            lessons = [lesson for lesson in dict.fromkeys(submodule.lessons) if lesson in valid_lessons]
            if lessons:
                submodules.append(SubModule(name=submodule.name, lessons=lessons))
        if submodules:
            cleaned.append(Module(name=module.name, submodules=submodules))
    return cleaned


def order_structure(structure: Sequence[Module], rank: Mapping[str, int]) -> List[Module]:
    """Sort lessons by learning order; submodules and modules by their earliest lesson."""

    for module in structure:
        for submodule in module.submodules:
            submodule.lessons.sort(key=lambda lesson: rank[lesson])
        module.submodules.sort(key=lambda submodule: rank[submodule.lessons[0]])
    ordered = sorted(structure, key=lambda module: rank[module.submodules[0].lessons[0]])
    for position, module in enumerate(ordered, start=1):
        module.position = position
        for sub_position, submodule in enumerate(module.submodules, start=1):
            submodule.position = sub_position
    return ordered


def split_large_submodules(structure: Sequence[Module], max_submodule_size: int) -> List[Module]:
    """Split oversized submodules into balanced consecutive parts."""

    for module in structure:
        submodules: List[SubModule] = []
        for submodule in module.submodules:
            size = len(submodule.lessons)
            if size <= max_submodule_size:
                submodules.append(submodule)
                continue
            parts = math.ceil(size / max_submodule_size)
            base, extra = divmod(size, parts)
            start = 0
            for part in range(parts):
                length = base + (1 if part < extra else 0)
                submodules.append(
                    SubModule(
                        name=f"{submodule.name} (Part {part + 1})",
                        lessons=submodule.lessons[start : start + length],
                    )
                )
                start += length
        module.submodules = submodules
        for position, submodule in enumerate(module.submodules, start=1):
            submodule.position = position
    return list(structure)


def _describe(lesson: CourseLesson) -> str:
    parts = [lesson.name]
    if lesson.objectives:
        parts.append("objectives: " + "; ".join(lesson.objectives))
    if lesson.prerequisites:
        parts.append("requires: " + ", ".join(lesson.prerequisites))
    return " | ".join(parts)


def generate_course_structure(
    programs: CurriculumPrograms,
    summary: str,
    lessons: Sequence[CourseLesson],
    *,
    chunk_size: int = 20,
    max_submodule_size: int = 7,
    max_extra_iterations: int = 5,
) -> List[Module]:
    """Ask the LLM to place lessons into modules, then clean, order, and split the result."""

    if not lessons:
        return []
    if chunk_size < 1 or max_submodule_size < 1:
        raise ValueError("chunk_size and max_submodule_size must be positive")

    by_name = {lesson.name: lesson for lesson in lessons}
    order = topological_order({lesson.name: lesson.prerequisites for lesson in lessons})
    rank = {name: index for index, name in enumerate(order)}

    structure: List[Module] = []
    orphans: Dict[str, List[str]] = {}
    max_iterations = math.ceil(len(order) / chunk_size) + max_extra_iterations
    unassigned = list(order)
    iteration = 0
    while unassigned and iteration < max_iterations:
        iteration += 1
        batch = unassigned[:chunk_size]
        prediction = programs.assign_lessons(
            course_summary=summary,
            lessons=[_describe(by_name[name]) for name in batch],
            existing_structure=render_structure(structure, max_submodule_size),
        )
        addition, new_orphans = assignments_to_structure(
            coerce_models(prediction.lesson_assignments, LessonAssignment),
            coerce_models(prediction.submodule_assignments, SubModuleAssignment),
            batch,
        )
        merge_structures(structure, addition)
        for name, orphan_lessons in _attach_to_existing(structure, new_orphans).items():
            bucket = orphans.setdefault(name, [])
            bucket.extend(lesson for lesson in orphan_lessons if lesson not in bucket)

        placed = placed_lessons(structure) | {lesson for names in orphans.values() for lesson in names}
        unassigned = [name for name in order if name not in placed]
        LOGGER.debug("Course structure iteration %d: %d lessons unassigned", iteration, len(unassigned))

    if unassigned:
        raise CourseStructureError(
            f"Failed to assign {len(unassigned)} lessons after {iteration} iterations: {', '.join(unassigned[:5])}"
        )

    orphans = _attach_to_existing(structure, orphans)
    if orphans:
        prediction = programs.assign_submodules(
            course_summary=summary,
            submodules=[f"{name}: {', '.join(names)}" for name, names in orphans.items()],
            modules=[module.name for module in structure],
        )
        module_of = {
            normalize_text(item.submodule.split(":", 1)[0]): item.module.strip()
            for item in coerce_models(prediction.submodule_assignments, SubModuleAssignment)
            if item.module.strip()
        }
        for name, names in orphans.items():
            module_name = module_of.get(normalize_text(name), name)
            merge_structures(structure, [Module(name=module_name, submodules=[SubModule(name=name, lessons=list(names))])])

    cleaned = cleanup_structure(structure, set(by_name))
    ordered = order_structure(cleaned, rank)
    return split_large_submodules(ordered, max_submodule_size)


__all__ = [
    "assignments_to_structure",
    "cleanup_structure",
    "generate_course_structure",
    "merge_structures",
    "order_structure",
    "placed_lessons",
    "render_structure",
    "split_large_submodules",
]
