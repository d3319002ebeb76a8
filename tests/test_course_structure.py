from types import SimpleNamespace

import pytest

from apps.curriculum.course_structure import (
    assignments_to_structure,
    generate_course_structure,
    merge_structures,
    split_large_submodules,
)
from apps.curriculum.models import CourseLesson, LessonAssignment, Module, SubModule, SubModuleAssignment
from skillgraph.core.errors import CourseStructureError
from tests.mocks.curriculum import make_programs, single_module

LESSONS = [
    CourseLesson(name="Locks", prerequisites=["Transactions"], objectives=["Locks serialize writers."]),
    CourseLesson(name="Indexes", objectives=["Indexes speed up lookups."]),
    CourseLesson(name="Transactions", prerequisites=["Indexes"]),
]


def _names(structure):
    return [(m.position, m.name, [(s.position, s.name, s.lessons) for s in m.submodules]) for m in structure]


def test_single_module_in_learning_order() -> None:
    structure = generate_course_structure(make_programs(), "summary", LESSONS)

    assert _names(structure) == [(1, "Foundations", [(1, "Core", ["Indexes", "Transactions", "Locks"])])]


def test_oversized_submodules_are_split() -> None:
    structure = generate_course_structure(make_programs(), "summary", LESSONS, max_submodule_size=2)

    assert _names(structure) == [
        (1, "Foundations", [(1, "Core (Part 1)", ["Indexes", "Transactions"]), (2, "Core (Part 2)", ["Locks"])])
    ]


def test_modules_ordered_by_earliest_lesson() -> None:
    def assign_lessons(course_summary, lessons, existing_structure):
        return SimpleNamespace(
            lesson_assignments=[
                {"lesson": lesson, "submodule": "Concurrency" if lesson.startswith("Locks") else "Storage"}
                for lesson in lessons
            ],
            submodule_assignments=[
                {"submodule": "Concurrency", "module": "Advanced"},
                {"submodule": "Storage", "module": "Basics"},
            ],
        )

    structure = generate_course_structure(make_programs(assign_lessons=assign_lessons), "summary", LESSONS)

    assert _names(structure) == [
        (1, "Basics", [(1, "Storage", ["Indexes", "Transactions"])]),
        (2, "Advanced", [(1, "Concurrency", ["Locks"])]),
    ]


def test_orphan_submodules_get_a_module() -> None:
    def assign_lessons(course_summary, lessons, existing_structure):
        return SimpleNamespace(
            lesson_assignments=[{"lesson": lesson, "submodule": "Everything"} for lesson in lessons],
            submodule_assignments=[],
        )

    assigned = make_programs(
        assign_lessons=assign_lessons,
        assign_submodules=lambda course_summary, submodules, modules: SimpleNamespace(
            submodule_assignments=[{"submodule": submodules[0], "module": "Databases"}]
        ),
    )
    unassigned = make_programs(assign_lessons=assign_lessons)

    assert _names(generate_course_structure(assigned, "summary", LESSONS))[0][1] == "Databases"
    assert _names(generate_course_structure(unassigned, "summary", LESSONS))[0][1] == "Everything"


def test_lessons_the_llm_never_places_raise() -> None:
    ignoring = make_programs(
        assign_lessons=lambda course_summary, lessons, existing_structure: SimpleNamespace(
            lesson_assignments=[], submodule_assignments=[]
        )
    )

    with pytest.raises(CourseStructureError):
        generate_course_structure(ignoring, "summary", LESSONS, max_extra_iterations=1)


def test_batches_are_sent_until_everything_is_placed() -> None:
    calls = []
    inner = single_module()

    def assign_lessons(**kwargs):
        calls.append(list(kwargs["lessons"]))
        return inner(**kwargs)

    structure = generate_course_structure(make_programs(assign_lessons=assign_lessons), "summary", LESSONS, chunk_size=2)

    assert len(calls) == 2
    assert "Core" in structure[0].submodules[0].name
    assert calls[1][0].startswith("Locks")


def test_empty_input_yields_empty_structure() -> None:
    assert generate_course_structure(make_programs(), "summary", []) == []


def test_assignments_ignore_unknown_lessons() -> None:
    modules, orphans = assignments_to_structure(
        [
            LessonAssignment(lesson="Indexes | objectives: x", submodule="Storage"),
            LessonAssignment(lesson="Ghost", submodule="Storage"),
            LessonAssignment(lesson="Locks", submodule="Concurrency"),
        ],
        [SubModuleAssignment(submodule="storage", module="Basics")],
        ["Indexes", "Locks"],
    )

    assert [(m.name, [(s.name, s.lessons) for s in m.submodules]) for m in modules] == [
        ("Basics", [("Storage", ["Indexes"])])
    ]
    assert orphans == {"Concurrency": ["Locks"]}


def test_merge_never_places_a_lesson_twice() -> None:
    structure = [Module(name="Basics", submodules=[SubModule(name="Storage", lessons=["Indexes"])])]

    merge_structures(
        structure,
        [Module(name="Other", submodules=[SubModule(name="Storage", lessons=["Indexes", "Transactions"])])],
    )

    assert structure[0].submodules[0].lessons == ["Indexes", "Transactions"]
    assert [m.name for m in structure] == ["Basics", "Other"]


def test_split_is_balanced() -> None:
    structure = [Module(name="M", submodules=[SubModule(name="S", lessons=[str(i) for i in range(8)])])]

    [module] = split_large_submodules(structure, 7)

    assert [len(s.lessons) for s in module.submodules] == [4, 4]
    assert [s.position for s in module.submodules] == [1, 2]
