"""DSPy signatures for the document-to-curriculum pipeline."""

from typing import List, Literal

import dspy

from .models import LessonAssignment, LessonDraft, ObjectiveGroup, SubModuleAssignment


class GenerateLearningSummary(dspy.Signature):
    """Summarize study material and list what a learner should take away from it."""

    content: str = dspy.InputField(desc="Concatenated document chunks.")
    summary: str = dspy.OutputField(desc="A short paragraph describing what the material teaches.")
    learning_objectives: List[str] = dspy.OutputField(
        desc="High-level learning objectives, one sentence each."
    )


class GenerateSkillName(dspy.Signature):
    """Name the skill a learner gains from this material and pick a single emoji for it."""

    first_chunk: str = dspy.InputField(desc="Opening excerpt of the document.")
    summary: str = dspy.InputField()
    learning_objectives: List[str] = dspy.InputField()
    skill_name: str = dspy.OutputField(desc="Concise skill name, at most six words.")
    emoji: str = dspy.OutputField(desc="Exactly one emoji.")


class ExtractChunkLearningObjectives(dspy.Signature):
    """List the specific, assessable learning objectives supported by one excerpt."""

    summary: str = dspy.InputField(desc="Summary of the whole document for context.")
    chunk: str = dspy.InputField(desc="The excerpt to analyse.")
    learning_objectives: List[str] = dspy.OutputField(
        desc="Specific objectives grounded in the excerpt; empty when it teaches nothing."
    )


class GroupLearningObjectives(dspy.Signature):
    """Merge near-duplicate learning objectives into representative objectives."""

    objectives: List[str] = dspy.InputField(desc="Similar objectives that may overlap.")
    groups: List[ObjectiveGroup] = dspy.OutputField(
        desc="Each input objective appears in exactly one group, copied verbatim."
    )


class ExtractReferenceSentences(dspy.Signature):
    """Quote the sentences from the source text that support a learning objective."""

    learning_objective: str = dspy.InputField()
    source_text: str = dspy.InputField(desc="Excerpts the objective was derived from.")
    sentences: List[str] = dspy.OutputField(desc="Verbatim quotes from the source text.")


class GenerateLessonGroups(dspy.Signature):
    """Split a cluster of related learning objectives into named lessons."""

    objectives: List[str] = dspy.InputField(desc="Objectives with supporting references.")
    lessons: List[LessonDraft] = dspy.OutputField(
        desc="Lessons whose learning_objectives repeat input objectives verbatim."
    )


class FindPrerequisites(dspy.Signature):
    """Choose which other lessons must be completed before this lesson."""

    lesson: str = dspy.InputField(desc="Lesson name with its objectives and an excerpt of its source text.")
    other_lessons: List[str] = dspy.InputField(desc="Candidate prerequisite lesson names.")
    max_prerequisites: int = dspy.InputField()
    prerequisites: List[str] = dspy.OutputField(desc="Names copied from other_lessons.")


class RankLessons(dspy.Signature):
    """Order mutually dependent lessons from first to learn to last."""

    lessons: List[str] = dspy.InputField(desc="Lesson names with their objectives.")
    ranking: List[str] = dspy.OutputField(desc="Every lesson name exactly once, earliest first.")


class AssignLessonsToStructure(dspy.Signature):
    """Place lessons into submodules and submodules into modules of a course."""

    course_summary: str = dspy.InputField()
    lessons: List[str] = dspy.InputField(desc="Lessons to place, in learning order.")
    existing_structure: str = dspy.InputField(
        desc="Current modules and submodules with remaining submodule capacity."
    )
    lesson_assignments: List[LessonAssignment] = dspy.OutputField()
    submodule_assignments: List[SubModuleAssignment] = dspy.OutputField()


class AssignSubModulesToModules(dspy.Signature):
    """Attach orphaned submodules to existing or new modules."""

    course_summary: str = dspy.InputField()
    submodules: List[str] = dspy.InputField(desc="Submodules with their lessons.")
    modules: List[str] = dspy.InputField(desc="Existing module names.")
    submodule_assignments: List[SubModuleAssignment] = dspy.OutputField()


class SuggestSkill(dspy.Signature):
    """Propose a learnable skill from a learner's request and optional document excerpts."""

    user_input: str = dspy.InputField(desc="May be empty when documents are given.")
    document_excerpt: str = dspy.InputField(desc="May be empty.")
    skill_name: str = dspy.OutputField(desc="A concise, descriptive name for the course.")
    description: str = dspy.OutputField(desc="Two or three sentences.")
    level: Literal["beginner", "intermediate", "advanced"] = dspy.OutputField()
    goals: List[str] = dspy.OutputField(desc="Learning goals for the course.")
    emoji: str = dspy.OutputField(desc="Exactly one emoji.")


__all__ = [
    "AssignLessonsToStructure",
    "AssignSubModulesToModules",
    "ExtractChunkLearningObjectives",
    "ExtractReferenceSentences",
    "FindPrerequisites",
    "GenerateLearningSummary",
    "GenerateLessonGroups",
    "GenerateSkillName",
    "GroupLearningObjectives",
    "RankLessons",
    "SuggestSkill",
]
