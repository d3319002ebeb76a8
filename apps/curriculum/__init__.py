"""Document-to-curriculum pipeline: objectives, lessons, prerequisites, and modules."""

from .course_structure import generate_course_structure
from .document_to_dag import DocumentToDag
from .programs import CurriculumPrograms, build_curriculum_programs

__all__ = ["CurriculumPrograms", "DocumentToDag", "build_curriculum_programs", "generate_course_structure"]
