"""Exception hierarchy shared by the curriculum pipeline, store, and API."""

from __future__ import annotations


class CurriculumError(RuntimeError):
    """Base class for failures while building a curriculum graph."""


class DocumentNotFoundError(CurriculumError, LookupError):
    """Raised when a referenced document id is not in the store."""


class EmptyDocumentError(CurriculumError, ValueError):
    """Raised when a document has no usable text to learn from."""


class SkillNotFoundError(CurriculumError, LookupError):
    """Raised when a referenced skill id is not in the store."""


class CourseStructureError(CurriculumError):
    """Raised when lessons cannot be grouped into modules."""


class ActivityError(RuntimeError):
    """Raised for unknown activity types or invalid activity configs."""


class ActivityNotFoundError(ActivityError, LookupError):
    """Raised when a referenced activity id is not in the store."""


__all__ = [
    "ActivityError",
    "ActivityNotFoundError",
    "CourseStructureError",
    "CurriculumError",
    "DocumentNotFoundError",
    "EmptyDocumentError",
    "SkillNotFoundError",
]
