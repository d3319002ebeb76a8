"""Structured skill-graph persistence helpers."""

from .adapters import LinkType, ProcessingState, SkillGraphAdapter, batch_process_ids
from .chunking import DocumentChunk, chunk_document
from .storage import SkillGraphStore

__all__ = [
    "DocumentChunk",
    "LinkType",
    "ProcessingState",
    "SkillGraphAdapter",
    "SkillGraphStore",
    "batch_process_ids",
    "chunk_document",
]
