"""Document chunking helpers shared by ingestion and the DAG pipeline."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence
from uuid import uuid4


@dataclass
class DocumentChunk:
    id: str
    document_id: str
    content: str
    start_position: int
    end_position: int
    metadata: Dict[str, Any] = field(default_factory=dict)


def chunk_document(
    document_id: str,
    content: str,
    *,
    chunk_size: int = 2000,
    overlap: int = 200,
    metadata: Dict[str, Any] | None = None,
) -> List[DocumentChunk]:
    """Split ``content`` into overlapping windows of ``chunk_size`` characters."""

    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError("overlap must be >= 0 and smaller than chunk_size")

    chunks: List[DocumentChunk] = []
    step = chunk_size - overlap
    for start in range(0, len(content), step):
        end = min(start + chunk_size, len(content))
        chunks.append(
            DocumentChunk(
                id=f"chunk_{uuid4().hex}",
                document_id=document_id,
                content=content[start:end],
                start_position=start,
                end_position=end,
                metadata=dict(metadata or {}),
            )
        )
        if end == len(content):
            break
    return chunks


def estimate_token_count(text: str) -> int:
    """Rough token estimate: one token per four characters of English text."""
    return math.ceil(len(text) / 4)


def fit_to_token_budget(chunks: Sequence[DocumentChunk], token_limit: int) -> List[DocumentChunk]:
    """Keep leading chunks until ``token_limit`` is spent (at least one is kept)."""

    kept: List[DocumentChunk] = []
    used = 0
    for chunk in chunks:
        cost = estimate_token_count(chunk.content)
        if kept and used + cost > token_limit:
            break
        kept.append(chunk)
        used += cost
    return kept


__all__ = ["DocumentChunk", "chunk_document", "estimate_token_count", "fit_to_token_budget"]
