"""Locate LLM-quoted reference sentences inside the source chunks."""

from __future__ import annotations

from typing import List, Optional, Sequence, Tuple

from skill_store.chunking import DocumentChunk

from .models import ReferenceSentence

_ALNUM = frozenset("abcdefghijklmnopqrstuvwxyz0123456789")
_TRAILING_PUNCTUATION = ".!?,;"


def normalize_text(text: str) -> str:
    """Lowercase and drop everything outside ``[a-z0-9]``."""
    return "".join(ch for ch in text.lower() if ch in _ALNUM)


def _normalize_with_positions(text: str) -> Tuple[str, List[int]]:
    chars: List[str] = []
    positions: List[int] = []
    for index, ch in enumerate(text):
        for lowered in ch.lower():
            if lowered in _ALNUM:
                chars.append(lowered)
                positions.append(index)
    return "".join(chars), positions


def recover_span(sentence: str, text: str) -> Optional[str]:
    """Return the original-cased span of ``text`` matching ``sentence``, or None."""

    needle = normalize_text(sentence)
    if not needle:
        return None
    haystack, positions = _normalize_with_positions(text)
    found = haystack.find(needle)
    if found < 0:
        return None
    start = positions[found]
    end = positions[found + len(needle) - 1] + 1
    while end < len(text) and text[end] in _TRAILING_PUNCTUATION:
        end += 1
    return text[start:end]


def match_reference(
    sentence: str,
    chunks: Sequence[DocumentChunk],
    *,
    fallback_chunk_id: Optional[str] = None,
) -> ReferenceSentence:
    """Attribute ``sentence`` to the first chunk containing it.

    Unmatched sentences are kept verbatim and attributed to
    ``fallback_chunk_id`` with ``is_exact_match`` false.
    """

    for chunk in chunks:
        span = recover_span(sentence, chunk.content)
        if span is not None:
            return ReferenceSentence(
                sentence=span,
                is_exact_match=True,
                source_chunk_id=chunk.id,
                source_document_id=chunk.document_id,
            )
    fallback_document = next((c.document_id for c in chunks if c.id == fallback_chunk_id), None)
    return ReferenceSentence(
        sentence=sentence.strip(),
        is_exact_match=False,
        source_chunk_id=fallback_chunk_id,
        source_document_id=fallback_document,
    )


__all__ = ["match_reference", "normalize_text", "recover_span"]
