"""Turn a stored document into a DAG of learning objectives and lessons."""

from __future__ import annotations

import logging
import math
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Iterable, List, Mapping, Sequence, Tuple, TypeVar

import numpy as np
from numpy.typing import ArrayLike

from skill_store.chunking import DocumentChunk, fit_to_token_budget
from skillgraph.core.config import DagConfig
from skillgraph.core.errors import DocumentNotFoundError, EmptyDocumentError
from skillgraph.core.provenance import ProvenanceEvent, ProvenanceLogger

from .graph_utils import find_cycles, merge_intersecting
from .models import (
    DagResult,
    LearningObjective,
    LearningObjectiveWithReferences,
    LearningSummary,
    LessonDraft,
    LessonGroup,
    ObjectiveGroup,
    coerce_models,
)
from .programs import CurriculumPrograms
from .references import match_reference, normalize_text
from .similarity import cluster_by_similarity

LOGGER = logging.getLogger(__name__)

EmbedFn = Callable[[Sequence[str]], ArrayLike]
T = TypeVar("T")
R = TypeVar("R")

MAX_LESSON_MINUTES = 45
PREREQUISITE_EXCERPT_CHARS = 1500


def estimate_lesson_duration(num_objectives: int, num_chunks: int, llm_estimate: int | None = None) -> int:
    """Cap the LLM's estimate with a heuristic based on objectives and source chunks."""

    heuristic = min(2 * num_objectives + math.ceil((num_chunks**0.8) * 5), MAX_LESSON_MINUTES)
    if llm_estimate is None or llm_estimate <= 0:
        return heuristic
    return min(int(llm_estimate), heuristic)


def _clean_strings(values: Iterable[Any] | None) -> List[str]:
    return [str(value).strip() for value in values or [] if str(value).strip()]


class DocumentToDag:
    """Orchestrates the LLM and embedding stages that build a lesson DAG."""

    def __init__(
        self,
        programs: CurriculumPrograms,
        embed: EmbedFn,
        *,
        config: DagConfig | None = None,
        provenance: ProvenanceLogger | None = None,
    ) -> None:
        self.programs = programs
        self.embed = embed
        self.config = config or DagConfig()
        self.provenance = provenance

    # ------------------------------------------------------------------
    # Helpers

    def _map(self, fn: Callable[[T], R], items: Sequence[T]) -> List[R]:
        if len(items) <= 1 or self.config.max_workers == 1:
            return [fn(item) for item in items]
        with ThreadPoolExecutor(max_workers=self.config.max_workers) as executor:
            return list(executor.map(fn, items))

    def _record(self, message: str, **payload: Any) -> None:
        LOGGER.info("%s %s", message, payload)
        if self.provenance is not None:
            self.provenance.log(ProvenanceEvent(stage="document_to_dag", message=message, payload=payload))

    # ------------------------------------------------------------------
    # Summary & naming

    def generate_learning_summary(self, chunks: Sequence[DocumentChunk]) -> LearningSummary:
        usable = [chunk for chunk in chunks if chunk.content.strip()]
        if not usable:
            raise ValueError("Cannot summarize a document without content")
        budgeted = fit_to_token_budget(usable, self.config.token_limit)
        content = "\n\n".join(chunk.content for chunk in budgeted)
        prediction = self.programs.summarize(content=content)
        return LearningSummary(
            summary=str(prediction.summary).strip(),
            learning_objectives=_clean_strings(prediction.learning_objectives),
        )

    def generate_skill_name(
        self,
        first_chunk: DocumentChunk | str,
        summary: str,
        learning_objectives: Sequence[str],
    ) -> Dict[str, str]:
        text = first_chunk.content if isinstance(first_chunk, DocumentChunk) else first_chunk
        prediction = self.programs.name_skill(
            first_chunk=text,
            summary=summary,
            learning_objectives=list(learning_objectives),
        )
        return {"skill_name": str(prediction.skill_name).strip(), "emoji": str(prediction.emoji).strip()}

    # ------------------------------------------------------------------
    # Objectives

    def extract_specific_learning_objectives(
        self,
        chunks: Sequence[DocumentChunk],
        summary: str,
    ) -> List[LearningObjective]:
        usable = [chunk for chunk in chunks if chunk.content.strip()]

        def _extract(chunk: DocumentChunk) -> List[LearningObjective]:
            prediction = self.programs.extract_objectives(summary=summary, chunk=chunk.content)
            return [
                LearningObjective(
                    text=text,
                    chunk_ids=[chunk.id],
                    ids=[f"{chunk.id}-{index}"],
                    all_sub_objectives=[text],
                )
                for index, text in enumerate(_clean_strings(prediction.learning_objectives))
            ]

        objectives = [objective for batch in self._map(_extract, usable) for objective in batch]
        self._record("Extracted learning objectives", chunks=len(usable), objectives=len(objectives))
        return objectives

    def deduplicate_learning_objectives(
        self,
        objectives: Sequence[LearningObjective],
        *,
        threshold: float | None = None,
        max_cluster_size: int | None = None,
        threshold_increment: float | None = None,
        max_threshold: float = 1.0,
    ) -> List[LearningObjective]:
        """Collapse semantically similar objectives into LLM-chosen representatives."""

        if len(objectives) <= 1:
            return list(objectives)

        vectors = self.embed([objective.text for objective in objectives])
        for objective, vector in zip(objectives, vectors):
            objective.vector = np.asarray(vector, dtype=float).tolist()
        clusters = cluster_by_similarity(
            vectors,
            threshold=self.config.threshold if threshold is None else threshold,
            max_cluster_size=max_cluster_size or self.config.max_cluster_size,
            threshold_increment=threshold_increment or self.config.threshold_increment,
            max_threshold=max_threshold,
        )

        def _merge(cluster: List[int]) -> List[LearningObjective]:
            members = [objectives[index] for index in cluster]
            if len(members) == 1:
                return members
            prediction = self.programs.group_objectives(objectives=[member.text for member in members])
            return self._apply_objective_groups(members, coerce_models(prediction.groups, ObjectiveGroup))

        deduplicated = [objective for batch in self._map(_merge, clusters) for objective in batch]
        self._record(
            "Deduplicated learning objectives",
            before=len(objectives),
            after=len(deduplicated),
            clusters=len(clusters),
        )
        return deduplicated

    @staticmethod
    def _apply_objective_groups(
        members: Sequence[LearningObjective],
        groups: Sequence[ObjectiveGroup],
    ) -> List[LearningObjective]:
        claimed: set[int] = set()
        merged: List[LearningObjective] = []
        for group in groups:
            wanted = {normalize_text(text) for text in group.group}
            matching = [
                (index, member)
                for index, member in enumerate(members)
                if index not in claimed and normalize_text(member.text) in wanted
            ]
            representative = group.representative.strip()
            if not matching or not representative:
                continue
            claimed.update(index for index, _ in matching)
            merged.append(
                LearningObjective(
                    text=representative,
                    chunk_ids=list(dict.fromkeys(cid for _, m in matching for cid in m.chunk_ids)),
                    ids=list(dict.fromkeys(oid for _, m in matching for oid in m.ids)),
                    all_sub_objectives=[member.text for _, member in matching],
                )
            )
        merged.extend(member for index, member in enumerate(members) if index not in claimed)
        return merged

    # ------------------------------------------------------------------
    # References

    def extract_reference_sentences(
        self,
        objectives: Sequence[LearningObjective],
        chunks: Sequence[DocumentChunk],
    ) -> List[LearningObjectiveWithReferences]:
        chunk_by_id = {chunk.id: chunk for chunk in chunks}

        def _references(objective: LearningObjective) -> LearningObjectiveWithReferences:
            enriched = LearningObjectiveWithReferences(
                text=objective.text,
                chunk_ids=list(objective.chunk_ids),
                ids=list(objective.ids),
                all_sub_objectives=list(objective.all_sub_objectives),
                vector=objective.vector,
            )
            source = [
                chunk_by_id[cid]
                for cid in objective.chunk_ids
                if cid in chunk_by_id and chunk_by_id[cid].content.strip()
            ]
            if not source:
                return enriched
            prediction = self.programs.extract_references(
                learning_objective=objective.text,
                source_text="\n\n".join(chunk.content for chunk in source),
            )
            seen: set[Tuple[str, str | None]] = set()
            for sentence in _clean_strings(prediction.sentences):
                reference = match_reference(sentence, source, fallback_chunk_id=objective.chunk_ids[0])
                key = (reference.sentence, reference.source_chunk_id)
                if key not in seen:
                    seen.add(key)
                    enriched.references.append(reference)
            return enriched

        enriched = self._map(_references, list(objectives))
        self._record(
            "Matched reference sentences",
            objectives=len(enriched),
            references=sum(len(item.references) for item in enriched),
            exact=sum(1 for item in enriched for ref in item.references if ref.is_exact_match),
        )
        return enriched

    # ------------------------------------------------------------------
    # Lessons

    def generate_lesson_groups(
        self,
        objectives: Sequence[LearningObjectiveWithReferences],
    ) -> List[LessonGroup]:
        if not objectives:
            return []
        texts = [
            "\n".join([objective.text, *[ref.sentence for ref in objective.references]])
            for objective in objectives
        ]
        clusters = cluster_by_similarity(
            self.embed(texts),
            threshold=self.config.lesson_threshold,
            max_cluster_size=self.config.lesson_max_cluster_size,
            threshold_increment=self.config.lesson_threshold_increment,
            max_threshold=self.config.lesson_max_threshold,
        )

        def _lessons(cluster: List[int]) -> List[LessonGroup]:
            members = [objectives[index] for index in cluster]
            prediction = self.programs.group_lessons(objectives=[member.text for member in members])
            return self._build_lessons(members, coerce_models(prediction.lessons, LessonDraft))

        lessons = [lesson for batch in self._map(_lessons, clusters) for lesson in batch]
        self._uniquify_names(lessons)
        self._record("Generated lesson groups", lessons=len(lessons), clusters=len(clusters))
        return lessons

    @staticmethod
    def _build_lessons(
        members: Sequence[LearningObjectiveWithReferences],
        drafts: Sequence[LessonDraft],
    ) -> List[LessonGroup]:
        claimed: set[int] = set()
        lessons: List[LessonGroup] = []
        estimates: List[int | None] = []
        for draft in drafts:
            wanted = {normalize_text(text) for text in draft.learning_objectives}
            matching = [
                index
                for index, member in enumerate(members)
                if index not in claimed and normalize_text(member.text) in wanted
            ]
            if not matching or not draft.lesson_name.strip():
                continue
            claimed.update(matching)
            lessons.append(
                LessonGroup(lesson_name=draft.lesson_name.strip(), cluster=[members[index] for index in matching])
            )
            estimates.append(draft.expected_duration_minutes)

        leftovers = [member for index, member in enumerate(members) if index not in claimed]
        if leftovers:
            if lessons:
                lessons[-1].cluster.extend(leftovers)
            else:
                lessons.append(LessonGroup(lesson_name=leftovers[0].text, cluster=leftovers))
                estimates.append(None)

        for lesson, estimate in zip(lessons, estimates):
            lesson.chunk_ids = list(dict.fromkeys(cid for objective in lesson.cluster for cid in objective.chunk_ids))
            lesson.expected_duration_minutes = estimate_lesson_duration(
                len(lesson.cluster), len(lesson.chunk_ids), estimate
            )
        return lessons

    @staticmethod
    def _uniquify_names(lessons: Sequence[LessonGroup]) -> None:
        # suffixes never reuse a name the LLM returned literally
        reserved = {lesson.lesson_name for lesson in lessons}
        assigned: set[str] = set()
        counts: Dict[str, int] = {}
        for lesson in lessons:
            base = lesson.lesson_name
            if base not in assigned:
                assigned.add(base)
                continue
            number = counts.get(base, 1)
            candidate = base
            while candidate in reserved or candidate in assigned:
                number += 1
                candidate = f"{base} ({number})"
            counts[base] = number
            lesson.lesson_name = candidate
            assigned.add(candidate)

    @staticmethod
    def _describe(lesson: LessonGroup) -> str:
        objectives = "; ".join(objective.text for objective in lesson.cluster)
        return f"{lesson.lesson_name}: {objectives}" if objectives else lesson.lesson_name

    def find_prerequisites(
        self,
        lessons: Sequence[LessonGroup],
        chunks: Sequence[DocumentChunk] | None = None,
    ) -> List[LessonGroup]:
        names = [lesson.lesson_name for lesson in lessons]
        limit = self.config.max_prerequisites
        chunk_by_id = {chunk.id: chunk for chunk in chunks or []}

        def _with_source(lesson: LessonGroup) -> str:
            excerpt = " ".join(chunk_by_id[cid].content for cid in lesson.chunk_ids if cid in chunk_by_id)
            description = self._describe(lesson)
            if excerpt.strip():
                description += f"\nSource excerpt: {excerpt[:PREREQUISITE_EXCERPT_CHARS].strip()}"
            return description

        def _prerequisites(lesson: LessonGroup) -> List[str]:
            others = [name for name in names if name != lesson.lesson_name]
            if not others or limit == 0:
                return []
            prediction = self.programs.find_prerequisites(
                lesson=_with_source(lesson),
                other_lessons=others,
                max_prerequisites=limit,
            )
            allowed = set(others)
            chosen = [name for name in dict.fromkeys(_clean_strings(prediction.prerequisites)) if name in allowed]
            return chosen[:limit]

        for lesson, prerequisites in zip(lessons, self._map(_prerequisites, list(lessons))):
            lesson.prerequisites = prerequisites
        self._record(
            "Found prerequisites",
            lessons=len(lessons),
            edges=sum(len(lesson.prerequisites) for lesson in lessons),
        )
        return list(lessons)

    def _rank(self, group: Sequence[str], by_name: Mapping[str, LessonGroup]) -> Dict[str, int]:
        prediction = self.programs.rank_lessons(lessons=[self._describe(by_name[name]) for name in group])
        members = set(group)
        ordered: List[str] = []
        for entry in _clean_strings(prediction.ranking):
            name = entry if entry in members else entry.split(":", 1)[0].strip()
            if name in members and name not in ordered:
                ordered.append(name)
        ordered.extend(name for name in group if name not in ordered)
        return {name: rank for rank, name in enumerate(ordered)}

    def remove_cyclic_dependencies(self, lessons: Sequence[LessonGroup]) -> List[LessonGroup]:
        """Rewrite prerequisites so the lesson graph is acyclic."""

        by_name = {lesson.lesson_name: lesson for lesson in lessons}
        for lesson in lessons:
            lesson.prerequisites = [
                name
                for name in dict.fromkeys(lesson.prerequisites)
                if name in by_name and name != lesson.lesson_name
            ]

        def _graph() -> Dict[str, List[str]]:
            return {lesson.lesson_name: lesson.prerequisites for lesson in lessons}

        for attempt in range(self.config.max_cycle_passes):
            cycles = find_cycles(_graph())
            if not cycles:
                break
            groups = merge_intersecting(cycles)
            LOGGER.info("Cycle removal pass %d: %d cycles in %d groups", attempt + 1, len(cycles), len(groups))
            rankings = self._map(lambda group: self._rank(group, by_name), groups)
            for group, ranks in zip(groups, rankings):
                for name in group:
                    lesson = by_name[name]
                    lesson.prerequisites = [
                        dep for dep in lesson.prerequisites if dep not in ranks or ranks[dep] < ranks[name]
                    ]

        forced = 0
        cycles = find_cycles(_graph())
        while cycles:
            for cycle in cycles:
                first, second = cycle[0], cycle[1 % len(cycle)]
                lesson = by_name[first]
                if second in lesson.prerequisites:
                    lesson.prerequisites.remove(second)
                    forced += 1
            cycles = find_cycles(_graph())
        if forced:
            LOGGER.warning("Broke %d prerequisite edges to remove leftover cycles", forced)
        return list(lessons)

    # ------------------------------------------------------------------
    # Entry point

    def create_dag(
        self,
        document_id: str,
        store: Any,
        summary: str,
        *,
        threshold: float | None = None,
        max_cluster_size: int | None = None,
        threshold_increment: float | None = None,
    ) -> DagResult:
        """Run objective extraction through cycle removal for one stored document."""

        outer = self.provenance
        if outer is not None:
            self.provenance = outer.bind(document_id=document_id)
        try:
            return self._create_dag(
                document_id,
                store,
                summary,
                threshold=threshold,
                max_cluster_size=max_cluster_size,
                threshold_increment=threshold_increment,
            )
        finally:
            self.provenance = outer

    def _create_dag(
        self,
        document_id: str,
        store: Any,
        summary: str,
        *,
        threshold: float | None,
        max_cluster_size: int | None,
        threshold_increment: float | None,
    ) -> DagResult:
        chunks, documents = store.get_all_chunks([document_id])
        if document_id not in documents:
            raise DocumentNotFoundError(f"Document not found: {document_id}")
        usable = [chunk for chunk in chunks if chunk.content.strip()]
        if not usable:
            raise EmptyDocumentError(f"Document {document_id} has no usable content")

        objectives = self.extract_specific_learning_objectives(usable, summary)
        deduplicated = self.deduplicate_learning_objectives(
            objectives,
            threshold=threshold,
            max_cluster_size=max_cluster_size,
            threshold_increment=threshold_increment,
        )
        with_references = self.extract_reference_sentences(deduplicated, usable)
        lessons = self.generate_lesson_groups(with_references)
        self.find_prerequisites(lessons, usable)
        self.remove_cyclic_dependencies(lessons)

        stats = {
            "chunks": len(usable),
            "raw_objectives": len(objectives),
            "objectives": len(with_references),
            "lessons": len(lessons),
            "prerequisite_edges": sum(len(lesson.prerequisites) for lesson in lessons),
        }
        self._record("DAG created", **stats)
        return DagResult(summary=summary, objectives=with_references, lessons=lessons, stats=stats)


__all__ = ["DocumentToDag", "estimate_lesson_duration"]
