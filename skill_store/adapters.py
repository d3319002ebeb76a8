"""Adapter objects that encapsulate access to the skill graph store."""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Sequence, Tuple, TypeVar
from uuid import uuid4

from .chunking import DocumentChunk, chunk_document
from .storage import SkillGraphStore

T = TypeVar("T")

DEFAULT_BATCH_SIZE = 25


class ProcessingState(str, Enum):
    """Lifecycle of a root skill while its DAG and modules are generated."""

    CREATING_DAG = "CREATING_DAG"
    DAG_GENERATED = "DAG_GENERATED"
    DAG_CREATION_FAILED = "DAG_CREATION_FAILED"
    CREATING_MODULES = "CREATING_MODULES"
    SUCCESS = "SUCCESS"
    MODULE_CREATION_FAILED = "MODULE_CREATION_FAILED"


class LinkType(str, Enum):
    LESSON_OBJECTIVE = "lesson_objective"
    LESSON_LINK = "lesson_link"
    LESSON_ROOT_SKILL = "lesson_root_skill"


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid4().hex}"


def batch_process_ids(
    ids: Sequence[str],
    query_fn: Callable[[List[str]], List[T]],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> List[T]:
    """Run ``query_fn`` over ``ids`` in slices of ``batch_size`` and concatenate."""

    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    results: List[T] = []
    for start in range(0, len(ids), batch_size):
        results.extend(query_fn(list(ids[start : start + batch_size])))
    return results


def _dumps(value: Any) -> str | None:
    if value is None:
        return None
    return json.dumps(value, ensure_ascii=False)


def _loads(raw: str | None, default: Any = None) -> Any:
    if raw is None or raw == "":
        return default
    try:
        return json.loads(raw)
    except (TypeError, ValueError):
        return default


def _placeholders(values: Sequence[Any]) -> str:
    return ",".join("?" for _ in values)


SKILL_COLUMNS = (
    "id, name, description, emoji, skill_type, root_skill_id, processing_state, "
    "metadata, reference_ids, chunk_ids, created_at"
)


def _skill_row(row: tuple) -> dict[str, Any]:
    return {
        "id": row[0],
        "name": row[1],
        "description": row[2],
        "emoji": row[3],
        "skill_type": row[4],
        "root_skill_id": row[5],
        "processing_state": row[6],
        "metadata": _loads(row[7], {}),
        "reference_ids": _loads(row[8], []),
        "chunk_ids": _loads(row[9], []),
        "created_at": row[10],
    }


@dataclass
class SkillGraphAdapter:
    store_path: Path

    def __post_init__(self) -> None:
        self.store = SkillGraphStore(self.store_path)

    # ------------------------------------------------------------------
    # Documents & chunks

    def add_document(
        self,
        content: str,
        *,
        file_name: str | None = None,
        metadata: Dict[str, Any] | None = None,
        chunk_size: int = 2000,
        overlap: int = 200,
        document_id: str | None = None,
    ) -> dict[str, Any]:
        doc_id = document_id or new_id("doc")
        chunks = chunk_document(doc_id, content, chunk_size=chunk_size, overlap=overlap, metadata=metadata)
        with self.store.transaction() as con:
            con.execute(
                "INSERT INTO document (id, file_name, content, metadata) VALUES (?, ?, ?, ?)",
                (doc_id, file_name, content, _dumps(metadata or {})),
            )
            con.executemany(
                "INSERT INTO chunk (id, document_id, content, start_position, end_position) VALUES (?, ?, ?, ?, ?)",
                [(c.id, c.document_id, c.content, c.start_position, c.end_position) for c in chunks],
            )
        return {"id": doc_id, "file_name": file_name, "chunk_count": len(chunks)}

    def get_document(self, document_id: str) -> dict[str, Any] | None:
        rows = self.store.query(
            "SELECT id, file_name, content, metadata, created_at FROM document WHERE id = ?",
            (document_id,),
        )
        if not rows:
            return None
        row = rows[0]
        return {
            "id": row[0],
            "file_name": row[1],
            "content": row[2],
            "metadata": _loads(row[3], {}),
            "created_at": row[4],
        }

    def get_all_chunks(self, document_ids: Sequence[str]) -> Tuple[List[DocumentChunk], Dict[str, dict[str, Any]]]:
        """Return chunks ordered by document id then position, plus the documents they belong to."""

        if not document_ids:
            return [], {}
        ids = list(dict.fromkeys(document_ids))
        documents: Dict[str, dict[str, Any]] = {}
        for doc_id in ids:
            document = self.get_document(doc_id)
            if document is not None:
                documents[doc_id] = document
        rows = self.store.query(
            "SELECT id, document_id, content, start_position, end_position FROM chunk "
            f"WHERE document_id IN ({_placeholders(ids)}) ORDER BY document_id ASC, start_position ASC",
            tuple(ids),
        )
        chunks = [
            DocumentChunk(
                id=row[0],
                document_id=row[1],
                content=row[2],
                start_position=row[3],
                end_position=row[4],
                metadata=documents.get(row[1], {}).get("metadata", {}),
            )
            for row in rows
        ]
        return chunks, documents

    # ------------------------------------------------------------------
    # Skills

    def create_skill(
        self,
        *,
        name: str,
        description: str | None = None,
        emoji: str | None = None,
        skill_type: str = "skill",
        root_skill_id: str | None = None,
        metadata: Dict[str, Any] | None = None,
        processing_state: ProcessingState | str | None = None,
    ) -> dict[str, Any]:
        if not name or not name.strip():
            raise ValueError("Skill name is required")
        skill_id = new_id("skill")
        state = processing_state.value if isinstance(processing_state, ProcessingState) else processing_state
        self.store.execute(
            "INSERT INTO skill (id, name, description, emoji, skill_type, root_skill_id, processing_state, metadata) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (skill_id, name.strip(), description, emoji, skill_type, root_skill_id, state, _dumps(metadata or {})),
        )
        return self.get_skill(skill_id) or {"id": skill_id}

    def get_skill(self, skill_id: str) -> dict[str, Any] | None:
        rows = self.store.query(f"SELECT {SKILL_COLUMNS} FROM skill WHERE id = ?", (skill_id,))
        return _skill_row(rows[0]) if rows else None

    def set_processing_state(self, skill_id: str, state: ProcessingState | str) -> bool:
        value = state.value if isinstance(state, ProcessingState) else str(state)
        with self.store.transaction() as con:
            cur = con.execute("UPDATE skill SET processing_state = ? WHERE id = ?", (value, skill_id))
            return cur.rowcount > 0

    def insert_skills(self, skills: Sequence[Dict[str, Any]]) -> List[str]:
        """Insert graph nodes in one transaction and return their ids in input order."""

        ids: List[str] = []
        rows = []
        for skill in skills:
            skill_id = skill.get("id") or new_id("skill")
            ids.append(skill_id)
            rows.append(
                (
                    skill_id,
                    skill["name"],
                    skill.get("description"),
                    skill.get("emoji"),
                    skill.get("skill_type", "skill"),
                    skill.get("root_skill_id"),
                    skill.get("processing_state"),
                    _dumps(skill.get("metadata") or {}),
                    _dumps(list(skill.get("reference_ids") or [])),
                    _dumps(list(skill.get("chunk_ids") or [])),
                )
            )
        if rows:
            with self.store.transaction() as con:
                con.executemany(
                    "INSERT INTO skill (id, name, description, emoji, skill_type, root_skill_id, processing_state, "
                    "metadata, reference_ids, chunk_ids) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    rows,
                )
        return ids

    def list_skills(
        self,
        *,
        root_skill_id: str,
        skill_type: str | None = None,
    ) -> list[dict[str, Any]]:
        sql = f"SELECT {SKILL_COLUMNS} FROM skill WHERE root_skill_id = ?"
        params: List[Any] = [root_skill_id]
        if skill_type:
            sql += " AND skill_type = ?"
            params.append(skill_type)
        sql += " ORDER BY rowid ASC"
        return [_skill_row(row) for row in self.store.query(sql, tuple(params))]

    def fetch_skills_by_ids(self, skill_ids: Sequence[str], *, batch_size: int = DEFAULT_BATCH_SIZE) -> list[dict[str, Any]]:
        def _query(batch: List[str]) -> List[dict[str, Any]]:
            rows = self.store.query(
                f"SELECT {SKILL_COLUMNS} FROM skill WHERE id IN ({_placeholders(batch)})",
                tuple(batch),
            )
            return [_skill_row(row) for row in rows]

        return batch_process_ids(list(dict.fromkeys(skill_ids)), _query, batch_size)

    # ------------------------------------------------------------------
    # References

    def insert_references(
        self,
        references: Iterable[Tuple[str, bool, str | None, str | None]],
    ) -> Dict[Tuple[str, str | None], str]:
        """Insert (sentence, is_exact, chunk_id, document_id) rows, deduplicated on (sentence, chunk).

        Returns a mapping from ``(sentence, chunk_id)`` to the reference id,
        covering both newly inserted and pre-existing rows.
        """

        unique: Dict[Tuple[str, str | None], Tuple[str, bool, str | None, str | None]] = {}
        for sentence, is_exact, chunk_id, document_id in references:
            unique.setdefault((sentence, chunk_id or None), (sentence, is_exact, chunk_id or None, document_id or None))
        if not unique:
            return {}

        mapping: Dict[Tuple[str, str | None], str] = {}
        with self.store.transaction() as con:
            for key, (sentence, is_exact, chunk_id, document_id) in unique.items():
                existing = con.execute(
                    "SELECT id FROM reference WHERE raw_content = ? AND chunk_id IS ?",
                    (sentence, chunk_id),
                ).fetchone()
                if existing:
                    mapping[key] = existing[0]
                    continue
                ref_id = new_id("ref")
                con.execute(
                    "INSERT INTO reference (id, raw_content, is_exact, chunk_id, document_id) VALUES (?, ?, ?, ?, ?)",
                    (ref_id, sentence, int(bool(is_exact)), chunk_id, document_id),
                )
                mapping[key] = ref_id
        return mapping

    def fetch_references(self, reference_ids: Sequence[str], *, batch_size: int = DEFAULT_BATCH_SIZE) -> list[dict[str, Any]]:
        def _query(batch: List[str]) -> List[dict[str, Any]]:
            rows = self.store.query(
                "SELECT id, raw_content, is_exact, chunk_id, document_id FROM reference "
                f"WHERE id IN ({_placeholders(batch)})",
                tuple(batch),
            )
            return [
                {
                    "id": row[0],
                    "raw_content": row[1],
                    "is_exact": bool(row[2]),
                    "chunk_id": row[3],
                    "document_id": row[4],
                }
                for row in rows
            ]

        return batch_process_ids(list(dict.fromkeys(reference_ids)), _query, batch_size)

    # ------------------------------------------------------------------
    # Links

    def insert_links(self, links: Iterable[Tuple[str, str, LinkType | str]]) -> int:
        """Insert (upstream, downstream, type) edges; duplicates on the composite key are ignored."""

        deduplicated: Dict[Tuple[str, str, str], None] = {}
        for upstream, downstream, link_type in links:
            if not upstream or not downstream:
                continue
            value = link_type.value if isinstance(link_type, LinkType) else str(link_type)
            deduplicated.setdefault((upstream, downstream, value), None)
        if not deduplicated:
            return 0
        with self.store.transaction() as con:
            before = con.total_changes
            con.executemany(
                "INSERT OR IGNORE INTO skill_link (upstream_skill, downstream_skill, link_type) VALUES (?, ?, ?)",
                list(deduplicated.keys()),
            )
            return con.total_changes - before

    def list_links(
        self,
        *,
        downstream_ids: Sequence[str] | None = None,
        link_type: LinkType | str | None = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> list[dict[str, Any]]:
        type_value = link_type.value if isinstance(link_type, LinkType) else link_type

        def _query(batch: List[str] | None) -> List[dict[str, Any]]:
            sql = "SELECT upstream_skill, downstream_skill, link_type FROM skill_link WHERE 1=1"
            params: List[Any] = []
            if batch is not None:
                sql += f" AND downstream_skill IN ({_placeholders(batch)})"
                params.extend(batch)
            if type_value:
                sql += " AND link_type = ?"
                params.append(type_value)
            sql += " ORDER BY id ASC"
            return [
                {"upstream_skill": row[0], "downstream_skill": row[1], "link_type": row[2]}
                for row in self.store.query(sql, tuple(params))
            ]

        if downstream_ids is None:
            return _query(None)
        return batch_process_ids(list(dict.fromkeys(downstream_ids)), _query, batch_size)

    # ------------------------------------------------------------------
    # Modules

    def create_module(
        self,
        *,
        name: str,
        position: int,
        root_skill_id: str,
        module_type: str,
        children_ids: Sequence[str] | None = None,
    ) -> str:
        module_id = new_id("skmod")
        self.store.execute(
            "INSERT INTO skill_module (id, name, position, root_skill_id, module_type, children_ids) "
            "VALUES (?, ?, ?, ?, ?, ?)",
            (module_id, name, position, root_skill_id, module_type, _dumps(list(children_ids)) if children_ids is not None else None),
        )
        return module_id

    def update_module_children(self, module_id: str, children_ids: Sequence[str]) -> None:
        self.store.execute(
            "UPDATE skill_module SET children_ids = ? WHERE id = ?",
            (_dumps(list(children_ids)), module_id),
        )

    def list_modules(self, root_skill_id: str) -> list[dict[str, Any]]:
        rows = self.store.query(
            "SELECT id, name, position, module_type, children_ids FROM skill_module "
            "WHERE root_skill_id = ? ORDER BY module_type ASC, position ASC, rowid ASC",
            (root_skill_id,),
        )
        return [
            {
                "id": row[0],
                "name": row[1],
                "position": row[2],
                "module_type": row[3],
                "children_ids": _loads(row[4], []),
            }
            for row in rows
        ]

    # ------------------------------------------------------------------
    # Resources & partial skills

    def create_resource(self, *, parent_skill_id: str, document_id: str) -> str:
        resource_id = new_id("res")
        self.store.execute(
            "INSERT INTO resource (id, parent_skill_id, child_document_id) VALUES (?, ?, ?)",
            (resource_id, parent_skill_id, document_id),
        )
        return resource_id

    def list_resources(self, parent_skill_id: str) -> list[dict[str, Any]]:
        rows = self.store.query(
            "SELECT id, parent_skill_id, child_document_id FROM resource WHERE parent_skill_id = ? ORDER BY rowid ASC",
            (parent_skill_id,),
        )
        return [{"id": row[0], "parent_skill_id": row[1], "child_document_id": row[2]} for row in rows]

    def create_partial_skill(
        self,
        *,
        skill_id: str,
        skill_name: str,
        skill_description: str | None,
        emoji: str | None,
        user_input: str | None = None,
        user_level: str | None = None,
        goals: Sequence[str] | None = None,
        pages: Sequence[str] | None = None,
        created_by: str | None = None,
    ) -> str:
        partial_id = new_id("pskill")
        self.store.execute(
            "INSERT INTO partial_skill (id, user_input, skill_name, skill_description, user_level, goals, pages, "
            "emoji, skill_id, created_by) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                partial_id,
                user_input or "",
                skill_name,
                skill_description,
                user_level,
                _dumps(list(goals or [])),
                _dumps(list(pages or [])),
                emoji,
                skill_id,
                created_by,
            ),
        )
        return partial_id

    def get_partial_skill(self, partial_skill_id: str) -> dict[str, Any] | None:
        rows = self.store.query(
            "SELECT id, user_input, skill_name, skill_description, user_level, goals, pages, emoji, skill_id, "
            "created_by FROM partial_skill WHERE id = ?",
            (partial_skill_id,),
        )
        if not rows:
            return None
        row = rows[0]
        return {
            "id": row[0],
            "user_input": row[1],
            "skill_name": row[2],
            "skill_description": row[3],
            "user_level": row[4],
            "goals": _loads(row[5], []),
            "pages": _loads(row[6], []),
            "emoji": row[7],
            "skill_id": row[8],
            "created_by": row[9],
        }

    # ------------------------------------------------------------------
    # Activities

    def create_activity(self, *, activity_type: str, type_config: Dict[str, Any], skill_id: str | None = None) -> str:
        activity_id = new_id("act")
        self.store.execute(
            "INSERT INTO activity (id, activity_type, type_config, skill_id) VALUES (?, ?, ?, ?)",
            (activity_id, activity_type, _dumps(type_config), skill_id),
        )
        return activity_id

    def get_activity(self, activity_id: str) -> dict[str, Any] | None:
        rows = self.store.query(
            "SELECT id, activity_type, type_config, skill_id FROM activity WHERE id = ?",
            (activity_id,),
        )
        if not rows:
            return None
        row = rows[0]
        return {"id": row[0], "activity_type": row[1], "type_config": _loads(row[2], {}), "skill_id": row[3]}

    def record_activity_result(
        self,
        *,
        activity_id: str,
        result_type: str,
        user_id: str | None = None,
        result_data: Any = None,
        submit_result: Dict[str, Any] | None = None,
        score: float = 0.0,
        xp: int = 0,
        skipped: bool = False,
        lesson_session_id: str | None = None,
    ) -> str:
        result_id = new_id("uar")
        self.store.execute(
            "INSERT INTO user_activity_result (id, activity_id, user_id, result_type, result_data, submit_result, "
            "score, xp, skipped, lesson_session_id) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                result_id,
                activity_id,
                user_id,
                result_type,
                _dumps(result_data),
                _dumps(submit_result),
                float(score),
                int(xp),
                int(bool(skipped)),
                lesson_session_id,
            ),
        )
        return result_id

    def list_activity_results(self, activity_id: str) -> list[dict[str, Any]]:
        rows = self.store.query(
            "SELECT id, user_id, result_type, score, xp, skipped FROM user_activity_result "
            "WHERE activity_id = ? ORDER BY rowid ASC",
            (activity_id,),
        )
        return [
            {
                "id": row[0],
                "user_id": row[1],
                "result_type": row[2],
                "score": row[3],
                "xp": row[4],
                "skipped": bool(row[5]),
            }
            for row in rows
        ]
