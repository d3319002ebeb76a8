"""JSONL provenance trail for document, DAG, and module generation runs."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Literal, Optional

from pydantic import BaseModel, Field, model_validator

PipelineStage = Literal["bootstrap", "ingest", "suggest", "document_to_dag", "root_dag", "modules"]
SUBJECT_FIELDS = ("document_id", "skill_id")


class ProvenanceEvent(BaseModel):
    """One pipeline step, tied to the document and skill it touched."""

    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    stage: PipelineStage
    message: str = Field(..., description="Human-readable description of the event.")
    agent: str = Field(default="system")
    document_id: Optional[str] = None
    skill_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _lift_subject_ids(cls, data: Any) -> Any:
        """Move ``document_id``/``skill_id`` out of the payload onto the event."""

        if not isinstance(data, dict) or not isinstance(data.get("payload"), dict):
            return data
        payload = dict(data["payload"])
        lifted = dict(data)
        for key in SUBJECT_FIELDS:
            if key in payload:
                value = payload.pop(key)
                if lifted.get(key) is None:
                    lifted[key] = value
        lifted["payload"] = payload
        return lifted


class ProvenanceLogger:
    """Append-only JSONL logger; bound loggers stamp their ids onto every event."""

    def __init__(self, output_path: Path, *, document_id: str | None = None, skill_id: str | None = None):
        self.output_path = output_path
        self.subject = {
            key: value for key, value in (("document_id", document_id), ("skill_id", skill_id)) if value is not None
        }
        self.output_path.parent.mkdir(parents=True, exist_ok=True)

    def bind(self, *, document_id: str | None = None, skill_id: str | None = None) -> "ProvenanceLogger":
        subject = {**self.subject}
        if document_id is not None:
            subject["document_id"] = document_id
        if skill_id is not None:
            subject["skill_id"] = skill_id
        return ProvenanceLogger(self.output_path, **subject)

    def log(self, event: ProvenanceEvent | Dict[str, Any]) -> ProvenanceEvent:
        if not isinstance(event, ProvenanceEvent):
            event = ProvenanceEvent(**event)
        missing = {key: value for key, value in self.subject.items() if getattr(event, key) is None}
        if missing:
            event = event.model_copy(update=missing)
        with self.output_path.open("a", encoding="utf-8") as handle:
            handle.write(event.model_dump_json() + "\n")
        return event

    def extend(self, events: Iterable[ProvenanceEvent | Dict[str, Any]]) -> None:
        for event in events:
            self.log(event)

    def events(
        self,
        *,
        stage: str | None = None,
        document_id: str | None = None,
        skill_id: str | None = None,
    ) -> List[ProvenanceEvent]:
        """Read back logged events, optionally filtered by stage or subject."""

        if not self.output_path.exists():
            return []
        matches: List[ProvenanceEvent] = []
        with self.output_path.open(encoding="utf-8") as handle:
            for line in handle:
                if not line.strip():
                    continue
                event = ProvenanceEvent.model_validate_json(line)
                if stage is not None and event.stage != stage:
                    continue
                if document_id is not None and event.document_id != document_id:
                    continue
                if skill_id is not None and event.skill_id != skill_id:
                    continue
                matches.append(event)
        return matches


__all__ = ["PipelineStage", "ProvenanceEvent", "ProvenanceLogger"]
