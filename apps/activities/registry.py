"""Activity type registry: config schemas, graders, and XP values."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Literal, Optional

import dspy
from pydantic import BaseModel, Field, ValidationError, model_validator

from apps.curriculum.programs import wrap_with_lm
from skillgraph.core.errors import ActivityError

from .signatures import GradeActivityAnswer

GradeProgram = Callable[..., Any]

DEFAULT_MAX_XP = 10


# ----------------------------------------------------------------------
# Config schemas


class SlideConfig(BaseModel):
    title: str
    markdown_content: str
    emoji: Optional[str] = None


class FlashcardConfig(BaseModel):
    front: str
    back: str


class MultipleChoiceConfig(BaseModel):
    question: str
    answer_choices: List[str] = Field(min_length=2)
    correct_answer: str
    answer_choice_follow_ups: Dict[str, str] = Field(default_factory=dict)

    @model_validator(mode="after")
    def correct_answer_is_a_choice(self) -> "MultipleChoiceConfig":
        if self.correct_answer not in self.answer_choices:
            raise ValueError("correct_answer must be one of answer_choices")
        return self


class SequenceConfig(BaseModel):
    prompt: str
    items: List[str] = Field(min_length=2, description="Items in their correct order.")


class ChooseTheBlankConfig(BaseModel):
    text: str
    hidden_words: List[str] = Field(min_length=1)
    word_choices: List[str] = Field(default_factory=list)


class TermPair(BaseModel):
    term: str
    definition: str


class TermMatchingConfig(BaseModel):
    instructions: Optional[str] = None
    term_pairs: List[TermPair] = Field(min_length=1)


class FillInTheBlankConfig(BaseModel):
    text: str
    hidden_words: List[str] = Field(min_length=1)


class ShortAnswerConfig(BaseModel):
    question: str
    grading_instructions: Optional[str] = None


class RoleplayConfig(BaseModel):
    setting: str
    user_character: str
    characters: List[str] = Field(default_factory=list)
    objectives: List[str] = Field(default_factory=list)


class SocraticConfig(BaseModel):
    topic: str
    learning_objectives: List[str] = Field(default_factory=list)


class TeachTheAIConfig(BaseModel):
    topic: str
    ai_persona: Optional[str] = None
    grading_instructions: Optional[str] = None


# ----------------------------------------------------------------------
# Grading


class GradeResult(BaseModel):
    score: float = Field(ge=0.0, le=1.0)
    short_feedback: Optional[str] = None
    details: Dict[str, Any] = Field(default_factory=dict)


def _answer_value(user_answer: Any, key: str) -> Any:
    if isinstance(user_answer, dict):
        return user_answer.get(key)
    return user_answer


def grade_multiple_choice(config: MultipleChoiceConfig, user_answer: Any) -> GradeResult:
    choice = _answer_value(user_answer, "user_answer")
    is_correct = choice == config.correct_answer
    return GradeResult(
        score=1.0 if is_correct else 0.0,
        short_feedback=config.answer_choice_follow_ups.get(str(choice)),
        details={"is_correct": is_correct},
    )


FLASHCARD_SCORES = {"BAD": 0.0, "OK": 0.5, "GREAT": 1.0}


def grade_flashcard(config: FlashcardConfig, user_answer: Any) -> GradeResult:
    attestation = str(_answer_value(user_answer, "attestation") or "").upper()
    if attestation not in FLASHCARD_SCORES:
        raise ActivityError(f"Flashcard attestation must be one of {sorted(FLASHCARD_SCORES)}")
    return GradeResult(score=FLASHCARD_SCORES[attestation], details={"attestation": attestation})


def grade_sequence(config: SequenceConfig, user_answer: Any) -> GradeResult:
    ordered = _answer_value(user_answer, "ordered_items")
    if not isinstance(ordered, list):
        raise ActivityError("Sequence answers must provide ordered_items as a list")
    correct = [index for index, item in enumerate(config.items) if index < len(ordered) and ordered[index] == item]
    return GradeResult(
        score=len(correct) / len(config.items),
        details={"correct_positions": correct},
    )


def grade_term_matching(config: TermMatchingConfig, user_answer: Any) -> GradeResult:
    pairs = _answer_value(user_answer, "matched_pairs")
    if not isinstance(pairs, list):
        raise ActivityError("Term matching answers must provide matched_pairs as a list")
    expected = {pair.term: pair.definition for pair in config.term_pairs}
    matched = {}
    for pair in pairs:
        if isinstance(pair, dict) and pair.get("term") in expected and pair.get("term") not in matched:
            matched[pair["term"]] = pair.get("definition")
    correct = [term for term, definition in matched.items() if expected[term] == definition]
    return GradeResult(
        score=len(correct) / len(expected),
        details={"correct_terms": correct},
    )


def llm_grader(activity_type: str) -> Callable[..., GradeResult]:
    def _grade(config: BaseModel, user_answer: Any, *, grade_program: GradeProgram | None = None) -> GradeResult:
        if grade_program is None:
            raise ActivityError(f"No grading program configured for '{activity_type}'")
        prediction = grade_program(
            activity_type=activity_type,
            activity=config.model_dump_json(),
            user_answer=json.dumps(user_answer, ensure_ascii=False, default=str),
        )
        try:
            score = float(prediction.score)
        except (TypeError, ValueError) as exc:
            raise ActivityError(f"Grader returned a non-numeric score: {prediction.score!r}") from exc
        return GradeResult(
            score=min(max(score, 0.0), 1.0),
            short_feedback=str(prediction.feedback or "").strip() or None,
        )

    return _grade


def build_grade_program(*, lm: object | None = None) -> GradeProgram:
    return wrap_with_lm(dspy.Predict(GradeActivityAnswer), lm)


# ----------------------------------------------------------------------
# Registry


@dataclass(frozen=True)
class ActivityTypeServer:
    activity_type: str
    config_model: type[BaseModel]
    max_xp: int
    grader: Callable[..., GradeResult] | None = None
    uses_llm: bool = False

    def validate_config(self, config: Dict[str, Any]) -> BaseModel:
        try:
            return self.config_model.model_validate(config)
        except ValidationError as exc:
            raise ActivityError(f"Invalid config for '{self.activity_type}': {exc}") from exc

    def grade(self, config: Dict[str, Any], user_answer: Any, *, grade_program: GradeProgram | None = None) -> GradeResult | None:
        if self.grader is None:
            return None
        parsed = self.validate_config(config)
        if self.uses_llm:
            return self.grader(parsed, user_answer, grade_program=grade_program)
        return self.grader(parsed, user_answer)


ActivityType = Literal[
    "slide",
    "flashcard",
    "multiple-choice",
    "sequence",
    "choose-the-blank",
    "term-matching",
    "fill-in-the-blank",
    "short-answer",
    "roleplay",
    "socratic",
    "teach-the-ai",
]

ACTIVITY_TYPE_SERVERS: Dict[str, ActivityTypeServer] = {
    server.activity_type: server
    for server in (
        ActivityTypeServer("slide", SlideConfig, 0),
        ActivityTypeServer("flashcard", FlashcardConfig, 20, grade_flashcard),
        ActivityTypeServer("multiple-choice", MultipleChoiceConfig, 30, grade_multiple_choice),
        ActivityTypeServer("sequence", SequenceConfig, 30, grade_sequence),
        ActivityTypeServer("choose-the-blank", ChooseTheBlankConfig, 30, llm_grader("choose-the-blank"), True),
        ActivityTypeServer("term-matching", TermMatchingConfig, 40, grade_term_matching),
        ActivityTypeServer("fill-in-the-blank", FillInTheBlankConfig, 50, llm_grader("fill-in-the-blank"), True),
        ActivityTypeServer("short-answer", ShortAnswerConfig, 75, llm_grader("short-answer"), True),
        ActivityTypeServer("roleplay", RoleplayConfig, 100),
        ActivityTypeServer("socratic", SocraticConfig, DEFAULT_MAX_XP),
        ActivityTypeServer("teach-the-ai", TeachTheAIConfig, 150, llm_grader("teach-the-ai"), True),
    )
}


def get_activity_type_server(activity_type: str) -> ActivityTypeServer:
    try:
        return ACTIVITY_TYPE_SERVERS[activity_type]
    except KeyError as exc:
        raise ActivityError(f"Unknown activity type: {activity_type}") from exc


def max_xp_for(activity_type: str) -> int:
    server = ACTIVITY_TYPE_SERVERS.get(activity_type)
    return server.max_xp if server is not None else DEFAULT_MAX_XP


def calculate_xp(activity_type: str, score: float) -> int:
    """``score`` is 0-1; halves round up."""
    return int(math.floor(score * max_xp_for(activity_type) + 0.5))


__all__ = [
    "ACTIVITY_TYPE_SERVERS",
    "ActivityTypeServer",
    "GradeResult",
    "build_grade_program",
    "calculate_xp",
    "get_activity_type_server",
    "max_xp_for",
]
