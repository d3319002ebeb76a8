"""Create activities and grade learner submissions against the registry."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

from skill_store import SkillGraphAdapter
from skillgraph.core.errors import ActivityNotFoundError, SkillNotFoundError

from .registry import GradeProgram, calculate_xp, get_activity_type_server

LOGGER = logging.getLogger(__name__)

GradeProgramProvider = Callable[[], Optional[GradeProgram]]


def create_activity(
    adapter: SkillGraphAdapter,
    *,
    activity_type: str,
    type_config: Dict[str, Any],
    skill_id: str | None = None,
) -> Dict[str, Any]:
    server = get_activity_type_server(activity_type)
    config = server.validate_config(type_config).model_dump()
    if skill_id is not None and adapter.get_skill(skill_id) is None:
        raise SkillNotFoundError(f"Skill not found: {skill_id}")
    activity_id = adapter.create_activity(activity_type=activity_type, type_config=config, skill_id=skill_id)
    return {"id": activity_id, "activity_type": activity_type, "type_config": config, "skill_id": skill_id}


def submit_activity(
    adapter: SkillGraphAdapter,
    activity_id: str,
    *,
    user_answer: Any = None,
    skipped: bool = False,
    user_id: str | None = None,
    lesson_session_id: str | None = None,
    grade_program: GradeProgram | None = None,
    grade_program_provider: GradeProgramProvider | None = None,
) -> Dict[str, Any]:
    """Grade (or skip) an answer, persist the result row, and return it.

    ``grade_program_provider`` is only called for LLM-graded activity types
    when no ``grade_program`` was passed.
    """

    activity = adapter.get_activity(activity_id)
    if activity is None:
        raise ActivityNotFoundError(f"Activity not found: {activity_id}")
    activity_type = activity["activity_type"]

    result: Dict[str, Any] = {"activity_type": activity_type, "result_data": user_answer}
    score = 0.0
    if skipped:
        result["type"] = "skipped"
    else:
        server = get_activity_type_server(activity_type)
        if server.uses_llm and grade_program is None and grade_program_provider is not None:
            grade_program = grade_program_provider()
        graded = server.grade(activity["type_config"], user_answer, grade_program=grade_program)
        if graded is None:
            result["type"] = "ungraded"
        else:
            score = graded.score
            result.update(
                type="graded",
                grade0to100=score * 100,
                feedback=graded.short_feedback,
                details=graded.details,
            )

    xp = calculate_xp(activity_type, score) if result["type"] == "graded" else 0
    result["xp"] = xp
    result["id"] = adapter.record_activity_result(
        activity_id=activity_id,
        result_type=result["type"],
        user_id=user_id,
        result_data=user_answer,
        submit_result={key: result.get(key) for key in ("grade0to100", "feedback", "details") if key in result},
        score=score,
        xp=xp,
        skipped=skipped,
        lesson_session_id=lesson_session_id,
    )
    LOGGER.info("Recorded %s result for %s (%s, xp=%d)", result["type"], activity_id, activity_type, xp)
    return result


__all__ = ["GradeProgramProvider", "create_activity", "submit_activity"]
