"""DSPy signature used to grade free-form activity answers."""

import dspy


class GradeActivityAnswer(dspy.Signature):
    """Grade a learner's answer to an activity on a 0-1 scale and explain the grade briefly."""

    activity_type: str = dspy.InputField()
    activity: str = dspy.InputField(desc="JSON activity config, including any expected answers.")
    user_answer: str = dspy.InputField(desc="JSON-encoded learner answer.")
    score: float = dspy.OutputField(desc="0 means entirely wrong, 1 means fully correct.")
    feedback: str = dspy.OutputField(desc="One or two sentences addressed to the learner.")


__all__ = ["GradeActivityAnswer"]
