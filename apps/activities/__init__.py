"""Activity registry and submission grading."""

from .registry import ACTIVITY_TYPE_SERVERS, calculate_xp, get_activity_type_server
from .submission import create_activity, submit_activity

__all__ = [
    "ACTIVITY_TYPE_SERVERS",
    "calculate_xp",
    "create_activity",
    "get_activity_type_server",
    "submit_activity",
]
