"""
Eligibility evaluator - decides whether a pending quiz should be shown now
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from app.services import scheduling
from app.utils.dates import EPOCH, to_utc

logger = logging.getLogger(__name__)

RESPECT_TIMEFRAME = "RESPECT_TIMEFRAME"
ALL_USERS = "ALL_USERS"
OUTSIDE_TIMEFRAME_ONLY = "OUTSIDE_TIMEFRAME_ONLY"


def is_within_time_frame(user: Any) -> bool:
    time_frame = getattr(user, "time_frame", None) or {}
    return bool(time_frame.get("is_within_time_frame"))


def timeframe_allows(user: Any, quiz: Any) -> bool:
    """
    Time-frame gate for a user/quiz pair

    RESPECT_TIMEFRAME: only users inside their frame
    OUTSIDE_TIMEFRAME_ONLY: only users outside their frame
    ALL_USERS: everyone
    unset/unknown: legacy respect_user_time_frame flag
    """
    within = is_within_time_frame(user)
    handling = getattr(quiz, "time_frame_handling", None)

    if handling == RESPECT_TIMEFRAME:
        return within
    if handling == ALL_USERS:
        return True
    if handling == OUTSIDE_TIMEFRAME_ONLY:
        return not within
    if getattr(quiz, "respect_user_time_frame", None):
        return within
    return True


def describe_timeframe(user: Any, quiz: Any) -> str:
    handling = getattr(quiz, "time_frame_handling", None) or "LEGACY"
    status = "inside" if is_within_time_frame(user) else "outside"
    verdict = "matches" if timeframe_allows(user, quiz) else "does not match"
    return f"{handling}: user is {status} time frame, {verdict} quiz requirement"


def is_quiz_due(user: Any, quiz: Any, now: datetime) -> bool:
    """
    True when a pending quiz should be presented to the user at `now`

    Missing or nameless quizzes are never due. Time-interval quizzes are due
    once the trigger date has passed; other trigger types have no time gate.
    """
    if quiz is None:
        return False
    if not getattr(quiz, "name", None):
        logger.warning(f"Quiz {getattr(quiz, 'id', None)} has no name, treating as corrupted")
        return False

    if quiz.trigger_type == scheduling.TIME_INTERVAL:
        amount, unit = scheduling.resolve_delay(quiz)
        if scheduling.compute_delay_ms(amount, unit) > 0:
            trigger_date = scheduling.compute_trigger_date(user, quiz)
            if now < trigger_date:
                logger.debug(f"Quiz '{quiz.name}' not due until {trigger_date.isoformat()}")
                return False

    # NOTE: the time frame is informational on this path. The periodic sweep
    # hard-gates on it before creating the pending entry, but a quiz that is
    # already pending is shown regardless. Possibly inconsistent; kept as-is
    # until product confirms.
    if not timeframe_allows(user, quiz):
        logger.info(f"Showing quiz '{quiz.name}' anyway ({describe_timeframe(user, quiz)})")

    return True


def prune_orphaned_pending(
    user: Any, quizzes_by_id: Dict[str, Any]
) -> Tuple[List[Dict[str, Any]], int]:
    """
    Drop pending entries whose quiz no longer exists

    Returns the surviving entries (original order) and how many were dropped.
    """
    valid = []
    removed = 0
    for pending in getattr(user, "pending_quizzes", None) or []:
        if quizzes_by_id.get(str(pending.get("quiz_id"))) is not None:
            valid.append(pending)
        else:
            removed += 1
            logger.warning(
                f"Data integrity: user {user.id} has pending quiz "
                f"{pending.get('quiz_id')} that no longer exists, removing reference"
            )
    return valid, removed


def _assigned_at_key(pending: Dict[str, Any]):
    return to_utc(pending.get("assigned_at")) or EPOCH


def select_active_quiz(
    user: Any,
    pending_quizzes: List[Dict[str, Any]],
    quizzes_by_id: Dict[str, Any],
    now: datetime,
) -> Optional[Any]:
    """Earliest-assigned pending quiz that is due; ties keep list order"""
    for pending in sorted(pending_quizzes, key=_assigned_at_key):
        quiz = quizzes_by_id.get(str(pending.get("quiz_id")))
        if is_quiz_due(user, quiz, now):
            return quiz
    return None
