"""
Scheduling engine for time-interval quizzes

Pure functions: no I/O, every input is passed in, so they can be tested
against fixed registration and "now" values.

Trigger date = reference date + delay, where the reference date is one of:
- REGISTRATION: user.created_at (also the fallback for unknown values)
- FIRST_QUIZ:   earliest quiz result submission, else user.created_at
- LAST_QUIZ:    latest quiz result submission, else user.created_at
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Optional, Tuple

from app.utils.dates import to_utc

logger = logging.getLogger(__name__)

TIME_INTERVAL = "TIME_INTERVAL"

REGISTRATION = "REGISTRATION"
FIRST_QUIZ = "FIRST_QUIZ"
LAST_QUIZ = "LAST_QUIZ"

DEFAULT_DELAY_UNIT = "days"

UNIT_MULTIPLIERS_MS = {
    "seconds": 1000,
    "minutes": 60 * 1000,
    "hours": 60 * 60 * 1000,
    "days": 24 * 60 * 60 * 1000,
    "weeks": 7 * 24 * 60 * 60 * 1000,
}


def compute_delay_ms(amount: Optional[float], unit: Optional[str]) -> int:
    """
    Convert a delay amount/unit pair to milliseconds

    Unknown units use the days multiplier. A missing or non-positive amount
    means no delay.
    """
    if not amount or amount <= 0:
        return 0
    multiplier = UNIT_MULTIPLIERS_MS.get(unit, UNIT_MULTIPLIERS_MS[DEFAULT_DELAY_UNIT])
    return int(amount * multiplier)


def resolve_delay(quiz: Any) -> Tuple[float, str]:
    """Delay amount and unit for a quiz, honouring the legacy day count"""
    amount = (
        getattr(quiz, "trigger_delay_amount", None)
        or getattr(quiz, "trigger_delay_days", None)
        or 0
    )
    unit = getattr(quiz, "trigger_delay_unit", None) or DEFAULT_DELAY_UNIT
    return amount, unit


def _submission_dates(user: Any):
    dates = []
    for result in getattr(user, "quiz_results", None) or []:
        submitted = to_utc(result.get("submitted_at"))
        if submitted is not None:
            dates.append(submitted)
    return dates


def resolve_reference_date(user: Any, trigger_start_from: Optional[str]) -> datetime:
    """Anchor timestamp from which a time-interval delay is measured"""
    registered_at = to_utc(user.created_at)

    if trigger_start_from in (FIRST_QUIZ, LAST_QUIZ):
        submissions = _submission_dates(user)
        if not submissions:
            logger.debug(
                f"No quiz results for user {user.id}, "
                f"using registration date for {trigger_start_from}"
            )
            return registered_at
        return min(submissions) if trigger_start_from == FIRST_QUIZ else max(submissions)

    return registered_at


def compute_trigger_date(user: Any, quiz: Any) -> datetime:
    """Moment from which a time-interval quiz is due for this user"""
    reference_date = resolve_reference_date(user, getattr(quiz, "trigger_start_from", None))
    amount, unit = resolve_delay(quiz)
    return reference_date + timedelta(milliseconds=compute_delay_ms(amount, unit))


def is_trigger_reached(user: Any, quiz: Any, now: datetime) -> bool:
    return now >= compute_trigger_date(user, quiz)
