"""
User time frame management

A time frame is an admin-set eligibility window (start date + duration in
days or months). `is_within_time_frame` is stored on the user and refreshed
whenever the frame is set or the admin reads the user.
"""
import calendar
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from app.services.errors import ValidationError
from app.utils.dates import isoformat, to_utc

logger = logging.getLogger(__name__)

DURATION_TYPES = ("days", "months")


def add_months(start: datetime, months: int) -> datetime:
    """Calendar month arithmetic, clamped to the last day of the target month"""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def calculate_end_date(start: datetime, duration: int, duration_type: str) -> datetime:
    if duration_type == "months":
        return add_months(start, duration)
    return start + timedelta(days=duration)


def update_time_frame_status(user: Any, now: datetime) -> bool:
    """Recompute and store whether `now` falls inside the user's frame"""
    time_frame = dict(user.time_frame or {})
    start = to_utc(time_frame.get("start_date"))
    end = to_utc(time_frame.get("end_date"))
    within = bool(start and end and start <= now <= end)
    time_frame["is_within_time_frame"] = within
    user.time_frame = time_frame
    return within


def _archive_current(user: Any, admin_id: str, now: datetime, override: bool) -> list:
    time_frame = user.time_frame or {}
    history = [dict(entry) for entry in user.time_frame_history or []]
    within = bool(time_frame.get("is_within_time_frame"))

    if not (time_frame.get("start_date") and time_frame.get("duration")):
        return history

    if override:
        for entry in history:
            if entry.get("is_active"):
                entry.update({
                    "is_active": False,
                    "was_within_time_frame": within,
                    "replaced_at": isoformat(now),
                    "replaced_by": admin_id,
                })
                break
        return history

    for entry in history:
        if entry.get("is_active"):
            entry["is_active"] = False
            entry["was_within_time_frame"] = within
    history.append({
        "start_date": time_frame.get("start_date"),
        "duration": time_frame.get("duration"),
        "duration_type": time_frame.get("duration_type"),
        "end_date": time_frame.get("end_date"),
        "is_active": False,
        "was_within_time_frame": within,
        "set_at": time_frame.get("time_frame_set_at"),
        "set_by": time_frame.get("time_frame_set_by"),
        "notes": "",
        "replaced_at": isoformat(now),
        "replaced_by": admin_id,
    })
    return history


def set_time_frame(
    user: Any,
    start_date: Optional[datetime],
    duration: Optional[int],
    duration_type: str,
    admin_id: Any,
    now: datetime,
    override: bool = False,
    notes: str = "",
) -> Dict[str, Any]:
    """
    Replace the user's time frame, keeping an audit trail in time_frame_history

    Args:
        override: mark the active history entry as replaced instead of
                  archiving a copy of the current frame
    """
    duration_type = duration_type or "days"
    if duration_type not in DURATION_TYPES:
        raise ValidationError(f"duration_type must be one of {', '.join(DURATION_TYPES)}")
    if duration is not None and duration <= 0:
        raise ValidationError("duration must be positive")

    admin_id = str(admin_id)
    history = _archive_current(user, admin_id, now, override)

    start = to_utc(start_date)
    end = calculate_end_date(start, duration, duration_type) if start and duration else None

    user.time_frame = {
        "start_date": isoformat(start),
        "end_date": isoformat(end),
        "duration": duration,
        "duration_type": duration_type,
        "is_within_time_frame": False,
        "time_frame_set_at": isoformat(now),
        "time_frame_set_by": admin_id,
    }
    update_time_frame_status(user, now)

    if start and duration:
        history.append({
            "start_date": isoformat(start),
            "duration": duration,
            "duration_type": duration_type,
            "end_date": isoformat(end),
            "is_active": True,
            "was_within_time_frame": False,
            "set_at": isoformat(now),
            "set_by": admin_id,
            "notes": notes,
            "replaced_at": None,
            "replaced_by": None,
        })
    user.time_frame_history = history

    logger.info(
        f"Time frame for user {user.id} set to {isoformat(start)} - {isoformat(end)} "
        f"(within: {user.time_frame['is_within_time_frame']})"
    )
    return user.time_frame
