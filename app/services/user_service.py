"""
Admin user operations that touch quiz eligibility (time frame management)
"""
import logging
from datetime import datetime
from typing import Any, Optional
from sqlalchemy.orm import Session

from app.models import User
from app.services.entity_store import EntityStore
from app.services.errors import NotFoundError
from app.services.time_frame import set_time_frame, update_time_frame_status
from app.utils.scheduler import Clock, system_clock

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, clock: Clock):
        self.clock = clock

    def get_user_detail(self, db: Session, user_id: Any) -> User:
        """Load a user, refreshing the stored time-frame flag when a frame is set"""
        store = EntityStore(db)
        user = store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        time_frame = user.time_frame or {}
        if time_frame.get("start_date") and time_frame.get("end_date"):
            previous = bool(time_frame.get("is_within_time_frame"))
            if update_time_frame_status(user, self.clock.now()) != previous:
                store.save_user(user, "time_frame")
        return user

    def update_time_frame(
        self,
        db: Session,
        user_id: Any,
        start_date: Optional[datetime],
        duration: Optional[int],
        duration_type: str,
        admin_id: Any,
        override: bool = False,
        notes: str = "",
    ) -> User:
        store = EntityStore(db)
        user = store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        set_time_frame(
            user,
            start_date,
            duration,
            duration_type,
            admin_id,
            self.clock.now(),
            override=override,
            notes=notes,
        )
        return store.save_user(user, "time_frame", "time_frame_history")


# Global instance
user_service = UserService(clock=system_clock)


def get_user_service() -> UserService:
    """FastAPI dependency, overridden in tests"""
    return user_service
