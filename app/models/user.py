"""
User model - owns the embedded quiz and collection assignment lists
"""
from sqlalchemy import Column, String, Boolean, DateTime, Uuid
from app.database import Base
from app.models.types import JSONDocument
from app.utils.dates import utcnow
import uuid


def _empty_time_frame():
    return {
        "start_date": None,
        "end_date": None,
        "duration": None,
        "duration_type": "days",
        "is_within_time_frame": False,
        "time_frame_set_at": None,
        "time_frame_set_by": None,
    }


class User(Base):
    """
    Users table - quiz state is embedded as JSON lists on the row

    pending_quizzes:      [{quiz_id, assigned_at, assigned_by, assignment_type, scheduled_for, is_available}]
    quiz_results:         [{quiz_id, quiz_name, answers, submitted_at, assigned_collections}]
    skipped_quizzes:      [{quiz_id, skipped_at, skipped_by, reason}]
    assigned_collections: [{collection_id, name, description, image, display_order, is_public,
                            assigned_at, assigned_by, last_accessed_at, access_count, notes, status, tags}]
    """
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), default="")
    is_admin = Column(Boolean, default=False, nullable=False)

    pending_quizzes = Column(JSONDocument, default=list, nullable=False)
    quiz_results = Column(JSONDocument, default=list, nullable=False)
    skipped_quizzes = Column(JSONDocument, default=list, nullable=False)
    assigned_collections = Column(JSONDocument, default=list, nullable=False)
    time_frame = Column(JSONDocument, default=_empty_time_frame, nullable=False)
    time_frame_history = Column(JSONDocument, default=list, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, pending={len(self.pending_quizzes or [])})>"
