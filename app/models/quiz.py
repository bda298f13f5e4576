"""
Quiz model - questions, assignment rules and scheduling configuration
"""
from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, Uuid
from app.database import Base
from app.models.types import JSONDocument
from app.utils.dates import utcnow
import uuid

DEFAULT_HOME_PAGE_MESSAGE = (
    "You have a new quiz available! Take it now to get your personalized plan."
)
DEFAULT_COMPLETION_MESSAGE = (
    "Thank you for completing the quiz! Your responses have been saved "
    "and your profile is being updated."
)


class Quiz(Base):
    """
    Quizzes table

    questions:        [{id, type, question_text, options: [{id, text, assign_collection}]}]
    assignment_rules: [{id, conditions: [{question_id, option_id}], assign_collection}]
    """
    __tablename__ = "quizzes"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    tenant_id = Column(Uuid(as_uuid=True), nullable=True, index=True)
    name = Column(String(255), unique=True, nullable=False)
    questions = Column(JSONDocument, default=list, nullable=False)
    assignment_rules = Column(JSONDocument, default=list, nullable=False)
    background_url = Column(String(1024), default="")
    is_active = Column(Boolean, default=True, nullable=False)

    # Scheduling
    trigger_type = Column(String(32), default="ADMIN_MANUAL", nullable=False)
    trigger_delay_days = Column(Integer, default=0)  # legacy
    trigger_delay_amount = Column(Integer, default=0)
    trigger_delay_unit = Column(String(16), default="days")
    trigger_start_from = Column(String(32), default="REGISTRATION")
    time_frame_handling = Column(String(32), default="RESPECT_TIMEFRAME")
    respect_user_time_frame = Column(Boolean, default=True)  # legacy
    assignment_delay_seconds = Column(Integer, default=0)

    home_page_message = Column(Text, default=DEFAULT_HOME_PAGE_MESSAGE)
    completion_message = Column(Text, default=DEFAULT_COMPLETION_MESSAGE)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Quiz(id={self.id}, name={self.name}, trigger_type={self.trigger_type})>"
