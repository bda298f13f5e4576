"""
Pydantic schemas for quiz-related requests and responses
"""
from pydantic import BaseModel, Field
from typing import List, Optional
from uuid import UUID
from datetime import datetime

QUESTION_TYPES = "^(multiple-choice|true-false|text|informational)$"
TRIGGER_TYPES = "^(ADMIN_MANUAL|ADMIN_ASSIGNMENT|TIME_INTERVAL)$"
DELAY_UNITS = "^(seconds|minutes|hours|days|weeks)$"
START_FROM = "^(REGISTRATION|FIRST_QUIZ|LAST_QUIZ)$"
TIME_FRAME_HANDLING = "^(RESPECT_TIMEFRAME|ALL_USERS|OUTSIDE_TIMEFRAME_ONLY)$"


class QuizOption(BaseModel):
    """Answer option; selecting it may grant a collection"""
    id: Optional[str] = None
    text: str
    assign_collection: Optional[str] = None


class QuizQuestion(BaseModel):
    """Individual quiz question"""
    id: Optional[str] = None
    type: str = Field("multiple-choice", pattern=QUESTION_TYPES)
    question_text: str
    options: List[QuizOption] = []


class RuleCondition(BaseModel):
    question_id: str
    option_id: str


class AssignmentRule(BaseModel):
    """All conditions must match for the rule to grant its collection"""
    id: Optional[str] = None
    conditions: List[RuleCondition] = []
    assign_collection: str


class QuizCreate(BaseModel):
    """Schema for creating an empty quiz"""
    name: str = Field(..., max_length=255)


class QuizUpdate(BaseModel):
    """
    Full-replace edit: questions and rules are replaced wholesale,
    omitted scalar fields keep their stored value
    """
    name: Optional[str] = Field(None, max_length=255)
    questions: List[QuizQuestion] = []
    assignment_rules: List[AssignmentRule] = []
    background_url: Optional[str] = None
    is_active: Optional[bool] = None
    assignment_delay_seconds: Optional[int] = Field(None, ge=0)
    trigger_type: Optional[str] = Field(None, pattern=TRIGGER_TYPES)
    trigger_delay_days: Optional[int] = Field(None, ge=0)
    trigger_delay_amount: Optional[int] = Field(None, ge=0)
    trigger_delay_unit: Optional[str] = Field(None, pattern=DELAY_UNITS)
    trigger_start_from: Optional[str] = Field(None, pattern=START_FROM)
    time_frame_handling: Optional[str] = Field(None, pattern=TIME_FRAME_HANDLING)
    respect_user_time_frame: Optional[bool] = None
    home_page_message: Optional[str] = None
    completion_message: Optional[str] = None


class QuizResponse(BaseModel):
    """Full quiz definition"""
    id: UUID
    tenant_id: Optional[UUID] = None
    name: str
    questions: List[QuizQuestion]
    assignment_rules: List[AssignmentRule]
    background_url: Optional[str] = None
    is_active: bool
    trigger_type: str
    trigger_delay_days: Optional[int] = None
    trigger_delay_amount: Optional[int] = None
    trigger_delay_unit: Optional[str] = None
    trigger_start_from: Optional[str] = None
    time_frame_handling: Optional[str] = None
    respect_user_time_frame: Optional[bool] = None
    assignment_delay_seconds: Optional[int] = None
    home_page_message: Optional[str] = None
    completion_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AnswerSubmission(BaseModel):
    """One answer: an option id for choice questions, free text otherwise"""
    question_id: str
    option_id: Optional[str] = None
    text_answer: Optional[str] = None


class QuizSubmission(BaseModel):
    """Schema for quiz submission"""
    quiz_id: str
    answers: List[AnswerSubmission]


class SubmissionResponse(BaseModel):
    message: str
    completion_message: str
    delay_seconds: int


class MessageResponse(BaseModel):
    message: str


class PendingQuiz(BaseModel):
    quiz_id: str
    assigned_at: datetime
    assigned_by: str
    assignment_type: str
    scheduled_for: Optional[datetime] = None
    is_available: bool = True


class AssignResponse(BaseModel):
    message: str
    assignment: PendingQuiz


class AutoAssignResponse(BaseModel):
    message: str
    assigned_count: int


class QuizSummary(BaseModel):
    """Quiz fields shown in the future-assignment preview"""
    id: UUID
    name: str
    trigger_type: str
    trigger_delay_amount: Optional[int] = None
    trigger_delay_unit: Optional[str] = None
    trigger_start_from: Optional[str] = None
    time_frame_handling: Optional[str] = None
    respect_user_time_frame: Optional[bool] = None
    home_page_message: Optional[str] = None
    is_active: bool
    questions: List[QuizQuestion]

    class Config:
        from_attributes = True


class FutureAssignment(BaseModel):
    quiz: QuizSummary
    scheduled_for: datetime
    reference_date: datetime
    reference_type: str
    delay_amount: float
    delay_unit: str
    time_until_assignment_ms: int
    will_respect_time_frame: bool


class SkippedQuiz(BaseModel):
    quiz_id: str
    quiz_name: str
    skipped_at: datetime


class SkipResponse(BaseModel):
    message: str
    skipped_quiz: SkippedQuiz


class ResultAnswer(BaseModel):
    question: str
    answer: str
    question_type: str


class ResultCollection(BaseModel):
    collection_id: str
    collection_name: str
    assigned_at: datetime


class QuizResult(BaseModel):
    """Historical submission record"""
    quiz_id: str
    quiz_name: str
    answers: List[ResultAnswer]
    submitted_at: Optional[datetime] = None
    assigned_collections: List[ResultCollection] = []
