"""
Pydantic schemas for admin user endpoints
"""
from pydantic import BaseModel, Field
from typing import List, Dict, Any, Optional
from uuid import UUID
from datetime import datetime


class TimeFrameUpdate(BaseModel):
    """Schema for setting a user's eligibility window"""
    start_date: datetime
    duration: int = Field(..., ge=1, description="Length in days or months")
    duration_type: str = Field("days", pattern="^(days|months)$")
    override: bool = Field(False, description="Replace the active frame instead of archiving it")
    notes: str = ""


class TimeFrame(BaseModel):
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    duration: Optional[int] = None
    duration_type: Optional[str] = "days"
    is_within_time_frame: bool = False
    time_frame_set_at: Optional[datetime] = None
    time_frame_set_by: Optional[str] = None


class UserDetail(BaseModel):
    """User with the quiz-related embedded state"""
    id: UUID
    tenant_id: Optional[UUID] = None
    email: str
    name: Optional[str] = None
    is_admin: bool
    created_at: datetime
    time_frame: TimeFrame
    pending_quizzes: List[Dict[str, Any]]
    skipped_quizzes: List[Dict[str, Any]]
    assigned_collections: List[Dict[str, Any]]
    quiz_results_count: int = 0

    class Config:
        from_attributes = True
