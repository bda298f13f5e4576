"""
Admin user endpoints for quiz eligibility
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from uuid import UUID
import logging

from app.api.deps import require_admin
from app.database import get_db
from app.models import User
from app.schemas.user import TimeFrameUpdate, UserDetail
from app.services.errors import QuizEngineError
from app.services.user_service import UserService, get_user_service


router = APIRouter(prefix="/api/users", tags=["users"])
logger = logging.getLogger(__name__)


def _to_detail(user: User) -> UserDetail:
    return UserDetail(
        id=user.id,
        tenant_id=user.tenant_id,
        email=user.email,
        name=user.name,
        is_admin=user.is_admin,
        created_at=user.created_at,
        time_frame=user.time_frame or {},
        pending_quizzes=user.pending_quizzes or [],
        skipped_quizzes=user.skipped_quizzes or [],
        assigned_collections=user.assigned_collections or [],
        quiz_results_count=len(user.quiz_results or []),
    )


@router.get("/{user_id}", response_model=UserDetail)
async def get_user(
    user_id: UUID,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: UserService = Depends(get_user_service),
):
    try:
        user = service.get_user_detail(db, user_id)
    except QuizEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return _to_detail(user)


@router.put("/{user_id}/time-frame", response_model=UserDetail)
async def update_time_frame(
    user_id: UUID,
    request: TimeFrameUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: UserService = Depends(get_user_service),
):
    """
    Set the window during which the user is eligible for time-frame gated quizzes

    The previous active frame is archived to history unless override is set.
    """
    try:
        user = service.update_time_frame(
            db,
            user_id,
            request.start_date,
            request.duration,
            request.duration_type,
            admin.id,
            override=request.override,
            notes=request.notes,
        )
    except QuizEngineError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)

    logger.info(f"Time frame updated for user {user_id} by {admin.id}")
    return _to_detail(user)
