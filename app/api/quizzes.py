"""
Quiz administration, submission and assignment API endpoints
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID
import logging

from app.api.deps import get_current_user, get_tenant_id, require_admin
from app.database import get_db
from app.models import User
from app.schemas.quiz import (
    AssignResponse,
    AutoAssignResponse,
    FutureAssignment,
    MessageResponse,
    QuizCreate,
    QuizResponse,
    QuizResult,
    QuizSubmission,
    QuizSummary,
    QuizUpdate,
    SkipResponse,
    SubmissionResponse,
)
from app.services.errors import QuizEngineError
from app.services.quiz_service import QuizService, get_quiz_service
from app.utils.cache import cache_service


router = APIRouter(prefix="/api/quizzes", tags=["quizzes"])
logger = logging.getLogger(__name__)


def _http_error(e: QuizEngineError) -> HTTPException:
    return HTTPException(status_code=e.status_code, detail=e.message)


@router.post("", response_model=QuizResponse, status_code=201)
async def create_quiz(
    request: QuizCreate,
    tenant_id: Optional[UUID] = Depends(get_tenant_id),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: QuizService = Depends(get_quiz_service),
):
    """Create an empty quiz (questions and rules are added with PUT)"""
    try:
        quiz = service.create_quiz(db, request.name, tenant_id)
    except QuizEngineError as e:
        raise _http_error(e)
    return QuizResponse.model_validate(quiz)


@router.get("", response_model=List[QuizResponse])
async def list_quizzes(
    tenant_id: Optional[UUID] = Depends(get_tenant_id),
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: QuizService = Depends(get_quiz_service),
):
    return [QuizResponse.model_validate(q) for q in service.list_quizzes(db, tenant_id)]


@router.get("/active", response_model=Optional[QuizResponse])
@router.get("/active-for-user", response_model=Optional[QuizResponse])
async def get_active_quiz(
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: QuizService = Depends(get_quiz_service),
):
    """
    Get the quiz the calling user should take now

    - Removes pending references to deleted quizzes
    - Returns the earliest-assigned pending quiz whose trigger date has passed
    - Returns null when nothing is due
    """
    try:
        quiz = service.get_active_quiz_for_user(db, user.id)
    except QuizEngineError as e:
        raise _http_error(e)
    return QuizResponse.model_validate(quiz) if quiz else None


@router.post("/submit", response_model=SubmissionResponse)
async def submit_quiz(
    submission: QuizSubmission,
    user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: QuizService = Depends(get_quiz_service),
):
    """
    Submit answers for a quiz

    - Records the result and clears the pending entry
    - Grants collections from selected options and matching rules,
      immediately or after the quiz's assignment delay
    """
    try:
        result = service.submit_quiz_answers(
            db,
            user.id,
            submission.quiz_id,
            [answer.model_dump() for answer in submission.answers],
        )
    except QuizEngineError as e:
        raise _http_error(e)
    return SubmissionResponse(**result)


@router.post("/auto-assign", response_model=AutoAssignResponse)
async def auto_assign_quizzes(
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: QuizService = Depends(get_quiz_service),
):
    """Run the time-interval assignment sweep now (also runs periodically)"""
    try:
        result = service.auto_assign_quizzes(db)
    except QuizEngineError as e:
        logger.error(f"Auto-assignment failed: {e.message}")
        raise HTTPException(status_code=500, detail=f"Auto-assignment failed: {e.message}")
    return AutoAssignResponse(**result)


@router.get("/results/{user_id}", response_model=List[QuizResult])
async def get_quiz_results(
    user_id: UUID,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: QuizService = Depends(get_quiz_service),
):
    """A user's quiz results, newest first"""
    try:
        return service.get_quiz_results_for_user(db, user_id)
    except QuizEngineError as e:
        raise _http_error(e)


@router.post("/assign/{user_id}/{quiz_id}", response_model=AssignResponse)
async def assign_quiz(
    user_id: UUID,
    quiz_id: UUID,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: QuizService = Depends(get_quiz_service),
):
    try:
        entry = service.assign_quiz_to_user(db, user_id, quiz_id, admin.id)
    except QuizEngineError as e:
        raise _http_error(e)
    return AssignResponse(message="Quiz assigned successfully", assignment=entry)


@router.delete("/unassign/{user_id}", response_model=MessageResponse)
@router.delete("/unassign/{user_id}/{quiz_id}", response_model=MessageResponse)
async def unassign_quiz(
    user_id: UUID,
    quiz_id: Optional[UUID] = None,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: QuizService = Depends(get_quiz_service),
):
    """Remove one pending quiz, or all when no quiz id is given"""
    try:
        message = service.unassign_quiz_from_user(db, user_id, quiz_id)
    except QuizEngineError as e:
        raise _http_error(e)
    return MessageResponse(message=message)


@router.get("/future-assignments/{user_id}", response_model=List[FutureAssignment])
async def get_future_assignments(
    user_id: UUID,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: QuizService = Depends(get_quiz_service),
):
    """Time-interval quizzes that will be assigned to the user later"""
    try:
        future = service.get_future_quiz_assignments(db, user_id)
    except QuizEngineError as e:
        raise _http_error(e)
    return [
        FutureAssignment(**{**item, "quiz": QuizSummary.model_validate(item["quiz"])})
        for item in future
    ]


@router.delete("/future-assignments/{user_id}/{quiz_id}", response_model=SkipResponse)
async def remove_future_assignment(
    user_id: UUID,
    quiz_id: UUID,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: QuizService = Depends(get_quiz_service),
):
    """Stop the sweep from ever assigning this quiz to this user"""
    try:
        skipped = service.remove_future_quiz_assignment(db, user_id, quiz_id, admin.id)
    except QuizEngineError as e:
        raise _http_error(e)
    return SkipResponse(message="Future quiz assignment removed successfully", skipped_quiz=skipped)


@router.get("/{quiz_id}", response_model=QuizResponse)
async def get_quiz(
    quiz_id: UUID,
    db: Session = Depends(get_db),
    service: QuizService = Depends(get_quiz_service),
):
    """Public quiz definition, served from cache when available"""
    cache_key = cache_service.quiz_key(quiz_id)
    cached_quiz = cache_service.get(cache_key)
    if cached_quiz:
        return QuizResponse(**cached_quiz)

    try:
        quiz = service.get_quiz(db, quiz_id)
    except QuizEngineError as e:
        raise _http_error(e)

    response = QuizResponse.model_validate(quiz)
    cache_service.set(cache_key, response.model_dump(mode="json"))
    return response


@router.put("/{quiz_id}", response_model=QuizResponse)
async def update_quiz(
    quiz_id: UUID,
    request: QuizUpdate,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: QuizService = Depends(get_quiz_service),
):
    """
    Replace a quiz's questions and rules

    Ids starting with the temporary prefix are replaced, and rule
    conditions are rewritten to point at the new ids.
    """
    try:
        quiz = service.update_quiz(db, quiz_id, request.model_dump())
    except QuizEngineError as e:
        raise _http_error(e)
    cache_service.invalidate_quiz(quiz_id)
    return QuizResponse.model_validate(quiz)


@router.delete("/{quiz_id}", response_model=MessageResponse)
async def delete_quiz(
    quiz_id: UUID,
    admin: User = Depends(require_admin),
    db: Session = Depends(get_db),
    service: QuizService = Depends(get_quiz_service),
):
    try:
        service.delete_quiz(db, quiz_id)
    except QuizEngineError as e:
        raise _http_error(e)
    cache_service.invalidate_quiz(quiz_id)
    return MessageResponse(message="Quiz removed")
