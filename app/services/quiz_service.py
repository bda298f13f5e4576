"""
Quiz orchestration service

Entry points used by the HTTP layer and the periodic sweep:
- submit_quiz_answers: resolve -> record result -> grant (now or later)
- get_active_quiz_for_user: repair orphans -> earliest due pending quiz
- assign/unassign: manual admin control of pending quizzes
- auto_assign_quizzes: periodic sweep creating time-interval pending entries
- get_future_quiz_assignments / remove_future_quiz_assignment: preview and skip
- quiz CRUD for the admin editor
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from sqlalchemy.orm import Session

from app.config import settings
from app.database import SessionLocal
from app.models import Quiz, User
from app.models.quiz import DEFAULT_COMPLETION_MESSAGE
from app.services import eligibility, scheduling
from app.services.assignment_applier import AssignmentApplier
from app.services.assignment_resolver import (
    build_result_record,
    resolve_collections,
    validate_answers,
)
from app.services.entity_store import EntityStore
from app.services.errors import ConflictError, NotFoundError, QuizEngineError, ValidationError
from app.services.quiz_editor import normalize_quiz_content
from app.utils.dates import EPOCH, isoformat, to_utc
from app.utils.scheduler import Clock, scheduler, system_clock

logger = logging.getLogger(__name__)

ADMIN_MANUAL = "ADMIN_MANUAL"
SKIP_REASON = "Admin removed future assignment"

# Scalar fields an edit may change; None means "keep existing"
UPDATABLE_QUIZ_FIELDS = (
    "name",
    "background_url",
    "is_active",
    "assignment_delay_seconds",
    "trigger_type",
    "trigger_delay_days",
    "trigger_delay_amount",
    "trigger_delay_unit",
    "trigger_start_from",
    "time_frame_handling",
    "respect_user_time_frame",
    "home_page_message",
    "completion_message",
)


def _has_quiz(entries: List[Dict[str, Any]], quiz_id: Any) -> bool:
    return any(str(entry.get("quiz_id")) == str(quiz_id) for entry in entries or [])


class QuizService:
    """Service tying the scheduling, eligibility, resolver and applier together"""

    def __init__(
        self,
        applier: AssignmentApplier,
        clock: Clock,
        session_factory: Callable[[], Session] = SessionLocal,
    ):
        self.applier = applier
        self.clock = clock
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit_quiz_answers(
        self,
        db: Session,
        user_id: Any,
        quiz_id: Any,
        answers: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        """
        Record a submission and grant the collections it earns

        The result append and pending removal are saved together; the grant
        happens afterwards, immediately or after quiz.assignment_delay_seconds.

        Returns:
            {message, completion_message, delay_seconds}
        """
        answers = validate_answers(answers)
        store = EntityStore(db)

        user = store.find_user_by_id(user_id)
        quiz = store.find_quiz_by_id(quiz_id)
        if user is None or quiz is None:
            raise NotFoundError("User or Quiz not found")

        logger.info(f"Quiz submission: user={user.email}, quiz='{quiz.name}', answers={len(answers)}")

        collections = resolve_collections(quiz, answers, store.find_collection_by_id)
        record = build_result_record(quiz, answers, collections, self.clock.now())

        user.quiz_results = [*(user.quiz_results or []), record]
        user.pending_quizzes = [
            pending for pending in user.pending_quizzes or []
            if str(pending.get("quiz_id")) != str(quiz.id)
        ]
        try:
            store.save_user(user, "quiz_results", "pending_quizzes")
        except Exception:
            store.rollback()
            raise
        logger.info(f"User {user.email}: result saved, pending quiz '{quiz.name}' removed")

        delay_seconds = quiz.assignment_delay_seconds or 0
        self.applier.apply_assignments(store, user.id, collections, quiz.name, delay_seconds)

        return {
            "message": "Quiz answers submitted successfully.",
            "completion_message": quiz.completion_message or DEFAULT_COMPLETION_MESSAGE,
            "delay_seconds": delay_seconds,
        }

    # ------------------------------------------------------------------
    # On-demand evaluation
    # ------------------------------------------------------------------

    def get_active_quiz_for_user(self, db: Session, user_id: Any) -> Optional[Quiz]:
        """Earliest-assigned pending quiz that is due now, or None"""
        store = EntityStore(db)
        user = store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        quizzes_by_id = {}
        for pending in user.pending_quizzes or []:
            key = str(pending.get("quiz_id"))
            if key not in quizzes_by_id:
                quizzes_by_id[key] = store.find_quiz_by_id(key)

        valid, removed = eligibility.prune_orphaned_pending(user, quizzes_by_id)
        if removed:
            user.pending_quizzes = valid
            store.save_user(user, "pending_quizzes")
            logger.info(f"Cleaned {removed} orphaned pending quiz references for {user.email}")

        if not valid:
            return None

        quiz = eligibility.select_active_quiz(user, valid, quizzes_by_id, self.clock.now())
        if quiz is None:
            logger.info(f"No eligible quiz for {user.email} among {len(valid)} pending")
        return quiz

    # ------------------------------------------------------------------
    # Manual admin assignment
    # ------------------------------------------------------------------

    def assign_quiz_to_user(self, db: Session, user_id: Any, quiz_id: Any, actor_id: Any) -> Dict[str, Any]:
        store = EntityStore(db)
        user = store.find_user_by_id(user_id)
        quiz = store.find_quiz_by_id(quiz_id)
        if user is None or quiz is None:
            raise NotFoundError("User or Quiz not found")

        if _has_quiz(user.pending_quizzes, quiz.id):
            raise ConflictError("This quiz is already assigned to the user")

        now = isoformat(self.clock.now())
        entry = {
            "quiz_id": str(quiz.id),
            "assigned_at": now,
            "assigned_by": str(actor_id),
            "assignment_type": ADMIN_MANUAL,
            "scheduled_for": now,
            "is_available": True,
        }
        user.pending_quizzes = [*(user.pending_quizzes or []), entry]
        store.save_user(user, "pending_quizzes")

        logger.info(f"Quiz '{quiz.name}' assigned to {user.email} by {actor_id}")
        return entry

    def unassign_quiz_from_user(self, db: Session, user_id: Any, quiz_id: Any = None) -> str:
        """Remove one pending quiz, or all of them when quiz_id is omitted"""
        store = EntityStore(db)
        user = store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        pending = list(user.pending_quizzes or [])
        if not pending:
            return "User has no pending quizzes to un-assign."

        if quiz_id:
            remaining = [p for p in pending if str(p.get("quiz_id")) != str(quiz_id)]
            if len(remaining) == len(pending):
                raise NotFoundError("Specified quiz assignment not found for this user.")
            user.pending_quizzes = remaining
            store.save_user(user, "pending_quizzes")
            logger.info(f"Removed pending quiz {quiz_id} from {user.email}")
            return "Specific quiz assignment removed successfully"

        logger.info(f"Clearing {len(pending)} pending quizzes for {user.email}")
        user.pending_quizzes = []
        store.save_user(user, "pending_quizzes")
        return "All quiz assignments removed successfully"

    # ------------------------------------------------------------------
    # Periodic sweep
    # ------------------------------------------------------------------

    def auto_assign_quizzes(self, db: Session) -> Dict[str, Any]:
        """
        Create pending entries for every due {user x active time-interval quiz}

        Idempotent: pairs already pending, completed or skipped are left alone.
        A failing pair is logged and the sweep continues.
        """
        logger.info("Starting automatic quiz assignment")
        store = EntityStore(db)

        system_user = store.find_system_user()
        if system_user is None:
            raise QuizEngineError("No admin user found for system assignments")
        system_user_id = str(system_user.id)

        quizzes = store.find_quizzes(is_active=True, trigger_type=scheduling.TIME_INTERVAL)
        if not quizzes:
            logger.info("No active time-based quizzes found")
            return {"message": "No time-based quizzes to assign", "assigned_count": 0}

        total_assigned = 0
        for user in store.find_users():
            now = self.clock.now()
            for quiz in quizzes:
                try:
                    if self._auto_assign_pair(store, user, quiz, system_user_id, now):
                        total_assigned += 1
                except Exception as e:
                    logger.error(
                        f"Auto-assignment failed for user {user.id}, quiz {quiz.id}: {str(e)}",
                        exc_info=True,
                    )
                    store.rollback()

        logger.info(f"Auto-assignment completed, total assigned: {total_assigned}")
        return {"message": "Auto-assignment completed successfully", "assigned_count": total_assigned}

    def _auto_assign_pair(
        self,
        store: EntityStore,
        user: User,
        quiz: Quiz,
        system_user_id: str,
        now: datetime,
    ) -> bool:
        trigger_date = scheduling.compute_trigger_date(user, quiz)
        pending = list(user.pending_quizzes or [])

        for entry in pending:
            if str(entry.get("quiz_id")) == str(quiz.id):
                if not entry.get("scheduled_for"):
                    entry["scheduled_for"] = isoformat(trigger_date)
                    user.pending_quizzes = pending
                    store.save_user(user, "pending_quizzes")
                    logger.info(f"Back-filled scheduled_for of '{quiz.name}' for {user.email}")
                return False

        if _has_quiz(user.quiz_results, quiz.id):
            return False
        if _has_quiz(user.skipped_quizzes, quiz.id):
            logger.debug(f"Quiz '{quiz.name}' was skipped for {user.email}")
            return False

        if now < trigger_date:
            if trigger_date - now <= timedelta(days=7):
                logger.debug(f"Quiz '{quiz.name}' due for {user.email} at {trigger_date.isoformat()}")
            return False

        if not eligibility.timeframe_allows(user, quiz):
            logger.info(f"Skipping quiz '{quiz.name}' for {user.email} - {eligibility.describe_timeframe(user, quiz)}")
            return False

        pending.append({
            "quiz_id": str(quiz.id),
            "assigned_at": isoformat(now),
            "assigned_by": system_user_id,
            "assignment_type": scheduling.TIME_INTERVAL,
            "scheduled_for": isoformat(trigger_date),
            "is_available": True,
        })
        user.pending_quizzes = pending
        store.save_user(user, "pending_quizzes")
        logger.info(f"Assigned quiz '{quiz.name}' to {user.email} (due {trigger_date.isoformat()})")
        return True

    def run_scheduled_sweep(self) -> None:
        """Periodic-timer entry point: own session, never raises"""
        db = self.session_factory()
        try:
            self.auto_assign_quizzes(db)
        except Exception as e:
            logger.error(f"Scheduled quiz assignment failed: {str(e)}", exc_info=True)
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Future assignments
    # ------------------------------------------------------------------

    def get_future_quiz_assignments(self, db: Session, user_id: Any) -> List[Dict[str, Any]]:
        """Not-yet-due time-interval quizzes for a user, earliest first (read-only)"""
        store = EntityStore(db)
        user = store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")

        now = self.clock.now()
        future = []
        for quiz in store.find_quizzes(is_active=True, trigger_type=scheduling.TIME_INTERVAL):
            if (
                _has_quiz(user.pending_quizzes, quiz.id)
                or _has_quiz(user.quiz_results, quiz.id)
                or _has_quiz(user.skipped_quizzes, quiz.id)
            ):
                continue

            reference_type = quiz.trigger_start_from or scheduling.REGISTRATION
            reference_date = scheduling.resolve_reference_date(user, quiz.trigger_start_from)
            amount, unit = scheduling.resolve_delay(quiz)
            trigger_date = scheduling.compute_trigger_date(user, quiz)
            if trigger_date <= now:
                continue

            handling = quiz.time_frame_handling
            future.append({
                "quiz": quiz,
                "scheduled_for": trigger_date,
                "reference_date": reference_date,
                "reference_type": reference_type,
                "delay_amount": amount,
                "delay_unit": unit,
                "time_until_assignment_ms": int((trigger_date - now).total_seconds() * 1000),
                "will_respect_time_frame": (
                    handling == eligibility.RESPECT_TIMEFRAME
                    or (
                        handling != eligibility.OUTSIDE_TIMEFRAME_ONLY
                        and quiz.respect_user_time_frame is not False
                    )
                ),
            })

        future.sort(key=lambda item: item["scheduled_for"])
        logger.info(f"Found {len(future)} future quiz assignments for {user.email}")
        return future

    def remove_future_quiz_assignment(
        self, db: Session, user_id: Any, quiz_id: Any, actor_id: Any
    ) -> Dict[str, Any]:
        """Mark a quiz as skipped so the sweep never assigns it to this user"""
        store = EntityStore(db)
        user = store.find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        quiz = store.find_quiz_by_id(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found")

        if _has_quiz(user.skipped_quizzes, quiz.id):
            raise ConflictError("Quiz assignment already removed")

        skipped_at = isoformat(self.clock.now())
        user.skipped_quizzes = [
            *(user.skipped_quizzes or []),
            {
                "quiz_id": str(quiz.id),
                "skipped_at": skipped_at,
                "skipped_by": str(actor_id),
                "reason": SKIP_REASON,
            },
        ]
        store.save_user(user, "skipped_quizzes")

        logger.info(f"Future assignment of '{quiz.name}' removed for {user.email}")
        return {"quiz_id": str(quiz.id), "quiz_name": quiz.name, "skipped_at": skipped_at}

    # ------------------------------------------------------------------
    # Quiz administration
    # ------------------------------------------------------------------

    def create_quiz(self, db: Session, name: Optional[str], tenant_id: Any = None) -> Quiz:
        if not name or not name.strip():
            raise ValidationError("Quiz name is required")

        store = EntityStore(db)
        if store.find_quiz_by_name(name) is not None:
            raise ConflictError("A quiz with this name already exists")

        quiz = Quiz(name=name, tenant_id=tenant_id, questions=[], assignment_rules=[])
        quiz = store.save_quiz(quiz)
        logger.info(f"Quiz created: {quiz.id} ('{quiz.name}')")
        return quiz

    def list_quizzes(self, db: Session, tenant_id: Any = None) -> List[Quiz]:
        store = EntityStore(db)
        if tenant_id is not None:
            return store.find_quizzes(tenant_id=tenant_id)
        return store.find_quizzes()

    def get_quiz(self, db: Session, quiz_id: Any) -> Quiz:
        quiz = EntityStore(db).find_quiz_by_id(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found")
        return quiz

    def update_quiz(self, db: Session, quiz_id: Any, data: Dict[str, Any]) -> Quiz:
        """
        Full replace of questions and rules, partial update of scalar fields

        Temporary client ids are replaced before saving (see quiz_editor).
        """
        store = EntityStore(db)
        quiz = store.find_quiz_by_id(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found")

        new_name = data.get("name")
        if new_name is not None and new_name != quiz.name:
            if not new_name.strip():
                raise ValidationError("Quiz name is required")
            if store.find_quiz_by_name(new_name) is not None:
                raise ConflictError("A quiz with this name already exists")

        questions, rules = normalize_quiz_content(
            data.get("questions") or [],
            data.get("assignment_rules") or [],
            settings.TEMP_ID_PREFIX,
        )
        quiz.questions = questions
        quiz.assignment_rules = rules

        for field in UPDATABLE_QUIZ_FIELDS:
            value = data.get(field)
            if value is not None:
                setattr(quiz, field, value)

        quiz = store.save_quiz(quiz, "questions", "assignment_rules")
        logger.info(
            f"Quiz updated: {quiz.id} ({len(questions)} questions, {len(rules)} rules, "
            f"trigger={quiz.trigger_type}/{quiz.trigger_delay_amount} {quiz.trigger_delay_unit} "
            f"from {quiz.trigger_start_from}, time frame={quiz.time_frame_handling})"
        )
        return quiz

    def delete_quiz(self, db: Session, quiz_id: Any) -> None:
        store = EntityStore(db)
        quiz = store.find_quiz_by_id(quiz_id)
        if quiz is None:
            raise NotFoundError("Quiz not found")
        store.delete_quiz(quiz)
        logger.info(f"Quiz removed: {quiz_id}")

    def get_quiz_results_for_user(self, db: Session, user_id: Any) -> List[Dict[str, Any]]:
        user = EntityStore(db).find_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return sorted(
            user.quiz_results or [],
            key=lambda result: to_utc(result.get("submitted_at")) or EPOCH,
            reverse=True,
        )


# Global instance
quiz_service = QuizService(
    applier=AssignmentApplier(SessionLocal, scheduler, system_clock),
    clock=system_clock,
)


def get_quiz_service() -> QuizService:
    """FastAPI dependency, overridden in tests"""
    return quiz_service
