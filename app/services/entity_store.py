"""
Entity store - repository-style access to users, quizzes and collections
"""
import logging
from typing import List, Optional, Any
from uuid import UUID
from sqlalchemy import inspect
from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from app.models import User, Quiz, Collection

logger = logging.getLogger(__name__)


def _flag_documents(instance, fields) -> None:
    """
    Force an UPDATE for the named JSON columns only

    Entries inside a JSON list may have been mutated in place, which compares
    equal to the loaded value. Columns not named are left out of the UPDATE so
    a concurrent write to them is not overwritten with this session's copy.
    """
    loaded = inspect(instance).dict
    for field in fields:
        if field in loaded:
            flag_modified(instance, field)


def _as_uuid(value: Any) -> Optional[UUID]:
    if value is None:
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (ValueError, TypeError):
        return None


class EntityStore:
    """
    Thin repository over a SQLAlchemy session

    Saves write only the JSON columns the caller names (plus any changed
    scalar columns); last writer wins per column.
    Malformed ids resolve to None rather than raising.
    """

    def __init__(self, db: Session):
        self.db = db

    # Users

    def find_user_by_id(self, user_id: Any, refresh: bool = False) -> Optional[User]:
        """
        Args:
            refresh: overwrite an identity-mapped copy with the stored row
        """
        uid = _as_uuid(user_id)
        if uid is None:
            return None
        query = self.db.query(User).filter(User.id == uid)
        if refresh:
            query = query.populate_existing()
        return query.first()

    def find_users(self) -> List[User]:
        return self.db.query(User).order_by(User.created_at).all()

    def find_system_user(self) -> Optional[User]:
        """First admin account, used as the actor for automatic assignments"""
        return (
            self.db.query(User)
            .filter(User.is_admin.is_(True))
            .order_by(User.created_at)
            .first()
        )

    def save_user(self, user: User, *fields: str) -> User:
        """
        Commit a user, writing the named JSON columns

        Example: save_user(user, "quiz_results", "pending_quizzes")
        """
        _flag_documents(user, fields)
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        return user

    # Quizzes

    def find_quiz_by_id(self, quiz_id: Any) -> Optional[Quiz]:
        qid = _as_uuid(quiz_id)
        if qid is None:
            return None
        return self.db.query(Quiz).filter(Quiz.id == qid).first()

    def find_quiz_by_name(self, name: str) -> Optional[Quiz]:
        return self.db.query(Quiz).filter(Quiz.name == name).first()

    def find_quizzes(self, **filters) -> List[Quiz]:
        """
        Find quizzes matching column equality filters

        Example: find_quizzes(is_active=True, trigger_type="TIME_INTERVAL")
        """
        query = self.db.query(Quiz)
        for column, value in filters.items():
            query = query.filter(getattr(Quiz, column) == value)
        return query.order_by(Quiz.created_at).all()

    def save_quiz(self, quiz: Quiz, *fields: str) -> Quiz:
        _flag_documents(quiz, fields)
        self.db.add(quiz)
        self.db.commit()
        self.db.refresh(quiz)
        return quiz

    def delete_quiz(self, quiz: Quiz) -> None:
        self.db.delete(quiz)
        self.db.commit()

    # Collections

    def find_collection_by_id(self, collection_id: Any) -> Optional[Collection]:
        cid = _as_uuid(collection_id)
        if cid is None:
            return None
        return self.db.query(Collection).filter(Collection.id == cid).first()

    def rollback(self) -> None:
        self.db.rollback()
