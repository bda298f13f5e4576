"""
Shared fixtures: in-memory database, virtual time and data factories
"""
import os

# Must be set before anything imports app.config
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["REDIS_URL"] = "redis://localhost:6399/0"
os.environ["AUTO_ASSIGN_ENABLED"] = "false"

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.database import Base, get_db
from app.main import app
from app.models import Collection, Quiz, User
from app.services.assignment_applier import AssignmentApplier
from app.services.quiz_service import QuizService, get_quiz_service
from app.services.user_service import UserService, get_user_service
from app.utils.rate_limiter import rate_limiter

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class VirtualClock:
    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def set(self, now: datetime) -> None:
        self.current = now

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class VirtualTimer:
    def __init__(self, due_at, fn, interval=None):
        self.due_at = due_at
        self.fn = fn
        self.interval = interval
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class VirtualScheduler:
    """Runs timers when the test advances time, in due order"""

    def __init__(self, clock: VirtualClock):
        self.clock = clock
        self.timers = []

    def after(self, delay_seconds, fn):
        timer = VirtualTimer(self.clock.now() + timedelta(seconds=delay_seconds), fn)
        self.timers.append(timer)
        return timer

    def every(self, interval_seconds, fn, initial_delay=None):
        first = interval_seconds if initial_delay is None else initial_delay
        timer = VirtualTimer(self.clock.now() + timedelta(seconds=first), fn, interval_seconds)
        self.timers.append(timer)
        return timer

    @property
    def pending(self):
        return [t for t in self.timers if not t.cancelled]

    def advance(self, **kwargs) -> None:
        target = self.clock.now() + timedelta(**kwargs)
        while True:
            due = [t for t in self.pending if t.due_at <= target]
            if not due:
                break
            timer = min(due, key=lambda t: t.due_at)
            self.clock.set(max(self.clock.now(), timer.due_at))
            if timer.interval:
                timer.due_at += timedelta(seconds=timer.interval)
            else:
                self.timers.remove(timer)
            timer.fn()
        self.clock.set(target)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def clock():
    return VirtualClock(T0)


@pytest.fixture
def scheduler(clock):
    return VirtualScheduler(clock)


@pytest.fixture
def applier(session_factory, scheduler, clock):
    return AssignmentApplier(session_factory, scheduler, clock)


@pytest.fixture
def quiz_service(applier, clock, session_factory):
    return QuizService(applier=applier, clock=clock, session_factory=session_factory)


@pytest.fixture
def user_service(clock):
    return UserService(clock=clock)


@pytest.fixture
def client(db, quiz_service, user_service):
    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_quiz_service] = lambda: quiz_service
    app.dependency_overrides[get_user_service] = lambda: user_service
    rate_limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()
    rate_limiter.reset()


@pytest.fixture
def make_user(db):
    def _make(email=None, is_admin=False, created_at=T0, **fields):
        user = User(
            email=email or f"user-{uuid.uuid4().hex[:8]}@example.com",
            is_admin=is_admin,
            created_at=created_at,
            **fields,
        )
        db.add(user)
        db.commit()
        db.refresh(user)
        return user
    return _make


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", is_admin=True, created_at=T0 - timedelta(days=365))


@pytest.fixture
def make_quiz(db):
    def _make(name=None, **fields):
        fields.setdefault("questions", [])
        fields.setdefault("assignment_rules", [])
        quiz = Quiz(name=name or f"Quiz {uuid.uuid4().hex[:8]}", **fields)
        db.add(quiz)
        db.commit()
        db.refresh(quiz)
        return quiz
    return _make


@pytest.fixture
def make_collection(db):
    def _make(name=None, **fields):
        collection = Collection(name=name or f"Collection {uuid.uuid4().hex[:8]}", **fields)
        db.add(collection)
        db.commit()
        db.refresh(collection)
        return collection
    return _make
