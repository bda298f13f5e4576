import logging
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from app.services import eligibility

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def make_user(within=False, pending=()):
    return SimpleNamespace(
        id="u1",
        created_at=T0,
        quiz_results=[],
        pending_quizzes=list(pending),
        time_frame={"is_within_time_frame": within},
    )


def make_quiz(quiz_id="q1", name="Quiz", **fields):
    defaults = dict(
        id=quiz_id,
        name=name,
        trigger_type="ADMIN_MANUAL",
        trigger_delay_amount=0,
        trigger_delay_days=0,
        trigger_delay_unit="days",
        trigger_start_from="REGISTRATION",
        time_frame_handling=None,
        respect_user_time_frame=None,
    )
    defaults.update(fields)
    return SimpleNamespace(**defaults)


def pending(quiz_id, assigned_at):
    return {"quiz_id": quiz_id, "assigned_at": assigned_at}


class TestTimeframeAllows:
    @pytest.mark.parametrize("handling, legacy, within, expected", [
        ("RESPECT_TIMEFRAME", None, True, True),
        ("RESPECT_TIMEFRAME", None, False, False),
        ("ALL_USERS", None, False, True),
        ("OUTSIDE_TIMEFRAME_ONLY", None, False, True),
        ("OUTSIDE_TIMEFRAME_ONLY", None, True, False),
        (None, True, False, False),
        (None, True, True, True),
        (None, False, False, True),
        ("UNKNOWN", True, False, False),
    ])
    def test_handling(self, handling, legacy, within, expected):
        quiz = make_quiz(time_frame_handling=handling, respect_user_time_frame=legacy)
        assert eligibility.timeframe_allows(make_user(within=within), quiz) is expected

    def test_user_without_time_frame_is_outside(self):
        user = SimpleNamespace(time_frame=None)
        assert eligibility.is_within_time_frame(user) is False


class TestIsQuizDue:
    def test_missing_quiz(self):
        assert eligibility.is_quiz_due(make_user(), None, T0) is False

    def test_nameless_quiz_treated_as_corrupted(self, caplog):
        caplog.set_level(logging.WARNING)
        assert eligibility.is_quiz_due(make_user(), make_quiz(name=""), T0) is False
        assert "corrupted" in caplog.text

    def test_manual_quiz_always_due(self):
        assert eligibility.is_quiz_due(make_user(), make_quiz(), T0) is True

    def test_time_interval_waits_for_trigger(self):
        quiz = make_quiz(trigger_type="TIME_INTERVAL", trigger_delay_amount=3, trigger_delay_unit="days")
        user = make_user()
        assert eligibility.is_quiz_due(user, quiz, T0 + timedelta(days=2)) is False
        assert eligibility.is_quiz_due(user, quiz, T0 + timedelta(days=3)) is True

    def test_time_interval_without_delay_is_due(self):
        quiz = make_quiz(trigger_type="TIME_INTERVAL")
        assert eligibility.is_quiz_due(make_user(), quiz, T0) is True

    def test_time_frame_does_not_hide_a_pending_quiz(self):
        quiz = make_quiz(time_frame_handling="RESPECT_TIMEFRAME")
        assert eligibility.is_quiz_due(make_user(within=False), quiz, T0) is True


class TestPruneOrphans:
    def test_removes_missing_quizzes(self, caplog):
        caplog.set_level(logging.WARNING)
        user = make_user(pending=[pending("q1", None), pending("gone", None), pending("q2", None)])
        valid, removed = eligibility.prune_orphaned_pending(
            user, {"q1": make_quiz("q1"), "q2": make_quiz("q2"), "gone": None}
        )
        assert [p["quiz_id"] for p in valid] == ["q1", "q2"]
        assert removed == 1
        assert "Data integrity" in caplog.text


class TestSelectActiveQuiz:
    def test_earliest_assigned_first(self):
        quizzes = {"a": make_quiz("a", "A"), "b": make_quiz("b", "B")}
        entries = [
            pending("b", (T0 + timedelta(hours=2)).isoformat()),
            pending("a", (T0 + timedelta(hours=1)).isoformat()),
        ]
        assert eligibility.select_active_quiz(make_user(), entries, quizzes, T0).name == "A"

    def test_skips_entries_not_yet_due(self):
        quizzes = {
            "later": make_quiz("later", "Later", trigger_type="TIME_INTERVAL",
                               trigger_delay_amount=10, trigger_delay_unit="days"),
            "now": make_quiz("now", "Now"),
        }
        entries = [
            pending("later", T0.isoformat()),
            pending("now", (T0 + timedelta(hours=1)).isoformat()),
        ]
        assert eligibility.select_active_quiz(make_user(), entries, quizzes, T0).name == "Now"

    def test_ties_keep_list_order(self):
        quizzes = {"x": make_quiz("x", "X"), "y": make_quiz("y", "Y")}
        entries = [pending("y", T0.isoformat()), pending("x", T0.isoformat())]
        assert eligibility.select_active_quiz(make_user(), entries, quizzes, T0).name == "Y"

    def test_missing_assigned_at_sorts_first(self):
        quizzes = {"x": make_quiz("x", "X"), "y": make_quiz("y", "Y")}
        entries = [pending("x", T0.isoformat()), pending("y", None)]
        assert eligibility.select_active_quiz(make_user(), entries, quizzes, T0).name == "Y"

    def test_nothing_due(self):
        quizzes = {"q": make_quiz("q", trigger_type="TIME_INTERVAL", trigger_delay_amount=1)}
        entries = [pending("q", T0.isoformat())]
        assert eligibility.select_active_quiz(make_user(), entries, quizzes, T0) is None
