"""
Tests for the class completion aggregator.

Test Coverage:
1. completed_sessions always equals the number of COMPLETED sessions
2. Class moves to COMPLETED exactly when every session is done
3. Re-running the aggregation is idempotent
"""
import pytest
from datetime import datetime, timedelta

from app.models.db_models import ClassSessionDB, ClassStatus, LearningClassDB, SessionStatus
from app.services.presence.completion import count_completed, recompute_class_completion

NOW = datetime(2024, 1, 12, 11, 0)


@pytest.fixture
def learning_class():
    learning_class = LearningClassDB(
        id="65a1b2c3d4e5f6a7b8c9d0e1",
        tutor_id="tutor-1",
        student_id="student-1",
        total_sessions=3,
        completed_sessions=0,
        status=ClassStatus.ACTIVE,
    )
    for n in range(1, 4):
        learning_class.sessions.append(ClassSessionDB(
            id=f"session-{n}",
            session_number=n,
            scheduled_date=datetime(2024, 1, 10, 10, 0) + timedelta(days=n - 1),
            duration=60,
            status=SessionStatus.SCHEDULED,
        ))
    return learning_class


def complete(learning_class, *numbers):
    for n in numbers:
        learning_class.find_session(n).status = SessionStatus.COMPLETED


class TestClassCompletion:
    """Aggregation over the class's sessions."""

    def test_partial_completion_updates_count_only(self, learning_class):
        complete(learning_class, 1)
        assert recompute_class_completion(learning_class, NOW) is False
        assert learning_class.completed_sessions == 1
        assert learning_class.status == ClassStatus.ACTIVE
        assert learning_class.actual_end_date is None

    def test_all_sessions_complete_closes_class(self, learning_class):
        complete(learning_class, 1, 2, 3)
        assert recompute_class_completion(learning_class, NOW) is True
        assert learning_class.completed_sessions == 3
        assert learning_class.status == ClassStatus.COMPLETED
        assert learning_class.actual_end_date == NOW

    def test_second_run_is_a_no_op(self, learning_class):
        complete(learning_class, 1, 2, 3)
        recompute_class_completion(learning_class, NOW)
        assert recompute_class_completion(learning_class, NOW + timedelta(hours=1)) is False
        assert learning_class.actual_end_date == NOW

    def test_count_ignores_cancelled_sessions(self, learning_class):
        complete(learning_class, 1)
        learning_class.find_session(2).status = SessionStatus.CANCELLED
        assert count_completed(learning_class) == 1

    def test_count_recovers_from_drift(self, learning_class):
        learning_class.completed_sessions = 2
        complete(learning_class, 3)
        recompute_class_completion(learning_class, NOW)
        assert learning_class.completed_sessions == 1
