"""
Class Completion Aggregator

Keeps a class's completed-session count and overall status in step with its
sessions.
"""
import logging
from datetime import datetime

from ...models.db_models import LearningClassDB, ClassStatus, SessionStatus

logger = logging.getLogger(__name__)


def count_completed(learning_class: LearningClassDB) -> int:
    return sum(1 for s in learning_class.sessions if s.status == SessionStatus.COMPLETED)


def recompute_class_completion(learning_class: LearningClassDB, at: datetime) -> bool:
    """
    Recount completed sessions and close the class when all are done.

    Returns True only when this call moved the class to COMPLETED.
    """
    learning_class.completed_sessions = count_completed(learning_class)

    if (
        learning_class.completed_sessions == learning_class.total_sessions
        and learning_class.status != ClassStatus.COMPLETED
    ):
        learning_class.status = ClassStatus.COMPLETED
        learning_class.actual_end_date = at
        logger.info(f"Class {learning_class.id} completed ({learning_class.completed_sessions} sessions)")
        return True

    return False
