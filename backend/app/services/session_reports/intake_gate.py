"""
Dispute Intake Gate

Admits or rejects a new session report. Checks run in a fixed order and the
first failure wins:

1. class and session exist                      -> NotFoundError
2. the session has started                      -> WindowViolationError
3. the reporting window has not closed          -> WindowViolationError
4. the reporter is the class student or tutor   -> ForbiddenError
5. the reporter has not reported this session   -> ConflictError

Check 5 is repeated by the database through the unique constraint on
session_reports, which is what actually closes the race between two
simultaneous submissions.
"""
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from ...errors import ConflictError, ForbiddenError, NotFoundError, WindowViolationError
from ...models.db_models import (
    ClassSessionDB, LearningClassDB, SessionReportDB, UserRole, to_naive_utc,
)

logger = logging.getLogger(__name__)

REPORT_WINDOW_HOURS = int(os.getenv("REPORT_WINDOW_HOURS", "48"))


# =============================================================================
# REPORTING WINDOW
# =============================================================================

@dataclass(frozen=True)
class ReportingWindow:
    """
    Time range during which a session may be reported.

    opens_at is inclusive, closes_at is exclusive:
    [scheduled_date, scheduled_date + duration + window_hours)
    """
    opens_at: datetime
    closes_at: datetime

    @classmethod
    def for_session(cls, session: ClassSessionDB, window_hours: int = REPORT_WINDOW_HOURS) -> "ReportingWindow":
        opens_at = session.scheduled_date
        session_end = opens_at + timedelta(minutes=session.duration)
        return cls(opens_at=opens_at, closes_at=session_end + timedelta(hours=window_hours))

    def check(self, now: datetime) -> None:
        """
        Raises:
            WindowViolationError if `now` is outside the window
        """
        now = to_naive_utc(now)
        if now < self.opens_at:
            raise WindowViolationError(
                "Cannot report a session that has not started yet",
                {"opens_at": self.opens_at.isoformat()},
            )
        if now >= self.closes_at:
            raise WindowViolationError(
                "The reporting window for this session has closed",
                {"closes_at": self.closes_at.isoformat()},
            )

    def contains(self, now: datetime) -> bool:
        now = to_naive_utc(now)
        return self.opens_at <= now < self.closes_at


# =============================================================================
# ROLES
# =============================================================================

def opposite_role(role: UserRole) -> UserRole:
    """The role a reporter files against. Reporters never target their own role."""
    if role == UserRole.STUDENT:
        return UserRole.TUTOR
    if role == UserRole.TUTOR:
        return UserRole.STUDENT
    raise ForbiddenError(f"Role {role.value} cannot file session reports")


def member_role(learning_class: LearningClassDB, user_id: str):
    """Role the user holds in this class, or None for non-members."""
    if user_id == learning_class.student_id:
        return UserRole.STUDENT
    if user_id == learning_class.tutor_id:
        return UserRole.TUTOR
    return None


# =============================================================================
# GATE
# =============================================================================

@dataclass
class Admission:
    """Everything the report service needs once a report is admitted."""
    learning_class: LearningClassDB
    session: ClassSessionDB
    reporter_role: UserRole
    reported_against: UserRole
    window: ReportingWindow


class IntakeGate:
    """Eligibility checks for new session reports."""

    def __init__(self, db_session: Session, window_hours: int = REPORT_WINDOW_HOURS):
        self.db = db_session
        self.window_hours = window_hours

    def has_already_reported(self, class_id: str, session_number: int, reporter_id: str) -> bool:
        existing = (
            self.db.query(SessionReportDB.id)
            .filter(
                SessionReportDB.class_id == class_id,
                SessionReportDB.session_number == session_number,
                SessionReportDB.reported_by_user_id == reporter_id,
            )
            .first()
        )
        return existing is not None

    def admit(
        self,
        class_id: str,
        session_number: int,
        reporter_id: str,
        reporter_role: UserRole,
        now: datetime,
    ) -> Admission:
        learning_class = self.db.query(LearningClassDB).filter(LearningClassDB.id == class_id).first()
        if learning_class is None:
            raise NotFoundError(f"Learning class {class_id} not found")

        session = learning_class.find_session(session_number)
        if session is None:
            raise NotFoundError(f"Session {session_number} not found in class {class_id}")

        window = ReportingWindow.for_session(session, self.window_hours)
        window.check(now)

        role_in_class = member_role(learning_class, reporter_id)
        if role_in_class is None:
            raise ForbiddenError("Only the class student or tutor can report this session")
        if reporter_role != role_in_class:
            logger.warning(
                f"Reporter {reporter_id} declared role {reporter_role.value} "
                f"but is the {role_in_class.value} of class {class_id}"
            )

        if self.has_already_reported(class_id, session_number, reporter_id):
            raise ConflictError("You have already reported this session")

        return Admission(
            learning_class=learning_class,
            session=session,
            reporter_role=role_in_class,
            reported_against=opposite_role(role_in_class),
            window=window,
        )
