"""
Adjudication State Machine

Status and decision transitions for session reports.

    PENDING -> UNDER_REVIEW -> RESOLVED | DISMISSED
    PENDING ----------------> RESOLVED | DISMISSED

Two axes that must not be collapsed:
- status DISMISSED: an admin declined to adjudicate the report at all
- decision DISMISSED: the report was adjudicated and nobody is at fault;
  resolve() always leaves the report in status RESOLVED

Admin notes are an append-only audit trail and are accepted in every state.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Tuple
from uuid import uuid4

from ...errors import ForbiddenError, ReportTerminalError
from ...models.db_models import (
    AdminNoteDB, LearningClassDB, ReportStatus, ReportViolatorDB, ResolutionDecision,
    SessionReportDB,
)

logger = logging.getLogger(__name__)


# =============================================================================
# STATE CONFIGURATION
# =============================================================================

STATE_CONFIG: Dict[ReportStatus, Dict[str, Any]] = {
    ReportStatus.PENDING: {
        "description": "Filed, awaiting an administrator",
        "allowed_transitions": [
            ReportStatus.UNDER_REVIEW,
            ReportStatus.RESOLVED,
            ReportStatus.DISMISSED,
        ],
        "notify_reporter": False,
    },
    ReportStatus.UNDER_REVIEW: {
        "description": "An administrator is investigating",
        "allowed_transitions": [
            ReportStatus.RESOLVED,
            ReportStatus.DISMISSED,
        ],
        "notify_reporter": True,
    },
    ReportStatus.RESOLVED: {
        "description": "Adjudicated; resolution recorded",
        "allowed_transitions": [],  # Terminal state
        "notify_reporter": False,
    },
    ReportStatus.DISMISSED: {
        "description": "Declined without adjudication",
        "allowed_transitions": [],  # Terminal state
        "notify_reporter": False,
    },
}


# Which class members are at fault for each decision
VIOLATORS_BY_DECISION: Dict[ResolutionDecision, Tuple[str, ...]] = {
    ResolutionDecision.STUDENT_FAULT: ("student",),
    ResolutionDecision.TUTOR_FAULT: ("tutor",),
    ResolutionDecision.BOTH_FAULT: ("student", "tutor"),
    ResolutionDecision.NO_FAULT: (),
    ResolutionDecision.DISMISSED: (),
}


def violator_user_ids(decision: ResolutionDecision, learning_class: LearningClassDB) -> List[str]:
    """User ids at fault, always a subset of the class's student and tutor."""
    members = {"student": learning_class.student_id, "tutor": learning_class.tutor_id}
    return [members[side] for side in VIOLATORS_BY_DECISION[decision]]


def set_violators(report: SessionReportDB, user_ids: List[str]) -> None:
    """Write the violator list and keep its report_violators rows in step."""
    wanted = list(dict.fromkeys(user_ids))
    report.violator_user_ids = wanted
    report.violators = [v for v in report.violators if v.user_id in wanted]
    present = {v.user_id for v in report.violators}
    for user_id in wanted:
        if user_id not in present:
            report.violators.append(ReportViolatorDB(id=str(uuid4()), user_id=user_id))


# =============================================================================
# STATE MACHINE
# =============================================================================

class AdjudicationStateMachine:
    """
    Deterministic transitions for a report's status, resolution and notes.

    Mutates ORM rows only. Committing and notifying belong to the caller.
    """

    def get_state_config(self, status: ReportStatus) -> Dict[str, Any]:
        return STATE_CONFIG.get(status, {})

    def is_terminal_state(self, status: ReportStatus) -> bool:
        return len(self.get_state_config(status).get("allowed_transitions", [])) == 0

    def can_transition(self, from_status: ReportStatus, to_status: ReportStatus) -> Tuple[bool, str]:
        """
        Check if a status transition is allowed.

        Returns (allowed, reason)
        """
        allowed = self.get_state_config(from_status).get("allowed_transitions", [])
        if to_status in allowed:
            return True, "Transition allowed"
        return False, f"Cannot transition from {from_status.value} to {to_status.value}"

    def should_notify_reporter(self, status: ReportStatus) -> bool:
        return bool(self.get_state_config(status).get("notify_reporter"))

    def set_status(self, report: SessionReportDB, to_status: ReportStatus, admin_id: str) -> bool:
        """
        Move a report to `to_status`.

        Returns:
            False when the report already has that status (no-op), True otherwise

        Raises:
            ReportTerminalError if the report is closed
            ForbiddenError for a backwards transition
        """
        from_status = report.status
        if from_status == to_status:
            return False

        if self.is_terminal_state(from_status):
            raise ReportTerminalError(f"Report is already {from_status.value}")

        allowed, reason = self.can_transition(from_status, to_status)
        if not allowed:
            raise ForbiddenError(reason)

        report.status = to_status
        logger.info(f"Report {report.id} status {from_status.value} -> {to_status.value} by admin {admin_id}")
        return True

    def resolve(
        self,
        report: SessionReportDB,
        learning_class: LearningClassDB,
        decision: ResolutionDecision,
        message: str,
        admin_id: str,
        admin_name: str,
        now: datetime,
    ) -> List[str]:
        """
        Record the resolution and close the report as RESOLVED.

        Returns:
            The violator user ids derived from `decision`

        Raises:
            ReportTerminalError if the report is already RESOLVED or DISMISSED
        """
        if report.is_terminal:
            raise ReportTerminalError(f"Report has already been closed ({report.status.value})")

        violators = violator_user_ids(decision, learning_class)

        report.resolved_by = admin_id
        report.resolver_name = admin_name
        report.decision = decision
        report.resolution_message = message
        report.resolved_at = now
        set_violators(report, violators)
        report.status = ReportStatus.RESOLVED

        logger.info(f"Report {report.id} resolved as {decision.value} by admin {admin_id}; violators={violators}")
        return violators

    def add_note(
        self,
        report: SessionReportDB,
        note: str,
        admin_id: str,
        admin_name: str,
        now: datetime,
    ) -> AdminNoteDB:
        """Append an audit note. Allowed in every status; no state effect."""
        entry = AdminNoteDB(
            id=str(uuid4()),
            position=len(report.admin_notes),
            admin_id=admin_id,
            admin_name=admin_name,
            note=note,
            created_at=now,
        )
        report.admin_notes.append(entry)
        return entry
