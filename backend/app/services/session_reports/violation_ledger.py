"""
Violation Ledger (read side)

Reputation queries over adjudicated session reports. Only RESOLVED reports
count, and a user is a violator of a report exactly when a report_violators
row links them to it. Counting happens in the database on the indexed
user_id column.

Read-only: nothing here writes to reports.
"""
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import distinct, func
from sqlalchemy.orm import Session

from ...models.db_models import ReportStatus, ReportViolatorDB, ResolutionDecision, SessionReportDB

FAULT_DECISIONS = (
    ResolutionDecision.STUDENT_FAULT,
    ResolutionDecision.TUTOR_FAULT,
    ResolutionDecision.BOTH_FAULT,
)


class ViolationLedger:
    """Violation counts and summaries per user."""

    def __init__(self, db_session: Session):
        self.db = db_session

    @staticmethod
    def _counted(query):
        return query.select_from(ReportViolatorDB).join(
            SessionReportDB, SessionReportDB.id == ReportViolatorDB.report_id
        ).filter(
            SessionReportDB.status == ReportStatus.RESOLVED,
            SessionReportDB.decision.in_(FAULT_DECISIONS),
        )

    def reports_against(self, user_id: str, limit: Optional[int] = None) -> List[SessionReportDB]:
        query = (
            self._counted(self.db.query(SessionReportDB))
            .filter(ReportViolatorDB.user_id == user_id)
            .order_by(SessionReportDB.created_at.desc())
        )
        if limit is not None:
            query = query.limit(limit)
        return query.all()

    def user_violation_count(self, user_id: str) -> int:
        return self.bulk_violation_counts([user_id])[user_id]

    def bulk_violation_counts(self, user_ids: Iterable[str]) -> Dict[str, int]:
        counts = {user_id: 0 for user_id in user_ids}
        if not counts:
            return {}
        rows = (
            self._counted(self.db.query(ReportViolatorDB.user_id, func.count(ReportViolatorDB.id)))
            .filter(ReportViolatorDB.user_id.in_(list(counts)))
            .group_by(ReportViolatorDB.user_id)
            .all()
        )
        for user_id, n in rows:
            counts[user_id] = n
        return counts

    def user_violation_summary(self, user_id: str, recent: int = 10) -> Dict[str, Any]:
        by_decision = {decision.value: 0 for decision in FAULT_DECISIONS}
        rows = (
            self._counted(self.db.query(SessionReportDB.decision, func.count(ReportViolatorDB.id)))
            .filter(ReportViolatorDB.user_id == user_id)
            .group_by(SessionReportDB.decision)
            .all()
        )
        for decision, n in rows:
            by_decision[decision.value] = n

        return {
            "user_id": user_id,
            "total_violations": sum(by_decision.values()),
            "by_decision": by_decision,
            "recent_report_ids": [r.id for r in self.reports_against(user_id, limit=recent)],
        }

    def total_violation_count(self) -> int:
        """Resolved reports with at least one violator."""
        return self._counted(
            self.db.query(func.count(distinct(ReportViolatorDB.report_id)))
        ).scalar() or 0
