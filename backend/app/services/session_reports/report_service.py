"""
Session Report Service

Orchestrates the dispute workflow around session reports:
- intake: eligibility gate, evidence upload, persistence, counter-party notice
- evidence: reporter-only, append-only additions while the report is open
- adjudication: admin status changes, resolution, audit notes
- reads: reporter listing, admin listing, single report with authorization

Commits happen here, notifications after the commit. A failed notification
is logged and never undoes a committed change.
"""
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Sequence
from uuid import uuid4

from sqlalchemy import case
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ...errors import ConflictError, ForbiddenError, NotFoundError, ReportTerminalError
from ...models.db_models import (
    LearningClassDB, PRIORITY_RANK, ReportPriority, ReportStatus, ResolutionDecision,
    SessionReportDB, UserRole, to_naive_utc, utcnow,
)
from ..collaborators import (
    BlobStore, IdentityLookup, NotificationDispatcher, DatabaseIdentityLookup,
    REPORT_CREATED, REPORT_RESOLVED, REPORT_UNDER_REVIEW, dispatch_quietly,
)
from .adjudication import AdjudicationStateMachine
from .evidence_custody import EvidenceCustody, EvidenceFile
from .intake_gate import IntakeGate

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 10
DEFAULT_ADMIN_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


@dataclass
class ReportFilters:
    status: Optional[ReportStatus] = None
    priority: Optional[ReportPriority] = None
    class_id: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    page: int = 1
    limit: Optional[int] = None


# =============================================================================
# SERIALIZATION
# =============================================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_report(report: SessionReportDB) -> Dict[str, Any]:
    """Report shape exposed to members, admins and the reputation ledger."""
    resolution = None
    if report.decision is not None:
        resolution = {
            "resolved_by": report.resolved_by,
            "resolver_name": report.resolver_name,
            "decision": report.decision.value,
            "message": report.resolution_message,
            "resolved_at": _iso(report.resolved_at),
            "notified_at": _iso(report.notified_at),
            "violator_user_ids": list(report.violator_user_ids or []),
        }

    return {
        "id": report.id,
        "class_id": report.class_id,
        "session_number": report.session_number,
        "reported_by": {
            "user_id": report.reported_by_user_id,
            "role": report.reported_by_role.value,
            "name": report.reported_by_name,
        },
        "reported_against": report.reported_against.value,
        "description": report.description,
        "evidence": [
            {
                "url": e.url,
                "type": e.type.value,
                "file_name": e.file_name,
                "uploaded_at": _iso(e.uploaded_at),
            }
            for e in report.evidence
        ],
        "status": report.status.value,
        "priority": report.priority.value,
        "resolution": resolution,
        "admin_notes": [
            {
                "id": n.id,
                "admin_id": n.admin_id,
                "admin_name": n.admin_name,
                "note": n.note,
                "created_at": _iso(n.created_at),
            }
            for n in report.admin_notes
        ],
        "violator_user_ids": list(report.violator_user_ids or []),
        "created_at": _iso(report.created_at),
        "updated_at": _iso(report.updated_at),
    }


# =============================================================================
# SERVICE
# =============================================================================

class SessionReportService:
    """Main service for session report management."""

    def __init__(
        self,
        db_session: Session,
        blob_store: BlobStore,
        notifier: NotificationDispatcher,
        identity: Optional[IdentityLookup] = None,
    ):
        self.db = db_session
        self.notifier = notifier
        self.identity = identity or DatabaseIdentityLookup(db_session)
        self.gate = IntakeGate(db_session)
        self.custody = EvidenceCustody(blob_store)
        self.state_machine = AdjudicationStateMachine()

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def _get_report(self, report_id: str) -> SessionReportDB:
        report = self.db.query(SessionReportDB).filter(SessionReportDB.id == report_id).first()
        if report is None:
            raise NotFoundError(f"Report {report_id} not found")
        return report

    def _get_class(self, class_id: str) -> LearningClassDB:
        learning_class = self.db.query(LearningClassDB).filter(LearningClassDB.id == class_id).first()
        if learning_class is None:
            raise NotFoundError(f"Learning class {class_id} not found")
        return learning_class

    def _display_name(self, user_id: str, what: str) -> str:
        name = self.identity.display_name(user_id)
        if not name:
            raise NotFoundError(f"{what} {user_id} not found")
        return name

    def _commit_report(self, report: SessionReportDB) -> None:
        """
        Commit a change to an existing report.

        The report row is version checked and note/evidence positions are
        unique, so a writer that loaded the report before someone else changed
        it loses.

        Raises:
            ReportTerminalError if the other writer closed the report
            ConflictError for any other concurrent change
        """
        try:
            self.db.commit()
        except (StaleDataError, IntegrityError) as e:
            self.db.rollback()
            logger.warning(f"Concurrent update rejected for report {report.id}")
            if report.is_terminal:
                raise ReportTerminalError(f"Report has already been closed ({report.status.value})") from e
            raise ConflictError("Report was changed by someone else, reload and retry") from e

    # =========================================================================
    # INTAKE
    # =========================================================================

    def create_report(
        self,
        class_id: str,
        session_number: int,
        description: str,
        reporter_id: str,
        reporter_role: UserRole,
        priority: Optional[ReportPriority] = None,
        evidence_files: Optional[Sequence[EvidenceFile]] = None,
        now: Optional[datetime] = None,
    ) -> SessionReportDB:
        """
        File a new report for a session.

        Raises:
            NotFoundError, WindowViolationError, ForbiddenError, ConflictError
            from the intake gate; UpstreamFailureError if an evidence upload
            fails (nothing is persisted in that case)
        """
        now = to_naive_utc(now) if now else utcnow()
        files = list(evidence_files or [])
        self.custody.check_count(files)

        admission = self.gate.admit(class_id, session_number, reporter_id, reporter_role, now)
        reporter_name = self._display_name(reporter_id, "Reporter")

        evidence = self.custody.upload(files, class_id, now)

        report = SessionReportDB(
            id=str(uuid4()),
            class_id=class_id,
            session_number=session_number,
            reported_by_user_id=reporter_id,
            reported_by_role=admission.reporter_role,
            reported_by_name=reporter_name,
            reported_against=admission.reported_against,
            description=description,
            status=ReportStatus.PENDING,
            priority=priority or ReportPriority.MEDIUM,
            violator_user_ids=[],
            created_at=now,
            updated_at=now,
        )
        self.custody.append(report, evidence)
        self.db.add(report)

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Duplicate report rejected by storage for class {class_id} session {session_number}")
            raise ConflictError("You have already reported this session") from e

        logger.info(
            f"Session report created: {report.id} class={class_id} session={session_number} "
            f"by {admission.reporter_role.value}"
        )

        other_party_id = (
            admission.learning_class.student_id
            if admission.reported_against == UserRole.STUDENT
            else admission.learning_class.tutor_id
        )
        dispatch_quietly(self.notifier, other_party_id, REPORT_CREATED, {
            "report_id": report.id,
            "class_id": class_id,
            "session_number": session_number,
            "reporter_name": reporter_name,
        })

        return report

    # =========================================================================
    # EVIDENCE
    # =========================================================================

    def add_evidence(
        self,
        report_id: str,
        user_id: str,
        evidence_files: Sequence[EvidenceFile],
        now: Optional[datetime] = None,
    ) -> SessionReportDB:
        """Append evidence to the caller's own open report."""
        now = to_naive_utc(now) if now else utcnow()
        report = self._get_report(report_id)

        entries = self.custody.add(report, user_id, list(evidence_files), now)
        report.updated_at = now
        self._commit_report(report)

        logger.info(f"Additional evidence uploaded: report={report_id} files={len(entries)}")
        return report

    # =========================================================================
    # ADJUDICATION (ADMIN)
    # =========================================================================

    def update_status(self, report_id: str, status: ReportStatus, admin_id: str) -> SessionReportDB:
        report = self._get_report(report_id)

        changed = self.state_machine.set_status(report, status, admin_id)
        if not changed:
            return report

        report.updated_at = utcnow()
        self._commit_report(report)

        if self.state_machine.should_notify_reporter(status):
            dispatch_quietly(self.notifier, report.reported_by_user_id, REPORT_UNDER_REVIEW, {
                "report_id": report.id,
                "class_id": report.class_id,
                "session_number": report.session_number,
            })

        return report

    def resolve_report(
        self,
        report_id: str,
        decision: ResolutionDecision,
        message: str,
        admin_id: str,
        now: Optional[datetime] = None,
    ) -> SessionReportDB:
        now = to_naive_utc(now) if now else utcnow()
        report = self._get_report(report_id)
        learning_class = self._get_class(report.class_id)
        admin_name = self._display_name(admin_id, "Admin")

        self.state_machine.resolve(report, learning_class, decision, message, admin_id, admin_name, now)
        report.updated_at = now
        self._commit_report(report)

        payload = {
            "report_id": report.id,
            "class_id": report.class_id,
            "session_number": report.session_number,
            "decision": decision.value,
        }
        delivered = [
            dispatch_quietly(self.notifier, member_id, REPORT_RESOLVED, payload)
            for member_id in (learning_class.student_id, learning_class.tutor_id)
        ]
        if any(delivered):
            report.notified_at = utcnow()
            try:
                self.db.commit()
            except StaleDataError:
                # The resolution is already committed; only the stamp is lost.
                self.db.rollback()
                logger.warning(f"Could not stamp notified_at on report {report.id}: concurrent update")

        return report

    def add_admin_note(
        self,
        report_id: str,
        note: str,
        admin_id: str,
        now: Optional[datetime] = None,
    ) -> SessionReportDB:
        now = to_naive_utc(now) if now else utcnow()
        report = self._get_report(report_id)
        admin_name = self._display_name(admin_id, "Admin")

        self.state_machine.add_note(report, note, admin_id, admin_name, now)
        report.updated_at = now
        self._commit_report(report)

        logger.info(f"Admin note added to report {report_id} by {admin_id}")
        return report

    # =========================================================================
    # READS
    # =========================================================================

    def get_report(self, report_id: str, user_id: str, user_role: UserRole) -> SessionReportDB:
        """Reporter, either class member, or an admin may read a report."""
        report = self._get_report(report_id)
        if user_role == UserRole.ADMIN or report.reported_by_user_id == user_id:
            return report

        learning_class = self._get_class(report.class_id)
        if user_id not in learning_class.member_ids():
            raise ForbiddenError("You are not allowed to view this report")
        return report

    def _filtered(self, query, filters: ReportFilters):
        if filters.status:
            query = query.filter(SessionReportDB.status == filters.status)
        if filters.priority:
            query = query.filter(SessionReportDB.priority == filters.priority)
        if filters.class_id:
            query = query.filter(SessionReportDB.class_id == filters.class_id)
        if filters.start_date:
            query = query.filter(SessionReportDB.created_at >= to_naive_utc(filters.start_date))
        if filters.end_date:
            query = query.filter(SessionReportDB.created_at <= to_naive_utc(filters.end_date))
        return query

    def _page(self, query, filters: ReportFilters, default_limit: int, order_by) -> Dict[str, Any]:
        page = max(filters.page or 1, 1)
        limit = min(filters.limit or default_limit, MAX_PAGE_SIZE)

        total = query.count()
        reports = query.order_by(*order_by).offset((page - 1) * limit).limit(limit).all()

        return {
            "reports": reports,
            "total": total,
            "page": page,
            "total_pages": math.ceil(total / limit) if total else 0,
        }

    def get_my_reports(self, user_id: str, filters: Optional[ReportFilters] = None) -> Dict[str, Any]:
        filters = filters or ReportFilters()
        query = self.db.query(SessionReportDB).filter(SessionReportDB.reported_by_user_id == user_id)
        query = self._filtered(query, filters)
        return self._page(query, filters, DEFAULT_PAGE_SIZE, [SessionReportDB.created_at.desc()])

    def get_all_reports(self, filters: Optional[ReportFilters] = None) -> Dict[str, Any]:
        """Admin listing, most urgent first, then most recent."""
        filters = filters or ReportFilters()
        query = self._filtered(self.db.query(SessionReportDB), filters)
        priority_rank = case(
            *[(SessionReportDB.priority == p, rank) for p, rank in PRIORITY_RANK.items()],
            else_=0,
        )
        return self._page(
            query, filters, DEFAULT_ADMIN_PAGE_SIZE,
            [priority_rank.desc(), SessionReportDB.created_at.desc()],
        )
