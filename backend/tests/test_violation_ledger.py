"""
Tests for the violation ledger and report reads.

Test Coverage:
1. Only RESOLVED reports with a fault decision count
2. Per-user summary and bulk counts
3. Report visibility: reporter, class members, admins
4. Listings: reporter's own reports, admin queue ordering, pagination
5. Backfill of the cached violator list and its indexed rows
"""
import pytest
from datetime import timedelta
from unittest.mock import patch

from app.errors import ForbiddenError
from app.models.db_models import (
    ReportPriority, ReportStatus, ReportViolatorDB, ResolutionDecision, UserRole,
)
from app.services.session_reports import ReportFilters, ViolationLedger, serialize_report

from seed import ADMIN_ID, OUTSIDER_ID, STUDENT_ID, TUTOR_ID, file_report, session_start

MESSAGE = "Adjudicated after reviewing attendance."


def resolved(report_service, decision, session_number, reporter_id=STUDENT_ID):
    report = file_report(report_service, reporter_id=reporter_id, session_number=session_number)
    return report_service.resolve_report(report.id, decision, MESSAGE, ADMIN_ID)


# =============================================================================
# TEST: VIOLATION LEDGER
# =============================================================================

class TestViolationLedger:
    """Reputation reads over resolved reports."""

    def test_counts_fault_decisions_only(self, report_service, db):
        resolved(report_service, ResolutionDecision.TUTOR_FAULT, 1)
        resolved(report_service, ResolutionDecision.NO_FAULT, 2)
        resolved(report_service, ResolutionDecision.BOTH_FAULT, 3)
        file_report(report_service, reporter_id=TUTOR_ID, session_number=1)  # still PENDING

        ledger = ViolationLedger(db)
        assert ledger.user_violation_count(TUTOR_ID) == 2
        assert ledger.user_violation_count(STUDENT_ID) == 1
        assert ledger.user_violation_count(OUTSIDER_ID) == 0
        assert ledger.total_violation_count() == 2

    def test_decision_dismissed_is_not_a_violation(self, report_service, db):
        resolved(report_service, ResolutionDecision.DISMISSED, 1)
        assert ViolationLedger(db).user_violation_count(TUTOR_ID) == 0

    def test_summary(self, report_service, db):
        first = resolved(report_service, ResolutionDecision.TUTOR_FAULT, 1)
        second = resolved(report_service, ResolutionDecision.BOTH_FAULT, 2)

        summary = ViolationLedger(db).user_violation_summary(TUTOR_ID)

        assert summary["user_id"] == TUTOR_ID
        assert summary["total_violations"] == 2
        assert summary["by_decision"] == {"STUDENT_FAULT": 0, "TUTOR_FAULT": 1, "BOTH_FAULT": 1}
        assert set(summary["recent_report_ids"]) == {first.id, second.id}

    def test_bulk_counts(self, report_service, db):
        resolved(report_service, ResolutionDecision.STUDENT_FAULT, 1, reporter_id=TUTOR_ID)
        resolved(report_service, ResolutionDecision.STUDENT_FAULT, 2, reporter_id=TUTOR_ID)

        counts = ViolationLedger(db).bulk_violation_counts([STUDENT_ID, TUTOR_ID, OUTSIDER_ID])
        assert counts == {STUDENT_ID: 2, TUTOR_ID: 0, OUTSIDER_ID: 0}

    def test_bulk_counts_empty(self, db):
        assert ViolationLedger(db).bulk_violation_counts([]) == {}

    def test_reports_against(self, report_service, db):
        report = resolved(report_service, ResolutionDecision.TUTOR_FAULT, 1)
        assert [r.id for r in ViolationLedger(db).reports_against(TUTOR_ID)] == [report.id]
        assert ViolationLedger(db).reports_against(STUDENT_ID) == []


# =============================================================================
# TEST: READS
# =============================================================================

class TestGetReport:
    """Who may read a single report."""

    def test_reporter_may_read(self, report_service):
        report = file_report(report_service)
        assert report_service.get_report(report.id, STUDENT_ID, UserRole.STUDENT).id == report.id

    def test_other_member_may_read(self, report_service):
        report = file_report(report_service)
        assert report_service.get_report(report.id, TUTOR_ID, UserRole.TUTOR).id == report.id

    def test_admin_may_read(self, report_service):
        report = file_report(report_service)
        assert report_service.get_report(report.id, ADMIN_ID, UserRole.ADMIN).id == report.id

    def test_outsider_forbidden(self, report_service):
        report = file_report(report_service)
        with pytest.raises(ForbiddenError):
            report_service.get_report(report.id, OUTSIDER_ID, UserRole.STUDENT)


class TestListings:
    """Reporter and admin listings."""

    def test_my_reports_only_own(self, report_service):
        file_report(report_service, session_number=1)
        file_report(report_service, session_number=2)
        file_report(report_service, reporter_id=TUTOR_ID, session_number=2)

        result = report_service.get_my_reports(STUDENT_ID)
        assert result["total"] == 2
        assert all(r.reported_by_user_id == STUDENT_ID for r in result["reports"])
        # newest first
        assert [r.session_number for r in result["reports"]] == [2, 1]

    def test_status_filter(self, report_service):
        first = file_report(report_service, session_number=1)
        file_report(report_service, session_number=2)
        report_service.update_status(first.id, ReportStatus.UNDER_REVIEW, ADMIN_ID)

        result = report_service.get_my_reports(STUDENT_ID, ReportFilters(status=ReportStatus.UNDER_REVIEW))
        assert [r.id for r in result["reports"]] == [first.id]

    def test_date_filter(self, report_service):
        file_report(report_service, session_number=1)
        file_report(report_service, session_number=3)

        result = report_service.get_all_reports(ReportFilters(start_date=session_start(3)))
        assert [r.session_number for r in result["reports"]] == [3]

    def test_admin_queue_sorted_by_priority_then_recency(self, report_service):
        low = file_report(report_service, session_number=1, priority=ReportPriority.LOW)
        critical = file_report(report_service, session_number=2, priority=ReportPriority.CRITICAL)
        medium_old = file_report(report_service, reporter_id=TUTOR_ID, session_number=1)
        medium_new = file_report(report_service, reporter_id=TUTOR_ID, session_number=3)

        result = report_service.get_all_reports()
        assert [r.id for r in result["reports"]] == [critical.id, medium_new.id, medium_old.id, low.id]

    def test_pagination(self, report_service):
        for n in (1, 2, 3):
            file_report(report_service, session_number=n)
            file_report(report_service, reporter_id=TUTOR_ID, session_number=n)

        result = report_service.get_all_reports(ReportFilters(page=2, limit=4))
        assert result["total"] == 6
        assert result["page"] == 2
        assert result["total_pages"] == 2
        assert len(result["reports"]) == 2

    def test_limit_is_capped(self, report_service):
        file_report(report_service)
        result = report_service.get_my_reports(STUDENT_ID, ReportFilters(limit=1000))
        assert result["total_pages"] == 1


class TestSerializeReport:
    def test_open_report_has_no_resolution(self, report_service):
        data = serialize_report(file_report(report_service))
        assert data["resolution"] is None
        assert data["reported_by"] == {"user_id": STUDENT_ID, "role": "STUDENT", "name": "An Tran"}
        assert data["reported_against"] == "TUTOR"

    def test_resolved_report(self, report_service):
        report = resolved(report_service, ResolutionDecision.BOTH_FAULT, 1)
        data = serialize_report(report)
        assert data["status"] == "RESOLVED"
        assert data["resolution"]["decision"] == "BOTH_FAULT"
        assert sorted(data["resolution"]["violator_user_ids"]) == sorted([STUDENT_ID, TUTOR_ID])
        assert data["resolution"]["resolved_at"] is not None

    def test_created_at_follows_filing_time(self, report_service):
        now = session_start(2) + timedelta(hours=5)
        data = serialize_report(file_report(report_service, session_number=2, now=now))
        assert data["created_at"] == now.isoformat()


class TestViolatorBackfill:
    """migrations/backfill_violator_user_ids.py"""

    def test_backfill_repairs_stale_cache(self, report_service, db, seeded):
        from migrations import backfill_violator_user_ids as backfill

        report = resolved(report_service, ResolutionDecision.BOTH_FAULT, 1)
        report.violator_user_ids = []
        db.commit()

        with patch.object(backfill, "SessionLocal", seeded):
            assert backfill.run_migration() == 1

        db.expire_all()
        assert sorted(report.violator_user_ids) == sorted([STUDENT_ID, TUTOR_ID])

    def test_dry_run_changes_nothing(self, report_service, db, seeded):
        from migrations import backfill_violator_user_ids as backfill

        report = resolved(report_service, ResolutionDecision.TUTOR_FAULT, 1)
        report.violator_user_ids = []
        db.commit()

        with patch.object(backfill, "SessionLocal", seeded):
            assert backfill.run_migration(dry_run=True) == 1

        db.expire_all()
        assert report.violator_user_ids == []

    def test_backfill_indexes_legacy_resolutions(self, report_service, db, seeded):
        from migrations import backfill_violator_user_ids as backfill

        resolved(report_service, ResolutionDecision.BOTH_FAULT, 1)
        db.query(ReportViolatorDB).delete()
        db.commit()
        assert ViolationLedger(db).user_violation_count(TUTOR_ID) == 0

        with patch.object(backfill, "SessionLocal", seeded):
            assert backfill.run_migration() == 1

        db.expire_all()
        ledger = ViolationLedger(db)
        assert ledger.bulk_violation_counts([STUDENT_ID, TUTOR_ID]) == {STUDENT_ID: 1, TUTOR_ID: 1}
        assert ledger.total_violation_count() == 1


class TestViolatorRows:
    """report_violators mirrors the cached violator list."""

    def test_resolution_writes_one_row_per_violator(self, report_service, db):
        report = resolved(report_service, ResolutionDecision.BOTH_FAULT, 1)
        rows = db.query(ReportViolatorDB).filter(ReportViolatorDB.report_id == report.id).all()
        assert sorted(r.user_id for r in rows) == sorted([STUDENT_ID, TUTOR_ID])

    def test_no_fault_writes_no_rows(self, report_service, db):
        resolved(report_service, ResolutionDecision.NO_FAULT, 1)
        assert db.query(ReportViolatorDB).count() == 0

    def test_summary_recent_is_newest_first_and_capped(self, report_service, db):
        reports = [resolved(report_service, ResolutionDecision.TUTOR_FAULT, n) for n in (1, 2, 3)]
        summary = ViolationLedger(db).user_violation_summary(TUTOR_ID, recent=2)
        assert summary["total_violations"] == 3
        assert summary["recent_report_ids"] == [reports[2].id, reports[1].id]
