"""
Tests for session report intake.

Test Coverage:
1. Reporting window [scheduled, scheduled + duration + 48h), exclusive close
2. Membership and role complement (reportedAgainst is never the reporter's role)
3. One report per session per reporter, in the gate and in the database
4. Check order: not found -> window -> membership -> duplicate
5. Evidence on create: count limit, upload failure aborts everything
6. Counter-party notification is fire-and-forget
"""
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

from app.errors import (
    ConflictError, ForbiddenError, InvalidRequestError, NotFoundError,
    UpstreamFailureError, WindowViolationError,
)
from app.models.db_models import (
    ClassSessionDB, EvidenceType, ReportPriority, ReportStatus, SessionReportDB, UserRole,
)
from app.services.collaborators import REPORT_CREATED
from app.services.session_reports import EvidenceFile, IntakeGate, ReportingWindow, opposite_role

from seed import CLASS_ID, OUTSIDER_ID, STUDENT_ID, TUTOR_ID, file_report, session_start

# Session 3: 2024-01-10 10:00 for 60 minutes; window closes 2024-01-12 11:00
SESSION_3_CLOSE = datetime(2024, 1, 12, 11, 0)


def report_count(db) -> int:
    return db.query(SessionReportDB).count()


# =============================================================================
# TEST: REPORTING WINDOW
# =============================================================================

class TestReportingWindow:
    """Window arithmetic on a single session."""

    @pytest.fixture
    def window(self):
        session = ClassSessionDB(scheduled_date=datetime(2024, 1, 10, 10, 0), duration=60)
        return ReportingWindow.for_session(session, window_hours=48)

    def test_bounds(self, window):
        assert window.opens_at == datetime(2024, 1, 10, 10, 0)
        assert window.closes_at == SESSION_3_CLOSE

    def test_open_is_inclusive(self, window):
        window.check(datetime(2024, 1, 10, 10, 0))
        assert window.contains(datetime(2024, 1, 10, 10, 0))

    def test_close_is_exclusive(self, window):
        window.check(SESSION_3_CLOSE - timedelta(seconds=1))
        with pytest.raises(WindowViolationError):
            window.check(SESSION_3_CLOSE)

    def test_before_start_rejected(self, window):
        with pytest.raises(WindowViolationError):
            window.check(datetime(2024, 1, 10, 9, 59))

    def test_aware_datetimes_are_normalized(self, window):
        local = datetime(2024, 1, 12, 17, 59, tzinfo=timezone(timedelta(hours=7)))
        assert window.contains(local)

    def test_custom_window_hours(self):
        session = ClassSessionDB(scheduled_date=datetime(2024, 1, 10, 10, 0), duration=90)
        window = ReportingWindow.for_session(session, window_hours=24)
        assert window.closes_at == datetime(2024, 1, 11, 11, 30)


class TestOppositeRole:
    def test_student_reports_tutor(self):
        assert opposite_role(UserRole.STUDENT) == UserRole.TUTOR

    def test_tutor_reports_student(self):
        assert opposite_role(UserRole.TUTOR) == UserRole.STUDENT

    def test_admin_cannot_report(self):
        with pytest.raises(ForbiddenError):
            opposite_role(UserRole.ADMIN)


# =============================================================================
# TEST: CREATE REPORT
# =============================================================================

class TestCreateReport:
    """SessionReportService.create_report against the seeded class."""

    def test_worked_example(self, report_service, db):
        report = file_report(report_service, now=datetime(2024, 1, 12, 9, 0))

        assert report.status == ReportStatus.PENDING
        assert report.priority == ReportPriority.MEDIUM
        assert report.reported_by_role == UserRole.STUDENT
        assert report.reported_against == UserRole.TUTOR
        assert report.reported_by_name == "An Tran"
        assert report.violator_user_ids == []

        with pytest.raises(ConflictError):
            file_report(report_service, now=datetime(2024, 1, 12, 9, 30))

        # Window is checked before uniqueness
        with pytest.raises(WindowViolationError):
            file_report(report_service, now=datetime(2024, 1, 13, 0, 0))

        assert report_count(db) == 1

    def test_last_second_of_window_accepted(self, report_service):
        report = file_report(report_service, now=SESSION_3_CLOSE - timedelta(seconds=1))
        assert report.id is not None

    def test_window_close_rejected(self, report_service, db):
        with pytest.raises(WindowViolationError):
            file_report(report_service, now=SESSION_3_CLOSE)
        assert report_count(db) == 0

    def test_session_not_started_rejected(self, report_service):
        with pytest.raises(WindowViolationError):
            file_report(report_service, now=session_start(3) - timedelta(minutes=1))

    def test_tutor_reports_student(self, report_service, notifier):
        report = file_report(report_service, reporter_id=TUTOR_ID)
        assert report.reported_by_role == UserRole.TUTOR
        assert report.reported_against == UserRole.STUDENT
        notifier.notify.assert_called_once()
        assert notifier.notify.call_args[0][0] == STUDENT_ID

    def test_both_members_may_report_same_session(self, report_service, db):
        file_report(report_service, reporter_id=STUDENT_ID)
        file_report(report_service, reporter_id=TUTOR_ID)
        assert report_count(db) == 2

    def test_same_reporter_other_session_allowed(self, report_service, db):
        file_report(report_service, session_number=2)
        file_report(report_service, session_number=3)
        assert report_count(db) == 2

    def test_role_comes_from_membership(self, report_service):
        report = report_service.create_report(
            class_id=CLASS_ID,
            session_number=3,
            description="Declared the wrong role on purpose.",
            reporter_id=TUTOR_ID,
            reporter_role=UserRole.STUDENT,
            now=session_start(3) + timedelta(hours=1),
        )
        assert report.reported_by_role == UserRole.TUTOR
        assert report.reported_against == UserRole.STUDENT

    def test_non_member_forbidden(self, report_service):
        with pytest.raises(ForbiddenError):
            file_report(report_service, reporter_id=OUTSIDER_ID)

    def test_unknown_class_not_found(self, report_service):
        with pytest.raises(NotFoundError):
            file_report(report_service, class_id="ffffffffffffffffffffffff")

    def test_unknown_session_not_found(self, report_service):
        with pytest.raises(NotFoundError):
            file_report(report_service, session_number=9, now=datetime(2024, 1, 10, 12, 0))

    def test_window_checked_before_membership(self, report_service):
        with pytest.raises(WindowViolationError):
            file_report(report_service, reporter_id=OUTSIDER_ID, now=SESSION_3_CLOSE + timedelta(days=1))

    def test_membership_checked_before_duplicate(self, report_service):
        file_report(report_service)
        with pytest.raises(ForbiddenError):
            file_report(report_service, reporter_id=OUTSIDER_ID)

    def test_priority_is_kept(self, report_service):
        report = file_report(report_service, priority=ReportPriority.CRITICAL)
        assert report.priority == ReportPriority.CRITICAL

    def test_counter_party_notified(self, report_service, notifier):
        report = file_report(report_service)
        user_id, event, payload = notifier.notify.call_args[0]
        assert user_id == TUTOR_ID
        assert event == REPORT_CREATED
        assert payload["report_id"] == report.id
        assert payload["reporter_name"] == "An Tran"

    def test_notification_failure_does_not_fail_create(self, report_service, notifier, db):
        notifier.notify.side_effect = RuntimeError("push service down")
        report = file_report(report_service)
        assert report.id is not None
        assert report_count(db) == 1


class TestStorageUniqueness:
    """The database rejects a duplicate even if the gate is bypassed."""

    def test_unique_constraint_maps_to_conflict(self, report_service, db):
        file_report(report_service)
        with patch.object(IntakeGate, "has_already_reported", return_value=False):
            with pytest.raises(ConflictError):
                file_report(report_service)
        assert report_count(db) == 1

    def test_session_usable_after_conflict(self, report_service, db):
        file_report(report_service)
        with patch.object(IntakeGate, "has_already_reported", return_value=False):
            with pytest.raises(ConflictError):
                file_report(report_service)
        file_report(report_service, reporter_id=TUTOR_ID)
        assert report_count(db) == 2


# =============================================================================
# TEST: EVIDENCE ON CREATE
# =============================================================================

class TestCreateWithEvidence:
    """Files uploaded with the initial report."""

    def test_evidence_attached_in_order(self, report_service, blob_store):
        files = [
            EvidenceFile(b"png", "screenshot.png", "image/png"),
            EvidenceFile(b"mp4", "clip.mp4", "video/mp4"),
            EvidenceFile(b"pdf", "chat-log.pdf", "application/pdf"),
        ]
        report = file_report(report_service, evidence_files=files)

        assert [e.file_name for e in report.evidence] == ["screenshot.png", "clip.mp4", "chat-log.pdf"]
        assert [e.type for e in report.evidence] == [EvidenceType.IMAGE, EvidenceType.VIDEO, EvidenceType.DOCUMENT]
        assert [e.position for e in report.evidence] == [0, 1, 2]
        assert blob_store.upload.call_count == 3
        folder = blob_store.upload.call_args[0][1]
        assert folder == f"skillbridge/reports/{CLASS_ID}"
        assert report.evidence[0].url.startswith("https://blobs.test/")

    def test_more_than_five_files_rejected(self, report_service, blob_store, db):
        files = [EvidenceFile(b"x", f"f{i}.png", "image/png") for i in range(6)]
        with pytest.raises(InvalidRequestError):
            file_report(report_service, evidence_files=files)
        blob_store.upload.assert_not_called()
        assert report_count(db) == 0

    def test_upload_failure_aborts_create(self, report_service, blob_store, notifier, db):
        blob_store.upload.side_effect = ["https://blobs.test/ok", OSError("bucket unavailable")]
        files = [EvidenceFile(b"a", "a.png", "image/png"), EvidenceFile(b"b", "b.png", "image/png")]

        with pytest.raises(UpstreamFailureError):
            file_report(report_service, evidence_files=files)

        assert report_count(db) == 0
        notifier.notify.assert_not_called()

    def test_upload_failure_after_gate_allows_retry(self, report_service, blob_store):
        blob_store.upload.side_effect = OSError("timeout")
        with pytest.raises(UpstreamFailureError):
            file_report(report_service, evidence_files=[EvidenceFile(b"a", "a.png", "image/png")])

        blob_store.upload.side_effect = None
        blob_store.upload.return_value = "https://blobs.test/a.png"
        report = file_report(report_service, evidence_files=[EvidenceFile(b"a", "a.png", "image/png")])
        assert len(report.evidence) == 1
