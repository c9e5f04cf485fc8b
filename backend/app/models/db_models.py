"""
SkillBridge Session Integrity - SQLAlchemy ORM Models
PostgreSQL database models for persistent storage.

All datetimes are stored as naive UTC.
"""
from datetime import datetime, timezone
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, Float, DateTime, Text, JSON, ForeignKey,
    Enum as SQLEnum, Boolean, BigInteger, UniqueConstraint, Index,
)
from sqlalchemy.orm import relationship
from ..database import Base


def utcnow() -> datetime:
    """Current time as naive UTC, the storage convention for every column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Normalize an aware or naive datetime to naive UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


# =============================================================================
# ENUMS
# =============================================================================

class UserRole(str, Enum):
    STUDENT = "STUDENT"
    TUTOR = "TUTOR"
    ADMIN = "ADMIN"


class ClassStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    PAUSED = "PAUSED"


class SessionStatus(str, Enum):
    SCHEDULED = "SCHEDULED"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class RecordingStatus(str, Enum):
    """Lifecycle of a session recording on the meeting provider."""
    RECORDING = "RECORDING"
    PROCESSING = "PROCESSING"
    READY = "READY"
    FAILED = "FAILED"


class ReportStatus(str, Enum):
    """
    Workflow status of a session report.

    DISMISSED here means an admin declined to adjudicate the report at all.
    It is not the same thing as ResolutionDecision.DISMISSED, which is a
    full adjudication whose outcome is "no action".
    """
    PENDING = "PENDING"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED = "RESOLVED"
    DISMISSED = "DISMISSED"


class ReportPriority(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# Sort rank for admin listings (higher first)
PRIORITY_RANK = {
    ReportPriority.LOW: 1,
    ReportPriority.MEDIUM: 2,
    ReportPriority.HIGH: 3,
    ReportPriority.CRITICAL: 4,
}


class ResolutionDecision(str, Enum):
    """Outcome of adjudicating a report. See ReportStatus for DISMISSED."""
    STUDENT_FAULT = "STUDENT_FAULT"
    TUTOR_FAULT = "TUTOR_FAULT"
    BOTH_FAULT = "BOTH_FAULT"
    NO_FAULT = "NO_FAULT"
    DISMISSED = "DISMISSED"


class EvidenceType(str, Enum):
    IMAGE = "IMAGE"
    VIDEO = "VIDEO"
    DOCUMENT = "DOCUMENT"


# =============================================================================
# IDENTITY
# =============================================================================

class UserDB(Base):
    """
    Platform user. Owned by the profile service; read here for display names,
    roles and the email used to match meeting participants.
    """
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=True, index=True)
    full_name = Column(String(255), nullable=False)
    role = Column(SQLEnum(UserRole), nullable=False, default=UserRole.STUDENT)
    created_at = Column(DateTime, default=utcnow)


# =============================================================================
# CLASS / SESSION AGGREGATE
# =============================================================================

class LearningClassDB(Base):
    """
    Aggregate root for a tutor/student class and its sessions.

    `version` is the optimistic concurrency counter. Every unit of work that
    touches a session or its participation also updates this row, so two
    concurrent writers on the same class cannot both commit.
    """
    __tablename__ = "learning_classes"

    id = Column(String(36), primary_key=True)
    tutor_id = Column(String(36), nullable=False, index=True)
    student_id = Column(String(36), nullable=False, index=True)
    title = Column(String(200), nullable=True)

    total_sessions = Column(Integer, nullable=False)
    completed_sessions = Column(Integer, nullable=False, default=0)
    status = Column(SQLEnum(ClassStatus), nullable=False, default=ClassStatus.SCHEDULED)
    actual_end_date = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    sessions = relationship(
        "ClassSessionDB",
        back_populates="learning_class",
        order_by="ClassSessionDB.session_number",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    def touch(self):
        """Force an UPDATE of the root row so the version check runs."""
        self.updated_at = utcnow()

    def find_session(self, session_number: int):
        for session in self.sessions:
            if session.session_number == session_number:
                return session
        return None

    def member_ids(self):
        return {self.student_id, self.tutor_id}


class ClassSessionDB(Base):
    """One scheduled occurrence of a class."""
    __tablename__ = "class_sessions"
    __table_args__ = (
        UniqueConstraint("class_id", "session_number", name="uq_class_session_number"),
    )

    id = Column(String(36), primary_key=True)
    class_id = Column(String(36), ForeignKey("learning_classes.id", ondelete="CASCADE"), nullable=False, index=True)
    session_number = Column(Integer, nullable=False)
    scheduled_date = Column(DateTime, nullable=False)
    duration = Column(Integer, nullable=False)  # minutes
    status = Column(SQLEnum(SessionStatus), nullable=False, default=SessionStatus.SCHEDULED)
    actual_start_time = Column(DateTime, nullable=True)
    actual_end_time = Column(DateTime, nullable=True)

    learning_class = relationship("LearningClassDB", back_populates="sessions")
    participation = relationship(
        "SessionParticipationDB",
        back_populates="session",
        uselist=False,
        cascade="all, delete-orphan",
    )


class SessionParticipationDB(Base):
    """
    Per-session attendance aggregate, created by the first presence event.

    `<side>_joined_at` doubles as the open-interval marker: it is set on join
    and cleared on the matching leave.
    """
    __tablename__ = "session_participations"

    id = Column(String(36), primary_key=True)
    session_id = Column(String(36), ForeignKey("class_sessions.id", ondelete="CASCADE"), nullable=False, unique=True)

    tutor_joined_at = Column(DateTime, nullable=True)
    tutor_left_at = Column(DateTime, nullable=True)
    tutor_duration = Column(Float, nullable=False, default=0.0)  # minutes
    tutor_join_count = Column(Integer, nullable=False, default=0)

    student_joined_at = Column(DateTime, nullable=True)
    student_left_at = Column(DateTime, nullable=True)
    student_duration = Column(Float, nullable=False, default=0.0)  # minutes
    student_join_count = Column(Integer, nullable=False, default=0)

    both_participated = Column(Boolean, nullable=False, default=False)
    completed_at = Column(DateTime, nullable=True)

    session = relationship("ClassSessionDB", back_populates="participation")
    recording = relationship(
        "SessionRecordingDB",
        back_populates="participation",
        uselist=False,
        cascade="all, delete-orphan",
    )


class SessionRecordingDB(Base):
    """Metadata of the single authoritative recording of a session."""
    __tablename__ = "session_recordings"

    id = Column(String(36), primary_key=True)
    participation_id = Column(
        String(36), ForeignKey("session_participations.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    status = Column(SQLEnum(RecordingStatus), nullable=True)
    recording_id = Column(String(255), nullable=True)
    recording_url = Column(String(1000), nullable=True)
    duration = Column(Float, nullable=True)  # seconds, as reported by the provider
    file_size = Column(BigInteger, nullable=True)  # bytes
    recording_started_at = Column(DateTime, nullable=True)
    recording_ended_at = Column(DateTime, nullable=True)

    participation = relationship("SessionParticipationDB", back_populates="recording")


# =============================================================================
# SESSION REPORTS (DISPUTES)
# =============================================================================

class SessionReportDB(Base):
    """
    A dispute filed by one class member about one session.

    Never deleted. Evidence and admin notes are append-only.
    """
    __tablename__ = "session_reports"
    __table_args__ = (
        # One report per session per reporter, enforced by the database so
        # that near-simultaneous submissions cannot both succeed.
        UniqueConstraint(
            "class_id", "session_number", "reported_by_user_id",
            name="uq_session_report_reporter",
        ),
        Index("ix_session_reports_class_session", "class_id", "session_number"),
        Index("ix_session_reports_status_created", "status", "created_at"),
    )

    id = Column(String(36), primary_key=True)
    class_id = Column(String(36), nullable=False, index=True)
    session_number = Column(Integer, nullable=False)

    # Reporter snapshot, taken at filing time
    reported_by_user_id = Column(String(36), nullable=False, index=True)
    reported_by_role = Column(SQLEnum(UserRole), nullable=False)
    reported_by_name = Column(String(255), nullable=False)
    reported_against = Column(SQLEnum(UserRole), nullable=False)

    description = Column(Text, nullable=False)
    status = Column(SQLEnum(ReportStatus), nullable=False, default=ReportStatus.PENDING, index=True)
    priority = Column(SQLEnum(ReportPriority), nullable=False, default=ReportPriority.MEDIUM, index=True)

    # Resolution (set once, by adjudication)
    resolved_by = Column(String(36), nullable=True)
    resolver_name = Column(String(255), nullable=True)
    decision = Column(SQLEnum(ResolutionDecision), nullable=True)
    resolution_message = Column(Text, nullable=True)
    resolved_at = Column(DateTime, nullable=True)
    notified_at = Column(DateTime, nullable=True)

    # Derived from `decision`; mirrored row-per-user in report_violators
    violator_user_ids = Column(JSON, nullable=False, default=list)

    # Optimistic concurrency counter. Every change to a report, including
    # appending evidence or notes, updates this row, so a writer holding a
    # stale copy (e.g. one that has not seen a resolution) cannot commit.
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    evidence = relationship(
        "ReportEvidenceDB",
        back_populates="report",
        order_by="ReportEvidenceDB.position",
        cascade="all, delete-orphan",
    )
    admin_notes = relationship(
        "AdminNoteDB",
        back_populates="report",
        order_by="AdminNoteDB.position",
        cascade="all, delete-orphan",
    )
    violators = relationship(
        "ReportViolatorDB",
        back_populates="report",
        cascade="all, delete-orphan",
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        return self.status in (ReportStatus.RESOLVED, ReportStatus.DISMISSED)


class ReportEvidenceDB(Base):
    """One evidence file attached to a report."""
    __tablename__ = "report_evidence"
    __table_args__ = (
        UniqueConstraint("report_id", "position", name="uq_report_evidence_position"),
    )

    id = Column(String(36), primary_key=True)
    report_id = Column(String(36), ForeignKey("session_reports.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    url = Column(String(1000), nullable=False)
    type = Column(SQLEnum(EvidenceType), nullable=False)
    file_name = Column(String(255), nullable=True)
    stored_name = Column(String(300), nullable=False)
    uploaded_at = Column(DateTime, nullable=False, default=utcnow)

    report = relationship("SessionReportDB", back_populates="evidence")


class AdminNoteDB(Base):
    """Audit note written by an admin while investigating a report."""
    __tablename__ = "report_admin_notes"
    __table_args__ = (
        UniqueConstraint("report_id", "position", name="uq_report_admin_note_position"),
    )

    id = Column(String(36), primary_key=True)
    report_id = Column(String(36), ForeignKey("session_reports.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    admin_id = Column(String(36), nullable=False)
    admin_name = Column(String(255), nullable=False)
    note = Column(Text, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    report = relationship("SessionReportDB", back_populates="admin_notes")


class ReportViolatorDB(Base):
    """
    One (report, violator) pair of a resolved report.

    Row-per-user copy of SessionReportDB.violator_user_ids so reputation
    counts are indexed lookups instead of scans over every resolution.
    """
    __tablename__ = "report_violators"
    __table_args__ = (
        UniqueConstraint("report_id", "user_id", name="uq_report_violator"),
    )

    id = Column(String(36), primary_key=True)
    report_id = Column(String(36), ForeignKey("session_reports.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)

    report = relationship("SessionReportDB", back_populates="violators")
