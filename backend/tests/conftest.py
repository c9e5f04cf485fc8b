"""
Shared fixtures: an in-memory SQLite database seeded with one class.

DATABASE_URL must be set before anything under app/ is imported, because
app.database builds its engine at import time.
"""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("JITSI_WEBHOOK_SECRET", None)

from unittest.mock import MagicMock  # noqa: E402

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from app.database import Base  # noqa: E402
from app.models.db_models import (  # noqa: E402
    ClassSessionDB, ClassStatus, LearningClassDB, SessionStatus, UserDB, UserRole,
)
from seed import (  # noqa: E402
    ADMIN_ID, CLASS_ID, OUTSIDER_ID, SESSION_MINUTES, STUDENT_EMAIL, STUDENT_ID,
    TOTAL_SESSIONS, TUTOR_EMAIL, TUTOR_ID, session_start,
)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    from app.models import db_models  # noqa: F401
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def seeded(session_factory):
    """Tutor, student, an outsider and an admin; one class with three sessions."""
    db = session_factory()
    db.add_all([
        UserDB(id=TUTOR_ID, email=TUTOR_EMAIL, full_name="Thanh Nguyen", role=UserRole.TUTOR),
        UserDB(id=STUDENT_ID, email=STUDENT_EMAIL, full_name="An Tran", role=UserRole.STUDENT),
        UserDB(id=OUTSIDER_ID, email="other@skillbridge.test", full_name="Binh Le", role=UserRole.STUDENT),
        UserDB(id=ADMIN_ID, email="admin@skillbridge.test", full_name="Mai Admin", role=UserRole.ADMIN),
    ])
    learning_class = LearningClassDB(
        id=CLASS_ID,
        tutor_id=TUTOR_ID,
        student_id=STUDENT_ID,
        title="IELTS Speaking",
        total_sessions=TOTAL_SESSIONS,
        completed_sessions=0,
        status=ClassStatus.ACTIVE,
    )
    for n in range(1, TOTAL_SESSIONS + 1):
        learning_class.sessions.append(ClassSessionDB(
            id=f"session-{n}",
            session_number=n,
            scheduled_date=session_start(n),
            duration=SESSION_MINUTES,
            status=SessionStatus.SCHEDULED,
        ))
    db.add(learning_class)
    db.commit()
    db.close()
    return session_factory


@pytest.fixture
def db(seeded):
    session = seeded()
    yield session
    session.close()


@pytest.fixture
def blob_store():
    store = MagicMock()
    store.upload.side_effect = lambda data, folder, name: f"https://blobs.test/{folder}/{name}"
    return store


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def report_service(db, blob_store, notifier):
    from app.services.session_reports import SessionReportService
    return SessionReportService(db, blob_store, notifier)
