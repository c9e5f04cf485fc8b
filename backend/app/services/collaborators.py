"""
External Collaborators

Interfaces for the services this subsystem depends on but does not own:
- BlobStore: persists evidence files (bytes in, URL out)
- NotificationDispatcher: fire-and-forget user notifications
- IdentityLookup: user display names, snapshotted at action time

Each has a default implementation good enough to run the service locally.
"""
import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ..errors import UpstreamFailureError
from ..models.db_models import UserDB

logger = logging.getLogger(__name__)

EVIDENCE_STORAGE_DIR = os.getenv("EVIDENCE_STORAGE_DIR", "evidence")
EVIDENCE_BASE_URL = os.getenv("EVIDENCE_BASE_URL", "/evidence")


# =============================================================================
# NOTIFICATION EVENTS
# =============================================================================

REPORT_CREATED = "session_report_created"
REPORT_UNDER_REVIEW = "session_report_under_review"
REPORT_RESOLVED = "session_report_resolved"


# =============================================================================
# BLOB STORE
# =============================================================================

class BlobStore(ABC):
    """Stores opaque bytes and returns a URL that can be used to fetch them."""

    @abstractmethod
    def upload(self, data: bytes, folder: str, name: str) -> str:
        """
        Store `data` under folder/name.

        Returns:
            Public URL of the stored object

        Raises:
            UpstreamFailureError if the object could not be stored
        """


class LocalBlobStore(BlobStore):
    """Filesystem-backed blob store for development."""

    def __init__(self, root: str = EVIDENCE_STORAGE_DIR, base_url: str = EVIDENCE_BASE_URL):
        self.root = root
        self.base_url = base_url.rstrip("/")

    def upload(self, data: bytes, folder: str, name: str) -> str:
        directory = os.path.join(self.root, folder)
        try:
            os.makedirs(directory, exist_ok=True)
            with open(os.path.join(directory, name), "wb") as f:
                f.write(data)
        except OSError as e:
            raise UpstreamFailureError(f"Could not store {name}: {e}") from e
        return f"{self.base_url}/{folder}/{name}"


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class NotificationDispatcher(ABC):
    """Delivers a notification to one user. Delivery is not awaited."""

    @abstractmethod
    def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        ...


class LoggingNotificationDispatcher(NotificationDispatcher):
    """Writes notifications to the log instead of delivering them."""

    def notify(self, user_id: str, event: str, payload: Dict[str, Any]) -> None:
        logger.info(f"Notification {event} -> user {user_id}: {payload}")


def dispatch_quietly(
    dispatcher: NotificationDispatcher,
    user_id: str,
    event: str,
    payload: Dict[str, Any],
) -> bool:
    """
    Fire-and-forget dispatch. A failing dispatcher is logged, never raised,
    so a notification outage cannot undo a committed state change.
    """
    try:
        dispatcher.notify(user_id, event, payload)
        return True
    except Exception as e:
        logger.error(f"Notification {event} to user {user_id} failed: {e}")
        return False


# =============================================================================
# IDENTITY
# =============================================================================

class IdentityLookup(ABC):
    @abstractmethod
    def display_name(self, user_id: str) -> Optional[str]:
        ...

    @abstractmethod
    def email(self, user_id: str) -> Optional[str]:
        ...


class DatabaseIdentityLookup(IdentityLookup):
    """Reads names and emails from the users table."""

    def __init__(self, db_session: Session):
        self.db = db_session

    def _user(self, user_id: str) -> Optional[UserDB]:
        return self.db.query(UserDB).filter(UserDB.id == user_id).first()

    def display_name(self, user_id: str) -> Optional[str]:
        user = self._user(user_id)
        return user.full_name if user else None

    def email(self, user_id: str) -> Optional[str]:
        user = self._user(user_id)
        return user.email if user else None


# =============================================================================
# FASTAPI DEPENDENCIES
# =============================================================================

_blob_store: BlobStore = LocalBlobStore()
_notifier: NotificationDispatcher = LoggingNotificationDispatcher()


def get_blob_store() -> BlobStore:
    return _blob_store


def get_notification_dispatcher() -> NotificationDispatcher:
    return _notifier
