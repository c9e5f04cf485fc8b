"""
Presence Webhook Service

Entry point for meeting-provider callbacks. Each delivery is an independent
unit of work:

    raw body -> signature check -> typed event -> room -> class aggregate
             -> participation ledger / recording tracker -> commit

Delivery is at-least-once and unordered. Writers on the same class are
serialized by a per-class lock inside this process and by the optimistic
version counter on the class row across processes; a version conflict
re-reads the class and re-applies the event.

Only a bad signature is reported back to the provider. Everything else is
acknowledged so the provider does not retry; an event dropped here is an
eventual-consistency gap, not a failure.
"""
import json
import logging
import os
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ...database import SessionLocal
from ...errors import MalformedEventError, SignatureError
from ...models.db_models import LearningClassDB, UserDB, utcnow
from ...models.presence import (
    Participant, ParticipantJoined, ParticipantLeft, RecordingStatusChanged,
    UnknownEvent, PresenceEvent, RoomRef,
)
from .completion import recompute_class_completion
from .normalizer import parse_event, parse_room_name, resolve_side, verify_signature
from .participation_ledger import ParticipationLedger
from .recording_tracker import RecordingTracker

logger = logging.getLogger(__name__)

WEBHOOK_SECRET = os.getenv("JITSI_WEBHOOK_SECRET") or None
PRESENCE_MAX_ATTEMPTS = 3


def acknowledgement(processed: bool) -> Dict[str, object]:
    return {"success": True, "message": "Webhook received", "processed": processed}


def failure_acknowledgement(error: str) -> Dict[str, object]:
    """Still sent with HTTP 200 so the provider does not retry."""
    return {"success": False, "error": error, "processed": False}


# =============================================================================
# PER-CLASS LOCKS
# =============================================================================

class ClassLockRegistry:
    """
    One mutex per class id, created on demand.

    An entry lives only while some caller holds or waits for its lock and
    is evicted by the last one out, so ids that are no longer in use (or
    never existed) do not accumulate.
    """

    def __init__(self):
        self._guard = threading.Lock()
        # class_id -> [lock, number of holders and waiters]
        self._locks: Dict[str, list] = {}

    def __len__(self) -> int:
        return len(self._locks)

    def lock_for(self, class_id: str) -> Optional[threading.Lock]:
        """The live lock for a class, or None when nobody holds it."""
        with self._guard:
            entry = self._locks.get(class_id)
            return entry[0] if entry else None

    def _acquire_entry(self, class_id: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(class_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[class_id] = entry
            entry[1] += 1
            return entry[0]

    def _release_entry(self, class_id: str) -> None:
        with self._guard:
            entry = self._locks[class_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[class_id]

    @contextmanager
    def hold(self, class_id: str):
        lock = self._acquire_entry(class_id)
        try:
            with lock:
                yield
        finally:
            self._release_entry(class_id)


class_locks = ClassLockRegistry()


# =============================================================================
# SERVICE
# =============================================================================

class PresenceWebhookService:
    """Reconciles presence events into session participation state."""

    def __init__(
        self,
        session_factory: Callable[[], Session] = SessionLocal,
        secret: Optional[str] = WEBHOOK_SECRET,
        locks: ClassLockRegistry = class_locks,
        max_attempts: int = PRESENCE_MAX_ATTEMPTS,
    ):
        self.session_factory = session_factory
        self.secret = secret
        self.locks = locks
        self.max_attempts = max_attempts
        self.ledger = ParticipationLedger()
        self.recordings = RecordingTracker()

    # =========================================================================
    # INBOUND
    # =========================================================================

    def authenticate(self, raw_body: bytes, signature: Optional[str]) -> None:
        """
        Raises:
            SignatureError if a secret is configured and the signature is wrong
        """
        if not self.secret:
            return
        if not verify_signature(raw_body, signature, self.secret):
            logger.warning("Invalid Jitsi webhook signature")
            raise SignatureError("Invalid signature")

    def handle(
        self,
        raw_body: bytes,
        signature: Optional[str] = None,
        received_at: Optional[datetime] = None,
    ) -> Dict[str, object]:
        """
        Process one webhook delivery and build the acknowledgement.

        Raises:
            SignatureError only; every other problem is logged and acknowledged
        """
        self.authenticate(raw_body, signature)

        try:
            payload = json.loads(raw_body)
            event = parse_event(payload, received_at or utcnow())
        except (ValueError, MalformedEventError) as e:
            logger.warning(f"Dropping malformed Jitsi webhook: {e}")
            return failure_acknowledgement("Malformed webhook body")

        logger.info(f"Received Jitsi webhook: {type(event).__name__} room={getattr(event, 'room', None)}")

        try:
            processed = self.process(event)
        except Exception:
            logger.exception("Jitsi webhook processing error")
            return failure_acknowledgement("Webhook processing failed")

        return acknowledgement(processed)

    # =========================================================================
    # DISPATCH
    # =========================================================================

    def process(self, event: PresenceEvent) -> bool:
        """Apply a typed event. Returns False when the event was dropped."""
        if isinstance(event, UnknownEvent):
            logger.warning(f"Unknown Jitsi event: {event.event}")
            return False

        if isinstance(event, (ParticipantJoined, ParticipantLeft)) and event.participant is None:
            logger.warning(f"{type(event).__name__} without participant for room {event.room}")
            return False

        if isinstance(event, RecordingStatusChanged) and event.recording is None:
            logger.warning(f"Recording event without recording data for room {event.room}")
            return False

        ref = parse_room_name(event.room)
        if ref is None:
            logger.warning(f"Cannot parse room name: {event.room}")
            return False

        with self.locks.hold(ref.class_id):
            for attempt in range(1, self.max_attempts + 1):
                db = self.session_factory()
                try:
                    applied = self._apply(db, ref, event)
                    db.commit()
                    return applied
                except StaleDataError:
                    db.rollback()
                    logger.warning(
                        f"Concurrent update on class {ref.class_id} (attempt {attempt}/{self.max_attempts})"
                    )
                except Exception:
                    db.rollback()
                    raise
                finally:
                    db.close()

        logger.error(f"Dropping event for class {ref.class_id} after {self.max_attempts} conflicting attempts")
        return False

    def _load_class(self, db: Session, class_id: str) -> Optional[LearningClassDB]:
        query = db.query(LearningClassDB).filter(LearningClassDB.id == class_id)
        if db.get_bind().dialect.name == "postgresql":
            query = query.with_for_update()
        return query.first()

    def _member_emails(self, db: Session, learning_class: LearningClassDB) -> Dict[str, Optional[str]]:
        users = db.query(UserDB).filter(UserDB.id.in_(list(learning_class.member_ids()))).all()
        return {u.id: u.email for u in users}

    def _side(self, db: Session, participant: Participant, learning_class: LearningClassDB):
        emails = self._member_emails(db, learning_class) if participant.email else None
        return resolve_side(participant, learning_class, emails)

    def _apply(self, db: Session, ref: RoomRef, event: PresenceEvent) -> bool:
        learning_class = self._load_class(db, ref.class_id)
        if learning_class is None:
            logger.warning(f"Learning class not found: {ref.class_id}")
            return False

        session = learning_class.find_session(ref.session_number)
        if session is None:
            logger.warning(f"Session {ref.session_number} not found in class {ref.class_id}")
            return False

        at = event.occurred_at

        if isinstance(event, ParticipantJoined):
            side = self._side(db, event.participant, learning_class)
            self.ledger.record_join(session, side, at)
            logger.info(f"Tracked join for {side.value} in session {ref.session_number} of class {ref.class_id}")

        elif isinstance(event, ParticipantLeft):
            side = self._side(db, event.participant, learning_class)
            self.ledger.record_leave(session, side, at)
            if self.ledger.evaluate_completion(session, at):
                recompute_class_completion(learning_class, at)

        elif isinstance(event, RecordingStatusChanged):
            if self.recordings.apply(session, event.recording, at) is None:
                return False

        learning_class.touch()
        return True
