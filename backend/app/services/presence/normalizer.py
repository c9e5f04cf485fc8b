"""
Presence Event Normalizer

Turns raw meeting-provider webhooks into typed presence events:
- verifies the optional HMAC-SHA256 signature over the raw body
- maps the `event` tag onto an event variant (unknown tags -> UnknownEvent)
- resolves the provider's room name to (class_id, session_number)
- decides whether a participant is the class tutor or student

Presence telemetry is not authoritative, so anything that cannot be
interpreted is dropped by the caller rather than rejected.
"""
import hashlib
import hmac
import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from dateutil.parser import isoparse

from ...errors import MalformedEventError
from ...models.db_models import LearningClassDB, to_naive_utc, utcnow
from ...models.presence import (
    PresenceEventType, ParticipantSide, Participant, RecordingInfo, RoomRef,
    ParticipantJoined, ParticipantLeft, RecordingStatusChanged, UnknownEvent,
    PresenceEvent,
)

logger = logging.getLogger(__name__)

ROOM_PREFIX = os.getenv("JITSI_ROOM_PREFIX", "skillbridge")

# Display-name fragments that mark a participant as the tutor.
# A heuristic: a student named "Tutorial Fan" would be classified as tutor.
TUTOR_NAME_VOCABULARY = ("tutor", "gia sư")

_OBJECT_ID = r"[a-f0-9]{24}"


# =============================================================================
# SIGNATURE
# =============================================================================

def compute_signature(raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA256 of the raw request body."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha256).hexdigest()


def verify_signature(raw_body: bytes, signature: Optional[str], secret: str) -> bool:
    """Constant-time check of the provider's signature header."""
    if not signature:
        return False
    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected, signature.strip().lower())


# =============================================================================
# ROOM NAMES
# =============================================================================

def parse_room_name(room: Optional[str], prefix: str = ROOM_PREFIX) -> Optional[RoomRef]:
    """
    Resolve a room name to its class session.

    Accepted shapes, after dropping any tenant path ("vpaas-magic-cookie-x/"):
    1. {prefix}-{24 hex class id}-{session number}
    2. any 24 hex chars anywhere, plus digits at the very end

    Returns None when neither shape matches.
    """
    if not room:
        return None

    clean_room = room.rsplit("/", 1)[-1]

    exact = re.search(
        rf"{re.escape(prefix)}-({_OBJECT_ID})-(\d+)", clean_room, re.IGNORECASE
    )
    if exact:
        return RoomRef(class_id=exact.group(1).lower(), session_number=int(exact.group(2)))

    class_id = re.search(f"({_OBJECT_ID})", clean_room, re.IGNORECASE)
    trailing = re.search(r"(\d+)$", clean_room)
    if class_id and trailing:
        return RoomRef(class_id=class_id.group(1).lower(), session_number=int(trailing.group(1)))

    return None


# =============================================================================
# EVENT PARSING
# =============================================================================

def parse_timestamp(value: Any, received_at: Optional[datetime] = None) -> datetime:
    """
    Parse the provider timestamp into naive UTC.

    Accepts ISO-8601 strings (with or without 'Z') and epoch seconds or
    milliseconds. Falls back to the receive time when missing or unreadable.
    """
    fallback = received_at or utcnow()

    if value is None or isinstance(value, bool):
        return fallback

    if isinstance(value, (int, float)):
        seconds = value / 1000.0 if value > 1e11 else float(value)
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc).replace(tzinfo=None)
        except (OverflowError, OSError, ValueError):
            return fallback

    if isinstance(value, str):
        try:
            return to_naive_utc(isoparse(value.strip()))
        except (ValueError, OverflowError):
            logger.warning(f"Unreadable presence timestamp {value!r}, using receive time")
            return fallback

    return fallback


def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


def _optional_number(value: Any, kind):
    if value is None or isinstance(value, bool):
        return None
    try:
        return kind(value)
    except (TypeError, ValueError):
        return None


def _parse_participant(raw: Any) -> Optional[Participant]:
    if not isinstance(raw, dict):
        return None
    return Participant(
        id=_optional_str(raw.get("id")),
        name=_optional_str(raw.get("name")),
        email=_optional_str(raw.get("email")),
        role=_optional_str(raw.get("role")),
    )


def _parse_recording(raw: Any) -> Optional[RecordingInfo]:
    if not isinstance(raw, dict) or raw.get("status") is None:
        return None
    return RecordingInfo(
        status=str(raw["status"]).lower(),
        id=_optional_str(raw.get("id")),
        download_url=_optional_str(raw.get("download_url")),
        duration=_optional_number(raw.get("duration"), float),
        size=_optional_number(raw.get("size"), int),
    )


def parse_event(payload: Any, received_at: Optional[datetime] = None) -> PresenceEvent:
    """
    Map a decoded webhook body onto a presence event variant.

    Raises:
        MalformedEventError if the body is not a JSON object
    """
    if not isinstance(payload, dict):
        raise MalformedEventError("Webhook body must be a JSON object")

    tag = payload.get("event")
    room = payload.get("room")

    try:
        event_type = PresenceEventType(tag)
    except ValueError:
        return UnknownEvent(event=_optional_str(tag), room=_optional_str(room), raw=payload)

    occurred_at = parse_timestamp(payload.get("timestamp"), received_at)
    room = _optional_str(room) or ""

    if event_type is PresenceEventType.PARTICIPANT_JOINED:
        return ParticipantJoined(room=room, occurred_at=occurred_at,
                                 participant=_parse_participant(payload.get("participant")))
    if event_type is PresenceEventType.PARTICIPANT_LEFT:
        return ParticipantLeft(room=room, occurred_at=occurred_at,
                               participant=_parse_participant(payload.get("participant")))
    return RecordingStatusChanged(room=room, occurred_at=occurred_at,
                                  recording=_parse_recording(payload.get("recording")))


# =============================================================================
# SIDE RESOLUTION
# =============================================================================

def resolve_side(
    participant: Participant,
    learning_class: Optional[LearningClassDB] = None,
    member_emails: Optional[Dict[str, Optional[str]]] = None,
) -> ParticipantSide:
    """
    Decide whether a participant is the tutor or the student.

    When the participant's email matches a class member's stored email that
    member's side wins. Otherwise fall back to the provider's moderator flag
    or a tutor keyword in the display name; everyone else is the student.

    member_emails maps user id -> email for the class members.
    """
    if learning_class is not None and member_emails and participant.email:
        email = participant.email.strip().lower()
        tutor_email = (member_emails.get(learning_class.tutor_id) or "").strip().lower()
        student_email = (member_emails.get(learning_class.student_id) or "").strip().lower()
        if tutor_email and email == tutor_email:
            return ParticipantSide.TUTOR
        if student_email and email == student_email:
            return ParticipantSide.STUDENT

    if participant.is_moderator:
        return ParticipantSide.TUTOR

    name = (participant.name or "").lower()
    if any(word in name for word in TUTOR_NAME_VOCABULARY):
        return ParticipantSide.TUTOR

    return ParticipantSide.STUDENT
