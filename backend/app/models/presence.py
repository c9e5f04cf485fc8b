"""
Presence Event Models

Typed view of the meeting provider's webhook payloads.
The provider's `event` tag maps to exactly one variant below; anything the
normalizer does not recognise becomes an UnknownEvent so callers can match
exhaustively instead of dispatching on raw dicts.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union


# =============================================================================
# ENUMS
# =============================================================================

class PresenceEventType(str, Enum):
    PARTICIPANT_JOINED = "participant-joined"
    PARTICIPANT_LEFT = "participant-left"
    RECORDING_STATUS_CHANGED = "recording-status-changed"


class ParticipantSide(str, Enum):
    """Which class member a meeting participant is taken to be."""
    TUTOR = "tutor"
    STUDENT = "student"


# =============================================================================
# PAYLOAD PARTS
# =============================================================================

@dataclass(frozen=True)
class RoomRef:
    """A meeting room resolved to its class session."""
    class_id: str
    session_number: int


@dataclass(frozen=True)
class Participant:
    id: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    role: Optional[str] = None  # 'moderator' or 'participant'

    @property
    def is_moderator(self) -> bool:
        return (self.role or "").lower() == "moderator"


@dataclass(frozen=True)
class RecordingInfo:
    status: str  # started | stopped | available | failed; anything else is ignored
    id: Optional[str] = None
    download_url: Optional[str] = None
    duration: Optional[float] = None
    size: Optional[int] = None


# =============================================================================
# EVENT VARIANTS
# =============================================================================

@dataclass(frozen=True)
class ParticipantJoined:
    room: str
    occurred_at: datetime
    participant: Optional[Participant]


@dataclass(frozen=True)
class ParticipantLeft:
    room: str
    occurred_at: datetime
    participant: Optional[Participant]


@dataclass(frozen=True)
class RecordingStatusChanged:
    room: str
    occurred_at: datetime
    recording: Optional[RecordingInfo]


@dataclass(frozen=True)
class UnknownEvent:
    event: Optional[str]
    room: Optional[str]
    raw: Dict[str, Any] = field(default_factory=dict)


PresenceEvent = Union[ParticipantJoined, ParticipantLeft, RecordingStatusChanged, UnknownEvent]
