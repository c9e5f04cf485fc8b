"""SkillBridge Session Integrity - Data Models"""
from .presence import (
    # Enums
    PresenceEventType, ParticipantSide,
    # Event payload parts
    Participant, RecordingInfo, RoomRef,
    # Event variants
    ParticipantJoined, ParticipantLeft, RecordingStatusChanged, UnknownEvent,
    PresenceEvent,
)

__all__ = [
    "PresenceEventType", "ParticipantSide",
    "Participant", "RecordingInfo", "RoomRef",
    "ParticipantJoined", "ParticipantLeft", "RecordingStatusChanged", "UnknownEvent",
    "PresenceEvent",
]
