"""
Recording Lifecycle Tracker

Small state machine over a session's recording metadata:

    (none) -> RECORDING -> PROCESSING -> READY
                  |            |
                  +--> FAILED <+

Transitions never move backwards. A `started` after READY or FAILED begins
a new recording generation and overwrites the previous one; a session keeps
at most one authoritative recording.
"""
import logging
from datetime import datetime
from typing import Optional
from uuid import uuid4

from ...models.db_models import (
    ClassSessionDB, RecordingStatus, SessionRecordingDB,
)
from ...models.presence import RecordingInfo
from .participation_ledger import ParticipationLedger

logger = logging.getLogger(__name__)


# =============================================================================
# TRANSITION TABLE
# =============================================================================
#
# provider status -> (target state, states it may be entered from)
# `None` in the source set means "no recording tracked yet".
#
# =============================================================================

TRANSITIONS = {
    "started": (
        RecordingStatus.RECORDING,
        {None, RecordingStatus.READY, RecordingStatus.FAILED},
    ),
    "stopped": (
        RecordingStatus.PROCESSING,
        {None, RecordingStatus.RECORDING},
    ),
    "available": (
        RecordingStatus.READY,
        {None, RecordingStatus.RECORDING, RecordingStatus.PROCESSING},
    ),
    "failed": (
        RecordingStatus.FAILED,
        {RecordingStatus.RECORDING, RecordingStatus.PROCESSING},
    ),
}


class RecordingTracker:
    """Applies provider recording-status events to a session."""

    def can_apply(self, current: Optional[RecordingStatus], provider_status: str) -> bool:
        rule = TRANSITIONS.get(provider_status)
        if rule is None:
            return False
        _, allowed_from = rule
        return current in allowed_from

    def apply(
        self,
        session: ClassSessionDB,
        info: RecordingInfo,
        at: datetime,
    ) -> Optional[RecordingStatus]:
        """
        Apply one recording event.

        Returns:
            The new recording status, or None if the event was ignored
            (unknown status, duplicate, or a backwards move)
        """
        if info.status not in TRANSITIONS:
            logger.warning(f"Ignoring unknown recording status {info.status!r} for session {session.session_number}")
            return None

        recording = session.participation.recording if session.participation is not None else None
        current = recording.status if recording is not None else None

        if not self.can_apply(current, info.status):
            logger.info(
                f"Ignoring recording '{info.status}' in state {current.value if current else 'none'} "
                f"for session {session.session_number}"
            )
            return None

        if recording is None:
            recording = SessionRecordingDB(id=str(uuid4()))
            ParticipationLedger.ensure_participation(session).recording = recording

        target, _ = TRANSITIONS[info.status]

        if target is RecordingStatus.RECORDING:
            # New generation: forget the previous artifact
            recording.recording_id = None
            recording.recording_url = None
            recording.duration = None
            recording.file_size = None
            recording.recording_ended_at = None
            recording.recording_started_at = at
        elif target is RecordingStatus.PROCESSING:
            recording.recording_ended_at = at
        elif target is RecordingStatus.READY:
            recording.recording_id = info.id
            recording.recording_url = info.download_url
            recording.duration = info.duration
            recording.file_size = info.size

        recording.status = target

        if target is RecordingStatus.FAILED:
            logger.error(f"Recording failed for session {session.session_number}")
        elif target is RecordingStatus.READY:
            logger.info(f"Recording ready for session {session.session_number}: {info.download_url}")
        else:
            logger.info(f"Recording {target.value} for session {session.session_number}")

        return target
