"""
Session Participation Ledger

Accumulates per-side attendance minutes from join/leave presence events and
decides when a session has actually happened.

Interval discipline:
- join opens an interval only if the side has none open
- leave closes the open interval, adds its length, and CLEARS the marker
- a leave with nothing open is a duplicate or out-of-order artifact and is
  ignored

Because the marker is cleared on every leave, repeated join/leave cycles are
measured from their own join, never from the first one of the session.
"""
import logging
from datetime import datetime
from uuid import uuid4

from ...models.db_models import (
    ClassSessionDB, SessionParticipationDB, SessionStatus,
)
from ...models.presence import ParticipantSide

logger = logging.getLogger(__name__)

# Share of the scheduled duration each side must attend
PARTICIPATION_THRESHOLD = 0.5


# =============================================================================
# SIDE ACCESSORS
# =============================================================================

def _field(side: ParticipantSide, name: str) -> str:
    return f"{side.value}_{name}"


def side_duration(participation: SessionParticipationDB, side: ParticipantSide) -> float:
    return getattr(participation, _field(side, "duration")) or 0.0


def side_join_count(participation: SessionParticipationDB, side: ParticipantSide) -> int:
    return getattr(participation, _field(side, "join_count")) or 0


def has_open_interval(participation: SessionParticipationDB, side: ParticipantSide) -> bool:
    return getattr(participation, _field(side, "joined_at")) is not None


# =============================================================================
# LEDGER
# =============================================================================

class ParticipationLedger:
    """
    Join/leave bookkeeping for one session's participation record.

    Stateless: all state lives on the ORM rows passed in. Callers are
    responsible for serializing access to the owning class.
    """

    def __init__(self, threshold: float = PARTICIPATION_THRESHOLD):
        self.threshold = threshold

    @staticmethod
    def ensure_participation(session: ClassSessionDB) -> SessionParticipationDB:
        """Create the participation record on first use."""
        if session.participation is None:
            session.participation = SessionParticipationDB(
                id=str(uuid4()),
                tutor_duration=0.0,
                tutor_join_count=0,
                student_duration=0.0,
                student_join_count=0,
                both_participated=False,
            )
        return session.participation

    def record_join(
        self,
        session: ClassSessionDB,
        side: ParticipantSide,
        at: datetime,
    ) -> SessionParticipationDB:
        """Open an interval for `side` unless one is already open."""
        participation = self.ensure_participation(session)

        if not has_open_interval(participation, side):
            setattr(participation, _field(side, "joined_at"), at)
            setattr(participation, _field(side, "left_at"), None)
        else:
            logger.info(
                f"Duplicate join for {side.value} in session {session.session_number}; keeping open interval"
            )

        setattr(participation, _field(side, "join_count"), side_join_count(participation, side) + 1)

        if session.actual_start_time is None:
            session.actual_start_time = at

        return participation

    def record_leave(
        self,
        session: ClassSessionDB,
        side: ParticipantSide,
        at: datetime,
    ) -> float:
        """
        Close the open interval for `side`.

        Returns:
            Minutes added to the side's cumulative duration (0 for orphan leaves)
        """
        participation = session.participation
        if participation is None or not has_open_interval(participation, side):
            logger.info(
                f"Ignoring leave without open interval for {side.value} in session {session.session_number}"
            )
            return 0.0

        joined_at = getattr(participation, _field(side, "joined_at"))
        delta = max(0.0, (at - joined_at).total_seconds() / 60.0)

        setattr(participation, _field(side, "duration"), side_duration(participation, side) + delta)
        setattr(participation, _field(side, "left_at"), at)
        setattr(participation, _field(side, "joined_at"), None)

        logger.info(f"{side.value.capitalize()} left session {session.session_number}, interval: {delta:.1f} minutes")
        return delta

    def minimum_minutes(self, session: ClassSessionDB) -> float:
        return session.duration * self.threshold

    def is_sufficient(self, session: ClassSessionDB) -> bool:
        participation = session.participation
        if participation is None:
            return False
        minimum = self.minimum_minutes(session)
        return (
            side_duration(participation, ParticipantSide.TUTOR) >= minimum
            and side_duration(participation, ParticipantSide.STUDENT) >= minimum
        )

    def evaluate_completion(self, session: ClassSessionDB, at: datetime) -> bool:
        """
        Complete the session if both sides attended long enough.

        Only a SCHEDULED session can complete, so re-evaluation is idempotent.
        Returns True only on the call that performs the transition.
        """
        if session.status != SessionStatus.SCHEDULED:
            return False
        if not self.is_sufficient(session):
            return False

        participation = session.participation
        participation.both_participated = True
        participation.completed_at = at
        session.status = SessionStatus.COMPLETED
        session.actual_end_time = at

        logger.info(f"Session {session.session_number} auto-completed (both participated sufficiently)")
        return True
