"""
Presence Services

Reconciles meeting-provider presence callbacks into authoritative session
state:
- Normalizer: signature, typed events, room resolution, side resolution
- ParticipationLedger: per-side attendance intervals and session completion
- Completion aggregator: class-level completed count and status
- RecordingTracker: recording metadata state machine
- PresenceWebhookService: per-delivery unit of work with class serialization
"""

from .normalizer import parse_event, parse_room_name, resolve_side, verify_signature, compute_signature
from .participation_ledger import ParticipationLedger, PARTICIPATION_THRESHOLD
from .completion import recompute_class_completion
from .recording_tracker import RecordingTracker
from .webhook_service import PresenceWebhookService, ClassLockRegistry

__all__ = [
    'parse_event',
    'parse_room_name',
    'resolve_side',
    'verify_signature',
    'compute_signature',
    'ParticipationLedger',
    'PARTICIPATION_THRESHOLD',
    'recompute_class_completion',
    'RecordingTracker',
    'PresenceWebhookService',
    'ClassLockRegistry',
]
