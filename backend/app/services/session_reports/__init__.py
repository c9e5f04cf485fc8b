"""
Session Report Services

Dispute workflow for class sessions:
- IntakeGate: reporting window, membership and uniqueness checks
- EvidenceCustody: append-only evidence backed by the blob store
- AdjudicationStateMachine: status, resolution and admin notes
- SessionReportService: orchestration and read queries
- ViolationLedger: reputation reads over resolved reports
"""

from .intake_gate import IntakeGate, ReportingWindow, opposite_role, REPORT_WINDOW_HOURS
from .evidence_custody import EvidenceCustody, EvidenceFile, classify, MAX_FILES_PER_UPLOAD
from .adjudication import (
    AdjudicationStateMachine, STATE_CONFIG, VIOLATORS_BY_DECISION, set_violators, violator_user_ids,
)
from .report_service import SessionReportService, ReportFilters, serialize_report
from .violation_ledger import ViolationLedger

__all__ = [
    'IntakeGate',
    'ReportingWindow',
    'opposite_role',
    'REPORT_WINDOW_HOURS',
    'EvidenceCustody',
    'EvidenceFile',
    'classify',
    'MAX_FILES_PER_UPLOAD',
    'AdjudicationStateMachine',
    'STATE_CONFIG',
    'VIOLATORS_BY_DECISION',
    'set_violators',
    'violator_user_ids',
    'SessionReportService',
    'ReportFilters',
    'serialize_report',
    'ViolationLedger',
]
