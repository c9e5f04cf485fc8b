"""
SkillBridge Session Integrity - Admin Session Report Router
Adjudication console: review queue, status changes, resolution, audit notes.
"""
from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..auth import require_admin
from ..models.db_models import ReportPriority, ReportStatus, ResolutionDecision, UserDB
from ..services.session_reports import ReportFilters, SessionReportService, serialize_report
from .session_reports import get_report_service, page_response

router = APIRouter(prefix="/admin/session-reports", tags=["admin"])


# =============================================================================
# PYDANTIC MODELS
# =============================================================================

class UpdateStatusRequest(BaseModel):
    """Move a report along PENDING -> UNDER_REVIEW -> RESOLVED/DISMISSED."""
    status: ReportStatus


class ResolveReportRequest(BaseModel):
    decision: ResolutionDecision
    message: str = Field(..., min_length=10, max_length=2000)


class AdminNoteRequest(BaseModel):
    note: str = Field(..., min_length=5, max_length=1000)


# =============================================================================
# REVIEW QUEUE
# =============================================================================

@router.get("", response_model=dict)
async def list_reports(
    status: Optional[ReportStatus] = Query(None),
    priority: Optional[ReportPriority] = Query(None),
    class_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: SessionReportService = Depends(get_report_service),
    admin: UserDB = Depends(require_admin),
):
    """All reports, most urgent first, then most recent."""
    filters = ReportFilters(
        status=status, priority=priority, class_id=class_id,
        start_date=start_date, end_date=end_date, page=page, limit=limit,
    )
    return page_response(service.get_all_reports(filters), "Reports retrieved")


@router.get("/{report_id}", response_model=dict)
async def get_report(
    report_id: str,
    service: SessionReportService = Depends(get_report_service),
    admin: UserDB = Depends(require_admin),
):
    report = service.get_report(report_id, admin.id, admin.role)
    return {"success": True, "message": "Report retrieved", "data": serialize_report(report)}


# =============================================================================
# ADJUDICATION
# =============================================================================

@router.patch("/{report_id}/status", response_model=dict)
async def update_report_status(
    report_id: str,
    request: UpdateStatusRequest,
    service: SessionReportService = Depends(get_report_service),
    admin: UserDB = Depends(require_admin),
):
    report = service.update_status(report_id, request.status, admin.id)
    return {"success": True, "message": "Report status updated", "data": serialize_report(report)}


@router.post("/{report_id}/resolve", response_model=dict)
async def resolve_report(
    report_id: str,
    request: ResolveReportRequest,
    service: SessionReportService = Depends(get_report_service),
    admin: UserDB = Depends(require_admin),
):
    """
    Record the decision and notify both class members.

    A decision of DISMISSED still moves the report to status RESOLVED.
    """
    report = service.resolve_report(report_id, request.decision, request.message.strip(), admin.id)
    return {"success": True, "message": "Report resolved", "data": serialize_report(report)}


@router.post("/{report_id}/notes", response_model=dict)
async def add_admin_note(
    report_id: str,
    request: AdminNoteRequest,
    service: SessionReportService = Depends(get_report_service),
    admin: UserDB = Depends(require_admin),
):
    """Audit notes may be added in any status, including after resolution."""
    report = service.add_admin_note(report_id, request.note.strip(), admin.id)
    return {"success": True, "message": "Note added", "data": serialize_report(report)}
