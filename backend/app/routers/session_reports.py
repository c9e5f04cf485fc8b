"""
Session Report API Routes

Student and tutor endpoints: file a report on a session, list own reports,
read a report, add evidence.
"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_class_member_role
from ..database import get_db
from ..models.db_models import ReportPriority, ReportStatus, UserDB
from ..services.collaborators import (
    BlobStore, NotificationDispatcher, get_blob_store, get_notification_dispatcher,
)
from ..services.session_reports import (
    EvidenceFile, ReportFilters, SessionReportService, serialize_report,
)


router = APIRouter(prefix="/session-reports", tags=["session-reports"])


def get_report_service(
    db: Session = Depends(get_db),
    blob_store: BlobStore = Depends(get_blob_store),
    notifier: NotificationDispatcher = Depends(get_notification_dispatcher),
) -> SessionReportService:
    return SessionReportService(db, blob_store, notifier)


async def read_evidence(files: Optional[List[UploadFile]]) -> List[EvidenceFile]:
    evidence = []
    for upload in files or []:
        evidence.append(EvidenceFile(
            content=await upload.read(),
            file_name=upload.filename or "evidence",
            content_type=upload.content_type,
        ))
    return evidence


def page_response(result: dict, message: str) -> dict:
    return {
        "success": True,
        "message": message,
        "data": {
            "reports": [serialize_report(r) for r in result["reports"]],
            "total": result["total"],
            "page": result["page"],
            "total_pages": result["total_pages"],
        },
    }


# =============================================================================
# MEMBER ENDPOINTS
# =============================================================================

@router.post("", response_model=dict, status_code=201)
async def create_report(
    class_id: str = Form(...),
    session_number: int = Form(..., ge=1),
    description: str = Form(..., min_length=10, max_length=2000),
    priority: Optional[ReportPriority] = Form(None),
    evidence: Optional[List[UploadFile]] = File(None),
    service: SessionReportService = Depends(get_report_service),
    current_user: UserDB = Depends(require_class_member_role),
):
    """
    File a report on a session of one of the caller's classes.

    Accepted from the session's scheduled start until 48 hours after its
    scheduled end; one report per session per member.
    """
    report = service.create_report(
        class_id=class_id,
        session_number=session_number,
        description=description.strip(),
        reporter_id=current_user.id,
        reporter_role=current_user.role,
        priority=priority,
        evidence_files=await read_evidence(evidence),
    )
    return {"success": True, "message": "Report created", "data": serialize_report(report)}


@router.get("/my", response_model=dict)
async def get_my_reports(
    status: Optional[ReportStatus] = Query(None),
    priority: Optional[ReportPriority] = Query(None),
    class_id: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    service: SessionReportService = Depends(get_report_service),
    current_user: UserDB = Depends(require_class_member_role),
):
    filters = ReportFilters(
        status=status, priority=priority, class_id=class_id,
        start_date=start_date, end_date=end_date, page=page, limit=limit,
    )
    return page_response(service.get_my_reports(current_user.id, filters), "Reports retrieved")


@router.get("/{report_id}", response_model=dict)
async def get_report(
    report_id: str,
    service: SessionReportService = Depends(get_report_service),
    current_user: UserDB = Depends(get_current_user),
):
    report = service.get_report(report_id, current_user.id, current_user.role)
    return {"success": True, "message": "Report retrieved", "data": serialize_report(report)}


@router.post("/{report_id}/evidence", response_model=dict)
async def upload_additional_evidence(
    report_id: str,
    evidence: List[UploadFile] = File(...),
    service: SessionReportService = Depends(get_report_service),
    current_user: UserDB = Depends(require_class_member_role),
):
    """Reporter-only; rejected once the report is RESOLVED or DISMISSED."""
    report = service.add_evidence(report_id, current_user.id, await read_evidence(evidence))
    return {"success": True, "message": "Evidence added", "data": serialize_report(report)}
