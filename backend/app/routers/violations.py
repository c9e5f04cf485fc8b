"""
SkillBridge Session Integrity - Violation Router
Read-only reputation endpoints over resolved session reports.
"""
from typing import List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user, require_admin
from ..database import get_db
from ..models.db_models import UserDB
from ..services.session_reports import ViolationLedger, serialize_report

router = APIRouter(prefix="/violations", tags=["violations"])


class BulkViolationRequest(BaseModel):
    user_ids: List[str] = Field(..., min_length=1, max_length=100)


@router.get("/users/{user_id}", response_model=dict)
async def get_user_violations(
    user_id: str,
    recent: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    """Violation count and per-decision breakdown for one user."""
    ledger = ViolationLedger(db)
    return {"success": True, "data": ledger.user_violation_summary(user_id, recent=recent)}


@router.get("/users/{user_id}/reports", response_model=dict)
async def get_reports_against_user(
    user_id: str,
    db: Session = Depends(get_db),
    admin: UserDB = Depends(require_admin),
):
    reports = ViolationLedger(db).reports_against(user_id)
    return {"success": True, "data": [serialize_report(r) for r in reports]}


@router.post("/bulk", response_model=dict)
async def get_bulk_violation_counts(
    request: BulkViolationRequest,
    db: Session = Depends(get_db),
    current_user: UserDB = Depends(get_current_user),
):
    """Counts for many users at once, e.g. for tutor listings."""
    counts = ViolationLedger(db).bulk_violation_counts(request.user_ids)
    return {"success": True, "data": counts}
