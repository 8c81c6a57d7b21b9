"""
Report API Endpoints
====================

FastAPI router for the report lifecycle, mounted at /api/reports.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from .auth import AuthContext, get_auth_context, require_admin, require_patrol, require_not_banned
from .config import get_settings
from .db.session import get_db
from .reports import ReportService
from .schemas import (
    CreateReportRequest,
    CreateReportResponse,
    StatusUpdateRequest,
    AssignRequest,
    PriorityUpdateRequest,
    ProofImagesRequest,
    ReportOut,
    ReportListResponse,
    MessageResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reports"])


@router.get("", response_model=ReportListResponse)
async def list_reports(
    status: Optional[str] = Query(default=None, description="Filter by status"),
    limit: Optional[int] = Query(default=None, ge=1),
    offset: int = Query(default=0, ge=0),
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """All reports, newest first (admin only)."""
    limit = min(limit or get_settings().default_page_size, get_settings().max_page_size)
    reports, total = ReportService(db).list_all(auth, status=status, limit=limit, offset=offset)
    return ReportListResponse(reports=[ReportOut.from_model(r) for r in reports], total=total)


@router.get("/my-reports", response_model=ReportListResponse)
async def my_reports(
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    reports = ReportService(db).list_mine(auth)
    return ReportListResponse(reports=[ReportOut.from_model(r) for r in reports], total=len(reports))


@router.get("/assigned", response_model=ReportListResponse)
async def assigned_reports(
    auth: AuthContext = Depends(require_patrol),
    db: Session = Depends(get_db),
):
    """Reports assigned to the calling patrol officer."""
    reports = ReportService(db).list_assigned(auth)
    return ReportListResponse(reports=[ReportOut.from_model(r) for r in reports], total=len(reports))


@router.get("/{report_id}", response_model=ReportOut)
async def get_report(
    report_id: str,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    return ReportOut.from_model(ReportService(db).get(auth, report_id))


@router.post("", response_model=CreateReportResponse, status_code=201)
async def create_report(
    body: CreateReportRequest,
    auth: AuthContext = Depends(require_not_banned),
    db: Session = Depends(get_db),
):
    report = ReportService(db).create(
        auth,
        title=body.title,
        description=body.description,
        category=body.category,
        location=body.location,
        is_anonymous=body.is_anonymous,
        image_urls=body.image_urls,
    )
    return CreateReportResponse(**ReportOut.from_model(report).model_dump())


@router.put("/{report_id}/status", response_model=MessageResponse)
async def update_report_status(
    report_id: str,
    body: StatusUpdateRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    ReportService(db).update_status(auth, report_id, body.status)
    return MessageResponse(message="Report status updated successfully")


@router.put("/{report_id}/assign", response_model=MessageResponse)
async def assign_report(
    report_id: str,
    body: AssignRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ReportService(db).assign(auth, report_id, body.patrol_user_id)
    return MessageResponse(message="Report assigned successfully")


@router.put("/{report_id}/priority", response_model=MessageResponse)
async def update_report_priority(
    report_id: str,
    body: PriorityUpdateRequest,
    auth: AuthContext = Depends(require_admin),
    db: Session = Depends(get_db),
):
    ReportService(db).update_priority(auth, report_id, body.priority_level)
    return MessageResponse(message="Report priority updated successfully")


@router.put("/{report_id}/proof", response_model=ReportOut)
async def upload_proof_images(
    report_id: str,
    body: ProofImagesRequest,
    auth: AuthContext = Depends(get_auth_context),
    db: Session = Depends(get_db),
):
    """Attach proof-image URLs (assigned patrol or admin)."""
    return ReportOut.from_model(ReportService(db).add_proof_images(auth, report_id, body.proof_images))
