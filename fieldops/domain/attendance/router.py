"""Attendance router - technician clock-in/out and the admin attendance report"""

import logging
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from ...auth import TechnicianContext, TenantContext, get_technician_context, tenant_admin
from ...database import get_db
from ...shared.permissions import Capability
from .schemas import ClockRequest
from .service import AttendanceService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/technician/attendance", tags=["Attendance"])
admin_router = APIRouter(prefix="/attendance", tags=["Attendance"])


def get_attendance_service(db: Session = Depends(get_db)) -> AttendanceService:
    """Dependency injection for AttendanceService"""
    return AttendanceService(db)


@router.post("/clock-in")
async def clock_in(
    data: Optional[ClockRequest] = None,
    ctx: TechnicianContext = Depends(get_technician_context),
    service: AttendanceService = Depends(get_attendance_service),
):
    row = service.clock_in(ctx, notes=data.notes if data else None)
    return {"success": True, "row": row}


@router.post("/clock-out")
async def clock_out(
    data: Optional[ClockRequest] = None,
    ctx: TechnicianContext = Depends(get_technician_context),
    service: AttendanceService = Depends(get_attendance_service),
):
    row = service.clock_out(ctx, notes=data.notes if data else None)
    return {"success": True, "row": row}


@router.post("/today")
async def attendance_today(
    ctx: TechnicianContext = Depends(get_technician_context),
    service: AttendanceService = Depends(get_attendance_service),
):
    """Today's record plus the most recent days, recomputed from raw timestamps"""
    return service.today(ctx)


@admin_router.get("")
async def attendance_report(
    date_from: Optional[date] = Query(None),
    date_to: Optional[date] = Query(None),
    technician_id: Optional[str] = Query(None),
    include_absent: bool = Query(True),
    ctx: TenantContext = Depends(tenant_admin(Capability.VIEW_ATTENDANCE)),
    service: AttendanceService = Depends(get_attendance_service),
):
    return service.report(ctx.tenant_id, date_from, date_to, technician_id, include_absent)
