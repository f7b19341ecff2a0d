"""Working hours router - tenant admins read and update the schedule"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ...auth import TenantContext, tenant_admin
from ...database import get_db
from ...shared.permissions import Capability
from .schemas import WorkingHoursConfigUpdate
from .service import WorkingHoursService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/working-hours-config", tags=["Working Hours"])


def get_working_hours_service(db: Session = Depends(get_db)) -> WorkingHoursService:
    """Dependency injection for WorkingHoursService"""
    return WorkingHoursService(db)


@router.get("")
async def get_working_hours_config(
    ctx: TenantContext = Depends(tenant_admin(Capability.MANAGE_WORKING_HOURS)),
    service: WorkingHoursService = Depends(get_working_hours_service),
):
    config = service.get(ctx.tenant_id)
    return {"success": True, "tenantId": ctx.tenant_id, "config": config.as_dict()}


@router.put("")
async def update_working_hours_config(
    data: Optional[WorkingHoursConfigUpdate] = None,
    ctx: TenantContext = Depends(tenant_admin(Capability.MANAGE_WORKING_HOURS)),
    service: WorkingHoursService = Depends(get_working_hours_service),
):
    config = service.set(ctx.tenant_id, data or WorkingHoursConfigUpdate())
    return {"success": True, "config": config.as_dict()}
