"""Working hours service - per-tenant schedule with defaults"""

import logging
import math
from dataclasses import asdict, dataclass

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...config import (
    DEFAULT_MAX_OVERTIME_HOURS_PER_DAY,
    DEFAULT_OVERTIME_RATE_PER_HOUR,
    DEFAULT_WORK_END,
    DEFAULT_WORK_START,
    MAX_OVERTIME_HOURS_PER_DAY_LIMIT,
)
from ...errors import InternalError
from ...shared.clock import normalize_number, normalize_time, parse_time_to_minutes
from .repository import WorkingHoursRepository
from .schemas import WorkingHoursConfigUpdate

logger = logging.getLogger(__name__)


@dataclass
class WorkingHours:
    work_start_time: str = DEFAULT_WORK_START
    work_end_time: str = DEFAULT_WORK_END
    overtime_rate_per_hour: float = DEFAULT_OVERTIME_RATE_PER_HOUR
    max_overtime_hours_per_day: int = DEFAULT_MAX_OVERTIME_HOURS_PER_DAY

    @property
    def start_minutes(self) -> int:
        return parse_time_to_minutes(self.work_start_time)

    @property
    def end_minutes(self) -> int:
        return parse_time_to_minutes(self.work_end_time)

    def as_dict(self) -> dict:
        return asdict(self)


class WorkingHoursService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = WorkingHoursRepository()

    def get(self, tenant_id: str) -> WorkingHours:
        """Tenant's working hours; documented defaults when no row exists"""
        try:
            row = self.repo.get_by_tenant(self.db, tenant_id)
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        if row is None:
            return WorkingHours()

        return WorkingHours(
            work_start_time=row.work_start_time or DEFAULT_WORK_START,
            work_end_time=row.work_end_time or DEFAULT_WORK_END,
            overtime_rate_per_hour=(
                row.overtime_rate_per_hour
                if row.overtime_rate_per_hour is not None
                else DEFAULT_OVERTIME_RATE_PER_HOUR
            ),
            max_overtime_hours_per_day=(
                row.max_overtime_hours_per_day
                if row.max_overtime_hours_per_day is not None
                else DEFAULT_MAX_OVERTIME_HOURS_PER_DAY
            ),
        )

    def set(self, tenant_id: str, patch: WorkingHoursConfigUpdate) -> WorkingHours:
        """
        Apply a partial update.

        Invalid or missing values keep whatever is currently in effect (stored
        value, else default); this never rejects the request. The daily overtime
        cap is bounded to a single day.
        """
        current = self.get(tenant_id)

        rate = normalize_number(patch.overtimeRatePerHour, current.overtime_rate_per_hour)
        max_overtime = normalize_number(
            patch.maxOvertimeHoursPerDay, current.max_overtime_hours_per_day
        )

        values = {
            "work_start_time": normalize_time(patch.workStartTime, current.work_start_time),
            "work_end_time": normalize_time(patch.workEndTime, current.work_end_time),
            "overtime_rate_per_hour": max(0.0, float(rate)),
            "max_overtime_hours_per_day": min(
                MAX_OVERTIME_HOURS_PER_DAY_LIMIT, max(0, int(math.floor(max_overtime)))
            ),
        }

        try:
            self.repo.upsert(self.db, tenant_id, **values)
        except IntegrityError:
            # Another request inserted the tenant's row first; update it instead
            self.db.rollback()
            try:
                self.repo.upsert(self.db, tenant_id, **values)
            except SQLAlchemyError as e:
                self.db.rollback()
                raise InternalError(str(e)) from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InternalError(str(e)) from e

        logger.info(f"🕘 Working hours updated for tenant {tenant_id}: {values}")
        return WorkingHours(**values)
