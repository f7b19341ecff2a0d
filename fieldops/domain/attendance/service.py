"""Attendance service - one clock-in / clock-out pair per technician per civil day"""

import logging
from datetime import date, datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...auth import TechnicianContext
from ...config import ATTENDANCE_RECENT_DAYS, ATTENDANCE_REPORT_MAX_DAYS
from ...errors import ConflictError, InternalError, ValidationError
from ...models import DailyAttendance
from ...shared.clock import (
    ensure_utc,
    hours_between,
    round2,
    utc_now,
    zoned_date,
    zoned_datetime,
    zoned_minutes,
)
from ...shared.post_commit import PostCommitTasks
from ...shared.validators import clean_optional
from ..working_hours.service import WorkingHours, WorkingHoursService
from .repository import AttendanceRepository

logger = logging.getLogger(__name__)

HOURS_TOLERANCE = 0.01


def _iso(value: Optional[datetime]) -> Optional[str]:
    return ensure_utc(value).isoformat() if value else None


def serialize_row(record: DailyAttendance) -> dict:
    return {
        "id": record.id,
        "date": record.date.isoformat(),
        "clock_in_time": _iso(record.clock_in_time),
        "clock_out_time": _iso(record.clock_out_time),
        "total_work_hours": record.total_work_hours,
        "is_late": bool(record.is_late),
        "is_early_leave": bool(record.is_early_leave),
        "is_auto_checkout": bool(record.is_auto_checkout),
        "notes": record.notes,
    }


def is_late(clock_in: datetime, schedule: WorkingHours) -> bool:
    """Late only when strictly after the configured start minute"""
    return zoned_minutes(clock_in) > schedule.start_minutes


def is_early_leave(clock_out: datetime, schedule: WorkingHours) -> bool:
    return zoned_minutes(clock_out) < schedule.end_minutes


def recompute_row(record: DailyAttendance, schedule: WorkingHours) -> dict:
    """Derive flags and hours from the raw timestamps rather than stored values"""
    row = serialize_row(record)
    clock_in, clock_out = record.clock_in_time, record.clock_out_time

    row["is_late"] = is_late(clock_in, schedule) if clock_in else False
    row["is_early_leave"] = is_early_leave(clock_out, schedule) if clock_out else False
    if clock_in and clock_out:
        row["total_work_hours"] = hours_between(clock_in, clock_out)
    return row


def needs_heal(record: DailyAttendance, computed: dict) -> bool:
    stored_hours = record.total_work_hours
    computed_hours = computed["total_work_hours"]
    if stored_hours is not None and computed_hours is not None:
        hours_mismatch = abs(float(stored_hours) - float(computed_hours)) > HOURS_TOLERANCE
    else:
        hours_mismatch = stored_hours != computed_hours

    flags_mismatch = bool(record.is_late) != computed["is_late"] or bool(
        record.is_early_leave
    ) != computed["is_early_leave"]
    return hours_mismatch or flags_mismatch


def attendance_status(row: dict) -> str:
    if not row.get("clock_in_time"):
        return "Absent"
    if row.get("is_auto_checkout"):
        return "Auto Checkout (Forgot)"
    if row.get("is_late") and row.get("is_early_leave"):
        return "Late & Early Leave"
    if row.get("is_late"):
        return "Late"
    if row.get("is_early_leave"):
        return "Early Leave"
    return "On Time"


def overtime_hours(record: DailyAttendance, schedule: WorkingHours) -> float:
    """Hours worked past the configured end on the record's day, capped per day"""
    if not record.clock_in_time or not record.clock_out_time:
        return 0.0
    end_of_day = zoned_datetime(record.date, schedule.work_end_time)
    start = max(ensure_utc(record.clock_in_time), end_of_day)
    extra = (ensure_utc(record.clock_out_time) - start).total_seconds() / 3600
    if extra <= 0:
        return 0.0
    return round2(min(extra, float(schedule.max_overtime_hours_per_day)))


class AttendanceService:
    """Service layer for the technician attendance ledger"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = AttendanceRepository()
        self.working_hours = WorkingHoursService(db)

    def clock_in(
        self, ctx: TechnicianContext, notes: Optional[str] = None, now: Optional[datetime] = None
    ) -> dict:
        now = ensure_utc(now or utc_now())
        today = zoned_date(now)
        schedule = self.working_hours.get(ctx.tenant_id)
        technician_id = ctx.user.id

        try:
            existing = self.repo.get_for_day(self.db, ctx.tenant_id, technician_id, today)
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        if existing and existing.clock_in_time:
            raise ConflictError("Already clocked in today")

        values = {
            "clock_in_time": now,
            "work_start_time": now,
            "is_late": is_late(now, schedule),
            "is_early_leave": False,
            "is_auto_checkout": False,
            "notes": clean_optional(notes),
        }

        try:
            if existing:
                if not self.repo.claim_clock_in(
                    self.db, ctx.tenant_id, technician_id, existing.id, **values
                ):
                    raise ConflictError("Already clocked in today")
                record = self.repo.get_by_id(self.db, ctx.tenant_id, technician_id, existing.id)
            else:
                record = self.repo.insert(self.db, ctx.tenant_id, technician_id, today, **values)
        except IntegrityError as e:
            # A concurrent clock-in for the same day won the unique key
            self.db.rollback()
            raise ConflictError("Already clocked in today") from e
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InternalError(str(e)) from e

        logger.info(
            f"🟢 Clock-in: technician {technician_id} tenant {ctx.tenant_id} "
            f"date {today.isoformat()} late={values['is_late']}"
        )
        return serialize_row(record)

    def clock_out(
        self, ctx: TechnicianContext, notes: Optional[str] = None, now: Optional[datetime] = None
    ) -> dict:
        now = ensure_utc(now or utc_now())
        today = zoned_date(now)
        schedule = self.working_hours.get(ctx.tenant_id)
        technician_id = ctx.user.id

        try:
            existing = self.repo.get_for_day(self.db, ctx.tenant_id, technician_id, today)
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        if not existing or not existing.clock_in_time:
            raise ConflictError("Not clocked in today")
        if existing.clock_out_time:
            raise ConflictError("Already clocked out today")

        clock_in = ensure_utc(existing.clock_in_time)
        values = {
            "clock_out_time": now,
            "work_start_time": clock_in,
            "work_end_time": now,
            "total_work_hours": hours_between(clock_in, now),
            "is_late": is_late(clock_in, schedule),
            "is_early_leave": is_early_leave(now, schedule),
            "is_auto_checkout": False,
        }
        note = clean_optional(notes)
        if note:
            values["notes"] = note

        try:
            if not self.repo.close(self.db, ctx.tenant_id, technician_id, existing.id, **values):
                raise ConflictError("Already clocked out today")
            record = self.repo.get_by_id(self.db, ctx.tenant_id, technician_id, existing.id)
        except SQLAlchemyError as e:
            self.db.rollback()
            raise InternalError(str(e)) from e

        logger.info(
            f"🔴 Clock-out: technician {technician_id} tenant {ctx.tenant_id} "
            f"hours={values['total_work_hours']} early_leave={values['is_early_leave']}"
        )
        return serialize_row(record)

    def today(self, ctx: TechnicianContext, now: Optional[datetime] = None) -> dict:
        now = ensure_utc(now or utc_now())
        today = zoned_date(now)
        schedule = self.working_hours.get(ctx.tenant_id)
        technician_id = ctx.user.id

        try:
            today_record = self.repo.get_for_day(self.db, ctx.tenant_id, technician_id, today)
            recent = self.repo.list_recent(
                self.db, ctx.tenant_id, technician_id, ATTENDANCE_RECENT_DAYS
            )
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        today_row = recompute_row(today_record, schedule) if today_record else None
        recent_rows = [recompute_row(record, schedule) for record in recent]

        if (
            today_record is not None
            and today_record.clock_in_time
            and today_record.clock_out_time
            and needs_heal(today_record, today_row)
        ):
            self._heal(ctx, today_record.id, today_row)

        return {"today": today.isoformat(), "todayRow": today_row, "recent": recent_rows}

    def _heal(self, ctx: TechnicianContext, record_id: str, computed: dict) -> None:
        """Persist corrected derived values; a failure never fails the read"""

        def write():
            record = self.repo.get_by_id(self.db, ctx.tenant_id, ctx.user.id, record_id)
            self.repo.update_derived(
                self.db,
                ctx.tenant_id,
                ctx.user.id,
                record_id,
                work_start_time=record.clock_in_time,
                work_end_time=record.clock_out_time,
                total_work_hours=computed["total_work_hours"],
                is_late=computed["is_late"],
                is_early_leave=computed["is_early_leave"],
            )
            logger.info(f"🩹 Attendance record {record_id} recomputed and healed")

        PostCommitTasks(self.db, context="attendance today").add("self-heal", write).run()

    def report(
        self,
        tenant_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
        technician_id: Optional[str] = None,
        include_absent: bool = True,
        now: Optional[datetime] = None,
    ) -> dict:
        """Tenant-wide attendance with status and overtime for admins"""
        today = zoned_date(now or utc_now())
        date_to = date_to or today
        date_from = date_from or (date_to - timedelta(days=6))

        if date_from > date_to:
            raise ValidationError("date_from must not be after date_to")
        if (date_to - date_from).days + 1 > ATTENDANCE_REPORT_MAX_DAYS:
            raise ValidationError(f"Date range cannot exceed {ATTENDANCE_REPORT_MAX_DAYS} days")

        schedule = self.working_hours.get(tenant_id)

        try:
            records = self.repo.list_for_tenant(
                self.db, tenant_id, date_from, date_to, technician_id
            )
            technicians = self.repo.list_linked_technicians(self.db, tenant_id, technician_id)
        except SQLAlchemyError as e:
            raise InternalError(str(e)) from e

        names = {t.user_id: t.full_name for t in technicians}
        rows = []
        seen = set()
        for record in records:
            row = recompute_row(record, schedule)
            hours = overtime_hours(record, schedule)
            row.update(
                {
                    "technician_id": record.technician_id,
                    "technician_name": names.get(record.technician_id),
                    "attendance_status": attendance_status(row),
                    "overtime_hours": hours,
                    "overtime_pay": round2(hours * float(schedule.overtime_rate_per_hour)),
                }
            )
            rows.append(row)
            seen.add((record.technician_id, record.date))

        if include_absent:
            day = date_from
            last_day = min(date_to, today)
            while day <= last_day:
                for technician in technicians:
                    if (technician.user_id, day) in seen:
                        continue
                    rows.append(
                        {
                            "id": None,
                            "date": day.isoformat(),
                            "clock_in_time": None,
                            "clock_out_time": None,
                            "total_work_hours": None,
                            "is_late": False,
                            "is_early_leave": False,
                            "is_auto_checkout": False,
                            "notes": None,
                            "technician_id": technician.user_id,
                            "technician_name": technician.full_name,
                            "attendance_status": "Absent",
                            "overtime_hours": 0.0,
                            "overtime_pay": 0.0,
                        }
                    )
                day += timedelta(days=1)

        # Newest day first, technicians alphabetical within a day
        rows.sort(key=lambda r: r["technician_name"] or "")
        rows.sort(key=lambda r: r["date"], reverse=True)
        return {
            "success": True,
            "tenantId": tenant_id,
            "dateFrom": date_from.isoformat(),
            "dateTo": date_to.isoformat(),
            "config": schedule.as_dict(),
            "rows": rows,
        }
