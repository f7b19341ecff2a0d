"""Attendance repository - every query is scoped by tenant (and technician for ledger rows)"""

from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from ...models import DailyAttendance, Technician


class AttendanceRepository:
    """Repository for daily attendance database operations"""

    @staticmethod
    def get_for_day(
        db: Session, tenant_id: str, technician_id: str, day: date
    ) -> Optional[DailyAttendance]:
        """Get a technician's record for one civil day"""
        return (
            db.query(DailyAttendance)
            .filter(
                DailyAttendance.tenant_id == tenant_id,
                DailyAttendance.technician_id == technician_id,
                DailyAttendance.date == day,
            )
            .first()
        )

    @staticmethod
    def get_by_id(
        db: Session, tenant_id: str, technician_id: str, record_id: str
    ) -> Optional[DailyAttendance]:
        """Get a specific record by ID"""
        return (
            db.query(DailyAttendance)
            .filter(
                DailyAttendance.id == record_id,
                DailyAttendance.tenant_id == tenant_id,
                DailyAttendance.technician_id == technician_id,
            )
            .first()
        )

    @staticmethod
    def insert(db: Session, tenant_id: str, technician_id: str, day: date, **values) -> DailyAttendance:
        """Insert a day's record; the (tenant, technician, date) unique key rejects a second one"""
        record = DailyAttendance(tenant_id=tenant_id, technician_id=technician_id, date=day, **values)
        db.add(record)
        db.commit()
        db.refresh(record)
        return record

    @staticmethod
    def claim_clock_in(
        db: Session, tenant_id: str, technician_id: str, record_id: str, **values
    ) -> bool:
        """Set clock-in on an existing record only if nobody has clocked in yet"""
        updated = (
            db.query(DailyAttendance)
            .filter(
                DailyAttendance.id == record_id,
                DailyAttendance.tenant_id == tenant_id,
                DailyAttendance.technician_id == technician_id,
                DailyAttendance.clock_in_time.is_(None),
            )
            .update(values, synchronize_session=False)
        )
        db.commit()
        return updated == 1

    @staticmethod
    def close(db: Session, tenant_id: str, technician_id: str, record_id: str, **values) -> bool:
        """Set clock-out only if the record is clocked in and still open"""
        updated = (
            db.query(DailyAttendance)
            .filter(
                DailyAttendance.id == record_id,
                DailyAttendance.tenant_id == tenant_id,
                DailyAttendance.technician_id == technician_id,
                DailyAttendance.clock_in_time.isnot(None),
                DailyAttendance.clock_out_time.is_(None),
            )
            .update(values, synchronize_session=False)
        )
        db.commit()
        return updated == 1

    @staticmethod
    def update_derived(
        db: Session, tenant_id: str, technician_id: str, record_id: str, **values
    ) -> None:
        """Overwrite the stored hours and flags of a record"""
        (
            db.query(DailyAttendance)
            .filter(
                DailyAttendance.id == record_id,
                DailyAttendance.tenant_id == tenant_id,
                DailyAttendance.technician_id == technician_id,
            )
            .update(values, synchronize_session=False)
        )
        db.commit()

    @staticmethod
    def list_recent(
        db: Session, tenant_id: str, technician_id: str, limit: int
    ) -> list[DailyAttendance]:
        """Get the most recent records, newest first"""
        return (
            db.query(DailyAttendance)
            .filter(
                DailyAttendance.tenant_id == tenant_id,
                DailyAttendance.technician_id == technician_id,
            )
            .order_by(DailyAttendance.date.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def list_for_tenant(
        db: Session,
        tenant_id: str,
        date_from: date,
        date_to: date,
        technician_id: Optional[str] = None,
    ) -> list[DailyAttendance]:
        """Get all records of a tenant in a date range"""
        query = db.query(DailyAttendance).filter(
            DailyAttendance.tenant_id == tenant_id,
            DailyAttendance.date >= date_from,
            DailyAttendance.date <= date_to,
        )
        if technician_id:
            query = query.filter(DailyAttendance.technician_id == technician_id)
        return query.order_by(DailyAttendance.date.desc(), DailyAttendance.technician_id).all()

    @staticmethod
    def list_linked_technicians(
        db: Session, tenant_id: str, user_id: Optional[str] = None
    ) -> list[Technician]:
        """Technicians of the tenant that have an account (attendance is keyed by user id)"""
        query = db.query(Technician).filter(
            Technician.tenant_id == tenant_id, Technician.user_id.isnot(None)
        )
        if user_id:
            query = query.filter(Technician.user_id == user_id)
        return query.order_by(Technician.full_name).all()
