import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from .database import Base


def generate_id():
    """Generate a UUID string primary key"""
    return str(uuid.uuid4())


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())


class Profile(Base):
    """Per-account profile; id is the identity provider's user id"""

    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True)
    full_name = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    active_tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class UserTenantRole(Base):
    __tablename__ = "user_tenant_roles"
    __table_args__ = (UniqueConstraint("tenant_id", "user_id", name="uq_user_tenant_roles_tenant_user"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    # owner, admin_finance, admin_logistic, tech_head, technician, helper, magang, supervisor, ...
    role = Column(String(50), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    assigned_at = Column(DateTime(timezone=True), server_default=func.now())


class WorkingHoursConfig(Base):
    __tablename__ = "working_hours_config"

    id = Column(String(36), primary_key=True, default=generate_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), unique=True, nullable=False)
    work_start_time = Column(String(8), nullable=False)  # HH:MM:SS
    work_end_time = Column(String(8), nullable=False)  # HH:MM:SS
    overtime_rate_per_hour = Column(Float, nullable=False)
    max_overtime_hours_per_day = Column(Integer, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class DailyAttendance(Base):
    __tablename__ = "daily_attendance"
    __table_args__ = (
        UniqueConstraint(
            "tenant_id", "technician_id", "date", name="uq_daily_attendance_tenant_technician_date"
        ),
    )

    id = Column(String(36), primary_key=True, default=generate_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    # Identity provider user id of the technician
    technician_id = Column(String(36), nullable=False, index=True)
    date = Column(Date, nullable=False)  # Civil date in ATTENDANCE_TIMEZONE
    clock_in_time = Column(DateTime(timezone=True), nullable=True)
    clock_out_time = Column(DateTime(timezone=True), nullable=True)
    work_start_time = Column(DateTime(timezone=True), nullable=True)
    work_end_time = Column(DateTime(timezone=True), nullable=True)
    total_work_hours = Column(Float, nullable=True)
    is_late = Column(Boolean, default=False, nullable=False)
    is_early_leave = Column(Boolean, default=False, nullable=False)
    is_auto_checkout = Column(Boolean, default=False, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class TeamInvitation(Base):
    __tablename__ = "team_invitations"

    id = Column(String(36), primary_key=True, default=generate_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    email = Column(String(255), nullable=False, index=True)
    full_name = Column(String(100), nullable=True)
    phone = Column(String(50), nullable=True)
    role = Column(String(50), nullable=False)
    token = Column(String(128), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    status = Column(String(20), default="pending", nullable=False)  # pending, accepted, expired, cancelled
    user_id = Column(String(36), nullable=True)
    invited_by = Column(String(36), nullable=True)
    accepted_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    tenant = relationship("Tenant")


class Technician(Base):
    __tablename__ = "technicians"

    id = Column(String(36), primary_key=True, default=generate_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = Column(String(36), unique=True, nullable=True)
    full_name = Column(String(100), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(50), nullable=True)
    role = Column(String(20), default="technician", nullable=False)  # technician, supervisor, team_lead
    status = Column(String(20), default="active", nullable=False)
    availability_status = Column(String(20), default="available", nullable=False)
    is_verified = Column(Boolean, default=False, nullable=False)
    verification_token = Column(String(128), nullable=True, index=True)
    token_expires_at = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(String(36), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    tenant = relationship("Tenant")


class Client(Base):
    """Service customer; the portal fields track client-portal access"""

    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=generate_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    portal_enabled = Column(Boolean, default=False, nullable=False)
    portal_email = Column(String(255), nullable=True)
    portal_user_id = Column(String(36), unique=True, nullable=True)
    portal_invitation_token = Column(String(128), unique=True, nullable=True, index=True)
    portal_token_expires_at = Column(DateTime(timezone=True), nullable=True)
    portal_invited_by = Column(String(36), nullable=True)
    portal_activated_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    tenant = relationship("Tenant")


class ClientPortalActivity(Base):
    __tablename__ = "client_portal_activities"

    id = Column(String(36), primary_key=True, default=generate_id)
    tenant_id = Column(String(36), ForeignKey("tenants.id"), nullable=False, index=True)
    client_id = Column(String(36), ForeignKey("clients.id"), nullable=False, index=True)
    activity_type = Column(String(50), nullable=False)  # invitation_generated, portal_activated
    details = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
