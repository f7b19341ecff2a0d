"""Role -> capability table shared by every handler that checks tenant roles"""

from enum import Enum
from typing import Optional


class Capability(str, Enum):
    MANAGE_PEOPLE = "manage_people"
    MANAGE_WORKING_HOURS = "manage_working_hours"
    VIEW_ATTENDANCE = "view_attendance"
    RECORD_ATTENDANCE = "record_attendance"


PRIVILEGED_ROLES = frozenset({"owner", "admin_finance", "admin_logistic", "tech_head"})

# Roles whose members get a technician row and use the technician portal
TECHNICIAN_CLASS_ROLES = frozenset({"technician", "helper", "magang", "supervisor", "team_lead"})

# The technicians table only knows these; helper/magang collapse to technician
TECHNICIAN_TABLE_ROLES = frozenset({"technician", "supervisor", "team_lead"})

# Roles an admin may hand out through a team invitation
ASSIGNABLE_ROLES = frozenset({"admin_finance", "admin_logistic", "tech_head"}) | TECHNICIAN_CLASS_ROLES

# Tenant role granted when a technician row is activated
TECHNICIAN_TO_TENANT_ROLE = {
    "technician": "technician",
    "supervisor": "supervisor",
    "team_lead": "tech_head",
}

ROLE_CAPABILITIES: dict[str, frozenset] = {
    **{
        role: frozenset(
            {
                Capability.MANAGE_PEOPLE,
                Capability.MANAGE_WORKING_HOURS,
                Capability.VIEW_ATTENDANCE,
            }
        )
        for role in PRIVILEGED_ROLES
    },
    **{role: frozenset({Capability.RECORD_ATTENDANCE}) for role in TECHNICIAN_CLASS_ROLES},
}


def has_capability(role: Optional[str], capability: Capability) -> bool:
    if not role:
        return False
    return capability in ROLE_CAPABILITIES.get(role, frozenset())


def technician_table_role(role: Optional[str]) -> str:
    role = str(role or "technician")
    return role if role in TECHNICIAN_TABLE_ROLES else "technician"


def tenant_role_for_technician(role: Optional[str]) -> str:
    return TECHNICIAN_TO_TENANT_ROLE.get(str(role or "technician"), "technician")


def is_technician_class(role: Optional[str]) -> bool:
    return str(role or "") in TECHNICIAN_CLASS_ROLES
