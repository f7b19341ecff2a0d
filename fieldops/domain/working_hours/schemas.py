"""Working hours schemas - values are normalized permissively by the service"""

from typing import Any, Optional

from pydantic import BaseModel


class WorkingHoursConfigUpdate(BaseModel):
    """Partial update; malformed values fall back to the stored/default value"""

    workStartTime: Optional[Any] = None  # HH:MM or HH:MM:SS
    workEndTime: Optional[Any] = None  # HH:MM or HH:MM:SS
    overtimeRatePerHour: Optional[Any] = None
    maxOvertimeHoursPerDay: Optional[Any] = None
