"""Attendance schemas"""

from typing import Optional

from pydantic import BaseModel


class ClockRequest(BaseModel):
    """Body for clock-in / clock-out; notes are optional"""

    notes: Optional[str] = None
