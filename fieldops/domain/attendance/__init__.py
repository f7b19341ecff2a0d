"""Attendance domain"""

from .router import admin_router, router

__all__ = ["router", "admin_router"]
