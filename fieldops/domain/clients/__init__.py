"""Client portal domain"""

from .router import admin_router, router

__all__ = ["admin_router", "router"]
