"""
API Routes Module
"""
from .admin import router as admin_router
from .health import router as health_router
from .stats import router as stats_router
from .stores import router as stores_router
from .visitors import router as visitors_router

__all__ = [
    "admin_router",
    "health_router",
    "stats_router",
    "stores_router",
    "visitors_router",
]
