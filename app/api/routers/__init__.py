"""
app/api/routers package marker.
"""

from app.api.routers.insights_router import router as insights_router
from app.api.routers.meta_router import router as meta_router

__all__ = [
    "insights_router",
    "meta_router",
]
