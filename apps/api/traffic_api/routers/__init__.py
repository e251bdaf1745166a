"""API routers."""

from traffic_api.routers.admin_audiences import router as admin_audiences_router
from traffic_api.routers.audiences import router as audiences_router
from traffic_api.routers.chat import router as chat_router

__all__ = [
    "admin_audiences_router",
    "audiences_router",
    "chat_router",
]
