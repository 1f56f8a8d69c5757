"""API routers."""
from .tokens import router as tokens_router
from .status import router as status_router
from .announcements import router as announcements_router

__all__ = ["tokens_router", "status_router", "announcements_router"]
