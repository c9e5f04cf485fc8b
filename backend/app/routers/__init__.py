"""SkillBridge Session Integrity - API Routers"""
from .webhooks import router as webhooks_router
from .session_reports import router as session_reports_router
from .admin_reports import router as admin_reports_router
from .violations import router as violations_router

__all__ = [
    "webhooks_router",
    "session_reports_router",
    "admin_reports_router",
    "violations_router",
]
