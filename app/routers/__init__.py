"""API routers."""

from app.routers.audit import router as audit_router
from app.routers.auth import router as auth_router
from app.routers.enquiries import router as enquiries_router

__all__ = [
    "audit_router",
    "auth_router",
    "enquiries_router",
]
