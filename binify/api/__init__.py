"""API routes."""

from binify.api.admin import router as admin_router
from binify.api.pastes import register_exception_handlers, router as pastes_router

__all__ = [
    "admin_router",
    "pastes_router",
    "register_exception_handlers",
]
