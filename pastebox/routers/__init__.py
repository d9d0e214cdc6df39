"""API routers."""

from pastebox.routers.auth import router as auth_router
from pastebox.routers.pastes import router as pastes_router

__all__ = ["auth_router", "pastes_router"]
