from fastapi import APIRouter, FastAPI

from .admin import router as admin_router
from .auth import router as auth_router
from .conversations import router as conversations_router
from .discover import router as discover_router
from .favorites import router as favorites_router
from .filters import router as filters_router
from .matches import router as matches_router
from .onboarding import router as onboarding_router
from .orders import router as orders_router
from .safety import router as safety_router
from .users import router as users_router

API_PREFIX = "/api"


def include_modular_routers(app: FastAPI) -> None:
    app.include_router(auth_router, prefix=f"{API_PREFIX}/auth", tags=["auth"])
    app.include_router(users_router, prefix=API_PREFIX, tags=["users"])
    app.include_router(onboarding_router, prefix=API_PREFIX, tags=["onboarding"])
    app.include_router(discover_router, prefix=API_PREFIX, tags=["discover"])
    app.include_router(matches_router, prefix=API_PREFIX, tags=["matches"])
    app.include_router(conversations_router, prefix=API_PREFIX, tags=["conversations"])
    app.include_router(orders_router, prefix=API_PREFIX, tags=["orders"])
    app.include_router(favorites_router, prefix=API_PREFIX, tags=["favorites"])
    app.include_router(filters_router, prefix=API_PREFIX, tags=["filters"])
    app.include_router(safety_router, prefix=API_PREFIX, tags=["safety"])
    app.include_router(admin_router, prefix=API_PREFIX, tags=["admin"])


__all__ = ["include_modular_routers", "APIRouter"]
