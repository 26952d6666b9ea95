# Routers package
from . import verification_router
from . import trust_router
from . import admin_router

__all__ = [
    "verification_router",
    "trust_router",
    "admin_router",
]
