# Routers package
from . import auth_router
from . import appointments_router
from . import payments_router
from . import providers_router

__all__ = [
    "auth_router",
    "appointments_router",
    "payments_router",
    "providers_router",
]
