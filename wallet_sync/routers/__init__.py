"""API routers."""
from .devices import router as devices_router
from .passes import router as passes_router
from .logs import router as logs_router
from .status import router as status_router

__all__ = ["devices_router", "passes_router", "logs_router", "status_router"]
