"""API routers."""
from .ping import router as ping_router
from .checks import router as checks_router
from .http_monitors import router as http_monitors_router
from .sweep import router as sweep_router

__all__ = ["ping_router", "checks_router", "http_monitors_router", "sweep_router"]
