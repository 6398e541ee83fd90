from .health import router as health_router
from .session import router as session_router
from .lists import router as lists_router
from .items import router as items_router
from .live import router as live_router

__all__ = ["health_router", "session_router", "lists_router", "items_router", "live_router"]
