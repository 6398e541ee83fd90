"""Health check endpoint."""

from fastapi import APIRouter, Depends

from shoplist.config import get_settings
from shoplist.errors import StoreError
from shoplist.models.schemas import HealthResponse
from shoplist.sessions import SessionManager, get_session_manager

router = APIRouter(tags=["health"])
settings = get_settings()


@router.get("/health", response_model=HealthResponse)
async def health_check(manager: SessionManager = Depends(get_session_manager)):
    """
    Health check endpoint.

    Verifies:
    - API is running
    - Document store is reachable
    """
    try:
        await manager.store.ping()
        store_status = "connected"
    except StoreError as e:
        store_status = f"error: {e.user_message}"

    return HealthResponse(
        status="healthy" if store_status == "connected" else "unhealthy",
        environment=settings.environment,
        store=store_status,
        sessions=len(manager),
    )
