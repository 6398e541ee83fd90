"""Session state and sign-out for the signed-in caller."""

from fastapi import APIRouter, Depends

from shoplist.auth import ClerkUser, get_current_user
from shoplist.models.schemas import SessionStateResponse
from shoplist.sessions import SessionManager, get_session, get_session_manager
from shoplist.sync.view_model import ShoppingListViewModel

router = APIRouter(prefix="/api/session", tags=["session"])


@router.get("", response_model=SessionStateResponse)
async def get_session_state(vm: ShoppingListViewModel = Depends(get_session)):
    """Everything the UI renders: lists, selection, items, loading, error, duplicate prompt."""
    return SessionStateResponse.from_view_model(vm)


@router.post("/clear-error", response_model=SessionStateResponse)
async def clear_error(vm: ShoppingListViewModel = Depends(get_session)):
    vm.clear_error()
    return SessionStateResponse.from_view_model(vm)


@router.post("/sign-out")
async def sign_out(
    user: ClerkUser = Depends(get_current_user),
    manager: SessionManager = Depends(get_session_manager),
):
    """Drop the caller's session and all of its live subscriptions."""
    await manager.close(user.id)
    return {"ok": True}
