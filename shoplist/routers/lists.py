"""Shopping list endpoints: create, rename, delete, share and select."""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from shoplist.models.schemas import (
    IntentResponse,
    ListCreate,
    ListRename,
    ListResponse,
    MemberInvite,
    SessionStateResponse,
)
from shoplist.sessions import get_session
from shoplist.sync.view_model import ShoppingListViewModel

router = APIRouter(prefix="/api/lists", tags=["lists"])


def _require_list(vm: ShoppingListViewModel, list_id: str) -> None:
    if vm.find_list(list_id) is None:
        raise HTTPException(status_code=404, detail="List not found")


def _result(vm: ShoppingListViewModel, ok: bool, new_id: Optional[str] = None) -> IntentResponse:
    return IntentResponse(ok=ok, id=new_id, state=SessionStateResponse.from_view_model(vm))


@router.get("", response_model=list[ListResponse])
async def get_lists(
    q: str = Query(default="", description="Filter by name (accent/case-insensitive)"),
    vm: ShoppingListViewModel = Depends(get_session),
):
    """Lists the user owns or that are shared with their email."""
    return [ListResponse.from_list(l, vm.uid.value) for l in vm.visible_lists(q)]


@router.post("", response_model=IntentResponse)
async def create_list(body: ListCreate, vm: ShoppingListViewModel = Depends(get_session)):
    """Create a list owned by the caller."""
    list_id = await vm.create_list(body.name)
    return _result(vm, list_id is not None, list_id)


@router.put("/{list_id}", response_model=IntentResponse)
async def rename_list(list_id: str, body: ListRename, vm: ShoppingListViewModel = Depends(get_session)):
    _require_list(vm, list_id)
    return _result(vm, await vm.rename_list(list_id, body.name))


@router.delete("/{list_id}", response_model=IntentResponse)
async def delete_list(list_id: str, vm: ShoppingListViewModel = Depends(get_session)):
    """Delete a list with all of its items and their photos."""
    _require_list(vm, list_id)
    return _result(vm, await vm.delete_list(list_id))


@router.post("/{list_id}/select", response_model=IntentResponse)
async def select_list(list_id: str, vm: ShoppingListViewModel = Depends(get_session)):
    _require_list(vm, list_id)
    return _result(vm, await vm.select_list(list_id))


@router.post("/{list_id}/members", response_model=IntentResponse)
async def invite_member(list_id: str, body: MemberInvite, vm: ShoppingListViewModel = Depends(get_session)):
    """Share a list with someone by email."""
    _require_list(vm, list_id)
    return _result(vm, await vm.invite_member(body.email, list_id=list_id))
