"""Item endpoints for the caller's selected list."""

from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, UploadFile

from shoplist.models.schemas import (
    BarcodeAdd,
    IntentResponse,
    ItemCreate,
    ItemRename,
    ItemResponse,
    ItemsResponse,
    PriceUpdate,
    QuantityUpdate,
    SessionStateResponse,
)
from shoplist.models.shopping import ShoppingItem
from shoplist.sessions import get_session
from shoplist.sync.view_model import ShoppingListViewModel

router = APIRouter(prefix="/api/items", tags=["items"])

MAX_PHOTO_BYTES = 10 * 1024 * 1024


def _get_item(vm: ShoppingListViewModel, item_id: str) -> ShoppingItem:
    item = vm.find_item(item_id)
    if item is None:
        raise HTTPException(status_code=404, detail="Item not found")
    return item


def _result(vm: ShoppingListViewModel, ok: bool, new_id: Optional[str] = None) -> IntentResponse:
    return IntentResponse(ok=ok, id=new_id, state=SessionStateResponse.from_view_model(vm))


# ============================================================
# Reading
# ============================================================

@router.get("", response_model=ItemsResponse)
async def get_items(
    q: str = Query(default="", description="Filter by name (accent/case-insensitive)"),
    vm: ShoppingListViewModel = Depends(get_session),
):
    """
    Items of the selected list.

    Returns pending and purchased items separately, each sorted by name.
    """
    pending, purchased = vm.visible_items(q)
    return ItemsResponse(
        list_id=vm.current_list_id.value,
        list_name=vm.current_list_name.value,
        pending=[ItemResponse.from_item(i) for i in pending],
        purchased=[ItemResponse.from_item(i) for i in purchased],
    )


# ============================================================
# Adding
# ============================================================

@router.post("", response_model=IntentResponse)
async def add_item(body: ItemCreate, vm: ShoppingListViewModel = Depends(get_session)):
    """Add an item. A name that already exists raises the duplicate prompt instead."""
    item_id = await vm.add_item(body.name)
    return _result(vm, item_id is not None, item_id)


@router.post("/barcode", response_model=IntentResponse)
async def add_from_barcode(body: BarcodeAdd, vm: ShoppingListViewModel = Depends(get_session)):
    """Add the product a barcode resolves to (or the code itself when unknown)."""
    item_id = await vm.add_item_from_barcode(body.barcode)
    return _result(vm, item_id is not None, item_id)


@router.post("/duplicate/confirm", response_model=IntentResponse)
async def confirm_duplicate(vm: ShoppingListViewModel = Depends(get_session)):
    if vm.duplicate.value is None:
        raise HTTPException(status_code=404, detail="No pending duplicate")
    result = await vm.confirm_duplicate()
    new_id = result if isinstance(result, str) else None
    return _result(vm, bool(result), new_id)


@router.post("/duplicate/dismiss", response_model=IntentResponse)
async def dismiss_duplicate(vm: ShoppingListViewModel = Depends(get_session)):
    vm.dismiss_duplicate()
    return _result(vm, True)


@router.post("/mark-all-purchased", response_model=IntentResponse)
async def mark_all_purchased(vm: ShoppingListViewModel = Depends(get_session)):
    pending = sum(1 for i in vm.items.value if i.in_shopping_list)
    done = await vm.mark_all_pending_as_purchased()
    return _result(vm, done == pending)


# ============================================================
# Updating
# ============================================================

@router.put("/{item_id}/name", response_model=IntentResponse)
async def rename_item(item_id: str, body: ItemRename, vm: ShoppingListViewModel = Depends(get_session)):
    item = _get_item(vm, item_id)
    return _result(vm, await vm.rename_item(item, body.name))


@router.put("/{item_id}/toggle", response_model=IntentResponse)
async def toggle_item(item_id: str, vm: ShoppingListViewModel = Depends(get_session)):
    """Move an item between pending and purchased."""
    item = _get_item(vm, item_id)
    return _result(vm, await vm.toggle_item(item))


@router.post("/{item_id}/increment", response_model=IntentResponse)
async def increment_quantity(item_id: str, vm: ShoppingListViewModel = Depends(get_session)):
    item = _get_item(vm, item_id)
    return _result(vm, await vm.increment_quantity(item))


@router.post("/{item_id}/decrement", response_model=IntentResponse)
async def decrement_quantity(item_id: str, vm: ShoppingListViewModel = Depends(get_session)):
    item = _get_item(vm, item_id)
    return _result(vm, await vm.decrement_quantity(item))


@router.put("/{item_id}/quantity", response_model=IntentResponse)
async def set_quantity(item_id: str, body: QuantityUpdate, vm: ShoppingListViewModel = Depends(get_session)):
    item = _get_item(vm, item_id)
    return _result(vm, await vm.set_quantity(item, body.quantity))


@router.put("/{item_id}/price", response_model=IntentResponse)
async def update_price(item_id: str, body: PriceUpdate, vm: ShoppingListViewModel = Depends(get_session)):
    item = _get_item(vm, item_id)
    return _result(vm, await vm.update_price(item, body.price))


@router.delete("/{item_id}/price", response_model=IntentResponse)
async def clear_price(item_id: str, vm: ShoppingListViewModel = Depends(get_session)):
    item = _get_item(vm, item_id)
    return _result(vm, await vm.clear_price(item))


# ============================================================
# Photos
# ============================================================

@router.post("/{item_id}/image", response_model=IntentResponse)
async def attach_image(
    item_id: str,
    file: UploadFile = File(...),
    vm: ShoppingListViewModel = Depends(get_session),
):
    """Upload a photo for an item (replaces any previous one)."""
    item = _get_item(vm, item_id)
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="Empty file")
    if len(data) > MAX_PHOTO_BYTES:
        raise HTTPException(status_code=413, detail="Photo is too large")
    url = await vm.attach_image(item, data, content_type=file.content_type or "image/jpeg")
    return _result(vm, url is not None)


@router.delete("/{item_id}/image", response_model=IntentResponse)
async def detach_image(item_id: str, vm: ShoppingListViewModel = Depends(get_session)):
    item = _get_item(vm, item_id)
    return _result(vm, await vm.detach_image(item))


# ============================================================
# Deleting
# ============================================================

@router.delete("/{item_id}", response_model=IntentResponse)
async def delete_item(item_id: str, vm: ShoppingListViewModel = Depends(get_session)):
    """Delete an item and its photo."""
    item = _get_item(vm, item_id)
    return _result(vm, await vm.delete_item(item))
