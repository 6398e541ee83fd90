"""Pydantic schemas for API request/response validation."""

from typing import Optional

from pydantic import BaseModel, Field

from shoplist.models.shopping import ShoppingItem, ShoppingList


# ============================================================
# Requests
# ============================================================

class ListCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class ListRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class MemberInvite(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)


class ItemCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class BarcodeAdd(BaseModel):
    barcode: str = Field(..., min_length=1, max_length=64)


class ItemRename(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)


class QuantityUpdate(BaseModel):
    quantity: int


class PriceUpdate(BaseModel):
    """New unit price. null clears it (the old price still moves to previous_price)."""
    price: Optional[float] = None


# ============================================================
# Responses
# ============================================================

class ItemResponse(BaseModel):
    id: str
    name: str
    list_id: str
    added_by_uid: str
    in_shopping_list: bool
    image_url: Optional[str] = None
    price: Optional[float] = None
    previous_price: Optional[float] = None
    quantity: int
    total_price: Optional[float] = None
    price_change_percent: Optional[float] = None

    @classmethod
    def from_item(cls, item: ShoppingItem) -> "ItemResponse":
        return cls(
            id=item.id,
            name=item.name,
            list_id=item.list_id,
            added_by_uid=item.added_by_uid,
            in_shopping_list=item.in_shopping_list,
            image_url=item.image_url,
            price=item.price,
            previous_price=item.previous_price,
            quantity=item.quantity,
            total_price=item.total_price,
            price_change_percent=item.price_change_percent,
        )


class ListResponse(BaseModel):
    id: str
    name: str
    owner_uid: str
    member_emails: list[str]
    is_owner: bool = False
    is_shared: bool = False

    @classmethod
    def from_list(cls, shopping_list: ShoppingList, uid: Optional[str]) -> "ListResponse":
        return cls(
            id=shopping_list.id,
            name=shopping_list.name,
            owner_uid=shopping_list.owner_uid,
            member_emails=shopping_list.member_emails,
            is_owner=shopping_list.owner_uid == uid,
            is_shared=bool(shopping_list.member_emails),
        )


class ItemsResponse(BaseModel):
    """Items of the selected list, split the way the list screen shows them."""
    list_id: Optional[str] = None
    list_name: str
    pending: list[ItemResponse]
    purchased: list[ItemResponse]


class SessionStateResponse(BaseModel):
    """Everything the UI renders for a session."""
    uid: Optional[str] = None
    email: Optional[str] = None
    lists: list[ListResponse]
    current_list_id: Optional[str] = None
    current_list_name: str
    items: list[ItemResponse]
    loading: bool
    error: Optional[str] = None
    duplicate_name: Optional[str] = None

    @classmethod
    def from_view_model(cls, vm) -> "SessionStateResponse":
        uid = vm.uid.value
        prompt = vm.duplicate.value
        return cls(
            uid=uid,
            email=vm.email.value,
            lists=[ListResponse.from_list(l, uid) for l in vm.visible_lists()],
            current_list_id=vm.current_list_id.value,
            current_list_name=vm.current_list_name.value,
            items=[ItemResponse.from_item(i) for i in vm.items.value],
            loading=vm.loading.value,
            error=vm.error.value,
            duplicate_name=prompt.name if prompt else None,
        )


class IntentResponse(BaseModel):
    """Outcome of an intent plus the session state after it."""
    ok: bool
    id: Optional[str] = None
    state: SessionStateResponse


class HealthResponse(BaseModel):
    status: str
    environment: str
    store: str
    sessions: int
