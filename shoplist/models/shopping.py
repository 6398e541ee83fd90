"""Shopping list and item models, and their persisted document shapes."""

from typing import Any, Optional

from pydantic import BaseModel, Field

from shoplist.store.base import Document


class ShoppingList(BaseModel):
    """A named list owned by one user and shared with others by email."""
    id: str = ""
    name: str = ""
    owner_uid: str = Field(default="", alias="ownerUid")
    member_emails: list[str] = Field(default_factory=list, alias="memberEmails")

    class Config:
        populate_by_name = True

    def is_visible_to(self, uid: Optional[str], email: Optional[str]) -> bool:
        return (bool(uid) and uid == self.owner_uid) or (bool(email) and email in self.member_emails)

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "ownerUid": self.owner_uid,
            "memberEmails": list(self.member_emails),
        }

    @classmethod
    def from_document(cls, doc: Document) -> "ShoppingList":
        data = doc.data
        members = data.get("memberEmails")
        if members is None:
            # Older documents used "membersEmails"
            members = data.get("membersEmails") or []
        return cls(
            id=doc.id,
            name=data.get("name") or "",
            owner_uid=data.get("ownerUid") or "",
            member_emails=list(dict.fromkeys(members)),
        )


class ShoppingItem(BaseModel):
    """A product entry in a list."""
    id: str = ""
    name: str = ""
    list_id: str = Field(default="", alias="listId")
    added_by_uid: str = Field(default="", alias="addedByUid")
    in_shopping_list: bool = Field(default=True, alias="inShoppingList")  # True = pending
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    price: Optional[float] = None
    previous_price: Optional[float] = Field(default=None, alias="previousPrice")
    quantity: int = 1

    class Config:
        populate_by_name = True

    @property
    def is_pending(self) -> bool:
        return self.in_shopping_list

    @property
    def total_price(self) -> Optional[float]:
        """Unit price times quantity, when a price is known."""
        if self.price is None:
            return None
        return self.price * max(1, self.quantity)

    @property
    def price_change_percent(self) -> Optional[float]:
        return price_change_percent(self.price, self.previous_price)

    def to_document(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "inShoppingList": self.in_shopping_list,
            "listId": self.list_id,
            "addedByUid": self.added_by_uid,
            "imageUrl": self.image_url,
            "price": self.price,
            "previousPrice": self.previous_price,
            "quantity": self.quantity,
        }

    @classmethod
    def from_document(cls, doc: Document) -> "ShoppingItem":
        data = doc.data
        price = data.get("price")
        if price is None:
            # Items written before price history carried "lastPrice"
            price = data.get("lastPrice")
        return cls(
            id=doc.id,
            name=data.get("name") or "",
            list_id=data.get("listId") or "",
            added_by_uid=data.get("addedByUid") or "",
            in_shopping_list=bool(data.get("inShoppingList", True)),
            image_url=data.get("imageUrl") or None,
            price=_to_float(price),
            previous_price=_to_float(data.get("previousPrice")),
            quantity=_to_quantity(data.get("quantity")),
        )


def price_change_percent(price: Optional[float], previous_price: Optional[float]) -> Optional[float]:
    """Percent change from the previous unit price, or None when it can't be computed."""
    if price is None or previous_price is None or previous_price == 0:
        return None
    return (price - previous_price) / previous_price * 100


def _to_float(value: Any) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _to_quantity(value: Any) -> int:
    try:
        quantity = int(value)
    except (TypeError, ValueError):
        return 1
    return max(1, quantity)
