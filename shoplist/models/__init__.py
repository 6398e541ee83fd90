from .document import StoredDocument
from .shopping import ShoppingList, ShoppingItem, price_change_percent
from .schemas import SessionStateResponse, ItemResponse, ListResponse

__all__ = [
    "StoredDocument",
    "ShoppingList",
    "ShoppingItem",
    "price_change_percent",
    "SessionStateResponse",
    "ItemResponse",
    "ListResponse",
]
