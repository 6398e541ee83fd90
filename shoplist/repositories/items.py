"""Repository for the `items` collection."""

from contextlib import aclosing
from typing import AsyncIterator, Callable, Optional

import sentry_sdk

from shoplist.errors import StoreError, ValidationError
from shoplist.models.shopping import ShoppingItem
from shoplist.store.base import EQUALS, Query, RemoteStore
from shoplist.sync.text import sort_items

ITEMS = "items"


class ItemRepository:
    """Owns ShoppingItem documents, always scoped by list id."""

    def __init__(self, store: RemoteStore):
        self._store = store

    async def observe_items_for_list(
        self,
        list_id: Optional[str],
        on_error: Optional[Callable[[StoreError], None]] = None,
    ) -> AsyncIterator[list[ShoppingItem]]:
        """
        Live items of a list, pending first, then by name.

        A blank list id yields one empty list and opens nothing. Listener
        failures end the stream with an empty emission instead of raising.
        """
        if not list_id or not list_id.strip():
            yield []
            return

        try:
            async with aclosing(self._store.subscribe(self._query(list_id))) as snapshots:
                async for docs in snapshots:
                    yield sort_items(ShoppingItem.from_document(d) for d in docs)
        except StoreError as e:
            print(f"⚠️ Items subscription for list {list_id} failed: {e}")
            sentry_sdk.capture_message(f"Items subscription failed: {e}", level="warning")
            if on_error:
                on_error(e)
            yield []

    async def get_items_for_list(self, list_id: str) -> list[ShoppingItem]:
        if not list_id:
            return []
        docs = await self._store.get(self._query(list_id))
        return sort_items(ShoppingItem.from_document(d) for d in docs)

    async def add_item(self, list_id: str, item: ShoppingItem) -> str:
        """Write a new item into `list_id` (which overrides item.list_id) and return its id."""
        if not list_id:
            raise ValidationError("List id is required")
        if not item.name.strip():
            raise ValidationError("Item name can't be empty")

        item_id = item.id or self._store.new_id()
        stored = item.model_copy(update={"id": item_id, "list_id": list_id})
        await self._store.write(ITEMS, item_id, stored.to_document())
        return item_id

    async def update_item(self, item: ShoppingItem) -> None:
        """Overwrite an existing item. Never creates one from a blank id."""
        if not item.id or not item.id.strip():
            raise ValidationError("Can't update an item without an id")
        await self._store.write(ITEMS, item.id, item.to_document())

    async def delete_item(self, item_id: str) -> None:
        if not item_id:
            raise ValidationError("Item id is required")
        await self._store.delete(ITEMS, item_id)

    @staticmethod
    def _query(list_id: str) -> Query:
        return Query(ITEMS).where("listId", EQUALS, list_id)
