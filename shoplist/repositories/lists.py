"""Repository for the `lists` collection."""

import asyncio
from contextlib import aclosing
from typing import AsyncIterator, Callable, Optional

import sentry_sdk

from shoplist.errors import StoreError, ValidationError
from shoplist.models.shopping import ShoppingList
from shoplist.services.storage import BlobStore
from shoplist.store.base import ARRAY_CONTAINS, EQUALS, DocumentRef, Query, RemoteStore
from shoplist.sync.text import sort_lists

LISTS = "lists"
ITEMS = "items"

OWNER = "owner"
MEMBER = "member"

ErrorCallback = Callable[[StoreError], None]


def merge_lists(
    owned: dict[str, ShoppingList], shared: dict[str, ShoppingList]
) -> list[ShoppingList]:
    """Union of both sources keyed by id; the owner-sourced record wins."""
    merged = dict(shared)
    merged.update(owned)
    return sort_lists(merged.values())


class ListRepository:
    """
    Owns ShoppingList documents.

    A user sees the lists they own plus the lists shared with their email.
    The store can't OR two field predicates, so the view is built from two
    live queries joined by id.
    """

    def __init__(
        self,
        store: RemoteStore,
        blob_store: Optional[BlobStore] = None,
        default_list_name: str = "My list",
        blob_timeout: float = 10.0,
    ):
        self._store = store
        self._blobs = blob_store
        self._default_list_name = default_list_name
        # Per-photo bound during a cascade delete
        self.blob_timeout = blob_timeout

    async def observe_lists_for_user(
        self,
        uid: Optional[str],
        email: Optional[str],
        on_error: Optional[ErrorCallback] = None,
    ) -> AsyncIterator[list[ShoppingList]]:
        """
        Live lists visible to the user.

        Re-emits the merged view whenever either underlying query changes.
        A blank uid yields one empty list and opens nothing; a blank email
        skips the member query.
        """
        if not uid or not uid.strip():
            yield []
            return

        queries = {OWNER: Query(LISTS).where("ownerUid", EQUALS, uid)}
        if email and email.strip():
            queries[MEMBER] = Query(LISTS).where("memberEmails", ARRAY_CONTAINS, email)

        updates: asyncio.Queue = asyncio.Queue()
        pumps = [
            asyncio.create_task(self._pump(source, query, updates, on_error))
            for source, query in queries.items()
        ]
        sources: dict[str, dict[str, ShoppingList]] = {}
        try:
            while True:
                source, lists = await updates.get()
                sources[source] = {l.id: l for l in lists}
                yield merge_lists(sources.get(OWNER, {}), sources.get(MEMBER, {}))
        finally:
            for task in pumps:
                task.cancel()
            await asyncio.gather(*pumps, return_exceptions=True)

    async def _pump(
        self,
        source: str,
        query: Query,
        updates: asyncio.Queue,
        on_error: Optional[ErrorCallback],
    ) -> None:
        try:
            async with aclosing(self._store.subscribe(query)) as snapshots:
                async for docs in snapshots:
                    await updates.put((source, [ShoppingList.from_document(d) for d in docs]))
        except StoreError as e:
            # The other source keeps running; this one degrades to empty
            print(f"⚠️ {source} lists subscription failed: {e}")
            sentry_sdk.capture_message(f"Lists subscription failed ({source}): {e}", level="warning")
            if on_error:
                on_error(e)
            await updates.put((source, []))

    async def get_or_create_default_list_id(self, uid: str, email: Optional[str] = None) -> str:
        """Id of a list owned by `uid`, creating "My list" when there is none."""
        if not uid or not uid.strip():
            raise ValidationError("A signed-in user is required")

        existing = await self._store.get(
            Query(LISTS).where("ownerUid", EQUALS, uid).limit_to(1)
        )
        if existing:
            return existing[0].id

        print(f"🆕 Creating default list for {email or uid}")
        return await self.create_list(self._default_list_name, uid)

    async def create_list(self, name: str, owner_uid: str) -> str:
        name = (name or "").strip()
        if not name:
            raise ValidationError("List name can't be empty")
        if not owner_uid:
            raise ValidationError("A list needs an owner")

        list_id = self._store.new_id()
        new_list = ShoppingList(id=list_id, name=name, owner_uid=owner_uid)
        await self._store.write(LISTS, list_id, new_list.to_document())
        return list_id

    async def rename_list(self, list_id: str, new_name: str) -> None:
        new_name = (new_name or "").strip()
        if not list_id:
            raise ValidationError("List id is required")
        if not new_name:
            raise ValidationError("List name can't be empty")
        await self._store.update(LISTS, list_id, {"name": new_name})

    async def add_member_email(self, list_id: str, email: str) -> None:
        """Share a list with an email. Adding the same email twice is a no-op."""
        email = (email or "").strip()
        if not list_id:
            raise ValidationError("List id is required")
        if not email:
            raise ValidationError("Email can't be empty")

        def add(current):
            members = list((current or {}).get("memberEmails") or [])
            if email in members:
                return None
            return {"memberEmails": members + [email]}

        await self._store.transactional_update(DocumentRef(LISTS, list_id), add)

    async def delete_list_deep(self, list_id: str) -> None:
        """
        Delete a list with everything in it.

        Order: item photos (best-effort), item documents in store-sized
        batches, then the list document. If deleting items fails the list
        document is kept so no item is left pointing at a missing list.
        """
        if not list_id:
            raise ValidationError("List id is required")

        docs = await self._store.get(Query(ITEMS).where("listId", EQUALS, list_id))
        await self._delete_photos([doc.data.get("imageUrl") for doc in docs])

        await self._store.batch_delete([DocumentRef(ITEMS, doc.id) for doc in docs])
        await self._store.delete(LISTS, list_id)
        print(f"🗑️ Deleted list {list_id} with {len(docs)} items")

    async def _delete_photos(self, urls: list[Optional[str]]) -> None:
        """
        Delete item photos concurrently, each bounded by `blob_timeout`.

        Never raises: a photo that can't be deleted is only logged, and
        URLs the blob store doesn't own (barcode product images) are skipped.
        """
        if self._blobs is None:
            return
        owned = [url for url in urls if url and self._blobs.owns(url)]
        if not owned:
            return

        results = await asyncio.gather(
            *[asyncio.wait_for(self._blobs.delete_by_url(url), self.blob_timeout) for url in owned],
            return_exceptions=True,
        )
        for url, result in zip(owned, results):
            if isinstance(result, asyncio.TimeoutError):
                print(f"⚠️ Timed out deleting item photo {url}")
            elif isinstance(result, Exception):
                # Log but don't fail - orphaned blobs are acceptable
                print(f"⚠️ Failed to delete item photo {url}: {result}")
