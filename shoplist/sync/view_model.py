"""Session view model: live views of lists and items plus the user intents."""

import asyncio
import math
from contextlib import aclosing
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

import sentry_sdk

from shoplist.auth import ClerkUser, IdentityProvider
from shoplist.config import Settings, get_settings
from shoplist.errors import BlobNotFoundError, BlobStoreError, StoreError, ValidationError
from shoplist.models.shopping import ShoppingItem, ShoppingList
from shoplist.repositories.items import ItemRepository
from shoplist.repositories.lists import ListRepository
from shoplist.services.barcode import BarcodeResolver
from shoplist.services.storage import BlobStore, new_photo_path
from shoplist.sync.live import LiveValue
from shoplist.sync.state import DuplicatePrompt, OperationState
from shoplist.sync.text import filter_lists, find_duplicate, split_items

T = TypeVar("T")

NO_LIST_SELECTED = "No list selected"
NOT_SIGNED_IN = "Sign in first"
LIST_NOT_FOUND = "List not found"
TIMED_OUT = "The operation timed out. Please try again."


def describe_error(error: BaseException) -> str:
    """User-displayable message for a failed intent."""
    if isinstance(error, StoreError):
        return error.user_message
    if isinstance(error, asyncio.TimeoutError):
        return TIMED_OUT
    if isinstance(error, ValidationError):
        return str(error)
    if isinstance(error, BlobStoreError):
        return f"Photo storage error: {error}"
    return f"Something went wrong: {error}"


async def _cancel(task: Optional[asyncio.Task]) -> None:
    if task is None or task.done():
        return
    task.cancel()
    await asyncio.gather(task, return_exceptions=True)


class ShoppingListViewModel:
    """
    Reconciles one user's session against the remote store.

    Holds live views (`lists`, `current_list_id`, `items`,
    `current_list_name`) that follow the identity provider and the current
    selection, applies the list/item rules before anything is written, and
    reports progress through the shared `loading` and `error` slots.
    Intents never raise for store, photo, validation or timeout failures;
    the message lands in `error` instead.

    Usage:
        async with ShoppingListViewModel(identity, lists, items) as vm:
            await vm.add_item("Milk")
    """

    def __init__(
        self,
        identity: IdentityProvider,
        list_repository: ListRepository,
        item_repository: ItemRepository,
        blob_store: Optional[BlobStore] = None,
        barcode_resolver: Optional[BarcodeResolver] = None,
        settings: Optional[Settings] = None,
    ):
        self._identity = identity
        self._lists = list_repository
        self._items = item_repository
        self._blobs = blob_store
        self._barcodes = barcode_resolver
        self._settings = settings or get_settings()

        self.uid: LiveValue[Optional[str]] = LiveValue(None)
        self.email: LiveValue[Optional[str]] = LiveValue(None)
        self.lists: LiveValue[list[ShoppingList]] = LiveValue([])
        self.current_list_id: LiveValue[Optional[str]] = LiveValue(None)
        self.items: LiveValue[list[ShoppingItem]] = LiveValue([])
        self.current_list_name: LiveValue[str] = LiveValue(self._settings.default_list_name)
        self.duplicate: LiveValue[Optional[DuplicatePrompt]] = LiveValue(None)

        self.ops = OperationState()
        self.loading = self.ops.loading
        self.error = self.ops.error

        self._lists_task: Optional[asyncio.Task] = None
        self._items_task: Optional[asyncio.Task] = None
        self._identity_task: Optional[asyncio.Task] = None
        self._identity_lock = asyncio.Lock()
        self._dispose_identity: Optional[Callable[[], None]] = None
        self._view_disposers = [
            self.lists.subscribe(lambda _: self._refresh_list_name()),
            self.current_list_id.subscribe(lambda _: self._refresh_list_name()),
        ]

    # ============================================================
    # Lifecycle
    # ============================================================

    async def start(self) -> None:
        """Register the identity listener and open the streams for the current user."""
        if self._dispose_identity is not None:
            return
        self._dispose_identity = self._identity.on_change(self._on_identity_change)
        await self._apply_identity(self._identity.current_user())

    async def close(self) -> None:
        """Release the identity listener and every live subscription."""
        if self._dispose_identity is not None:
            self._dispose_identity()
            self._dispose_identity = None
        for dispose in self._view_disposers:
            dispose()
        self._view_disposers = []
        await _cancel(self._identity_task)
        await self._stop_items()
        await self._stop_lists()

    async def __aenter__(self) -> "ShoppingListViewModel":
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    @property
    def is_streaming(self) -> bool:
        return any(t is not None and not t.done() for t in (self._lists_task, self._items_task))

    # ============================================================
    # Identity and streams
    # ============================================================

    def _on_identity_change(self, user: Optional[ClerkUser]) -> None:
        # A newer identity supersedes one still being applied
        if self._identity_task is not None and not self._identity_task.done():
            self._identity_task.cancel()
        self._identity_task = asyncio.create_task(self._apply_identity(user))

    async def _apply_identity(self, user: Optional[ClerkUser]) -> None:
        async with self._identity_lock:
            uid = user.id if user else None
            email = user.email if user else None
            if self._lists_task is not None and (uid, email) == (self.uid.value, self.email.value):
                return

            print(f"👤 Session identity: {email or uid or 'signed out'}")
            self.uid.set(uid)
            self.email.set(email)
            self.duplicate.set(None)

            await self._stop_items()
            self.current_list_id.set(None)
            self.items.set([])
            await self._start_lists(uid, email)

            if uid:
                list_id = await self._run(lambda: self._lists.get_or_create_default_list_id(uid, email))
                if list_id and self.uid.value == uid:
                    await self._start_items(list_id)

    async def _start_lists(self, uid: Optional[str], email: Optional[str]) -> None:
        await self._stop_lists()
        self.lists.set([])
        stream = self._lists.observe_lists_for_user(uid, email, on_error=self._on_stream_error)
        self._lists_task = asyncio.create_task(self._consume(stream, self.lists.set))

    async def _stop_lists(self) -> None:
        await _cancel(self._lists_task)
        self._lists_task = None

    async def _start_items(self, list_id: str) -> None:
        await self._stop_items()
        self.current_list_id.set(list_id)
        self.items.set([])

        def publish(items: list[ShoppingItem]) -> None:
            # Never show one list's items under another list
            if self.current_list_id.value == list_id:
                self.items.set(items)

        stream = self._items.observe_items_for_list(list_id, on_error=self._on_stream_error)
        self._items_task = asyncio.create_task(self._consume(stream, publish))

    async def _stop_items(self) -> None:
        await _cancel(self._items_task)
        self._items_task = None

    async def _consume(self, stream: AsyncIterator[T], sink: Callable[[T], None]) -> None:
        try:
            async with aclosing(stream) as values:
                async for value in values:
                    sink(value)
        except Exception as e:
            self._fail(e)

    def _on_stream_error(self, error: StoreError) -> None:
        self.ops.report(error.user_message)

    def _refresh_list_name(self) -> None:
        list_id = self.current_list_id.value
        match = next((l for l in self.lists.value if l.id == list_id), None)
        # The list stream may not have caught up with a new selection yet
        self.current_list_name.set(match.name if match else self._settings.default_list_name)

    # ============================================================
    # Intent plumbing
    # ============================================================

    async def _run(self, operation: Callable[[], Awaitable[T]], timeout: Optional[float] = None) -> Optional[T]:
        """Run one store call under the loading flag; failures go to the error slot."""
        async with self.ops.track():
            try:
                return await asyncio.wait_for(operation(), timeout or self._settings.store_timeout_seconds)
            except Exception as e:
                self._fail(e)
                return None

    def _fail(self, error: Exception) -> None:
        message = describe_error(error)
        print(f"❌ {message}")
        if not isinstance(error, (StoreError, ValidationError, BlobStoreError, asyncio.TimeoutError)):
            sentry_sdk.capture_exception(error)
        self.ops.report(message)

    async def _write_item(self, item: ShoppingItem, **changes: Any) -> bool:
        updated = item.model_copy(update=changes)

        async def write() -> bool:
            await self._items.update_item(updated)
            return True

        return bool(await self._run(write))

    def _selected_list(self) -> Optional[str]:
        list_id = self.current_list_id.value
        if not list_id:
            self.ops.report(NO_LIST_SELECTED)
        return list_id

    async def _delete_blob_quietly(self, url: str) -> None:
        if self._blobs is None or not self._blobs.owns(url):
            return
        try:
            await asyncio.wait_for(self._blobs.delete_by_url(url), self._settings.upload_timeout_seconds)
        except Exception as e:
            # A stray blob is harmless
            print(f"⚠️ Failed to delete photo {url}: {e}")

    # ============================================================
    # Duplicate prompt
    # ============================================================

    def _prompt(self, name: str, on_confirm: Callable[[], Awaitable[Any]]) -> None:
        if self.duplicate.value is not None:
            print(f"🔁 Replacing pending duplicate prompt for '{self.duplicate.value.name}'")
        self.duplicate.set(DuplicatePrompt(name=name, on_confirm=on_confirm))

    async def confirm_duplicate(self) -> Any:
        """Run the write held back by the duplicate prompt."""
        prompt = self.duplicate.value
        if prompt is None:
            return None
        self.duplicate.set(None)
        return await prompt.on_confirm()

    def dismiss_duplicate(self) -> None:
        self.duplicate.set(None)

    def clear_error(self) -> None:
        self.ops.clear_error()

    # ============================================================
    # List intents
    # ============================================================

    async def select_list(self, list_id: str) -> bool:
        """Switch the item stream to another list the user owns or is a member of."""
        if not list_id:
            return False
        if list_id == self.current_list_id.value:
            return True
        target = self.find_list(list_id)
        if target is None or not target.is_visible_to(self.uid.value, self.email.value):
            self.ops.report(LIST_NOT_FOUND)
            return False
        self.duplicate.set(None)
        await self._start_items(list_id)
        return True

    async def create_list(self, name: str) -> Optional[str]:
        if not name or not name.strip():
            return None
        uid = self.uid.value
        if not uid:
            self.ops.report(NOT_SIGNED_IN)
            return None
        return await self._run(lambda: self._lists.create_list(name, uid))

    async def rename_list(self, list_id: str, new_name: str) -> bool:
        if not list_id or not new_name or not new_name.strip():
            return False

        async def rename() -> bool:
            await self._lists.rename_list(list_id, new_name)
            return True

        return bool(await self._run(rename))

    async def delete_list(self, list_id: str) -> bool:
        """Deep-delete a list; if it was selected, fall back to the default list."""
        if not list_id:
            return False

        async def cascade() -> bool:
            await self._lists.delete_list_deep(list_id)
            return True

        # Photo deletes are bounded inside the cascade; the documents get the long timeout on top
        timeout = self._lists.blob_timeout + self._settings.upload_timeout_seconds
        deleted = bool(await self._run(cascade, timeout=timeout))
        if deleted and list_id == self.current_list_id.value:
            await self._stop_items()
            self.current_list_id.set(None)
            self.items.set([])
            uid, email = self.uid.value, self.email.value
            if uid:
                fallback = await self._run(lambda: self._lists.get_or_create_default_list_id(uid, email))
                if fallback:
                    await self._start_items(fallback)
        return deleted

    async def invite_member(self, email: str, list_id: Optional[str] = None) -> bool:
        """Share a list (the selected one by default) with an email address."""
        if not email or not email.strip():
            return False
        list_id = list_id or self._selected_list()
        if not list_id:
            return False

        async def invite() -> bool:
            await self._lists.add_member_email(list_id, email)
            return True

        return bool(await self._run(invite))

    async def migrate_legacy_items(self) -> None:
        """
        Hook for moving items created before lists existed into a list.

        Does nothing by default; deployments with legacy data override it.
        """
        return None

    # ============================================================
    # Item intents
    # ============================================================

    async def add_item(self, name: str) -> Optional[str]:
        """
        Add an item to the selected list and return its id.

        A name matching an existing item (ignoring case, accents and
        surrounding spaces) raises the duplicate prompt instead and
        returns None.
        """
        if not name or not name.strip():
            return None
        list_id = self._selected_list()
        if not list_id:
            return None
        return await self._add_checked(list_id, name)

    async def add_item_from_barcode(self, barcode: str) -> Optional[str]:
        """Resolve a barcode to a product and add it; unknown codes are added by code."""
        barcode = (barcode or "").strip()
        if not barcode:
            return None
        list_id = self._selected_list()
        if not list_id:
            return None

        product = None
        if self._barcodes is not None:
            async with self.ops.track():
                try:
                    product = await asyncio.wait_for(
                        self._barcodes.lookup(barcode), self._settings.barcode_timeout_seconds
                    )
                except Exception as e:
                    print(f"⚠️ Barcode lookup error for {barcode}, using the code as name: {e}")

        name = product.name if product and product.name else barcode
        image_url = product.image_url if product else None
        return await self._add_checked(list_id, name, image_url)

    async def _add_checked(self, list_id: str, name: str, image_url: Optional[str] = None) -> Optional[str]:
        if find_duplicate(name, self.items.value):
            self._prompt(name, lambda: self._create_item(list_id, name, image_url))
            return None
        return await self._create_item(list_id, name, image_url)

    async def _create_item(self, list_id: str, name: str, image_url: Optional[str] = None) -> Optional[str]:
        item = ShoppingItem(
            name=name,
            list_id=list_id,
            added_by_uid=self.uid.value or "",
            image_url=image_url,
        )
        return await self._run(lambda: self._items.add_item(list_id, item))

    async def rename_item(self, item: ShoppingItem, new_name: str) -> bool:
        if not new_name or not new_name.strip() or new_name == item.name:
            return False
        if find_duplicate(new_name, self.items.value, exclude_id=item.id):
            self._prompt(new_name, lambda: self._write_item(item, name=new_name))
            return False
        return await self._write_item(item, name=new_name)

    async def toggle_item(self, item: ShoppingItem) -> bool:
        return await self._write_item(item, in_shopping_list=not item.in_shopping_list)

    async def delete_item(self, item: ShoppingItem) -> bool:
        """Delete the document, then best-effort delete its photo."""

        async def remove() -> bool:
            await self._items.delete_item(item.id)
            return True

        deleted = bool(await self._run(remove))
        if deleted and item.image_url:
            await self._delete_blob_quietly(item.image_url)
        return deleted

    async def increment_quantity(self, item: ShoppingItem) -> bool:
        return await self._write_item(item, quantity=item.quantity + 1)

    async def decrement_quantity(self, item: ShoppingItem) -> bool:
        if item.quantity <= 1:
            return False
        return await self._write_item(item, quantity=item.quantity - 1)

    async def set_quantity(self, item: ShoppingItem, quantity: int) -> bool:
        """Set an explicit quantity. Values below 1 are ignored, not clamped."""
        if quantity < 1 or quantity == item.quantity:
            return False
        return await self._write_item(item, quantity=quantity)

    async def update_price(self, item: ShoppingItem, new_price: Optional[float]) -> bool:
        """Set the unit price; the old price always moves into previous_price."""
        if new_price is not None and (math.isnan(new_price) or new_price < 0):
            self.ops.report("Price must be a positive number")
            return False
        return await self._write_item(item, previous_price=item.price, price=new_price)

    async def clear_price(self, item: ShoppingItem) -> bool:
        return await self._write_item(item, previous_price=item.price, price=None)

    async def mark_all_pending_as_purchased(self) -> int:
        """
        Mark every pending item as purchased, one update per item.

        Best effort: a failed item is reported and the rest are still tried.
        Returns how many updates succeeded.
        """
        pending = [item for item in self.items.value if item.in_shopping_list]
        if not pending:
            return 0

        done = 0
        async with self.ops.track():
            for item in pending:
                updated = item.model_copy(update={"in_shopping_list": False})
                try:
                    await asyncio.wait_for(
                        self._items.update_item(updated), self._settings.store_timeout_seconds
                    )
                    done += 1
                except Exception as e:
                    self._fail(e)
        print(f"✅ Marked {done}/{len(pending)} items as purchased")
        return done

    # ============================================================
    # Photos
    # ============================================================

    async def attach_image(self, item: ShoppingItem, data: bytes, content_type: str = "image/jpeg") -> Optional[str]:
        """
        Upload a photo and point the item at it.

        The URL is written only after the upload succeeded; a photo it
        replaces is deleted afterwards.
        """
        if self._blobs is None:
            self.ops.report("Photo storage is not configured")
            return None
        if not data:
            return None

        async with self.ops.track():
            try:
                ref = await asyncio.wait_for(
                    self._blobs.upload(data, new_photo_path(content_type), content_type),
                    self._settings.upload_timeout_seconds,
                )
                url = await self._resolve_url(ref)
                updated = item.model_copy(update={"image_url": url})
                await asyncio.wait_for(self._items.update_item(updated), self._settings.store_timeout_seconds)
            except Exception as e:
                self._fail(e)
                return None

        if item.image_url and item.image_url != url:
            await self._delete_blob_quietly(item.image_url)
        return url

    async def _resolve_url(self, ref: str) -> str:
        """Resolve an uploaded blob's URL, retrying while it isn't visible yet."""
        attempts = max(1, self._settings.url_resolve_attempts)
        last_error: Optional[Exception] = None

        for attempt in range(attempts):
            if attempt > 0:
                wait_time = self._settings.url_resolve_base_delay * 2 ** (attempt - 1)
                print(f"   🔄 Photo not visible yet, retry {attempt}/{attempts - 1} after {wait_time}s...")
                await asyncio.sleep(wait_time)
            try:
                return await asyncio.wait_for(self._blobs.resolve_url(ref), self._settings.store_timeout_seconds)
            except BlobNotFoundError as e:
                last_error = e

        raise last_error

    async def detach_image(self, item: ShoppingItem) -> bool:
        """Delete the photo first, then clear the field."""
        if not item.image_url:
            return False
        await self._delete_blob_quietly(item.image_url)
        return await self._write_item(item, image_url=None)

    # ============================================================
    # Session
    # ============================================================

    async def sign_out(self) -> None:
        await self._identity.sign_out()

    # ============================================================
    # Derived views
    # ============================================================

    def visible_items(self, query: str = "") -> tuple[list[ShoppingItem], list[ShoppingItem]]:
        return split_items(self.items.value, query)

    def visible_lists(self, query: str = "") -> list[ShoppingList]:
        return filter_lists(self.lists.value, query)

    def find_item(self, item_id: str) -> Optional[ShoppingItem]:
        return next((item for item in self.items.value if item.id == item_id), None)

    def find_list(self, list_id: str) -> Optional[ShoppingList]:
        return next((l for l in self.lists.value if l.id == list_id), None)

    def _watched(self) -> list[LiveValue]:
        return [
            self.uid, self.lists, self.current_list_id, self.items,
            self.current_list_name, self.loading, self.error, self.duplicate,
        ]

    async def changes(self) -> AsyncIterator["ShoppingListViewModel"]:
        """Yield the view model now and after any change of its view state."""
        watched = self._watched()
        seen = None
        while True:
            versions = tuple(v.version for v in watched)
            if versions != seen:
                seen = versions
                yield self
                continue
            events = [v.changed() for v in watched]
            waiters = [asyncio.create_task(event.wait()) for event in events]
            try:
                await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
            finally:
                for waiter in waiters:
                    waiter.cancel()
