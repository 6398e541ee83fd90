"""
Shared pytest fixtures: in-memory store, fake photo storage and barcode
lookup, Clerk users, and a started view model.
"""

import asyncio
from typing import Callable, Optional

import pytest

from shoplist.auth import ClerkIdentityProvider, ClerkUser
from shoplist.config import Settings
from shoplist.errors import AuthError, BlobNotFoundError, BlobStoreError
from shoplist.repositories.items import ItemRepository
from shoplist.repositories.lists import ListRepository
from shoplist.services.barcode import BarcodeProduct, BarcodeResolver
from shoplist.services.storage import BlobStore
from shoplist.store.memory import MemoryStore
from shoplist.sync.view_model import ShoppingListViewModel

ALICE = ClerkUser(id="user_alice", email="alice@example.com", first_name="Alice")
BOB = ClerkUser(id="user_bob", email="bob@example.com")

TOKENS = {"alice-token": ALICE, "bob-token": BOB}


def fake_verifier(token: str) -> ClerkUser:
    """Stands in for Clerk JWT verification."""
    user = TOKENS.get(token)
    if user is None:
        raise AuthError("Invalid token")
    return user


async def eventually(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Wait until background streams make `predicate` true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.01)


class FakeBlobStore(BlobStore):
    """Photo storage kept in a dict."""

    BASE_URL = "https://photos.test/"

    def __init__(self):
        self.blobs: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self.resolve_calls = 0
        self.not_found_times = 0
        self.upload_error: Optional[Exception] = None
        self.delete_error: Optional[Exception] = None
        self.upload_delay = 0.0
        self.delete_delay = 0.0

    async def upload(self, data: bytes, suggested_path: str, content_type: str = "image/jpeg") -> str:
        if self.upload_delay:
            await asyncio.sleep(self.upload_delay)
        if self.upload_error is not None:
            raise self.upload_error
        self.blobs[suggested_path] = data
        return suggested_path

    async def resolve_url(self, ref: str) -> str:
        self.resolve_calls += 1
        if self.not_found_times > 0:
            self.not_found_times -= 1
            raise BlobNotFoundError(ref)
        return f"{self.BASE_URL}{ref}"

    def owns(self, url: str) -> bool:
        return bool(url) and url.startswith(self.BASE_URL)

    async def delete_by_url(self, url: str) -> None:
        self.deleted.append(url)
        if self.delete_delay:
            await asyncio.sleep(self.delete_delay)
        if self.delete_error is not None:
            raise self.delete_error
        self.blobs.pop(url.replace(self.BASE_URL, ""), None)


class FakeBarcodeResolver(BarcodeResolver):
    def __init__(self, products: Optional[dict[str, BarcodeProduct]] = None, delay: float = 0.0):
        self.products = products or {}
        self.delay = delay
        self.calls: list[str] = []

    async def lookup(self, barcode: str) -> Optional[BarcodeProduct]:
        self.calls.append(barcode)
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.products.get(barcode)


@pytest.fixture
def settings() -> Settings:
    """Short timeouts and retry delays so failure paths run fast."""
    return Settings(
        _env_file=None,
        database_url=None,
        sentry_dsn=None,
        store_timeout_seconds=0.5,
        upload_timeout_seconds=0.5,
        url_resolve_attempts=3,
        url_resolve_base_delay=0.01,
        barcode_timeout_seconds=0.2,
        store_poll_interval_seconds=0.05,
    )


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def blob_store() -> FakeBlobStore:
    return FakeBlobStore()


@pytest.fixture
def barcodes() -> FakeBarcodeResolver:
    return FakeBarcodeResolver({
        "3017620422003": BarcodeProduct(name="Nutella", image_url="https://images.test/nutella.jpg"),
    })


@pytest.fixture
def list_repo(store, blob_store, settings) -> ListRepository:
    return ListRepository(store, blob_store, blob_timeout=settings.store_timeout_seconds)


@pytest.fixture
def item_repo(store) -> ItemRepository:
    return ItemRepository(store)


@pytest.fixture
def identity() -> ClerkIdentityProvider:
    return ClerkIdentityProvider(user=ALICE, verifier=fake_verifier)


@pytest.fixture
async def vm(identity, list_repo, item_repo, blob_store, barcodes, settings):
    """Alice's started session, with her default list selected and streaming."""
    view_model = ShoppingListViewModel(
        identity,
        list_repo,
        item_repo,
        blob_store=blob_store,
        barcode_resolver=barcodes,
        settings=settings,
    )
    async with view_model:
        await eventually(lambda: view_model.current_list_id.value is not None and bool(view_model.lists.value))
        yield view_model
