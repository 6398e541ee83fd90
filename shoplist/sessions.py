"""One sync session per signed-in user for the HTTP/WebSocket surface."""

import asyncio
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Callable, Optional

from fastapi import Depends

from shoplist.auth import ClerkIdentityProvider, ClerkUser, get_current_user, verify_clerk_token
from shoplist.config import Settings, get_settings
from shoplist.repositories.items import ItemRepository
from shoplist.repositories.lists import ListRepository
from shoplist.services.barcode import BarcodeResolver, OpenFoodFactsResolver
from shoplist.services.storage import BlobStore, S3BlobStore
from shoplist.store import build_store
from shoplist.store.base import RemoteStore
from shoplist.sync.view_model import ShoppingListViewModel


@dataclass
class Session:
    identity: ClerkIdentityProvider
    view_model: ShoppingListViewModel
    last_seen: float
    sockets: int = 0


class SessionManager:
    """
    Keeps a started ShoppingListViewModel per user id.

    Every session of the process shares the same store and repositories;
    view state (selection, loading, error, duplicate prompt) is per user.
    A session with no live socket, no intent in flight and no request for
    `session_idle_seconds` is closed along with its subscriptions.
    """

    def __init__(
        self,
        store: RemoteStore,
        blob_store: Optional[BlobStore] = None,
        barcode_resolver: Optional[BarcodeResolver] = None,
        settings: Optional[Settings] = None,
        verifier: Callable[[str], ClerkUser] = verify_clerk_token,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or get_settings()
        self.verifier = verifier
        self.store = store
        self.blob_store = blob_store
        self.barcode_resolver = barcode_resolver
        self.lists = ListRepository(
            store,
            blob_store,
            self.settings.default_list_name,
            blob_timeout=self.settings.store_timeout_seconds,
        )
        self.items = ItemRepository(store)
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._reaper: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "SessionManager":
        settings = settings or get_settings()
        blob_store = S3BlobStore() if settings.s3_enabled else None
        if blob_store is None:
            print("⚠️ S3 not configured, photo upload disabled")
        return cls(
            store=build_store(settings),
            blob_store=blob_store,
            barcode_resolver=OpenFoodFactsResolver(),
            settings=settings,
        )

    def __len__(self) -> int:
        return len(self._sessions)

    def sockets(self, user_id: str) -> int:
        session = self._sessions.get(user_id)
        return session.sockets if session else 0

    async def get(self, user: ClerkUser) -> ShoppingListViewModel:
        """The user's session, started on first use."""
        session = await self._get_or_start(user)
        return session.view_model

    async def _get_or_start(self, user: ClerkUser) -> Session:
        self._ensure_reaper()
        async with self._lock:
            session = self._sessions.get(user.id)
            if session is not None:
                session.last_seen = self._clock()
                # Keep profile changes (e.g. a new email) flowing into the session
                session.identity.set_user(user)
                return session

            identity = ClerkIdentityProvider(user=user)
            view_model = ShoppingListViewModel(
                identity,
                self.lists,
                self.items,
                blob_store=self.blob_store,
                barcode_resolver=self.barcode_resolver,
                settings=self.settings,
            )
            await view_model.start()
            session = Session(identity=identity, view_model=view_model, last_seen=self._clock())
            self._sessions[user.id] = session
            print(f"🚀 Session started for {user.email or user.id}")
            return session

    @asynccontextmanager
    async def connect(self, user: ClerkUser) -> AsyncIterator[ShoppingListViewModel]:
        """Hold the user's session open for the lifetime of a live socket."""
        session = await self._get_or_start(user)
        session.sockets += 1
        try:
            yield session.view_model
        finally:
            session.sockets -= 1
            session.last_seen = self._clock()

    def _is_idle(self, session: Session, now: float) -> bool:
        return (
            session.sockets == 0
            and session.view_model.ops.in_flight == 0
            and now - session.last_seen >= self.settings.session_idle_seconds
        )

    async def reap_idle(self) -> int:
        """Close every idle session. Returns how many were closed."""
        now = self._clock()
        async with self._lock:
            idle = [uid for uid, s in self._sessions.items() if self._is_idle(s, now)]
            closing = [(uid, self._sessions.pop(uid)) for uid in idle]
        for user_id, session in closing:
            await session.view_model.close()
            print(f"💤 Idle session closed for {user_id}")
        return len(closing)

    def _ensure_reaper(self) -> None:
        if self._reaper is None or self._reaper.done():
            self._reaper = asyncio.create_task(self._reap_forever())

    async def _reap_forever(self) -> None:
        while True:
            await asyncio.sleep(self.settings.session_reap_interval_seconds)
            try:
                await self.reap_idle()
            except Exception as e:
                print(f"❌ Session reaper error: {e}")

    async def close(self, user_id: str) -> None:
        async with self._lock:
            session = self._sessions.pop(user_id, None)
        if session is not None:
            await session.view_model.close()
            print(f"👋 Session closed for {user_id}")

    async def close_all(self) -> None:
        if self._reaper is not None:
            self._reaper.cancel()
            await asyncio.gather(self._reaper, return_exceptions=True)
            self._reaper = None
        for user_id in list(self._sessions):
            await self.close(user_id)
        await self.store.close()


_manager: Optional[SessionManager] = None


def get_session_manager() -> SessionManager:
    """FastAPI dependency returning the process-wide session manager."""
    global _manager
    if _manager is None:
        _manager = SessionManager.from_settings()
    return _manager


async def get_session(
    user: ClerkUser = Depends(get_current_user),
    manager: SessionManager = Depends(get_session_manager),
) -> ShoppingListViewModel:
    """FastAPI dependency returning the caller's started session."""
    return await manager.get(user)


async def shutdown_sessions() -> None:
    """Close the process-wide session manager if one was created."""
    global _manager
    if _manager is not None:
        await _manager.close_all()
        _manager = None
