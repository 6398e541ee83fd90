"""In-process document store with real-time snapshot fan-out."""

import asyncio
import copy
from typing import Any, AsyncIterator, Optional

from shoplist.errors import StoreError
from shoplist.store.base import Document, DocumentRef, Query, RemoteStore, UpdateFn


class _Watcher:
    """One live query registered against the store."""

    def __init__(self, query: Query):
        self.query = query
        self.queue: asyncio.Queue = asyncio.Queue()
        self.last: Optional[list[Document]] = None

    def offer(self, snapshot: list[Document]) -> None:
        if snapshot != self.last:
            self.last = snapshot
            self.queue.put_nowait(snapshot)


class MemoryStore(RemoteStore):
    """
    Keeps every collection in a dict and pushes new snapshots to live
    queries after each committed change.

    Used for local development and tests. `fail_next` and
    `fail_subscriptions` inject StoreErrors; `operations` records every
    committed mutation in order.
    """

    def __init__(self, max_batch_size: int = RemoteStore.DEFAULT_BATCH_LIMIT):
        super().__init__(max_batch_size)
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._watchers: set[_Watcher] = set()
        self._lock = asyncio.Lock()
        self._failures: dict[str, list[StoreError]] = {}
        self.operations: list[tuple] = []

    # -- test hooks -----------------------------------------------------

    def fail_next(self, operation: str, error: StoreError, times: int = 1) -> None:
        """Make the next `times` calls of `operation` raise `error`."""
        self._failures.setdefault(operation, []).extend([error] * times)

    def fail_subscriptions(self, collection: str, error: StoreError) -> None:
        """Break every live query currently open on a collection."""
        for watcher in list(self._watchers):
            if watcher.query.collection == collection:
                watcher.queue.put_nowait(error)

    @property
    def active_subscriptions(self) -> int:
        return len(self._watchers)

    def documents(self, collection: str) -> dict[str, dict[str, Any]]:
        """Raw view of a collection (copied)."""
        return copy.deepcopy(self._collections.get(collection, {}))

    def count(self, operation: str) -> int:
        return sum(1 for op in self.operations if op[0] == operation)

    # -- internals ------------------------------------------------------

    def _check(self, operation: str) -> None:
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _snapshot(self, query: Query) -> list[Document]:
        docs = [
            Document(id=doc_id, data=copy.deepcopy(data))
            for doc_id, data in self._collections.get(query.collection, {}).items()
        ]
        return query.apply(docs)

    def _notify(self, collection: str) -> None:
        for watcher in list(self._watchers):
            if watcher.query.collection == collection:
                watcher.offer(self._snapshot(watcher.query))

    # -- RemoteStore ----------------------------------------------------

    async def subscribe(self, query: Query) -> AsyncIterator[list[Document]]:
        self._check("subscribe")
        watcher = _Watcher(query)
        self._watchers.add(watcher)
        try:
            watcher.offer(self._snapshot(query))
            while True:
                snapshot = await watcher.queue.get()
                if isinstance(snapshot, StoreError):
                    raise snapshot
                yield snapshot
        finally:
            self._watchers.discard(watcher)

    async def get(self, query: Query) -> list[Document]:
        self._check("get")
        return self._snapshot(query)

    async def write(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        async with self._lock:
            self._check("write")
            self._collections.setdefault(collection, {})[doc_id] = copy.deepcopy(fields)
            self.operations.append(("write", collection, doc_id))
        self._notify(collection)

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        async with self._lock:
            self._check("update")
            docs = self._collections.get(collection, {})
            if doc_id not in docs:
                raise StoreError.not_found(f"{collection}/{doc_id}")
            docs[doc_id].update(copy.deepcopy(fields))
            self.operations.append(("update", collection, doc_id))
        self._notify(collection)

    async def transactional_update(self, ref: DocumentRef, fn: UpdateFn) -> None:
        async with self._lock:
            self._check("transaction")
            docs = self._collections.get(ref.collection, {})
            if ref.id not in docs:
                raise StoreError.not_found(f"{ref.collection}/{ref.id}")
            changes = fn(copy.deepcopy(docs[ref.id]))
            if changes is None:
                return
            docs[ref.id].update(copy.deepcopy(changes))
            self.operations.append(("transaction", ref.collection, ref.id))
        self._notify(ref.collection)

    async def delete(self, collection: str, doc_id: str) -> None:
        async with self._lock:
            self._check("delete")
            self._collections.get(collection, {}).pop(doc_id, None)
            self.operations.append(("delete", collection, doc_id))
        self._notify(collection)

    async def _delete_batch(self, refs: list[DocumentRef]) -> None:
        async with self._lock:
            self._check("batch_delete")
            for ref in refs:
                self._collections.get(ref.collection, {}).pop(ref.id, None)
            self.operations.append(("batch_delete", tuple(refs)))
        for collection in {ref.collection for ref in refs}:
            self._notify(collection)
