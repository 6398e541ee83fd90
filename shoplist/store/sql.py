"""Document store persisted in a SQL database through async SQLAlchemy."""

import asyncio
from contextlib import asynccontextmanager
from dataclasses import replace
from typing import Any, AsyncIterator, Optional

from sqlalchemy import select, delete, and_, or_, text, type_coerce
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from shoplist.errors import StoreError
from shoplist.models.document import StoredDocument
from shoplist.store.base import (
    ARRAY_CONTAINS,
    EQUALS,
    Document,
    DocumentRef,
    Filter,
    Query,
    RemoteStore,
    UpdateFn,
)

PERMISSION_DENIED_SQLSTATE = "42501"


def map_database_error(error: SQLAlchemyError) -> StoreError:
    """Translate a SQLAlchemy error into the store's error taxonomy."""
    orig = getattr(error, "orig", None)
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    message = str(orig or error)
    if code == PERMISSION_DENIED_SQLSTATE or "permission denied" in message.lower():
        return StoreError.permission(message)
    return StoreError.transient(message)


def compile_filters(query: Query, dialect_name: str) -> tuple[list, tuple[Filter, ...]]:
    """
    Split a query's filters into SQL predicates and filters left for Python.

    String equality becomes `data->>'field' = value` on every backend.
    Array membership becomes the JSONB `@>` operator on Postgres, where the
    GIN index can serve it; other backends evaluate it on loaded rows.
    """
    clauses = []
    residual = []
    for f in query.filters:
        if f.op == EQUALS and isinstance(f.value, str):
            clauses.append(StoredDocument.data[f.field].as_string() == f.value)
        elif f.op == ARRAY_CONTAINS and dialect_name == "postgresql":
            clauses.append(type_coerce(StoredDocument.data, JSONB)[f.field].contains([f.value]))
        else:
            residual.append(f)
    return clauses, tuple(residual)


class SqlDocumentStore(RemoteStore):
    """
    Stores every collection in the `documents` table.

    Live queries are re-evaluated right after writes made through this
    adapter and every `poll_interval` seconds to pick up other writers.
    A new snapshot is emitted only when the result actually changed.
    Field filters run in SQL where the backend supports them (see
    `compile_filters`); the rest are applied to the loaded rows.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        poll_interval: float = 2.0,
        max_batch_size: int = RemoteStore.DEFAULT_BATCH_LIMIT,
        engine: Optional[AsyncEngine] = None,
    ):
        super().__init__(max_batch_size)
        self._session_factory = session_factory
        self._poll_interval = poll_interval
        self._engine = engine
        self._changed = asyncio.Event()

    def _bump(self) -> None:
        event = self._changed
        self._changed = asyncio.Event()
        event.set()

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        try:
            async with self._session_factory() as session:
                async with session.begin():
                    yield session
        except SQLAlchemyError as e:
            raise map_database_error(e) from e

    async def _load(self, session: AsyncSession, query: Query) -> list[Document]:
        clauses, residual = compile_filters(query, session.get_bind().dialect.name)
        stmt = (
            select(StoredDocument)
            .where(StoredDocument.collection == query.collection, *clauses)
            .order_by(StoredDocument.created_at, StoredDocument.id)
        )
        if query.limit is not None and not residual:
            stmt = stmt.limit(query.limit)

        result = await session.execute(stmt)
        docs = [Document(id=row.id, data=dict(row.data or {})) for row in result.scalars()]
        return replace(query, filters=residual).apply(docs)

    async def subscribe(self, query: Query) -> AsyncIterator[list[Document]]:
        last = None
        while True:
            changed = self._changed
            async with self._transaction() as session:
                snapshot = await self._load(session, query)
            if snapshot != last:
                last = snapshot
                yield snapshot
            try:
                await asyncio.wait_for(changed.wait(), self._poll_interval)
            except asyncio.TimeoutError:
                pass

    async def get(self, query: Query) -> list[Document]:
        async with self._transaction() as session:
            return await self._load(session, query)

    async def write(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        async with self._transaction() as session:
            row = await session.get(StoredDocument, (collection, doc_id))
            if row is None:
                session.add(StoredDocument(collection=collection, id=doc_id, data=dict(fields)))
            else:
                row.data = dict(fields)
        self._bump()

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        async with self._transaction() as session:
            row = await session.get(StoredDocument, (collection, doc_id), with_for_update=True)
            if row is None:
                raise StoreError.not_found(f"{collection}/{doc_id}")
            # New dict so the JSON column registers the change
            row.data = {**(row.data or {}), **fields}
        self._bump()

    async def transactional_update(self, ref: DocumentRef, fn: UpdateFn) -> None:
        async with self._transaction() as session:
            row = await session.get(StoredDocument, (ref.collection, ref.id), with_for_update=True)
            if row is None:
                raise StoreError.not_found(f"{ref.collection}/{ref.id}")
            changes = fn(dict(row.data or {}))
            if changes is None:
                return
            row.data = {**(row.data or {}), **changes}
        self._bump()

    async def delete(self, collection: str, doc_id: str) -> None:
        async with self._transaction() as session:
            await session.execute(
                delete(StoredDocument).where(
                    StoredDocument.collection == collection,
                    StoredDocument.id == doc_id,
                )
            )
        self._bump()

    async def _delete_batch(self, refs: list[DocumentRef]) -> None:
        if not refs:
            return
        async with self._transaction() as session:
            await session.execute(
                delete(StoredDocument).where(
                    or_(*[
                        and_(StoredDocument.collection == ref.collection, StoredDocument.id == ref.id)
                        for ref in refs
                    ])
                )
            )
        self._bump()

    async def ping(self) -> None:
        async with self._transaction() as session:
            await session.execute(text("SELECT 1"))

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
