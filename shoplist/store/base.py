"""Remote document store contract.

A store holds named collections of JSON-like documents. Every operation is
async and raises StoreError on failure; retries are the caller's decision.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator, Callable, Optional

from shoplist.errors import ValidationError

EQUALS = "=="
ARRAY_CONTAINS = "array_contains"


@dataclass(frozen=True)
class Document:
    """A document snapshot: store-assigned id plus its fields."""
    id: str
    data: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class DocumentRef:
    collection: str
    id: str


@dataclass(frozen=True)
class Filter:
    field: str
    op: str
    value: Any

    def matches(self, data: dict[str, Any]) -> bool:
        current = data.get(self.field)
        if self.op == EQUALS:
            return current == self.value
        if self.op == ARRAY_CONTAINS:
            return isinstance(current, (list, tuple)) and self.value in current
        raise ValidationError(f"Unsupported query operator: {self.op}")


@dataclass(frozen=True)
class Query:
    """Conjunction of field filters over one collection, with an optional limit."""
    collection: str
    filters: tuple[Filter, ...] = ()
    limit: Optional[int] = None

    def where(self, field_name: str, op: str, value: Any) -> "Query":
        if op not in (EQUALS, ARRAY_CONTAINS):
            raise ValidationError(f"Unsupported query operator: {op}")
        return replace(self, filters=self.filters + (Filter(field_name, op, value),))

    def limit_to(self, count: int) -> "Query":
        return replace(self, limit=count)

    def matches(self, data: dict[str, Any]) -> bool:
        return all(f.matches(data) for f in self.filters)

    def apply(self, documents: list[Document]) -> list[Document]:
        """Filter and limit documents already loaded from the collection."""
        matched = [doc for doc in documents if self.matches(doc.data)]
        if self.limit is not None:
            matched = matched[:self.limit]
        return matched


# fn(current fields or None) -> fields to merge, or None to skip the write
UpdateFn = Callable[[Optional[dict[str, Any]]], Optional[dict[str, Any]]]


def chunked(refs: list[DocumentRef], size: int) -> list[list[DocumentRef]]:
    return [refs[i:i + size] for i in range(0, len(refs), size)]


class RemoteStore(ABC):
    """Base class for document store adapters."""

    DEFAULT_BATCH_LIMIT = 500

    def __init__(self, max_batch_size: int = DEFAULT_BATCH_LIMIT):
        if max_batch_size < 1:
            raise ValidationError("max_batch_size must be at least 1")
        self.max_batch_size = max_batch_size

    def new_id(self) -> str:
        """Generate a fresh document id."""
        return uuid.uuid4().hex

    @abstractmethod
    def subscribe(self, query: Query) -> AsyncIterator[list[Document]]:
        """
        Live query.

        Yields the full matching snapshot immediately and again after every
        change. Never ends on its own; raises StoreError when the listener
        fails. Closing the iterator releases the subscription.
        """

    @abstractmethod
    async def get(self, query: Query) -> list[Document]:
        """One-shot read of the documents matching a query."""

    @abstractmethod
    async def write(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Create or fully overwrite a document."""

    @abstractmethod
    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Merge fields into an existing document (not_found if it is missing)."""

    @abstractmethod
    async def transactional_update(self, ref: DocumentRef, fn: UpdateFn) -> None:
        """Read-modify-write a single document atomically."""

    @abstractmethod
    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete one document. Deleting a missing document is not an error."""

    @abstractmethod
    async def _delete_batch(self, refs: list[DocumentRef]) -> None:
        """Atomically delete at most max_batch_size documents."""

    async def batch_delete(self, refs: list[DocumentRef]) -> None:
        """Delete many documents, split into batches the store accepts."""
        for batch in chunked(list(refs), self.max_batch_size):
            await self._delete_batch(batch)

    async def ping(self) -> None:
        """Check connectivity. Raises StoreError when unreachable."""

    async def close(self) -> None:
        """Release connections held by the adapter."""
