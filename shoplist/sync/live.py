"""Observable values for the view layer."""

import asyncio
from typing import AsyncIterator, Callable, Generic, TypeVar

T = TypeVar("T")

Listener = Callable[[T], None]
Disposer = Callable[[], None]


class LiveValue(Generic[T]):
    """
    Holds the latest value of a piece of view state.

    Listeners registered with `subscribe` are called synchronously on every
    change; `watch()` is an async iterator that yields the current value and
    then each new one (intermediate values may be skipped if the consumer is
    slow, like a conflated state flow). With `distinct=True` setting an equal
    value is ignored.
    """

    def __init__(self, initial: T, distinct: bool = True):
        self._value = initial
        self._distinct = distinct
        self._version = 0
        self._listeners: list[Listener] = []
        self._changed = asyncio.Event()

    @property
    def value(self) -> T:
        return self._value

    @property
    def version(self) -> int:
        return self._version

    def set(self, value: T) -> None:
        if self._distinct and value == self._value:
            return
        self._value = value
        self._version += 1
        event = self._changed
        self._changed = asyncio.Event()
        event.set()
        for listener in list(self._listeners):
            listener(value)

    def subscribe(self, listener: Listener) -> Disposer:
        """Register a change listener; call the returned function to remove it."""
        self._listeners.append(listener)

        def dispose() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return dispose

    def changed(self) -> asyncio.Event:
        """Event that will be set by the next change."""
        return self._changed

    async def watch(self) -> AsyncIterator[T]:
        seen = -1
        while True:
            if seen != self._version:
                seen = self._version
                yield self._value
            else:
                await self._changed.wait()

    def __repr__(self) -> str:
        return f"LiveValue({self._value!r})"
