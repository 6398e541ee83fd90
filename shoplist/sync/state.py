"""Coarse in-flight/error bookkeeping shared by all intents of a session."""

from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

from shoplist.sync.live import LiveValue


@dataclass
class DuplicatePrompt:
    """A write held back because its name collides with an existing item."""
    name: str
    on_confirm: Callable[[], Awaitable[None]]


class OperationState:
    """
    In-flight operation counter plus a most-recent-error slot.

    `loading` is True while any tracked operation runs, so overlapping
    intents OR together. `error` holds whichever failure was reported last.
    """

    def __init__(self):
        self.loading: LiveValue[bool] = LiveValue(False)
        self.error: LiveValue[Optional[str]] = LiveValue(None, distinct=False)
        self._in_flight = 0

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @asynccontextmanager
    async def track(self) -> AsyncIterator[None]:
        self._in_flight += 1
        self.loading.set(True)
        try:
            yield
        finally:
            self._in_flight -= 1
            self.loading.set(self._in_flight > 0)

    def report(self, message: str) -> None:
        self.error.set(message)

    def clear_error(self) -> None:
        if self.error.value is not None:
            self.error.set(None)
