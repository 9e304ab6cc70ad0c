"""
In-process implementations of the host capabilities.

Used by the test-suite and by embedders that run a single client. Nothing
here replicates anything.
"""

from __future__ import annotations

import itertools
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

from .interfaces import ActiveUser, HostUnavailableError

T = TypeVar("T")


class InMemorySyncedMap(Generic[T]):
    def __init__(self, items: dict[str, T] | None = None):
        self._items: dict[str, T] = dict(items or {})

    def get(self, key: str) -> T | None:
        return self._items.get(key)

    def set(self, key: str, value: T) -> None:
        self._items[key] = value

    def delete(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)

    @property
    def size(self) -> int:
        return len(self._items)

    def to_dict(self) -> dict[str, T]:
        return dict(self._items)


class InMemorySyncedState(Generic[T]):
    def __init__(self, initial: T):
        self._value = initial

    def get(self) -> T:
        return self._value

    def set(self, value: T) -> None:
        self._value = value


class StaticIdentityProvider:
    """Identity fixed by the embedder. `user_id=None` mimics a host without identity."""

    def __init__(
        self,
        user_id: str | None,
        user_name: str | None = None,
        active: Iterable[ActiveUser] | None = None,
    ):
        self.user_id = user_id
        self.user_name = user_name
        self.active: list[ActiveUser] | None = list(active) if active is not None else None

    def current_user_id(self) -> str | None:
        return self.user_id

    def current_user_name(self) -> str:
        return self.user_name or "Anonymous"

    def active_users(self) -> list[ActiveUser]:
        if self.active is None:
            raise HostUnavailableError("active_users")
        return list(self.active)


@dataclass
class RecordingNotifier:
    messages: list[tuple[str, int | None]] = field(default_factory=list)

    def notify(self, message: str, *, timeout: int | None = None) -> None:
        self.messages.append((message, timeout))

    @property
    def last(self) -> str | None:
        return self.messages[-1][0] if self.messages else None


class ManualTimer:
    """Timer driven by `advance(ms)` instead of wall-clock time."""

    def __init__(self):
        self.now = 0
        self._ids = itertools.count(1)
        self._pending: dict[int, tuple[int, Callable[[], None]]] = {}

    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> Any:
        handle = next(self._ids)
        self._pending[handle] = (self.now + max(0, int(delay_ms)), callback)
        return handle

    def cancel(self, handle: Any) -> None:
        self._pending.pop(handle, None)

    @property
    def pending(self) -> int:
        return len(self._pending)

    def advance(self, ms: int) -> None:
        target = self.now + ms
        while True:
            due = [(at, h) for h, (at, _) in self._pending.items() if at <= target]
            if not due:
                break
            at, handle = min(due)
            _, callback = self._pending.pop(handle)
            self.now = at
            callback()
        self.now = target
