"""
Host capabilities the session core depends on.

- `SyncedMapLike` / `SyncedState`: replicated key-value map and singleton.
  Replication is the host's job; the core treats both as local and synchronous.
- `IdentityProvider`: current user and the users active in the document.
- `Notifier`: fire-and-forget user notification.
- `Timer`: setTimeout/clearTimeout equivalent for the presence poll.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class ActiveUser:
    id: str | None
    name: str | None = None


class SyncedMapLike(Protocol[T]):
    def get(self, key: str) -> T | None: ...

    def set(self, key: str, value: T) -> None: ...

    def delete(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...

    @property
    def size(self) -> int: ...


class SyncedState(Protocol[T]):
    def get(self) -> T: ...

    def set(self, value: T) -> None: ...


class IdentityProvider(Protocol):
    def current_user_id(self) -> str | None: ...

    def current_user_name(self) -> str: ...

    def active_users(self) -> list[ActiveUser]: ...


class Notifier(Protocol):
    def notify(self, message: str, *, timeout: int | None = None) -> None: ...


class Timer(Protocol):
    def schedule(self, delay_ms: int, callback: Callable[[], None]) -> Any: ...

    def cancel(self, handle: Any) -> None: ...


class HostUnavailableError(Exception):
    """A host capability failed or is not available in this environment."""

    def __init__(self, capability: str, detail: Any = None):
        self.capability = capability
        self.detail = detail
        super().__init__(f"{capability}: {detail or 'unavailable'}")
