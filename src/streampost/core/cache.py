from __future__ import annotations

import threading
from typing import Callable, Generic, Optional, Protocol, TypeVar

T = TypeVar("T")


class ValueCache(Protocol[T]):
    def get(self) -> Optional[T]:
        ...

    def set(self, value: T) -> None:
        ...

    def invalidate(self) -> None:
        ...

    def get_or_load(self, loader: Callable[[], T]) -> T:
        ...


class LockedValueCache(Generic[T]):
    """Holds one value; every read-check-write runs under a single lock.

    `get_or_load` keeps the lock while the loader runs, so concurrent callers
    wait for the in-flight load instead of issuing their own. A loader that
    raises leaves the cache empty.
    """

    def __init__(self, initial: Optional[T] = None):
        self._value: Optional[T] = initial
        self._lock = threading.Lock()

    def get(self) -> Optional[T]:
        with self._lock:
            return self._value

    def set(self, value: T) -> None:
        with self._lock:
            self._value = value

    def invalidate(self) -> None:
        with self._lock:
            self._value = None

    def get_or_load(self, loader: Callable[[], T]) -> T:
        with self._lock:
            if self._value is not None:
                return self._value
            value = loader()
            self._value = value
            return value
