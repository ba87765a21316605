from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

_LOGGER = logging.getLogger("eartuner.observable")


class Observable(Generic[T]):
    """Read-only view of a value that notifies subscribers when it changes."""

    def __init__(self, value: T) -> None:
        self._value = value
        self._subscribers: list[Callable[[T], None]] = []

    @property
    def value(self) -> T:
        return self._value

    def subscribe(self, callback: Callable[[T], None]) -> Callable[[], None]:
        self._subscribers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return _unsubscribe

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._value!r})"


class MutableObservable(Observable[T]):
    """Owner-side handle; only the owning object calls :meth:`set`."""

    def set(self, value: T) -> None:
        if value == self._value:
            return
        self._value = value
        for callback in list(self._subscribers):
            try:
                callback(value)
            except Exception as exc:
                _LOGGER.warning("Subscriber failed: %s", exc, exc_info=True)
