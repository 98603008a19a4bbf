"""Single-slot exchange used to hand the current token to concurrent readers."""

import threading
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


class Mailbox(Generic[T]):
    """A blocking slot holding at most one value.

    Readers use `peek`, which never empties the slot. Only the owner of the
    value (the token refresher) calls `take_for_update` and must follow it
    with a `publish`.
    """

    def __init__(self, value: Optional[T] = None):
        self._cond = threading.Condition()
        self._full = False
        self._value: Optional[T] = None
        if value is not None:
            self._value = value
            self._full = True

    def is_full(self) -> bool:
        with self._cond:
            return self._full

    def publish(self, value: T, timeout: Optional[float] = None) -> None:
        """Store `value`, blocking while the slot is occupied."""
        with self._cond:
            if not self._cond.wait_for(lambda: not self._full, timeout=timeout):
                raise TimeoutError("Mailbox is still full")
            self._value = value
            self._full = True
            self._cond.notify_all()

    def peek(self, timeout: Optional[float] = None) -> T:
        """Return the current value without removing it."""
        with self._cond:
            if not self._cond.wait_for(lambda: self._full, timeout=timeout):
                raise TimeoutError("Mailbox is empty")
            return self._value  # type: ignore[return-value]

    def take_for_update(self, timeout: Optional[float] = None) -> T:
        """Remove and return the current value, leaving the slot empty."""
        with self._cond:
            if not self._cond.wait_for(lambda: self._full, timeout=timeout):
                raise TimeoutError("Mailbox is empty")
            value = self._value
            self._value = None
            self._full = False
            self._cond.notify_all()
            return value  # type: ignore[return-value]
