"""Background worker that keeps the token in a Mailbox fresh."""

import logging
import math
import threading
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

from .mailbox import Mailbox

T = TypeVar("T")

logger = logging.getLogger(__name__)


class RefresherState(str, Enum):
    RUNNING = "running"
    REFRESHING = "refreshing"
    CANCELLED = "cancelled"
    FAILED = "failed"


def fixed_interval(seconds: float) -> Callable[[object], float]:
    """Sleep the same amount of time before every refresh."""
    return lambda _token: seconds


def lifetime_interval(fraction: float = 0.8) -> Callable[[object], float]:
    """Sleep for `fraction` of the token's `expires_in` lifetime."""

    def _interval(token) -> float:
        lifetime = max(int(getattr(token, "expires_in", 0) or 0), 1)
        return max(math.ceil(lifetime * fraction), 1)

    return _interval


class TokenRefresher(Generic[T]):
    """Periodically take the token from a mailbox, renew it and republish it.

    The mailbox must already hold the initial token when `start` is called.
    `cancel` stops the worker at its next wake-up; the last published token is
    left in place. If renewal fails the worker publishes `sentinel()` so that
    readers get an "empty" token instead of blocking, then exits.
    """

    def __init__(
        self,
        mailbox: Mailbox[T],
        renew: Callable[[T], T],
        interval: Callable[[T], float],
        sentinel: Callable[[], T],
        *,
        after_refresh: Optional[Callable[[T], None]] = None,
        on_failure: Optional[Callable[[], None]] = None,
        name: str = "mimiq-token-refresher",
    ):
        self._mailbox = mailbox
        self._renew = renew
        self._interval = interval
        self._sentinel = sentinel
        self._after_refresh = after_refresh
        self._on_failure = on_failure
        self._cancelled = threading.Event()
        self._state = RefresherState.RUNNING
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    @property
    def state(self) -> RefresherState:
        return self._state

    def start(self) -> None:
        if not self._mailbox.is_full():
            raise RuntimeError("Token refresher started without an initial token")
        self._thread.start()

    def cancel(self) -> None:
        """Ask the worker to stop; does not wait for it."""
        self._cancelled.set()

    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    def join(self, timeout: Optional[float] = None) -> None:
        self._thread.join(timeout)

    def _run(self) -> None:
        token = self._mailbox.peek()
        try:
            while not self._cancelled.wait(self._interval(token)):
                self._state = RefresherState.REFRESHING
                logger.debug("Refreshing tokens")
                current = self._mailbox.take_for_update()
                token = self._renew(current)
                logger.debug("Received new token %r", token)
                self._mailbox.publish(token)
                if self._after_refresh is not None:
                    self._after_refresh(token)
                self._state = RefresherState.RUNNING
        except Exception as exc:
            self._fail(exc)
            return
        self._state = RefresherState.CANCELLED
        logger.info("Gracefully shutting down token refresher")

    def _fail(self, exc: Exception) -> None:
        # A failure after a successful publish still invalidates the token.
        if self._mailbox.is_full():
            self._mailbox.take_for_update()
        self._mailbox.publish(self._sentinel())
        if self._on_failure is not None:
            self._on_failure()
        self._state = RefresherState.FAILED
        logger.warning("Connection to MIMIQ services dropped: %s", exc)
