# certconv/cancel.py
from __future__ import annotations

import threading
import time
from typing import Callable, Optional

from .errors import Canceled


class CancelToken:
    """Cancellation and deadline signal passed into every blocking call.

    A token fires when ``cancel()`` is called or when its deadline (monotonic
    clock) has passed. Tokens are safe to share between threads.
    """

    def __init__(
        self,
        deadline: Optional[float] = None,
        now_fn: Callable[[], float] | None = None,
    ) -> None:
        self._event = threading.Event()
        self._now = now_fn or time.monotonic
        self._deadline = deadline

    @classmethod
    def with_timeout(cls, seconds: float, now_fn: Callable[[], float] | None = None) -> "CancelToken":
        now = now_fn or time.monotonic
        return cls(deadline=now() + seconds, now_fn=now)

    def cancel(self) -> None:
        self._event.set()

    @property
    def deadline_exceeded(self) -> bool:
        return self._deadline is not None and self._now() >= self._deadline

    @property
    def cancelled(self) -> bool:
        return self._event.is_set() or self.deadline_exceeded

    def remaining(self) -> Optional[float]:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._now())

    def reason(self) -> str:
        if self._event.is_set():
            return "operation canceled"
        return "deadline exceeded"

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise Canceled(self.reason())


def check(cancel: Optional[CancelToken]) -> None:
    if cancel is not None:
        cancel.raise_if_cancelled()
