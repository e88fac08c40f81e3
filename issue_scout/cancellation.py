from __future__ import annotations

import threading


class CancelToken:
    """Cooperative cancellation flag checked at loop boundaries.

    ``wait`` doubles as an interruptible sleep: it returns early, with True,
    as soon as the token is cancelled.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, seconds: float) -> bool:
        return self._event.wait(max(0.0, seconds))
