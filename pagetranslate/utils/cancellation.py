from __future__ import annotations

import threading


class TranslationCancelledError(RuntimeError):
    """Raised from a wait when the batch has been cancelled."""


class CancellableSleeper:
    """Sleep function shared by every wait of a batch.

    ``cancel()`` wakes the current wait immediately and makes every later
    wait raise ``TranslationCancelledError``.
    """

    def __init__(self) -> None:
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    def check(self) -> None:
        if self._cancelled.is_set():
            raise TranslationCancelledError("translation batch cancelled")

    def sleep(self, seconds: float) -> None:
        self.check()
        if seconds > 0 and self._cancelled.wait(timeout=seconds):
            raise TranslationCancelledError("translation batch cancelled")

    __call__ = sleep
