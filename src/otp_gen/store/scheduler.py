"""Delayed task queue backing OTP expiry — one thread, a deadline heap."""

from __future__ import annotations

import heapq
import itertools
import logging
import threading
import time
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)


class ExpiryScheduler:
    """Runs callbacks once their monotonic deadline has passed.

    A single daemon worker serves every scheduled entry, so the thread
    count does not grow with the number of outstanding OTPs.  After
    :meth:`stop` no new entries are accepted, but the ones already queued
    still fire; the worker exits once the queue is drained.
    """

    def __init__(self, name: str = "otp-expiry") -> None:
        self._name = name
        self._cond = threading.Condition()
        self._heap: list[tuple[float, int, Callable[..., Any], tuple]] = []
        self._seq = itertools.count()
        self._accepting = False
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Accept entries, launching the worker unless one is still draining."""
        with self._cond:
            if self._thread is None:
                thread = threading.Thread(target=self._run, name=self._name, daemon=True)
                thread.start()
                self._thread = thread
            self._accepting = True
            self._cond.notify_all()

    def stop(self) -> None:
        """Stop accepting entries; queued ones still fire."""
        with self._cond:
            self._accepting = False
            self._cond.notify_all()

    def schedule(self, delay: float, callback: Callable[..., Any], *args: Any) -> None:
        """Run ``callback(*args)`` once, *delay* seconds from now.

        Raises ``RuntimeError`` if the scheduler is not accepting entries.
        """
        with self._cond:
            if not self._accepting:
                raise RuntimeError("expiry scheduler is not running")
            deadline = time.monotonic() + delay
            heapq.heappush(self._heap, (deadline, next(self._seq), callback, args))
            self._cond.notify()

    @property
    def pending(self) -> int:
        with self._cond:
            return len(self._heap)

    @property
    def is_alive(self) -> bool:
        with self._cond:
            return self._thread is not None

    def _run(self) -> None:
        while True:
            with self._cond:
                while True:
                    if not self._heap:
                        if not self._accepting:
                            self._thread = None
                            return
                        self._cond.wait()
                        continue
                    remaining = self._heap[0][0] - time.monotonic()
                    if remaining <= 0:
                        _, _, callback, args = heapq.heappop(self._heap)
                        break
                    self._cond.wait(remaining)

            # Called without the condition held; callbacks take their own locks
            try:
                callback(*args)
            except Exception:
                logger.exception("Expiry callback %r failed", callback)
