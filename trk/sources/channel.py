"""
Cancellable delivery of location fixes from a producer to the tracker.

A producer (sensor reader, log replay, ...) pushes fixes and errors into a
`FixChannel`; a subscription drains it on its own thread and hands items to
the callbacks one at a time, in the order they were pushed.
"""

import threading
from queue import Empty, Queue
from typing import Callable, Optional, Protocol

from trk.tracking.types import Fix
from trk.utils.log import get_logger

logger = get_logger(__name__)

OnFix = Callable[[Fix], None]
OnError = Callable[[Exception], None]

_END = object()


class FixSource(Protocol):
    def subscribe(self, on_fix: OnFix, on_error: OnError) -> "Subscription": ...

    def unsubscribe(self, subscription: "Subscription") -> None: ...


class Subscription:
    """
    Handle of one consumer attached to a channel.
    """

    def __init__(self, queue: Queue, on_fix: OnFix, on_error: OnError, poll_s: float = 0.1):
        self._queue = queue
        self._on_fix = on_fix
        self._on_error = on_error
        self._poll_s = poll_s
        self._cancelled = threading.Event()
        self._finished = threading.Event()
        self._thread = threading.Thread(target=self._run, name="fix-delivery", daemon=True)

    def start(self) -> None:
        self._thread.start()

    @property
    def active(self) -> bool:
        return not (self._cancelled.is_set() or self._finished.is_set())

    def cancel(self) -> None:
        """
        Stop delivering; the fix being handled right now is allowed to finish.
        """
        self._cancelled.set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until the producer closed the channel or the subscription was cancelled.
        """
        self._thread.join(timeout)
        return not self._thread.is_alive()

    def _run(self) -> None:
        while not self._cancelled.is_set():
            try:
                item = self._queue.get(timeout=self._poll_s)
            except Empty:
                continue
            if item is _END:
                break
            if self._cancelled.is_set():
                break
            try:
                if isinstance(item, Exception):
                    self._on_error(item)
                else:
                    self._on_fix(item)
            except Exception:
                logger.exception("Fix handler failed")
        self._finished.set()


class FixChannel:
    """
    In-process fix source fed by `push`/`fail` and terminated by `close`.
    """

    def __init__(self, maxsize: int = 0):
        self._queue: Queue = Queue(maxsize)
        self._subscription: Optional[Subscription] = None

    def push(self, fix: Fix) -> None:
        self._queue.put(fix)

    def fail(self, error: Exception) -> None:
        """
        Report a sensor problem (permission denied, signal lost, ...).
        """
        self._queue.put(error)

    def close(self) -> None:
        self._queue.put(_END)

    def subscribe(self, on_fix: OnFix, on_error: OnError) -> Subscription:
        if self._subscription is not None and self._subscription.active:
            raise RuntimeError("channel already has an active subscriber")
        self._subscription = Subscription(self._queue, on_fix, on_error)
        self._subscription.start()
        return self._subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscription.cancel()
        if subscription is self._subscription:
            self._subscription = None
