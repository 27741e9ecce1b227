"""Background stream plumbing shared by the completion clients.

A ``CompletionStream`` runs a client's decode loop on a daemon thread and
hands the decoded events to the caller through a bounded ``Channel``. The
caller pulls events one at a time; a ``CancelScope`` stops the worker.
"""

import logging
import threading
from collections import deque
from typing import Callable, Iterator

from llcommit.llm.base import ContentEvent, StreamCancelled, TransportError
from llcommit.log import null_logger

STREAM_CAPACITY = 10
SEND_POLL_INTERVAL = 0.05  # seconds between cancellation checks while blocked


class CancelScope:
    """Propagating stop signal. Cancelling a scope cancels all its children.

    Callbacks registered with ``on_cancel`` run once, on the thread that
    cancels, so they can unblock work another thread is waiting on.
    """

    def __init__(self, parent: 'CancelScope | None' = None):
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        if parent is not None:
            parent.on_cancel(self.cancel)

    def on_cancel(self, callback: Callable[[], None]) -> None:
        """Run ``callback`` when cancelled, or right away if already cancelled."""
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return
        callback()

    def cancel(self) -> None:
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def child(self) -> 'CancelScope':
        return CancelScope(parent=self)


class ChannelClosed(Exception):
    """Raised by receive() once the channel is closed and drained."""
    pass


class Channel:
    """Bounded FIFO between one producer thread and one consumer."""

    def __init__(self, capacity: int = STREAM_CAPACITY):
        self.capacity = capacity
        self._items: deque = deque()
        self._closed = False
        self._cond = threading.Condition()

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    def send(self, item, scope: CancelScope) -> bool:
        """Block until there is room. Returns False if cancelled or closed first."""
        with self._cond:
            while len(self._items) >= self.capacity:
                if self._closed or scope.cancelled:
                    return False
                self._cond.wait(SEND_POLL_INTERVAL)
            if self._closed or scope.cancelled:
                return False
            self._items.append(item)
            self._cond.notify_all()
            return True

    def push(self, item) -> None:
        """Append regardless of capacity. Only used for the final event."""
        with self._cond:
            if self._closed:
                return
            self._items.append(item)
            self._cond.notify_all()

    def close(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            self._cond.notify_all()

    def receive(self, timeout: float | None = None):
        """Next item in order.

        Raises ChannelClosed when closed and empty, TimeoutError if nothing
        arrived within ``timeout`` seconds.
        """
        with self._cond:
            ready = self._cond.wait_for(lambda: self._items or self._closed, timeout)
            if not ready:
                raise TimeoutError("no stream event within timeout")
            if self._items:
                item = self._items.popleft()
                self._cond.notify_all()
                return item
            raise ChannelClosed()


class CompletionStream:
    """A live streaming exchange.

    Iterating yields ContentEvents in the order the worker produced them and
    stops once the channel is closed. A stream is finite and cannot be
    restarted; regenerating opens a new one.
    """

    def __init__(self, events: Iterator[ContentEvent], scope: CancelScope,
                 capacity: int = STREAM_CAPACITY, logger: logging.Logger | None = None,
                 abort: Callable[[], None] | None = None):
        self.scope = scope
        self.channel = Channel(capacity)
        self.logger = logger or null_logger()
        self._events = events
        self._thread = threading.Thread(target=self._run, name="llcommit-stream", daemon=True)
        self._thread.start()
        # Wakes a worker stuck in a blocking read; it then sees the cancel
        if abort is not None:
            scope.on_cancel(abort)

    def _run(self) -> None:
        try:
            for event in self._events:
                if not self.channel.send(event, self.scope):
                    break
        except Exception as e:
            if self.scope.cancelled:
                self.logger.debug("Stream worker stopped after cancel: %s", e)
            else:
                self.logger.error("Stream worker failed", exc_info=True)
                self.channel.push(ContentEvent.failure(TransportError(f"stream failed: {e}")))
        finally:
            if self.scope.cancelled:
                self.logger.debug("Stream cancelled, abandoning pending events")
                self.channel.push(ContentEvent.failure(StreamCancelled("stream cancelled")))
            close = getattr(self._events, "close", None)
            if close is not None:
                close()
            self.channel.close()
            self.logger.debug("Stream channel closed")

    @property
    def alive(self) -> bool:
        return self._thread.is_alive()

    def next_event(self, timeout: float | None = None) -> ContentEvent | None:
        """Next event, or None once the stream has ended."""
        try:
            return self.channel.receive(timeout)
        except ChannelClosed:
            return None

    def __iter__(self) -> 'CompletionStream':
        return self

    def __next__(self) -> ContentEvent:
        event = self.next_event()
        if event is None:
            raise StopIteration
        return event

    def close(self, timeout: float = 1.0) -> None:
        """Cancel the worker and wait briefly for it to release the transport."""
        self.scope.cancel()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout)
