"""Event bridge between a completion stream and the session loop.

The runtime calls ``next_event`` from an executor thread, so only that task
waits for the network; the loop keeps handling keys and ticks meanwhile.
"""

from typing import Iterator

from llcommit.llm import CompletionStream, ContentEvent
from llcommit.session.messages import ContentDelta, EndOfStream, StreamError

# How often a waiting read rechecks for cancellation
WAIT_SLICE = 0.1


class EventBridge:
    """Turns one stream's events into session messages, in order."""

    def __init__(self, stream: CompletionStream):
        self.stream = stream
        self.exhausted = False

    def next_event(self) -> ContentDelta | StreamError | EndOfStream:
        """Block until the next event; EndOfStream once the channel closes.

        A cancelled stream also ends an idle wait, so no reader thread is
        left behind when the session quits.
        """
        while not self.exhausted:
            try:
                event = self.stream.next_event(timeout=WAIT_SLICE)
            except TimeoutError:
                if self.stream.scope.cancelled:
                    self.exhausted = True
                continue
            if event is None:
                self.exhausted = True
                break
            return to_message(event)
        return EndOfStream()

    @staticmethod
    def failed(error: Exception) -> Iterator[StreamError | EndOfStream]:
        """Messages for a stream that never opened."""
        yield StreamError(error)
        yield EndOfStream()


def to_message(event: ContentEvent) -> ContentDelta | StreamError:
    if event.error is not None:
        return StreamError(event.error)
    return ContentDelta(event.content, stop=event.stop)
