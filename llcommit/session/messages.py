"""Messages the session consumes and commands it hands back to the runtime."""

from dataclasses import dataclass
from typing import Union

# KeyPress.key for printable input; the characters are in KeyPress.text
RUNES = "runes"


@dataclass(frozen=True)
class ContentDelta:
    text: str
    stop: bool = False


@dataclass(frozen=True)
class StreamError:
    error: Exception


@dataclass(frozen=True)
class EndOfStream:
    pass


@dataclass(frozen=True)
class KeyPress:
    key: str  # binding name such as "enter", "c-r", "left", or RUNES
    text: str = ""


@dataclass(frozen=True)
class SpinnerTick:
    pass


@dataclass(frozen=True)
class TimerTick:
    pass


Message = Union[ContentDelta, StreamError, EndOfStream, KeyPress, SpinnerTick, TimerTick]


@dataclass(frozen=True)
class StartStream:
    """Open a new completion stream for the session's request."""
    pass


@dataclass(frozen=True)
class ReadNext:
    """Pull the next event from the active stream."""
    pass


@dataclass(frozen=True)
class Quit:
    pass


Command = Union[StartStream, ReadNext, Quit]
